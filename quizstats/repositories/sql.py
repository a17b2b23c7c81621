# ============================================================================
# SQLAlchemy Repositories
# ============================================================================
"""
Repository implementations over an SQLAlchemy ``AsyncSession``.

ORM rows never leave this module: every method translates to and from the
immutable schema values. Writes are flushed but not committed; the request
(``get_db``) or the Celery task owns the transaction.
"""
from datetime import datetime
from typing import Dict, List, Optional
import logging

from sqlalchemy import select, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from quizstats.core.clock import as_utc
from quizstats.core.exceptions import Conflict, InvalidInput, NotFound
from quizstats.models.answer_session import AnswerSessionRecord
from quizstats.models.curriculum import Question
from quizstats.models.statistics import UserStatisticsRecord
from quizstats.models.user import User
from quizstats.repositories.base import (
    QuestionLookup,
    SessionRepository,
    StatisticsRepository,
    UserDirectory,
)
from quizstats.schemas.question import Difficulty, QuestionInfo
from quizstats.schemas.session import AnswerSession
from quizstats.schemas.statistics import DifficultyStats, TopicStats, UserStatistics

logger = logging.getLogger(__name__)


# ============================================================================
# Answer sessions
# ============================================================================
class SqlSessionRepository(SessionRepository):

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _to_domain(record: AnswerSessionRecord) -> AnswerSession:
        return AnswerSession(
            id=record.id,
            user_id=record.user_id,
            question_id=record.question_id,
            selected_answer=record.selected_answer,
            is_correct=bool(record.is_correct),
            started_at=as_utc(record.started_at),
            completed_at=as_utc(record.completed_at),
            duration_ms=record.duration_ms,
        )

    @staticmethod
    def _apply(record: AnswerSessionRecord, session: AnswerSession) -> None:
        record.user_id = session.user_id
        record.question_id = session.question_id
        record.selected_answer = session.selected_answer
        record.is_correct = session.is_correct
        record.started_at = session.started_at
        record.completed_at = session.completed_at
        record.duration_ms = session.duration_ms

    async def save(self, session: AnswerSession) -> AnswerSession:
        if session.id is None:
            record = AnswerSessionRecord()
        else:
            record = await self.db.get(AnswerSessionRecord, session.id)
            if record is None:
                raise NotFound("Answer session", session.id)
        self._apply(record, session)

        try:
            # Savepoint so a duplicate does not poison the caller's transaction
            async with self.db.begin_nested():
                self.db.add(record)
                await self.db.flush()
        except IntegrityError as e:
            raise Conflict(
                f"An answer session is already in progress for user "
                f"{session.user_id} and question {session.question_id}"
            ) from e

        return self._to_domain(record)

    async def find_by_id(self, session_id: int) -> Optional[AnswerSession]:
        record = await self.db.get(AnswerSessionRecord, session_id)
        return self._to_domain(record) if record else None

    async def find_in_progress(self, user_id: int, question_id: int) -> Optional[AnswerSession]:
        result = await self.db.execute(
            select(AnswerSessionRecord)
            .where(AnswerSessionRecord.user_id == user_id)
            .where(AnswerSessionRecord.question_id == question_id)
            .where(AnswerSessionRecord.completed_at.is_(None))
            .order_by(AnswerSessionRecord.id)
            .limit(1)
        )
        record = result.scalar_one_or_none()
        return self._to_domain(record) if record else None

    async def find_completed(self, user_id: int) -> List[AnswerSession]:
        result = await self.db.execute(
            select(AnswerSessionRecord)
            .where(AnswerSessionRecord.user_id == user_id)
            .where(AnswerSessionRecord.completed_at.is_not(None))
            .order_by(AnswerSessionRecord.id)
        )
        return [self._to_domain(r) for r in result.scalars().all()]

    async def find_in_progress_all(self, user_id: int) -> List[AnswerSession]:
        result = await self.db.execute(
            select(AnswerSessionRecord)
            .where(AnswerSessionRecord.user_id == user_id)
            .where(AnswerSessionRecord.completed_at.is_(None))
            .order_by(AnswerSessionRecord.id)
        )
        return [self._to_domain(r) for r in result.scalars().all()]

    async def find_by_user(self, user_id: int) -> List[AnswerSession]:
        result = await self.db.execute(
            select(AnswerSessionRecord)
            .where(AnswerSessionRecord.user_id == user_id)
            .order_by(AnswerSessionRecord.id)
        )
        return [self._to_domain(r) for r in result.scalars().all()]

    async def find_recent_completed(self, user_id: int, limit: int) -> List[AnswerSession]:
        result = await self.db.execute(
            select(AnswerSessionRecord)
            .where(AnswerSessionRecord.user_id == user_id)
            .where(AnswerSessionRecord.completed_at.is_not(None))
            .order_by(AnswerSessionRecord.completed_at.desc(), AnswerSessionRecord.id.desc())
            .limit(limit)
        )
        return [self._to_domain(r) for r in result.scalars().all()]

    async def delete_abandoned(self, older_than: datetime) -> int:
        result = await self.db.execute(
            delete(AnswerSessionRecord)
            .where(AnswerSessionRecord.completed_at.is_(None))
            .where(AnswerSessionRecord.started_at < older_than)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    async def exists_for(self, user_id: int, question_id: int) -> bool:
        result = await self.db.execute(
            select(func.count(AnswerSessionRecord.id))
            .where(AnswerSessionRecord.user_id == user_id)
            .where(AnswerSessionRecord.question_id == question_id)
        )
        return (result.scalar() or 0) > 0


# ============================================================================
# User statistics
# ============================================================================
class SqlStatisticsRepository(StatisticsRepository):

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _group_payload(group) -> Dict:
        return {
            "total": group.total,
            "correct": group.correct,
            "accuracy_percent": group.accuracy_percent,
            "average_duration_ms": group.average_duration_ms,
        }

    @classmethod
    def _to_domain(cls, record: UserStatisticsRecord) -> UserStatistics:
        per_difficulty = {}
        for key, payload in (record.per_difficulty or {}).items():
            difficulty = Difficulty(key)
            per_difficulty[difficulty] = DifficultyStats(difficulty=difficulty, **payload)

        per_topic = {
            topic: TopicStats(topic=topic, **payload)
            for topic, payload in (record.per_topic or {}).items()
        }

        return UserStatistics(
            user_id=record.user_id,
            total_questions=record.total_questions,
            correct_answers=record.correct_answers,
            accuracy_percent=record.accuracy_percent,
            average_duration_ms=record.average_duration_ms,
            per_difficulty=per_difficulty,
            per_topic=per_topic,
            last_recomputed_at=as_utc(record.last_recomputed_at),
        )

    async def save(self, stats: UserStatistics) -> UserStatistics:
        record = await self.db.get(UserStatisticsRecord, stats.user_id)
        if record is None:
            record = UserStatisticsRecord(user_id=stats.user_id)
            self.db.add(record)

        # Full replace, last write wins
        record.total_questions = stats.total_questions
        record.correct_answers = stats.correct_answers
        record.accuracy_percent = stats.accuracy_percent
        record.average_duration_ms = stats.average_duration_ms
        record.per_difficulty = {
            d.value: self._group_payload(g) for d, g in stats.per_difficulty.items()
        }
        record.per_topic = {
            topic: self._group_payload(g) for topic, g in stats.per_topic.items()
        }
        record.last_recomputed_at = stats.last_recomputed_at

        await self.db.flush()
        return stats

    async def find_by_user(self, user_id: int) -> Optional[UserStatistics]:
        record = await self.db.get(UserStatisticsRecord, user_id)
        return self._to_domain(record) if record else None

    async def find_all_with_activity(self) -> List[UserStatistics]:
        result = await self.db.execute(
            select(UserStatisticsRecord)
            .where(UserStatisticsRecord.total_questions > 0)
            .order_by(UserStatisticsRecord.user_id)
        )
        return [self._to_domain(r) for r in result.scalars().all()]

    async def top_by_accuracy(self, limit: int) -> List[UserStatistics]:
        result = await self.db.execute(
            select(UserStatisticsRecord)
            .where(UserStatisticsRecord.total_questions > 0)
            .order_by(
                UserStatisticsRecord.accuracy_percent.desc(),
                UserStatisticsRecord.total_questions.desc(),
                UserStatisticsRecord.user_id,
            )
            .limit(limit)
        )
        return [self._to_domain(r) for r in result.scalars().all()]

    async def top_by_volume(self, limit: int) -> List[UserStatistics]:
        result = await self.db.execute(
            select(UserStatisticsRecord)
            .where(UserStatisticsRecord.total_questions > 0)
            .order_by(
                UserStatisticsRecord.total_questions.desc(),
                UserStatisticsRecord.accuracy_percent.desc(),
                UserStatisticsRecord.user_id,
            )
            .limit(limit)
        )
        return [self._to_domain(r) for r in result.scalars().all()]

    async def top_by_duration(self, limit: int) -> List[UserStatistics]:
        result = await self.db.execute(
            select(UserStatisticsRecord)
            .where(UserStatisticsRecord.total_questions > 0)
            .where(UserStatisticsRecord.average_duration_ms > 0)
            .order_by(
                UserStatisticsRecord.average_duration_ms,
                UserStatisticsRecord.accuracy_percent.desc(),
                UserStatisticsRecord.user_id,
            )
            .limit(limit)
        )
        return [self._to_domain(r) for r in result.scalars().all()]

    async def find_stale(self, older_than: datetime, limit: Optional[int] = None) -> List[UserStatistics]:
        query = (
            select(UserStatisticsRecord)
            .where(UserStatisticsRecord.last_recomputed_at < older_than)
            .order_by(UserStatisticsRecord.last_recomputed_at, UserStatisticsRecord.user_id)
        )
        if limit is not None:
            query = query.limit(limit)

        result = await self.db.execute(query)
        return [self._to_domain(r) for r in result.scalars().all()]


# ============================================================================
# Read-only lookups
# ============================================================================
class SqlQuestionLookup(QuestionLookup):

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve(self, question_id: int) -> Optional[QuestionInfo]:
        question = await self.db.get(Question, question_id)
        if question is None:
            return None

        try:
            difficulty = Difficulty.parse(question.difficulty or Difficulty.EASY)
        except InvalidInput:
            logger.warning(f"Question {question_id} has unknown difficulty {question.difficulty!r}, using easy")
            difficulty = Difficulty.EASY

        return QuestionInfo(
            question_id=question.id,
            difficulty=difficulty,
            primary_topic=question.primary_topic,
            correct_answer=question.correct_answer,
            explanation=question.explanation,
        )


class SqlUserDirectory(UserDirectory):

    def __init__(self, db: AsyncSession):
        self.db = db

    async def exists(self, user_id: int) -> bool:
        result = await self.db.execute(select(User.id).where(User.id == user_id))
        return result.scalar_one_or_none() is not None
