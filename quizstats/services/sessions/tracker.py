# ============================================================================
# Answer Session Tracker
# ============================================================================
"""
Owns the lifecycle of timed answer sessions.

A session is started when a question is shown to a user and completed when
the user submits an answer. Completion records correctness and elapsed time,
then refreshes the user's statistics. Sessions nobody completes are swept
after a configurable idle period.
"""
from datetime import timedelta
from typing import List, Optional
import logging

from quizstats.config import Settings, get_settings
from quizstats.core.clock import Clock, SystemClock
from quizstats.core.exceptions import (
    AlreadyCompleted,
    Conflict,
    NotFound,
    UnresolvedReference,
    require,
    require_positive,
    require_text,
    upstream,
)
from quizstats.repositories.base import QuestionLookup, SessionRepository, UserDirectory
from quizstats.schemas.session import AnswerResult, AnswerSession
from quizstats.services.statistics.aggregator import Isolation, StatisticsAggregator, no_isolation

logger = logging.getLogger(__name__)

class SessionTracker:
    """Starts, completes and sweeps answer sessions"""

    def __init__(
        self,
        sessions: SessionRepository,
        aggregator: StatisticsAggregator,
        questions: QuestionLookup,
        users: UserDirectory,
        clock: Clock = None,
        settings: Settings = None,
        isolation: Isolation = None,
    ):
        """
        Args:
            isolation: factory for the scope the post-completion recompute
                runs in, e.g. ``db.begin_nested`` so a failed recompute only
                rolls back its own savepoint
        """
        settings = settings or get_settings()
        self.sessions = sessions
        self.aggregator = aggregator
        self.questions = questions
        self.users = users
        self.clock = clock or SystemClock()
        self.abandon_after = timedelta(minutes=settings.ABANDONED_SESSION_MINUTES)
        self.isolation = isolation or no_isolation

    # ==================== Lifecycle ====================

    async def start(self, user_id: int, question_id: int) -> AnswerSession:
        require(user_id, "user_id")
        require(question_id, "question_id")

        with upstream("start answer session"):
            if not await self.users.exists(user_id):
                raise UnresolvedReference("User", user_id)
            if await self.questions.resolve(question_id) is None:
                raise UnresolvedReference("Question", question_id)

            if await self.sessions.find_in_progress(user_id, question_id) is not None:
                raise Conflict(
                    f"An answer session is already in progress for user "
                    f"{user_id} and question {question_id}"
                )

            session = await self.sessions.save(
                AnswerSession.start(user_id, question_id, self.clock.now())
            )

        logger.info(f"Answer session {session.id} started: user {user_id}, question {question_id}")
        return session

    async def complete(self, session_id: int, selected_answer: str) -> AnswerSession:
        require(session_id, "session_id")
        require_text(selected_answer, "selected_answer")

        with upstream("complete answer session"):
            session = await self.sessions.find_by_id(session_id)
            if session is None:
                raise NotFound("Answer session", session_id)
            if session.is_completed:
                raise AlreadyCompleted(session_id)

            is_correct = await self.questions.validate_answer(session.question_id, selected_answer)
            completed = await self.sessions.save(
                session.complete(selected_answer, is_correct, self.clock.now())
            )

        logger.info(
            f"Answer session {session_id} completed in {completed.duration_ms}ms "
            f"({'correct' if is_correct else 'incorrect'})"
        )

        await self._refresh_statistics(completed.user_id)
        return completed

    async def _refresh_statistics(self, user_id: int) -> None:
        """Recompute after a completion; a failure here never fails the completion"""
        try:
            async with self.isolation():
                await self.aggregator.recompute(user_id)
        except Exception as e:
            logger.warning(f"Statistics recompute failed for user {user_id}: {e}")

    async def answer_question(self, user_id: int, question_id: int, answer: str) -> AnswerResult:
        """Start (or resume) and complete a session in one call"""
        require(user_id, "user_id")
        require(question_id, "question_id")
        require_text(answer, "answer")

        session = await self.find_in_progress(user_id, question_id)
        if session is None:
            session = await self.start(user_id, question_id)

        completed = await self.complete(session.id, answer)

        with upstream("resolve question"):
            question = await self.questions.resolve(question_id)

        return AnswerResult(
            session_id=completed.id,
            user_id=completed.user_id,
            question_id=completed.question_id,
            selected_answer=completed.selected_answer,
            is_correct=completed.is_correct,
            duration_ms=completed.duration_ms,
            explanation=question.explanation if question else None,
            correct_answer=question.correct_answer if question else None,
        )

    async def sweep_abandoned(self) -> int:
        """Delete in-progress sessions started longer ago than the idle limit"""
        cutoff = self.clock.now() - self.abandon_after
        with upstream("sweep abandoned sessions"):
            deleted = await self.sessions.delete_abandoned(cutoff)

        if deleted:
            logger.info(f"Swept {deleted} abandoned answer sessions started before {cutoff.isoformat()}")
        return deleted

    # ==================== Queries ====================

    async def find_in_progress(self, user_id: int, question_id: int) -> Optional[AnswerSession]:
        require(user_id, "user_id")
        require(question_id, "question_id")
        with upstream("find answer session"):
            return await self.sessions.find_in_progress(user_id, question_id)

    async def sessions_for_user(self, user_id: int) -> List[AnswerSession]:
        require(user_id, "user_id")
        with upstream("list answer sessions"):
            return await self.sessions.find_by_user(user_id)

    async def completed_sessions(self, user_id: int) -> List[AnswerSession]:
        require(user_id, "user_id")
        with upstream("list answer sessions"):
            return await self.sessions.find_completed(user_id)

    async def recent_sessions(self, user_id: int, limit: int = 10) -> List[AnswerSession]:
        require(user_id, "user_id")
        require_positive(limit)
        with upstream("list answer sessions"):
            return await self.sessions.find_recent_completed(user_id, limit)

    async def has_in_progress(self, user_id: int) -> bool:
        require(user_id, "user_id")
        with upstream("list answer sessions"):
            return bool(await self.sessions.find_in_progress_all(user_id))
