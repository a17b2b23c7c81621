# ============================================================================
# In-Memory Repositories
# ============================================================================
"""
Dictionary-backed implementations of the repository interfaces.

Used by the test-suite and for local experiments without a database. Each
store guards its dictionary with an asyncio.Lock so concurrent coroutines see
consistent snapshots.
"""
import asyncio
import itertools
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from quizstats.core.exceptions import Conflict, NotFound
from quizstats.repositories.base import (
    QuestionLookup,
    SessionRepository,
    StatisticsRepository,
    UserDirectory,
)
from quizstats.schemas.question import QuestionInfo
from quizstats.schemas.session import AnswerSession
from quizstats.schemas.statistics import UserStatistics


# ============================================================================
# Ranking orders
# ============================================================================
def accuracy_order(stats: UserStatistics):
    return (-stats.accuracy_percent, -stats.total_questions, stats.user_id)

def volume_order(stats: UserStatistics):
    return (-stats.total_questions, -stats.accuracy_percent, stats.user_id)

def duration_order(stats: UserStatistics):
    return (stats.average_duration_ms, -stats.accuracy_percent, stats.user_id)


# ============================================================================
# Answer sessions
# ============================================================================
class InMemorySessionRepository(SessionRepository):
    """Sessions keyed by id, ids handed out from a counter"""

    def __init__(self):
        self._sessions: Dict[int, AnswerSession] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def save(self, session: AnswerSession) -> AnswerSession:
        async with self._lock:
            if session.is_in_progress:
                for other in self._sessions.values():
                    if (
                        other.id != session.id
                        and other.is_in_progress
                        and other.user_id == session.user_id
                        and other.question_id == session.question_id
                    ):
                        raise Conflict(
                            f"An answer session is already in progress for user "
                            f"{session.user_id} and question {session.question_id}"
                        )

            if session.id is None:
                session = session.with_id(next(self._ids))
            elif session.id not in self._sessions:
                raise NotFound("Answer session", session.id)
            self._sessions[session.id] = session
            return session

    async def find_by_id(self, session_id: int) -> Optional[AnswerSession]:
        async with self._lock:
            return self._sessions.get(session_id)

    async def find_in_progress(self, user_id: int, question_id: int) -> Optional[AnswerSession]:
        async with self._lock:
            for session in self._sorted():
                if session.is_in_progress and session.user_id == user_id and session.question_id == question_id:
                    return session
            return None

    async def find_completed(self, user_id: int) -> List[AnswerSession]:
        async with self._lock:
            return [s for s in self._sorted() if s.user_id == user_id and s.is_completed]

    async def find_in_progress_all(self, user_id: int) -> List[AnswerSession]:
        async with self._lock:
            return [s for s in self._sorted() if s.user_id == user_id and s.is_in_progress]

    async def find_by_user(self, user_id: int) -> List[AnswerSession]:
        async with self._lock:
            return [s for s in self._sorted() if s.user_id == user_id]

    async def find_recent_completed(self, user_id: int, limit: int) -> List[AnswerSession]:
        async with self._lock:
            completed = [s for s in self._sessions.values() if s.user_id == user_id and s.is_completed]
            completed.sort(key=lambda s: (s.completed_at, s.id), reverse=True)
            return completed[:limit]

    async def delete_abandoned(self, older_than: datetime) -> int:
        async with self._lock:
            doomed = [
                session_id
                for session_id, session in self._sessions.items()
                if session.is_in_progress and session.started_at < older_than
            ]
            for session_id in doomed:
                del self._sessions[session_id]
            return len(doomed)

    async def exists_for(self, user_id: int, question_id: int) -> bool:
        async with self._lock:
            return any(
                s.user_id == user_id and s.question_id == question_id
                for s in self._sessions.values()
            )

    def _sorted(self) -> List[AnswerSession]:
        return [self._sessions[k] for k in sorted(self._sessions)]

    def __len__(self) -> int:
        return len(self._sessions)


# ============================================================================
# User statistics
# ============================================================================
class InMemoryStatisticsRepository(StatisticsRepository):

    def __init__(self):
        self._stats: Dict[int, UserStatistics] = {}
        self._lock = asyncio.Lock()

    async def save(self, stats: UserStatistics) -> UserStatistics:
        async with self._lock:
            self._stats[stats.user_id] = stats
            return stats

    async def find_by_user(self, user_id: int) -> Optional[UserStatistics]:
        async with self._lock:
            return self._stats.get(user_id)

    async def find_all_with_activity(self) -> List[UserStatistics]:
        async with self._lock:
            return self._active()

    async def top_by_accuracy(self, limit: int) -> List[UserStatistics]:
        async with self._lock:
            return sorted(self._active(), key=accuracy_order)[:limit]

    async def top_by_volume(self, limit: int) -> List[UserStatistics]:
        async with self._lock:
            return sorted(self._active(), key=volume_order)[:limit]

    async def top_by_duration(self, limit: int) -> List[UserStatistics]:
        async with self._lock:
            timed = [s for s in self._active() if s.average_duration_ms > 0]
            return sorted(timed, key=duration_order)[:limit]

    async def find_stale(self, older_than: datetime, limit: Optional[int] = None) -> List[UserStatistics]:
        async with self._lock:
            stale = [s for s in self._stats.values() if s.last_recomputed_at < older_than]
            stale.sort(key=lambda s: (s.last_recomputed_at, s.user_id))
            return stale if limit is None else stale[:limit]

    def _active(self) -> List[UserStatistics]:
        return [self._stats[k] for k in sorted(self._stats) if self._stats[k].has_activity]


# ============================================================================
# Read-only lookups
# ============================================================================
class InMemoryQuestionLookup(QuestionLookup):

    def __init__(self, questions: Iterable[QuestionInfo] = ()):
        self._questions: Dict[int, QuestionInfo] = {q.question_id: q for q in questions}

    def add(self, question: QuestionInfo) -> QuestionInfo:
        self._questions[question.question_id] = question
        return question

    async def resolve(self, question_id: int) -> Optional[QuestionInfo]:
        return self._questions.get(question_id)


class InMemoryUserDirectory(UserDirectory):

    def __init__(self, user_ids: Iterable[int] = ()):
        self._user_ids = set(user_ids)

    def add(self, user_id: int) -> None:
        self._user_ids.add(user_id)

    async def exists(self, user_id: int) -> bool:
        return user_id in self._user_ids
