# ============================================================================
# Repository Interfaces
# ============================================================================
"""
Collaborator contracts consumed by the session tracker, the statistics
aggregator and the ranking engine.

Every method is a coroutine. Implementations live in ``memory`` (tests and
local tooling) and ``sql`` (SQLAlchemy async session).
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from quizstats.core.exceptions import NotFound
from quizstats.schemas.question import QuestionInfo
from quizstats.schemas.session import AnswerSession
from quizstats.schemas.statistics import UserStatistics


# ============================================================================
# Answer sessions
# ============================================================================
class SessionRepository(ABC):

    @abstractmethod
    async def save(self, session: AnswerSession) -> AnswerSession:
        """Insert when ``session.id`` is None, otherwise update; returns the stored value"""

    @abstractmethod
    async def find_by_id(self, session_id: int) -> Optional[AnswerSession]:
        ...

    @abstractmethod
    async def find_in_progress(self, user_id: int, question_id: int) -> Optional[AnswerSession]:
        ...

    @abstractmethod
    async def find_completed(self, user_id: int) -> List[AnswerSession]:
        ...

    @abstractmethod
    async def find_in_progress_all(self, user_id: int) -> List[AnswerSession]:
        ...

    @abstractmethod
    async def find_by_user(self, user_id: int) -> List[AnswerSession]:
        ...

    @abstractmethod
    async def find_recent_completed(self, user_id: int, limit: int) -> List[AnswerSession]:
        """Completed sessions, newest completion first"""

    @abstractmethod
    async def delete_abandoned(self, older_than: datetime) -> int:
        """Delete in-progress sessions started strictly before ``older_than``"""

    @abstractmethod
    async def exists_for(self, user_id: int, question_id: int) -> bool:
        ...


# ============================================================================
# User statistics
# ============================================================================
class StatisticsRepository(ABC):

    @abstractmethod
    async def save(self, stats: UserStatistics) -> UserStatistics:
        """Replace the whole aggregate for ``stats.user_id``"""

    @abstractmethod
    async def find_by_user(self, user_id: int) -> Optional[UserStatistics]:
        ...

    @abstractmethod
    async def find_all_with_activity(self) -> List[UserStatistics]:
        """Aggregates with at least one answered question, ordered by user id"""

    @abstractmethod
    async def top_by_accuracy(self, limit: int) -> List[UserStatistics]:
        ...

    @abstractmethod
    async def top_by_volume(self, limit: int) -> List[UserStatistics]:
        ...

    @abstractmethod
    async def top_by_duration(self, limit: int) -> List[UserStatistics]:
        ...

    @abstractmethod
    async def find_stale(self, older_than: datetime, limit: Optional[int] = None) -> List[UserStatistics]:
        """Aggregates last recomputed strictly before ``older_than``, oldest first"""


# ============================================================================
# Read-only lookups
# ============================================================================
class QuestionLookup(ABC):

    @abstractmethod
    async def resolve(self, question_id: int) -> Optional[QuestionInfo]:
        ...

    async def validate_answer(self, question_id: int, given: str) -> bool:
        question = await self.resolve(question_id)
        if question is None:
            raise NotFound("Question", question_id)
        return question.accepts(given)


class UserDirectory(ABC):

    @abstractmethod
    async def exists(self, user_id: int) -> bool:
        ...
