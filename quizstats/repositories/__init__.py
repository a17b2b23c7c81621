from quizstats.repositories.base import (
    SessionRepository,
    StatisticsRepository,
    QuestionLookup,
    UserDirectory,
)
from quizstats.repositories.memory import (
    InMemorySessionRepository,
    InMemoryStatisticsRepository,
    InMemoryQuestionLookup,
    InMemoryUserDirectory,
)
from quizstats.repositories.sql import (
    SqlSessionRepository,
    SqlStatisticsRepository,
    SqlQuestionLookup,
    SqlUserDirectory,
)

__all__ = [
    "SessionRepository", "StatisticsRepository", "QuestionLookup", "UserDirectory",
    "InMemorySessionRepository", "InMemoryStatisticsRepository",
    "InMemoryQuestionLookup", "InMemoryUserDirectory",
    "SqlSessionRepository", "SqlStatisticsRepository",
    "SqlQuestionLookup", "SqlUserDirectory",
]
