# ============================================================================
# API Dependencies
# ============================================================================
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from quizstats.config import get_settings
from quizstats.core.database import get_db
from quizstats.repositories.sql import (
    SqlQuestionLookup,
    SqlSessionRepository,
    SqlStatisticsRepository,
    SqlUserDirectory,
)
from quizstats.services.stats_service import AnswerStatsService


def build_stats_service(db: AsyncSession, **overrides) -> AnswerStatsService:
    """
    Wire the statistics service over one database session.

    The post-completion recompute runs inside a SAVEPOINT
    (``db.begin_nested``) so its failure cannot roll back the completion.
    Shared by the request dependency and the Celery tasks.
    """
    options = {"settings": get_settings(), "isolation": db.begin_nested}
    options.update(overrides)
    return AnswerStatsService(
        sessions=SqlSessionRepository(db),
        statistics=SqlStatisticsRepository(db),
        questions=SqlQuestionLookup(db),
        users=SqlUserDirectory(db),
        **options,
    )


async def get_stats_service(db: AsyncSession = Depends(get_db)) -> AnswerStatsService:
    return build_stats_service(db)
