# ============================================================================
# Maintenance Tasks
# ============================================================================
from celery import shared_task
from typing import Optional
import asyncio
import logging

logger = logging.getLogger(__name__)

def run_async(coro):
    """Helper to run async functions in Celery tasks"""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()

async def _sweep(session_maker=None) -> int:
    from quizstats.core.database import async_session_maker
    from quizstats.api.deps import build_stats_service

    async with (session_maker or async_session_maker)() as db:
        service = build_stats_service(db)
        deleted = await service.sweep_abandoned()
        await db.commit()

    logger.info(f"Abandoned session sweep removed {deleted} sessions")
    return deleted

async def _refresh(limit: Optional[int] = None, session_maker=None) -> int:
    from quizstats.core.database import async_session_maker
    from quizstats.api.deps import build_stats_service
    from quizstats.config import get_settings

    limit = limit or get_settings().STALE_REFRESH_BATCH

    async with (session_maker or async_session_maker)() as db:
        service = build_stats_service(db)
        refreshed = await service.refresh_stale(limit)
        await db.commit()

    return refreshed

@shared_task(name="quizstats.tasks.maintenance_tasks.sweep_abandoned_sessions")
def sweep_abandoned_sessions():
    """Delete answer sessions left in progress past the idle limit"""
    return run_async(_sweep())

@shared_task(name="quizstats.tasks.maintenance_tasks.refresh_stale_statistics")
def refresh_stale_statistics(limit: Optional[int] = None):
    """Recompute user statistics older than the freshness window"""
    return run_async(_refresh(limit))
