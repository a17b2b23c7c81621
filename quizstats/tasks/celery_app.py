# ============================================================================
# Celery Application Configuration
# ============================================================================
from celery import Celery
from celery.schedules import crontab
from quizstats.config import get_settings

settings = get_settings()

celery_app = Celery(
    "quizstats",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "quizstats.tasks.maintenance_tasks",
    ]
)

# Celery Configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,
)

# Beat Schedule (Periodic Tasks)
celery_app.conf.beat_schedule = {
    # Drop sessions nobody completed
    "sweep-abandoned-sessions": {
        "task": "quizstats.tasks.maintenance_tasks.sweep_abandoned_sessions",
        "schedule": settings.SWEEP_INTERVAL_MINUTES * 60.0,
    },

    # Recompute aggregates older than the freshness window (every hour)
    "refresh-stale-statistics": {
        "task": "quizstats.tasks.maintenance_tasks.refresh_stale_statistics",
        "schedule": crontab(minute=15),
    },
}
