"""
Celery application configuration.

Redis is both the message broker and the result backend. Celery Beat runs
the daily purge of accounts whose retention window has elapsed.
"""

from celery import Celery
from celery.schedules import crontab
from codex.core.config import settings

celery_app = Celery(
    "codex_worker",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["codex.tasks.email_tasks", "codex.tasks.account_tasks"],
)

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task behavior
    task_track_started=True,
    task_time_limit=300,  # 5 minutes max per task
    task_soft_time_limit=240,

    # Result backend
    result_expires=3600,

    # Worker behavior
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=50,

    beat_schedule={
        "purge-expired-accounts": {
            "task": "purge_expired_accounts",
            "schedule": crontab(hour=3, minute=0),  # 03:00 UTC daily
        },
    },
)
