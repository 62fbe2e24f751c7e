"""Celery application configuration.

This module sets up the Celery app with:
- Redis as broker and result backend
- Serialization and timezone settings
- Beat schedule firing the workflow processing pass every minute
- structlog output shared with the API process
"""

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging as celery_setup_logging

from app.config import get_settings

settings = get_settings()

celery_app = Celery(
    "outreach_sequencer",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    task_routes={
        "worker.tasks.workflow.*": {"queue": "workflows"},
    },
    task_default_queue="workflows",

    # Result expiration (1 hour, a pass runs every minute)
    result_expires=3600,

    # A pass is bounded by the batch size and the per-send timeout
    task_soft_time_limit=240,
    task_time_limit=300,
    task_acks_late=True,
    worker_prefetch_multiplier=1,

    beat_schedule={
        "process-workflows": {
            "task": "worker.tasks.workflow.process_workflows",
            "schedule": crontab(minute="*/1"),
            "options": {"queue": "workflows", "expires": 55},
        },
    },

    include=[
        "worker.tasks.workflow",
    ],
)


@celery_setup_logging.connect
def _configure_worker_logging(**kwargs):
    """Replace Celery's own logging setup with the structlog one."""
    from core.logging_config import setup_logging

    setup_logging()
