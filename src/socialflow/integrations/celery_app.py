"""Celery application configuration."""
from celery import Celery

from socialflow.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    "socialflow",
    broker=settings.rabbitmq_url,
    backend=settings.redis_url,
    include=["socialflow.integrations.tasks"],
)

# Configure Celery with production-safe defaults
celery_app.conf.update(
    # Task execution
    task_time_limit=settings.celery_task_time_limit,  # Hard time limit
    task_soft_time_limit=settings.celery_task_soft_time_limit,  # Soft time limit
    task_acks_late=True,  # Acknowledge after task completes
    task_reject_on_worker_lost=True,  # Redeliver if the worker dies
    worker_prefetch_multiplier=1,  # One execution at a time per process
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Results
    result_expires=3600,
    # Timezone
    timezone="UTC",
    enable_utc=True,
    # Scheduler ticks
    beat_schedule={
        "scheduler-tick": {
            "task": "socialflow.scheduler_tick",
            "schedule": settings.scheduler_tick_interval_s,
        },
    },
)
