"""Celery application configuration.

This module configures the Celery application for NewTube background tasks.
Uses Redis as both broker and result backend; beat runs the freshness
sweep every ``sweep_interval_hours``.
"""

from datetime import timedelta

from celery import Celery

from newtube.core.config import get_config

settings = get_config()

# Create Celery app
celery_app = Celery(
    "newtube",
    broker=str(settings.celery_broker_url),
    backend=str(settings.celery_result_backend),
    include=["newtube.workers.sweep"],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=100,
    # Result settings
    result_expires=86400,  # 24 hours
    result_extended=True,
    # Beat scheduler settings
    beat_scheduler="celery.beat:PersistentScheduler",
    beat_schedule_filename="celerybeat-schedule",
    beat_schedule={
        "sweep-all-channels": {
            "task": "newtube.workers.sweep.sweep_all_channels",
            "schedule": timedelta(hours=settings.sweep_interval_hours),
        },
    },
    # Task routes
    task_routes={
        "newtube.workers.sweep.*": {"queue": "acquire"},
    },
    # Default queue
    task_default_queue="default",
)

__all__ = ["celery_app"]
