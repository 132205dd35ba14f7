"""Celery configuration. Celery carries the durable appeal-deadline reminders."""
import os

from celery import Celery
from celery.schedules import crontab
from dotenv import load_dotenv

from revcycle.config.sentry import init_sentry
from revcycle.utils.logger import get_logger

load_dotenv()
init_sentry()

logger = get_logger(__name__)

broker_url = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
result_backend = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/0")

celery_app = Celery(
    "revcycle",
    broker=broker_url,
    backend=result_backend,
    include=["revcycle.services.queue.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=5 * 60,
    task_soft_time_limit=4 * 60,
    # Reminders must survive a worker crash between receipt and completion
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    beat_schedule={
        "sweep-overdue-denials": {
            "task": "revcycle.sweep_overdue_denials",
            "schedule": crontab(hour=6, minute=0),
        },
    },
)
