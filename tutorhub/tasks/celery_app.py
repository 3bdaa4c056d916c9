from datetime import timedelta
import os

from celery import Celery

from tutorhub.core.config import settings

broker_url = os.getenv("CELERY_BROKER_URL", "redis://redis:6379/0")
result_backend = os.getenv("CELERY_RESULT_BACKEND", "redis://redis:6379/1")

celery_app = Celery(
    "tutorhub",
    broker=broker_url,
    backend=result_backend,
    include=["tutorhub.tasks.completions", "tutorhub.tasks.reminders"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    beat_schedule={
        "complete-finished-sessions": {
            "task": "bookings.complete_finished_sessions",
            "schedule": timedelta(minutes=settings.celery_completion_interval_minutes),
        },
        "remind-upcoming-sessions": {
            "task": "bookings.remind_upcoming_sessions",
            "schedule": timedelta(minutes=settings.celery_reminder_interval_minutes),
        },
    },
)
