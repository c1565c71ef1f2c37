"""Celery application bootstrap."""

from __future__ import annotations

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging

from app.core.config import get_config
from app.core.logging_config import configure_logging

config = get_config()

celery_app = Celery(
    "invoicing",
    broker=config.CELERY_BROKER_URL,
    backend=config.CELERY_RESULT_BACKEND,
    include=["app.tasks.invoice_tasks"],
)
celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
)

# Drafts for the previous month, on the 1st at 01:00 UTC.
celery_app.conf.beat_schedule = {
    "generate-monthly-invoices": {
        "task": "invoices.generate_monthly",
        "schedule": crontab(day_of_month="1", hour="1", minute="0"),
    },
}

# Local/dev convenience: run tasks synchronously when requested.
if config.CELERY_TASK_ALWAYS_EAGER:
    celery_app.conf.task_always_eager = True


@setup_logging.connect
def _configure_worker_logging(**_kwargs) -> None:
    # Workers log through the same JSON handlers as the API.
    configure_logging(force=True)
