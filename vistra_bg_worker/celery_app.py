from __future__ import annotations

from celery import Celery
from celery.schedules import crontab

from app.core.config import settings


celery_app = Celery(
    "vistra_bg_worker",
    broker=settings.celery_broker_url,
)

celery_app.conf.update(
    task_always_eager=settings.celery_task_always_eager,
    task_eager_propagates=True,
    timezone="UTC",
    enable_utc=True,
    beat_schedule={
        "detect-abandoned-payments": {
            "task": "recovery.detect_abandoned_payments",
            "schedule": crontab(minute="*/15"),
        },
        "send-due-payment-reminders": {
            "task": "recovery.send_due_reminders",
            "schedule": crontab(minute=30),
        },
        "subscription-expiry-sweep": {
            "task": "subscriptions.run_expiry_sweep",
            "schedule": crontab(hour=8, minute=0),
        },
        "cleanup-logs": {
            "task": "maintenance.cleanup",
            "schedule": crontab(hour=3, minute=0),
        },
    },
)


__all__ = ["celery_app"]
