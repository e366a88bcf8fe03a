from __future__ import annotations

from typing import Dict

from loguru import logger

from app.core.payments.gateway_config import load_gateway_config
from app.core.recovery.services import detect_abandoned_payments, send_due_reminders
from app.database.session import SessionLocal
from app.utils.dates import utc_now
from vistra_bg_worker.celery_app import celery_app


@celery_app.task(name="recovery.detect_abandoned_payments")
def detect_abandoned_payments_task() -> Dict[str, int]:
    db = SessionLocal()
    try:
        result = detect_abandoned_payments(db, load_gateway_config(db), utc_now())
    finally:
        db.close()
    logger.info("Abandoned payment detection finished", **result)
    return result


@celery_app.task(name="recovery.send_due_reminders")
def send_due_reminders_task() -> Dict[str, int]:
    db = SessionLocal()
    try:
        result = send_due_reminders(db, utc_now())
    finally:
        db.close()
    logger.info("Due reminders processed", **result)
    return result


__all__ = ["detect_abandoned_payments_task", "send_due_reminders_task"]
