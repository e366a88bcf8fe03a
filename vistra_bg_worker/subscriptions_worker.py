from __future__ import annotations

from typing import Dict

from app.core.cron.services import run_cleanup
from app.core.subscriptions.services import run_expiry_sweep
from app.database.session import SessionLocal
from app.utils.dates import utc_now
from vistra_bg_worker.celery_app import celery_app


@celery_app.task(name="subscriptions.run_expiry_sweep")
def run_expiry_sweep_task() -> Dict[str, int]:
    db = SessionLocal()
    try:
        return run_expiry_sweep(db, utc_now())
    finally:
        db.close()


@celery_app.task(name="maintenance.cleanup")
def cleanup_task() -> Dict[str, int]:
    db = SessionLocal()
    try:
        return run_cleanup(db)
    finally:
        db.close()


__all__ = ["run_expiry_sweep_task", "cleanup_task"]
