from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from sqlalchemy.orm import Session

from app.core.audit.services import log_event, purge_old_logs
from app.core.auth.services import purge_dead_sessions
from app.core.config import settings
from app.core.payments.gateway_config import GatewayConfig
from app.core.recovery.services import detect_abandoned_payments, send_due_reminders
from app.utils.dates import utc_now


def run_abandoned_detection(
    db: Session,
    gateway: GatewayConfig,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """Creates reminder rows only. Sending runs on its own schedule."""
    result = detect_abandoned_payments(db, gateway, now or utc_now())
    log_event("info", "cron", "Abandoned payment detection done", result)
    return result


def run_due_reminders(db: Session, now: Optional[datetime] = None) -> Dict[str, int]:
    result = send_due_reminders(db, now or utc_now())
    log_event("info", "cron", "Due payment reminders processed", result)
    return result


def run_cleanup(db: Session) -> Dict[str, int]:
    result = purge_old_logs(db, retention_days=settings.log_retention_days)
    result["user_sessions"] = purge_dead_sessions(db)
    db.commit()
    log_event("info", "cron", "Cleanup done", result)
    return result


__all__ = ["run_abandoned_detection", "run_due_reminders", "run_cleanup"]
