from __future__ import annotations

import time
from contextlib import contextmanager
from datetime import timedelta
from typing import Any, Dict, Iterator, List, Literal, Optional

from loguru import logger
from sqlalchemy.orm import Session

from app.core.audit.models import (
    AdminActivityLog,
    AdminNotification,
    SystemLog,
    WebhookLog,
)
from app.core.config import settings
from app.database.session import SessionLocal
from app.utils.dates import utc_now


LogLevel = Literal["error", "warn", "info", "debug"]

CATEGORIES = frozenset(
    {
        "payment",
        "auth",
        "api",
        "database",
        "cron",
        "email",
        "webhook",
        "subscription",
        "affiliate",
        "system",
    }
)

ERROR_ALERT_TYPE = "error_alert"

_LOGURU_LEVELS = {
    "error": "ERROR",
    "warn": "WARNING",
    "info": "INFO",
    "debug": "DEBUG",
}


@contextmanager
def _log_session() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def alert_title(category: str) -> str:
    return f"Alert: {category} errors"


def _maybe_raise_alert(db: Session, category: str, message: str) -> Optional[AdminNotification]:
    window_start = utc_now() - timedelta(minutes=settings.error_alert_window_minutes)
    error_count = (
        db.query(SystemLog)
        .filter(
            SystemLog.level == "error",
            SystemLog.category == category,
            SystemLog.created_at >= window_start,
        )
        .count()
    )
    if error_count < settings.error_alert_threshold:
        return None

    title = alert_title(category)
    recent = (
        db.query(AdminNotification)
        .filter(
            AdminNotification.type == ERROR_ALERT_TYPE,
            AdminNotification.title == title,
            AdminNotification.created_at >= window_start,
        )
        .first()
    )
    if recent is not None:
        return None

    notification = AdminNotification(
        type=ERROR_ALERT_TYPE,
        title=title,
        message=(
            f"{error_count} {category} errors in the last "
            f"{settings.error_alert_window_minutes} minutes. Latest: {message}"
        ),
        priority="urgent",
        is_read=False,
        details={"category": category, "error_count": error_count},
    )
    db.add(notification)
    db.flush()

    if settings.alert_email:
        from app.core.notifications import email as email_channel
        from app.core.notifications.templates import system_alert

        try:
            email_channel.schedule_email(
                recipient=settings.alert_email,
                content=system_alert(
                    category=category,
                    error_count=error_count,
                    window_minutes=settings.error_alert_window_minutes,
                    latest_message=message,
                ),
            )
        except Exception as exc:
            logger.error("Failed to schedule alert email: {!r}", exc)

    return notification


def log_event(
    level: LogLevel,
    category: str,
    message: str,
    metadata: Optional[Dict[str, Any]] = None,
    *,
    stack_trace: Optional[str] = None,
) -> None:
    """
    Central log sink: a `system_logs` row plus the loguru line. Runs in its
    own session so it can be called after the caller committed or rolled
    back. Never raises.
    """
    logger.log(
        _LOGURU_LEVELS.get(level, "INFO"),
        "[{}] {} {}",
        category,
        message,
        metadata or {},
    )
    try:
        with _log_session() as db:
            db.add(
                SystemLog(
                    level=level,
                    category=category if category in CATEGORIES else "system",
                    message=message,
                    stack_trace=stack_trace,
                    details=metadata,
                )
            )
            db.flush()
            if level == "error":
                _maybe_raise_alert(db, category, message)
    except Exception as exc:
        logger.error("Central log sink unavailable: {!r}", exc)


def log_webhook(
    provider: str,
    *,
    event_type: Optional[str],
    payload: Optional[Dict[str, Any]],
    status: str,
    started_at: float,
    response_code: Optional[int] = None,
    error_message: Optional[str] = None,
) -> None:
    elapsed_ms = int((time.perf_counter() - started_at) * 1000)
    try:
        with _log_session() as db:
            db.add(
                WebhookLog(
                    provider=provider,
                    event_type=event_type,
                    payload=payload,
                    status=status,
                    response_code=response_code,
                    error_message=error_message,
                    processing_time_ms=elapsed_ms,
                )
            )
    except Exception as exc:
        logger.error("Failed to store webhook log: {!r}", exc)


def log_activity(
    db: Session,
    *,
    admin_id,
    action: str,
    entity_type: str,
    entity_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
) -> AdminActivityLog:
    """Recorded in the caller's transaction, so the row commits with the action."""
    entry = AdminActivityLog(
        admin_id=admin_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
        ip_address=ip_address,
    )
    db.add(entry)
    return entry


def list_notifications(
    db: Session,
    *,
    unread_only: bool,
    offset: int,
    limit: int,
) -> List[AdminNotification]:
    query = db.query(AdminNotification)
    if unread_only:
        query = query.filter(AdminNotification.is_read.is_(False))
    return (
        query.order_by(AdminNotification.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def mark_notifications_read(db: Session, notification_ids: Optional[List[Any]] = None) -> int:
    query = db.query(AdminNotification).filter(AdminNotification.is_read.is_(False))
    if notification_ids:
        query = query.filter(AdminNotification.id.in_(notification_ids))
    return query.update({AdminNotification.is_read: True}, synchronize_session=False)


def purge_old_logs(db: Session, *, retention_days: int) -> Dict[str, int]:
    cutoff = utc_now() - timedelta(days=retention_days)
    system_deleted = (
        db.query(SystemLog)
        .filter(SystemLog.created_at < cutoff)
        .delete(synchronize_session=False)
    )
    webhook_deleted = (
        db.query(WebhookLog)
        .filter(WebhookLog.created_at < cutoff)
        .delete(synchronize_session=False)
    )
    return {"system_logs": system_deleted, "webhook_logs": webhook_deleted}


__all__ = [
    "CATEGORIES",
    "ERROR_ALERT_TYPE",
    "alert_title",
    "log_event",
    "log_webhook",
    "log_activity",
    "list_notifications",
    "mark_notifications_read",
    "purge_old_logs",
]
