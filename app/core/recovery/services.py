from __future__ import annotations

import csv
import io
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from loguru import logger
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.notifications import dispatch
from app.core.notifications.batching import send_in_batches
from app.core.notifications.templates import abandoned_cart, abandoned_cart_text
from app.core.payments.gateway_config import GatewayConfig
from app.core.payments.gateways.paygate import build_payment_url
from app.core.payments.ledger import STATUS_PENDING
from app.core.payments.models import PaymentTransaction
from app.core.payments.schemas import CardGatewayData, read_gateway_data
from app.core.recovery.models import AbandonedPaymentReminder
from app.response.errors import ConflictError, NotFoundError, UpstreamError
from app.utils.dates import utc_now


REMINDER_PENDING = "pending"
REMINDER_RECOVERED = "recovered"

CSV_COLUMNS = (
    "id",
    "transaction_id",
    "email",
    "contact",
    "plan_name",
    "amount",
    "currency",
    "status",
    "reminder_count",
    "abandoned_at",
    "last_reminder_sent_at",
    "payment_url",
)


def regenerate_payment_url(
    transaction: PaymentTransaction,
    gateway: GatewayConfig,
) -> Optional[str]:
    """
    Crypto links are rebuilt with the current gateway wallet. Card links are
    the checkout URL Stripe issued at checkout time.
    """
    if transaction.payment_method == "crypto":
        if not gateway.is_configured:
            return None
        return build_payment_url(
            gateway,
            amount=transaction.final_amount,
            currency=transaction.currency,
            email=transaction.email,
        )
    data = read_gateway_data(transaction.payment_method, transaction.gateway_response)
    if isinstance(data, CardGatewayData):
        return data.checkout_url
    return None


def detect_abandoned_payments(
    db: Session,
    gateway: GatewayConfig,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """
    Gives every pending transaction older than the threshold exactly one
    reminder row. Each insert commits on its own; a unique-constraint clash
    means another sweep got there first and is skipped.
    """
    now = now or utc_now()
    cutoff = now - timedelta(minutes=settings.abandoned_threshold_minutes)

    candidates = (
        db.query(PaymentTransaction)
        .outerjoin(
            AbandonedPaymentReminder,
            AbandonedPaymentReminder.transaction_id == PaymentTransaction.id,
        )
        .filter(
            PaymentTransaction.status == STATUS_PENDING,
            PaymentTransaction.created_at < cutoff,
            AbandonedPaymentReminder.id.is_(None),
        )
        .order_by(PaymentTransaction.created_at.asc())
        .all()
    )

    snapshots = [
        dict(
            transaction_id=tx.id,
            email=tx.email,
            contact=tx.contact,
            plan_name=tx.plan.name if tx.plan is not None else "Subscription",
            amount=tx.final_amount,
            currency=tx.currency,
            payment_url=regenerate_payment_url(tx, gateway),
            abandoned_at=tx.created_at,
        )
        for tx in candidates
    ]

    created = 0
    for snapshot in snapshots:
        db.add(
            AbandonedPaymentReminder(
                reminder_count=0,
                status=REMINDER_PENDING,
                **snapshot,
            )
        )
        try:
            db.commit()
            created += 1
        except IntegrityError:
            db.rollback()
            logger.info(
                "Reminder already exists, skipped",
                transaction_id=str(snapshot["transaction_id"]),
            )

    logger.info("Abandoned payment sweep done", detected=len(snapshots), created=created)
    return {"detected": len(snapshots), "created": created}


def mark_recovered(db: Session, transaction_id) -> int:
    return (
        db.query(AbandonedPaymentReminder)
        .filter(
            AbandonedPaymentReminder.transaction_id == transaction_id,
            AbandonedPaymentReminder.status == REMINDER_PENDING,
        )
        .update(
            {AbandonedPaymentReminder.status: REMINDER_RECOVERED},
            synchronize_session=False,
        )
    )


def get_reminder(db: Session, reminder_id) -> AbandonedPaymentReminder:
    reminder = (
        db.query(AbandonedPaymentReminder)
        .filter(AbandonedPaymentReminder.id == reminder_id)
        .first()
    )
    if reminder is None:
        raise NotFoundError(code="REMINDER_NOT_FOUND", message="Reminder not found")
    return reminder


def send_reminder(
    db: Session,
    reminder: AbandonedPaymentReminder,
    now: Optional[datetime] = None,
) -> int:
    """Sends one reminder and returns the new reminder count. Caller commits."""
    if reminder.status == REMINDER_RECOVERED:
        raise ConflictError(
            code="REMINDER_ALREADY_RECOVERED",
            message="This payment was completed, no reminder needed",
        )

    content = abandoned_cart(
        email=reminder.email,
        plan_name=reminder.plan_name,
        amount=reminder.amount,
        currency=reminder.currency,
        payment_url=reminder.payment_url,
    )
    if not dispatch.notify_email(reminder.email, content, category="email"):
        raise UpstreamError(
            code="REMINDER_SEND_FAILED",
            message="Reminder email could not be queued",
        )
    dispatch.notify_whatsapp_text(
        reminder.contact,
        abandoned_cart_text(
            plan_name=reminder.plan_name,
            amount=reminder.amount,
            currency=reminder.currency,
            payment_url=reminder.payment_url,
        ),
        category="email",
    )

    reminder.reminder_count = (reminder.reminder_count or 0) + 1
    reminder.last_reminder_sent_at = now or utc_now()
    db.add(reminder)
    return reminder.reminder_count


def select_due_reminders(
    db: Session,
    now: Optional[datetime] = None,
) -> List[AbandonedPaymentReminder]:
    now = now or utc_now()
    resend_before = now - timedelta(hours=settings.abandoned_reminder_interval_hours)
    return (
        db.query(AbandonedPaymentReminder)
        .join(
            PaymentTransaction,
            PaymentTransaction.id == AbandonedPaymentReminder.transaction_id,
        )
        .filter(
            AbandonedPaymentReminder.status == REMINDER_PENDING,
            PaymentTransaction.status == STATUS_PENDING,
            AbandonedPaymentReminder.reminder_count < settings.abandoned_max_reminders,
            or_(
                AbandonedPaymentReminder.last_reminder_sent_at.is_(None),
                AbandonedPaymentReminder.last_reminder_sent_at <= resend_before,
            ),
        )
        .order_by(AbandonedPaymentReminder.abandoned_at.asc())
        .all()
    )


def send_due_reminders(
    db: Session,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    now = now or utc_now()
    due = select_due_reminders(db, now)
    result = send_in_batches(
        due,
        lambda reminder: send_reminder(db, reminder, now),
        batch_size=settings.batch_send_size,
        delay_seconds=settings.batch_send_delay_seconds,
    )
    db.commit()
    for reminder, error in result.failed:
        logger.warning("Reminder not sent", reminder_id=str(reminder.id), error=error)
    return {"due": len(due), "sent": result.sent, "failed": result.failed_count}


def list_reminders(
    db: Session,
    *,
    status: Optional[str],
    offset: int,
    limit: int,
) -> Tuple[List[AbandonedPaymentReminder], int]:
    query = db.query(AbandonedPaymentReminder)
    if status:
        query = query.filter(AbandonedPaymentReminder.status == status)
    total = query.count()
    items = (
        query.order_by(AbandonedPaymentReminder.abandoned_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return items, total


def export_reminders_csv(reminders: List[AbandonedPaymentReminder]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_COLUMNS)
    for reminder in reminders:
        writer.writerow(
            [
                "" if getattr(reminder, column) is None else str(getattr(reminder, column))
                for column in CSV_COLUMNS
            ]
        )
    return buffer.getvalue()


__all__ = [
    "REMINDER_PENDING",
    "REMINDER_RECOVERED",
    "regenerate_payment_url",
    "detect_abandoned_payments",
    "mark_recovered",
    "get_reminder",
    "send_reminder",
    "select_due_reminders",
    "send_due_reminders",
    "list_reminders",
    "export_reminders_csv",
]
