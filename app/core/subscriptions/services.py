from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple

from loguru import logger
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.affiliates.services import credit_commission
from app.core.audit.services import log_event
from app.core.auth.models import User
from app.core.notifications import dispatch
from app.core.notifications.templates import (
    payment_confirmation,
    subscription_expired,
    subscription_expiring,
)
from app.core.notifications.whatsapp import (
    TEMPLATE_PAYMENT_CONFIRMATION,
    TEMPLATE_SUBSCRIPTION_EXPIRING,
)
from app.core.payments.models import PaymentTransaction
from app.core.plans.services import get_plan
from app.core.promocodes.services import increment_promo_usage
from app.core.recovery.services import mark_recovered
from app.core.subscriptions.models import Subscription
from app.response.errors import ConflictError, NotFoundError
from app.utils.dates import add_months, as_utc, utc_now


SUBSCRIPTION_ACTIVE = "active"
SUBSCRIPTION_EXPIRED = "expired"
SUBSCRIPTION_CANCELLED = "cancelled"

# days-before-expiry -> marker column
EXPIRY_NOTICE_MARKERS: Tuple[Tuple[int, str], ...] = (
    (1, "expiry_notified_1d"),
    (3, "expiry_notified_3d"),
    (7, "expiry_notified_7d"),
)


def _find_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(func.lower(User.email) == email.lower()).first()


@dataclass
class Activation:
    subscription: Subscription
    # names of bookkeeping steps that were rolled back to their savepoint
    failed_steps: List[str] = field(default_factory=list)


def _run_best_effort(
    db: Session,
    activation: Activation,
    step: str,
    action: Callable[[], object],
    transaction: PaymentTransaction,
) -> None:
    try:
        with db.begin_nested():
            action()
    except Exception:
        logger.exception(
            "Completion step failed, payment kept",
            step=step,
            transaction_id=str(transaction.id),
        )
        activation.failed_steps.append(step)


def activate_subscription(
    db: Session,
    transaction: PaymentTransaction,
    now: Optional[datetime] = None,
) -> Activation:
    """
    Completion side effects for a transaction that just won `pending ->
    completed`. The subscription row joins the caller's database transaction
    and commits together with the status change. Promo usage, commission and
    reminder bookkeeping each run in their own savepoint: a failure there is
    rolled back alone and reported in `failed_steps`.
    """
    existing = (
        db.query(Subscription)
        .filter(Subscription.transaction_id == transaction.id)
        .first()
    )
    if existing is not None:
        return Activation(existing)

    now = now or utc_now()
    plan = get_plan(db, transaction.plan_id)
    user = _find_user_by_email(db, transaction.email)

    subscription = Subscription(
        email=transaction.email,
        contact=transaction.contact,
        user_id=user.id if user is not None else None,
        plan_id=plan.id,
        transaction_id=transaction.id,
        status=SUBSCRIPTION_ACTIVE,
        start_date=now,
        end_date=add_months(now, plan.duration_months),
    )
    db.add(subscription)
    db.flush()

    activation = Activation(subscription)
    if transaction.promo_code:
        _run_best_effort(
            db,
            activation,
            "promo_usage",
            lambda: increment_promo_usage(db, transaction.promo_code),
            transaction,
        )
    _run_best_effort(
        db,
        activation,
        "affiliate_commission",
        lambda: credit_commission(db, transaction),
        transaction,
    )
    _run_best_effort(
        db,
        activation,
        "reminder_recovered",
        lambda: mark_recovered(db, transaction.id),
        transaction,
    )

    logger.info(
        "Subscription activated",
        transaction_id=str(transaction.id),
        subscription_id=str(subscription.id),
        end_date=subscription.end_date.isoformat(),
    )
    return activation


def dispatch_confirmation(
    transaction: PaymentTransaction,
    subscription: Subscription,
    plan_name: str,
) -> Dict[str, bool]:
    """Runs after commit. Delivery failures are logged, never raised."""
    email_sent = dispatch.notify_email(
        transaction.email,
        payment_confirmation(
            email=transaction.email,
            plan_name=plan_name,
            amount=transaction.final_amount,
            currency=transaction.currency,
            invoice_number=transaction.invoice_number,
            transaction_id=str(transaction.id),
            end_date=subscription.end_date,
        ),
        category="payment",
    )
    whatsapp_sent = dispatch.notify_whatsapp_template(
        transaction.contact,
        TEMPLATE_PAYMENT_CONFIRMATION,
        [
            transaction.email.split("@")[0],
            plan_name,
            f"{Decimal(transaction.final_amount):.2f} {transaction.currency}",
            transaction.invoice_number or str(transaction.id),
        ],
        category="payment",
    )
    return {"email": email_sent, "whatsapp": whatsapp_sent}


def get_subscription(db: Session, subscription_id) -> Subscription:
    subscription = (
        db.query(Subscription)
        .filter(Subscription.id == subscription_id)
        .first()
    )
    if subscription is None:
        raise NotFoundError(
            code="SUBSCRIPTION_NOT_FOUND",
            message="Subscription not found",
        )
    return subscription


def get_subscription_for_transaction(db: Session, transaction_id) -> Optional[Subscription]:
    return (
        db.query(Subscription)
        .filter(Subscription.transaction_id == transaction_id)
        .first()
    )


def list_subscriptions_for_email(db: Session, email: str) -> List[Subscription]:
    return (
        db.query(Subscription)
        .filter(func.lower(Subscription.email) == email.lower())
        .order_by(Subscription.end_date.desc())
        .all()
    )


def _notice_due(subscription: Subscription, now: datetime) -> Optional[int]:
    """Smallest notice window the subscription is inside and not yet notified for."""
    end_date = as_utc(subscription.end_date)
    for days, marker in EXPIRY_NOTICE_MARKERS:
        if end_date <= now + timedelta(days=days):
            if getattr(subscription, marker) is None:
                return days
            return None
    return None


def send_expiry_notices(db: Session, now: Optional[datetime] = None) -> Dict[int, int]:
    """
    7/3/1-day advance notices, one per window. A subscription first seen
    inside a short window also gets the longer windows marked, so a missed
    run never produces a burst of notices.
    """
    now = now or utc_now()
    candidates = (
        db.query(Subscription)
        .filter(
            Subscription.status == SUBSCRIPTION_ACTIVE,
            Subscription.end_date > now,
            Subscription.end_date <= now + timedelta(days=7),
        )
        .all()
    )

    to_notify: List[Tuple[Subscription, int]] = []
    for subscription in candidates:
        days = _notice_due(subscription, now)
        if days is None:
            continue
        for window, marker in EXPIRY_NOTICE_MARKERS:
            if window >= days and getattr(subscription, marker) is None:
                setattr(subscription, marker, now)
        db.add(subscription)
        to_notify.append((subscription, days))

    db.commit()

    counts = {days: 0 for days, _ in EXPIRY_NOTICE_MARKERS}
    for subscription, days in to_notify:
        plan_name = subscription.plan.name if subscription.plan else "VistraTV"
        sent = dispatch.notify_email(
            subscription.email,
            subscription_expiring(
                email=subscription.email,
                plan_name=plan_name,
                days_remaining=days,
                end_date=as_utc(subscription.end_date),
            ),
            category="subscription",
        )
        dispatch.notify_whatsapp_template(
            subscription.contact,
            TEMPLATE_SUBSCRIPTION_EXPIRING,
            [subscription.email.split("@")[0], str(days)],
            category="subscription",
        )
        if sent:
            counts[days] += 1
    return counts


def expire_subscriptions(db: Session, now: Optional[datetime] = None) -> int:
    now = now or utc_now()
    expired = (
        db.query(Subscription)
        .filter(
            Subscription.status == SUBSCRIPTION_ACTIVE,
            Subscription.end_date < now,
        )
        .all()
    )
    notices = []
    for subscription in expired:
        updated = (
            db.query(Subscription)
            .filter(
                Subscription.id == subscription.id,
                Subscription.status == SUBSCRIPTION_ACTIVE,
            )
            .update(
                {Subscription.status: SUBSCRIPTION_EXPIRED},
                synchronize_session=False,
            )
        )
        if updated:
            plan_name = subscription.plan.name if subscription.plan else "VistraTV"
            notices.append((subscription.email, plan_name))
    db.commit()

    for email, plan_name in notices:
        dispatch.notify_email(
            email,
            subscription_expired(email=email, plan_name=plan_name),
            category="subscription",
        )
    return len(notices)


def run_expiry_sweep(db: Session, now: Optional[datetime] = None) -> Dict[str, int]:
    now = now or utc_now()
    try:
        notices = send_expiry_notices(db, now)
        expired = expire_subscriptions(db, now)
    except Exception as exc:
        db.rollback()
        log_event("error", "cron", "Subscription sweep failed", {"error": str(exc)})
        raise
    result = {
        "expiring_7d": notices[7],
        "expiring_3d": notices[3],
        "expiring_1d": notices[1],
        "expired": expired,
    }
    log_event("info", "cron", "Subscription sweep done", result)
    return result


def cancel_subscription(db: Session, subscription: Subscription) -> Subscription:
    if subscription.status == SUBSCRIPTION_CANCELLED:
        raise ConflictError(
            code="SUBSCRIPTION_ALREADY_CANCELLED",
            message="Subscription is already cancelled",
        )
    subscription.status = SUBSCRIPTION_CANCELLED
    db.add(subscription)
    return subscription


def renew_subscription(
    db: Session,
    subscription: Subscription,
    *,
    days: int,
    now: Optional[datetime] = None,
) -> Subscription:
    """Extends from the later of the current end date and now, and reactivates."""
    now = now or utc_now()
    base = max(as_utc(subscription.end_date), now)
    subscription.end_date = base + timedelta(days=days)
    subscription.status = SUBSCRIPTION_ACTIVE
    subscription.expiry_notified_7d = None
    subscription.expiry_notified_3d = None
    subscription.expiry_notified_1d = None
    db.add(subscription)
    return subscription


def count_active(db: Session) -> int:
    return (
        db.query(Subscription)
        .filter(Subscription.status == SUBSCRIPTION_ACTIVE)
        .count()
    )


__all__ = [
    "SUBSCRIPTION_ACTIVE",
    "SUBSCRIPTION_EXPIRED",
    "SUBSCRIPTION_CANCELLED",
    "Activation",
    "activate_subscription",
    "dispatch_confirmation",
    "get_subscription",
    "get_subscription_for_transaction",
    "list_subscriptions_for_email",
    "send_expiry_notices",
    "expire_subscriptions",
    "run_expiry_sweep",
    "cancel_subscription",
    "renew_subscription",
    "count_active",
]
