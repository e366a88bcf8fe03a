from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.audit.models import AdminActivityLog
from app.core.audit.schemas import (
    ActivityLogPublic,
    AdminNotificationPublic,
    MarkNotificationsReadRequest,
)
from app.core.audit.services import (
    list_notifications,
    log_activity,
    mark_notifications_read,
)
from app.core.auth.models import User
from app.core.config import settings
from app.core.dependencies import client_ip, get_current_admin, get_db
from app.core.payments.gateway_config import get_gateway_row, load_gateway_config
from app.core.payments.gateways.paygate import provision_wallet
from app.core.payments.ledger import STATUS_COMPLETED, STATUS_PARTIALLY_REFUNDED, STATUS_REFUNDED
from app.core.payments.models import PaymentGatewayConfig, PaymentTransaction
from app.core.payments.refunds import refund_transaction
from app.core.payments.schemas import (
    GatewayConfigPublic,
    GatewayConfigUpdate,
    RefundRequest,
    RefundResponse,
    TransactionPublic,
    TransactionStatus,
    WalletGenerateRequest,
)
from app.core.recovery.models import AbandonedPaymentReminder
from app.core.subscriptions.schemas import SubscriptionPublic, SubscriptionRenewRequest
from app.core.subscriptions.services import (
    cancel_subscription,
    count_active,
    get_subscription,
    renew_subscription,
)
from app.response import StandardResponse, make_pagination, make_success_response


router = APIRouter(prefix="/admin", tags=["admin"])

REVENUE_STATUSES = (STATUS_COMPLETED, STATUS_PARTIALLY_REFUNDED, STATUS_REFUNDED)


@router.get(
    "/stats",
    response_model=StandardResponse,
)
def get_admin_stats(
    db: Session = Depends(get_db),
    _: User = Depends(get_current_admin),
) -> StandardResponse:
    counts_by_status = {
        status: count
        for status, count in (
            db.query(PaymentTransaction.status, func.count(PaymentTransaction.id))
            .group_by(PaymentTransaction.status)
            .all()
        )
    }

    gross, refunded = (
        db.query(
            func.coalesce(func.sum(PaymentTransaction.final_amount), 0),
            func.coalesce(func.sum(PaymentTransaction.refund_amount), 0),
        )
        .filter(PaymentTransaction.status.in_(REVENUE_STATUSES))
        .one()
    )
    net_revenue = Decimal(str(gross)) - Decimal(str(refunded))

    pending_reminders = (
        db.query(func.count(AbandonedPaymentReminder.id))
        .filter(AbandonedPaymentReminder.status == "pending")
        .scalar()
        or 0
    )
    total_users = db.query(func.count(User.id)).scalar() or 0

    return make_success_response(
        result={
            "total_users": total_users,
            "transactions_by_status": counts_by_status,
            "gross_revenue": str(Decimal(str(gross)).quantize(Decimal("0.01"))),
            "refunded_amount": str(Decimal(str(refunded)).quantize(Decimal("0.01"))),
            "net_revenue": str(net_revenue.quantize(Decimal("0.01"))),
            "currency": settings.default_currency,
            "active_subscriptions": count_active(db),
            "pending_reminders": pending_reminders,
        }
    )


@router.get(
    "/payments",
    response_model=StandardResponse,
)
def list_transactions(
    status: Optional[TransactionStatus] = Query(None),
    email: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_admin),
) -> StandardResponse:
    query = db.query(PaymentTransaction)
    if status:
        query = query.filter(PaymentTransaction.status == status)
    if email:
        query = query.filter(PaymentTransaction.email == email.strip().lower())

    total = query.count()
    transactions = (
        query.order_by(PaymentTransaction.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return make_success_response(
        result={"items": [TransactionPublic.model_validate(tx) for tx in transactions]},
        pagination=make_pagination(page=page, page_size=page_size, total=total),
    )


@router.post(
    "/payments/refund",
    response_model=StandardResponse,
    summary="Refund a card payment in full or in part",
)
def refund_payment(
    payload: RefundRequest,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
) -> StandardResponse:
    outcome = refund_transaction(
        db,
        transaction_id=payload.transaction_id,
        amount=payload.amount,
        reason=payload.reason,
        admin=admin,
        ip_address=client_ip(request),
    )
    return make_success_response(
        result=RefundResponse(
            success=True,
            refund=outcome.refund,
            transaction=TransactionPublic.model_validate(outcome.transaction),
        )
    )


@router.post(
    "/subscriptions/{subscription_id}/cancel",
    response_model=StandardResponse,
)
def cancel_subscription_endpoint(
    subscription_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
) -> StandardResponse:
    subscription = cancel_subscription(db, get_subscription(db, subscription_id))
    log_activity(
        db,
        admin_id=admin.id,
        action="cancel_subscription",
        entity_type="subscription",
        entity_id=str(subscription.id),
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(subscription)
    return make_success_response(result=SubscriptionPublic.model_validate(subscription))


@router.post(
    "/subscriptions/{subscription_id}/renew",
    response_model=StandardResponse,
)
def renew_subscription_endpoint(
    subscription_id: uuid.UUID,
    request: Request,
    payload: SubscriptionRenewRequest = SubscriptionRenewRequest(),
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
) -> StandardResponse:
    subscription = renew_subscription(
        db,
        get_subscription(db, subscription_id),
        days=payload.days,
    )
    log_activity(
        db,
        admin_id=admin.id,
        action="renew_subscription",
        entity_type="subscription",
        entity_id=str(subscription.id),
        details={"days": payload.days},
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(subscription)
    return make_success_response(result=SubscriptionPublic.model_validate(subscription))


@router.get(
    "/notifications",
    response_model=StandardResponse,
)
def get_notifications(
    unread_only: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_admin),
) -> StandardResponse:
    items = list_notifications(
        db,
        unread_only=unread_only,
        offset=(page - 1) * page_size,
        limit=page_size,
    )
    return make_success_response(
        result={"items": [AdminNotificationPublic.model_validate(item) for item in items]}
    )


@router.post(
    "/notifications/read",
    response_model=StandardResponse,
)
def read_notifications(
    payload: MarkNotificationsReadRequest,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_admin),
) -> StandardResponse:
    updated = mark_notifications_read(db, payload.ids)
    db.commit()
    return make_success_response(result={"updated": updated})


@router.get(
    "/activity-log",
    response_model=StandardResponse,
)
def get_activity_log(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_admin),
) -> StandardResponse:
    query = db.query(AdminActivityLog)
    total = query.count()
    entries = (
        query.order_by(AdminActivityLog.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return make_success_response(
        result={"items": [ActivityLogPublic.model_validate(entry) for entry in entries]},
        pagination=make_pagination(page=page, page_size=page_size, total=total),
    )


def _gateway_public(db: Session) -> GatewayConfigPublic:
    row = get_gateway_row(db)
    config = load_gateway_config(db)
    return GatewayConfigPublic(
        wallet_address=config.wallet_address,
        payout_address=config.payout_address,
        payment_provider=config.payment_provider,
        is_configured=config.is_configured,
        updated_at=row.updated_at if row is not None else None,
    )


def _get_or_create_gateway_row(db: Session) -> PaymentGatewayConfig:
    row = get_gateway_row(db)
    if row is None:
        row = PaymentGatewayConfig(payment_provider="auto")
        db.add(row)
        db.flush()
    return row


@router.get(
    "/gateway",
    response_model=StandardResponse,
)
def get_gateway(
    db: Session = Depends(get_db),
    _: User = Depends(get_current_admin),
) -> StandardResponse:
    return make_success_response(result=_gateway_public(db))


@router.put(
    "/gateway",
    response_model=StandardResponse,
)
def update_gateway(
    payload: GatewayConfigUpdate,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
) -> StandardResponse:
    row = _get_or_create_gateway_row(db)
    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(row, field, value)
    db.add(row)
    log_activity(
        db,
        admin_id=admin.id,
        action="update_gateway_config",
        entity_type="payment_gateway_config",
        entity_id=str(row.id),
        details={"fields": sorted(changes)},
        ip_address=client_ip(request),
    )
    db.commit()
    return make_success_response(result=_gateway_public(db))


@router.post(
    "/gateway/wallet",
    response_model=StandardResponse,
    summary="Provision a receiving wallet through the PayGate control API",
)
def generate_wallet(
    payload: WalletGenerateRequest,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
) -> StandardResponse:
    callback_url = f"{settings.api_public_url.rstrip('/')}/api/v1/payments/webhook/paygate"
    wallet = provision_wallet(
        payload.payout_address,
        callback_url,
        affiliate_address=payload.affiliate_address,
    )

    row = _get_or_create_gateway_row(db)
    row.wallet_address = wallet["address_in"]
    row.raw_wallet = wallet
    row.payout_address = payload.payout_address
    db.add(row)
    log_activity(
        db,
        admin_id=admin.id,
        action="generate_wallet",
        entity_type="payment_gateway_config",
        entity_id=str(row.id),
        ip_address=client_ip(request),
    )
    db.commit()
    return make_success_response(result=_gateway_public(db))


__all__ = ["router"]
