from __future__ import annotations

import json
import time
import uuid
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.orm import Session

from app.core.audit.services import log_event, log_webhook
from app.core.auth.models import User
from app.core.config import settings
from app.core.dependencies import get_current_user, get_db
from app.core.payments.checkout import initiate_checkout
from app.core.payments.confirmation import (
    handle_paygate_callback,
    handle_stripe_event,
    verify_card_payment,
)
from app.core.payments.gateway_config import GatewayConfig, get_gateway_config
from app.core.payments.gateways.stripe_gateway import construct_event
from app.core.payments.invoices import (
    build_invoice,
    ensure_invoice_access,
    list_invoices_for_email,
)
from app.core.payments.ledger import get_transaction
from app.core.payments.models import PaymentTransaction
from app.core.payments.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    TransactionPublic,
    TransactionStatusResponse,
)
from app.core.subscriptions.services import get_subscription_for_transaction
from app.response import StandardResponse, make_success_response
from app.response.errors import APIError, NotFoundError
from app.utils.rate_limit import rate_limit


router = APIRouter(prefix="/payments", tags=["payments"])


async def _raw_body(request: Request) -> bytes:
    return await request.body()


def _load_transaction(db: Session, transaction_id: uuid.UUID) -> PaymentTransaction:
    transaction = get_transaction(db, transaction_id)
    if transaction is None:
        raise NotFoundError(code="PAYMENT_NOT_FOUND", message="Transaction not found")
    return transaction


def _status_payload(db: Session, transaction: PaymentTransaction) -> TransactionStatusResponse:
    subscription = get_subscription_for_transaction(db, transaction.id)
    return TransactionStatusResponse(
        transaction_id=transaction.id,
        status=transaction.status,
        amount=transaction.final_amount,
        currency=transaction.currency,
        payment_method=transaction.payment_method,
        plan_name=transaction.plan.name if transaction.plan else None,
        invoice_number=transaction.invoice_number,
        subscription_end_date=subscription.end_date if subscription else None,
        poll_interval_seconds=settings.status_poll_interval_seconds,
        max_poll_attempts=settings.status_poll_max_attempts,
    )


@router.post(
    "/checkout",
    response_model=StandardResponse,
    summary="Start a crypto or card checkout",
    dependencies=[Depends(rate_limit("checkout", "checkout_rate_limit"))],
)
def checkout(
    payload: CheckoutRequest,
    db: Session = Depends(get_db),
    gateway: GatewayConfig = Depends(get_gateway_config),
) -> StandardResponse:
    """
    Prices the plan server-side (promo and affiliate codes that do not apply
    are ignored), records a pending transaction and returns the URL the
    buyer is redirected to.
    """
    try:
        result = initiate_checkout(db, payload, gateway)
        db.commit()
    except APIError as exc:
        db.rollback()
        if exc.http_code >= 500:
            log_event(
                "error",
                "payment",
                "Checkout failed",
                {"code": exc.code, "method": payload.payment_method},
            )
        raise

    transaction = result.transaction
    log_event(
        "info",
        "payment",
        "Checkout started",
        {
            "transaction_id": str(transaction.id),
            "method": transaction.payment_method,
            "amount": str(transaction.final_amount),
        },
    )
    return make_success_response(
        result=CheckoutResponse(
            payment_url=result.payment_url,
            transaction_id=transaction.id,
            amount=transaction.final_amount,
            original_amount=transaction.original_amount,
            discount_amount=transaction.discount_amount,
            currency=transaction.currency,
            payment_method=transaction.payment_method,
        )
    )


@router.get(
    "/status",
    response_model=StandardResponse,
    summary="Current status of a transaction (poll target)",
)
def transaction_status(
    transaction_id: uuid.UUID = Query(..., alias="transactionId"),
    db: Session = Depends(get_db),
) -> StandardResponse:
    """Read-only; a status only changes through webhooks or `/verify`."""
    transaction = _load_transaction(db, transaction_id)
    return make_success_response(result=_status_payload(db, transaction))


@router.post(
    "/{transaction_id}/verify",
    response_model=StandardResponse,
    summary="Re-check a card payment with the processor",
)
def verify_payment(
    transaction_id: uuid.UUID,
    db: Session = Depends(get_db),
) -> StandardResponse:
    transaction = _load_transaction(db, transaction_id)
    result = verify_card_payment(db, transaction)
    return make_success_response(result=_status_payload(db, result.transaction))


def _paygate_params(request: Request, body: bytes) -> Dict[str, Optional[str]]:
    params: Dict[str, Optional[str]] = dict(request.query_params)
    if body and "application/json" in request.headers.get("content-type", ""):
        try:
            data = json.loads(body)
        except ValueError:
            data = None
        if isinstance(data, dict):
            for key, value in data.items():
                params.setdefault(key, None if value is None else str(value))
    return params


@router.api_route(
    "/webhook/paygate",
    methods=["GET", "POST"],
    response_model=StandardResponse,
    summary="PayGate payment callback",
)
def paygate_webhook(
    request: Request,
    body: bytes = Depends(_raw_body),
    db: Session = Depends(get_db),
) -> StandardResponse:
    started_at = time.perf_counter()
    params = _paygate_params(request, body)
    logged = {key: params.get(key) for key in ("invoice", "status", "amount", "currency")}

    try:
        result = handle_paygate_callback(db, params)
    except APIError as exc:
        db.rollback()
        log_webhook(
            "paygate",
            event_type="payment_callback",
            payload=logged,
            status="rejected",
            started_at=started_at,
            response_code=exc.http_code,
            error_message=exc.code,
        )
        raise

    log_webhook(
        "paygate",
        event_type="payment_callback",
        payload=logged,
        status="processed",
        started_at=started_at,
        response_code=200,
    )
    return make_success_response(result=result)


@router.post(
    "/webhook/stripe",
    response_model=StandardResponse,
    summary="Stripe webhook",
)
def stripe_webhook(
    body: bytes = Depends(_raw_body),
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
) -> StandardResponse:
    started_at = time.perf_counter()
    event_type: Optional[str] = None
    try:
        event = construct_event(body, stripe_signature)
        event_type = event.get("type")
        result = handle_stripe_event(db, event)
    except APIError as exc:
        db.rollback()
        log_webhook(
            "stripe",
            event_type=event_type,
            payload=None,
            status="rejected",
            started_at=started_at,
            response_code=exc.http_code,
            error_message=exc.code,
        )
        raise

    session = (event.get("data") or {}).get("object") or {}
    log_webhook(
        "stripe",
        event_type=event_type,
        payload={"event_id": event.get("id"), "session_id": session.get("id")},
        status="processed" if result.get("handled") else "ignored",
        started_at=started_at,
        response_code=200,
    )
    return make_success_response(result=result)


@router.get(
    "/me",
    response_model=StandardResponse,
    summary="Payment history of the signed-in user",
)
def my_payments(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> StandardResponse:
    transactions: List[PaymentTransaction] = (
        db.query(PaymentTransaction)
        .filter(PaymentTransaction.email == user.email.lower())
        .order_by(PaymentTransaction.created_at.desc())
        .all()
    )
    items: List[Dict[str, Any]] = [
        TransactionPublic.model_validate(tx).model_dump() for tx in transactions
    ]
    return make_success_response(result={"items": items})


@router.get(
    "/me/invoices",
    response_model=StandardResponse,
    summary="Invoices of the signed-in user",
)
def my_invoices(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> StandardResponse:
    return make_success_response(
        result={"items": list_invoices_for_email(db, user.email)}
    )


@router.get(
    "/{transaction_id}/invoice",
    response_model=StandardResponse,
    summary="Invoice of a settled transaction (owner or admin)",
)
def transaction_invoice(
    transaction_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> StandardResponse:
    transaction = _load_transaction(db, transaction_id)
    ensure_invoice_access(user, transaction)
    return make_success_response(result=build_invoice(transaction))


__all__ = ["router"]
