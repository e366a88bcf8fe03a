from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from loguru import logger
from sqlalchemy.orm import Session

from app.core.affiliates.services import resolve_active_affiliate
from app.core.config import settings
from app.core.payments.gateway_config import GatewayConfig
from app.core.payments.gateways import paygate, stripe_gateway
from app.core.payments.ledger import STATUS_PENDING
from app.core.payments.models import PaymentTransaction
from app.core.payments.schemas import (
    CardGatewayData,
    CheckoutRequest,
    CryptoGatewayData,
    dump_gateway_data,
)
from app.core.plans.services import get_plan
from app.core.promocodes.services import quote_price, to_money
from app.response.errors import NotFoundError, ValidationError


@dataclass(frozen=True)
class CheckoutResult:
    transaction: PaymentTransaction
    payment_url: str


def _ensure_amount_matches(plan_price, supplied) -> None:
    if supplied is None:
        return
    if to_money(supplied) != to_money(plan_price):
        raise ValidationError(
            code="PAYMENT_AMOUNT_MISMATCH",
            message="Amount does not match the plan price",
            details={
                "expected_amount": str(to_money(plan_price)),
                "got_amount": str(to_money(supplied)),
            },
        )


def initiate_checkout(
    db: Session,
    payload: CheckoutRequest,
    gateway: GatewayConfig,
    *,
    now: Optional[datetime] = None,
) -> CheckoutResult:
    """
    Prices the order from the plan, opens the gateway session and records
    a pending transaction. Nothing is persisted when the gateway call fails.
    Caller commits.
    """
    plan = get_plan(db, payload.plan_id)
    if not plan.is_active:
        raise NotFoundError(code="PLAN_NOT_FOUND", message="Subscription plan not found")

    _ensure_amount_matches(plan.price, payload.amount)

    quote = quote_price(db, plan.price, payload.promo_code, now)
    affiliate = resolve_active_affiliate(db, payload.affiliate_code)
    currency = (plan.currency or settings.default_currency).upper()
    email = str(payload.email).strip().lower()
    transaction_id = uuid.uuid4()

    if payload.payment_method == "card":
        session = stripe_gateway.create_checkout_session(
            transaction_id=str(transaction_id),
            plan_id=str(plan.id),
            plan_name=plan.name,
            amount=quote.final_amount,
            currency=currency,
            email=email,
            promo_code=quote.promo_code,
            affiliate_code=affiliate.affiliate_code if affiliate else None,
        )
        payment_url = session.url
        reference = session.session_id
        gateway_data = CardGatewayData(
            plan_name=plan.name,
            checkout_session_id=session.session_id,
            checkout_url=session.url,
            payment_intent_id=session.payment_intent_id,
        )
    else:
        payment_url = paygate.build_payment_url(
            gateway,
            amount=quote.final_amount,
            currency=currency,
            email=email,
        )
        reference = str(uuid.uuid4())
        gateway_data = CryptoGatewayData(
            plan_name=plan.name,
            payment_url=payment_url,
            provider=gateway.payment_provider,
        )

    transaction = PaymentTransaction(
        id=transaction_id,
        email=email,
        contact=(payload.contact or "").strip() or None,
        plan_id=plan.id,
        original_amount=quote.original_amount,
        discount_amount=quote.discount_amount,
        final_amount=quote.final_amount,
        currency=currency,
        payment_method=payload.payment_method,
        status=STATUS_PENDING,
        gateway_reference=reference,
        gateway_response=dump_gateway_data(gateway_data),
        promo_code=quote.promo_code,
        affiliate_id=affiliate.id if affiliate else None,
    )
    db.add(transaction)
    db.flush()
    db.refresh(transaction)

    logger.info(
        "Checkout initiated",
        transaction_id=str(transaction.id),
        method=transaction.payment_method,
        amount=str(transaction.final_amount),
        promo=transaction.promo_code,
    )
    return CheckoutResult(transaction=transaction, payment_url=payment_url)


__all__ = ["CheckoutResult", "initiate_checkout"]
