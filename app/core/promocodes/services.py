from __future__ import annotations

import random
import string
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from loguru import logger
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.auth.models import User
from app.core.promocodes.models import PromoCode
from app.core.promocodes.schemas import PromoCodeCreate, PromoCodeUpdate
from app.response.errors import APIError, ConflictError, NotFoundError, ValidationError
from app.utils.dates import as_utc, utc_now


CENT = Decimal("0.01")
HUNDRED = Decimal("100")

REASON_INACTIVE = "inactive"
REASON_NOT_STARTED = "not_started"
REASON_EXPIRED = "expired"
REASON_USAGE_LIMIT = "usage_limit_reached"
REASON_BELOW_MINIMUM = "below_minimum"


def to_money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def normalize_code(code: str) -> str:
    return code.strip().upper()


@dataclass(frozen=True)
class PriceQuote:
    original_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    promo_code: Optional[str] = None


@dataclass(frozen=True)
class PromoEvaluation:
    applicable: bool
    reason: Optional[str] = None


def compute_discount(
    amount: Any,
    discount_type: str,
    discount_value: Any,
) -> PriceQuote:
    """
    Final amount is rounded half-up to cents and the discount is derived from
    it, so original == discount + final always holds and final is never
    negative.
    """
    original = to_money(amount)
    value = Decimal(str(discount_value))

    if discount_type == "percentage":
        raw_discount = original * value / HUNDRED
    elif discount_type == "fixed":
        raw_discount = value
    else:
        raise ValueError(f"unknown discount type: {discount_type!r}")

    raw_discount = min(max(raw_discount, Decimal("0")), original)
    final = to_money(original - raw_discount)
    return PriceQuote(
        original_amount=original,
        discount_amount=original - final,
        final_amount=final,
    )


def evaluate_promo(
    promo: PromoCode,
    amount: Any,
    now: Optional[datetime] = None,
) -> PromoEvaluation:
    now = now or utc_now()

    if not promo.is_active:
        return PromoEvaluation(False, REASON_INACTIVE)

    start_date = as_utc(promo.start_date)
    if start_date is not None and now < start_date:
        return PromoEvaluation(False, REASON_NOT_STARTED)

    end_date = as_utc(promo.end_date)
    if end_date is not None and now > end_date:
        return PromoEvaluation(False, REASON_EXPIRED)

    if promo.max_uses is not None and promo.current_uses >= promo.max_uses:
        return PromoEvaluation(False, REASON_USAGE_LIMIT)

    if (
        promo.min_purchase_amount is not None
        and to_money(amount) < to_money(promo.min_purchase_amount)
    ):
        return PromoEvaluation(False, REASON_BELOW_MINIMUM)

    return PromoEvaluation(True)


def find_promo(db: Session, code: str) -> Optional[PromoCode]:
    return (
        db.query(PromoCode)
        .filter(PromoCode.code == normalize_code(code))
        .first()
    )


def quote_price(
    db: Session,
    amount: Any,
    code: Optional[str],
    now: Optional[datetime] = None,
) -> PriceQuote:
    """
    Checkout pricing. Unknown or inapplicable codes are dropped without an
    error: the buyer pays full price.
    """
    full_price = PriceQuote(
        original_amount=to_money(amount),
        discount_amount=Decimal("0.00"),
        final_amount=to_money(amount),
    )
    if not code or not code.strip():
        return full_price

    promo = find_promo(db, code)
    if promo is None:
        logger.info("Promo code ignored at checkout", code=code, reason="not_found")
        return full_price

    evaluation = evaluate_promo(promo, amount, now)
    if not evaluation.applicable:
        logger.info(
            "Promo code ignored at checkout",
            code=promo.code,
            reason=evaluation.reason,
        )
        return full_price

    quote = compute_discount(amount, promo.discount_type, promo.discount_value)
    return PriceQuote(
        original_amount=quote.original_amount,
        discount_amount=quote.discount_amount,
        final_amount=quote.final_amount,
        promo_code=promo.code,
    )


_REJECTION_MESSAGES = {
    REASON_INACTIVE: ("PROMO_INACTIVE", "This promo code is no longer active"),
    REASON_NOT_STARTED: ("PROMO_NOT_STARTED", "This promo code is not valid yet"),
    REASON_EXPIRED: ("PROMO_EXPIRED", "This promo code has expired"),
    REASON_USAGE_LIMIT: (
        "PROMO_USAGE_LIMIT_REACHED",
        "This promo code has reached its usage limit",
    ),
    REASON_BELOW_MINIMUM: (
        "PROMO_BELOW_MINIMUM",
        "The purchase amount is below the minimum for this promo code",
    ),
}


def validate_promo_for_price(
    db: Session,
    *,
    code: str,
    plan_price: Any,
    now: Optional[datetime] = None,
) -> PriceQuote:
    """Same rules as checkout, but every rejection is reported to the caller."""
    promo = find_promo(db, code)
    if promo is None:
        raise NotFoundError(code="PROMO_NOT_FOUND", message="Invalid promo code")

    evaluation = evaluate_promo(promo, plan_price, now)
    if not evaluation.applicable:
        error_code, message = _REJECTION_MESSAGES[evaluation.reason]
        details = {"reason": evaluation.reason}
        if evaluation.reason == REASON_BELOW_MINIMUM:
            details["min_purchase_amount"] = str(to_money(promo.min_purchase_amount))
        raise ValidationError(code=error_code, message=message, details=details)

    quote = compute_discount(plan_price, promo.discount_type, promo.discount_value)
    return PriceQuote(
        original_amount=quote.original_amount,
        discount_amount=quote.discount_amount,
        final_amount=quote.final_amount,
        promo_code=promo.code,
    )


def increment_promo_usage(db: Session, code: str) -> bool:
    """
    Atomic `current_uses = current_uses + 1`, guarded so a capped code never
    goes past `max_uses`. Returns False when nothing was incremented.
    """
    updated = (
        db.query(PromoCode)
        .filter(
            PromoCode.code == normalize_code(code),
            or_(
                PromoCode.max_uses.is_(None),
                PromoCode.current_uses < PromoCode.max_uses,
            ),
        )
        .update(
            {PromoCode.current_uses: PromoCode.current_uses + 1},
            synchronize_session=False,
        )
    )
    if not updated:
        logger.warning("Promo usage not incremented", code=code)
    return bool(updated)


def _generate_promo_code() -> str:
    letters = random.sample(string.ascii_uppercase, 4)
    digits = [random.choice(string.digits) for _ in range(4)]
    chars = letters + digits
    random.shuffle(chars)
    return "".join(chars)


def generate_unique_promo_code(db: Session, *, max_attempts: int = 20) -> str:
    for _ in range(max_attempts):
        code = _generate_promo_code()
        if find_promo(db, code) is None:
            return code
    raise APIError(
        code="PROMO_CODE_GENERATION_FAILED",
        http_code=500,
        message="Failed to generate unique promo code",
    )


def create_promo_code(
    db: Session,
    data: PromoCodeCreate,
    *,
    created_by: Optional[User],
) -> PromoCode:
    if data.code:
        code = normalize_code(data.code)
        if find_promo(db, code) is not None:
            raise ConflictError(
                code="PROMO_CODE_EXISTS",
                message="A promo code with this value already exists",
            )
    else:
        code = generate_unique_promo_code(db)

    promo = PromoCode(
        code=code,
        description=data.description,
        discount_type=data.discount_type,
        discount_value=data.discount_value,
        start_date=as_utc(data.start_date),
        end_date=as_utc(data.end_date),
        max_uses=data.max_uses,
        current_uses=0,
        min_purchase_amount=data.min_purchase_amount,
        created_by=created_by.id if created_by else None,
        is_active=True,
    )
    db.add(promo)
    db.flush()
    db.refresh(promo)
    return promo


def update_promo_code(
    db: Session,
    *,
    promo: PromoCode,
    data: PromoCodeUpdate,
) -> PromoCode:
    changes = data.model_dump(exclude_unset=True)
    for field in ("start_date", "end_date"):
        if changes.get(field) is not None:
            changes[field] = as_utc(changes[field])

    if (
        promo.discount_type == "percentage"
        and changes.get("discount_value") is not None
        and changes["discount_value"] > HUNDRED
    ):
        raise ValidationError(
            code="PROMO_INVALID_DISCOUNT",
            message="Percentage discount cannot exceed 100",
        )

    for field, value in changes.items():
        setattr(promo, field, value)

    db.add(promo)
    return promo


__all__ = [
    "PriceQuote",
    "PromoEvaluation",
    "to_money",
    "normalize_code",
    "compute_discount",
    "evaluate_promo",
    "find_promo",
    "quote_price",
    "validate_promo_for_price",
    "increment_promo_usage",
    "generate_unique_promo_code",
    "create_promo_code",
    "update_promo_code",
]
