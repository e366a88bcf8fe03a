from __future__ import annotations

import secrets
import string
from decimal import Decimal
from typing import List, Optional

from loguru import logger
from sqlalchemy.orm import Session

from app.core.affiliates.models import Affiliate, Referral
from app.core.affiliates.schemas import AffiliateCreate, AffiliateUpdate
from app.core.promocodes.services import HUNDRED, normalize_code, to_money
from app.response.errors import ConflictError, NotFoundError


AFFILIATE_ACTIVE = "active"


def resolve_active_affiliate(db: Session, code: Optional[str]) -> Optional[Affiliate]:
    """Unknown or inactive codes resolve to None; checkout carries on without one."""
    if not code or not code.strip():
        return None
    affiliate = (
        db.query(Affiliate)
        .filter(
            Affiliate.affiliate_code == normalize_code(code),
            Affiliate.status == AFFILIATE_ACTIVE,
        )
        .first()
    )
    if affiliate is None:
        logger.info("Affiliate code ignored at checkout", code=code)
    return affiliate


def compute_commission(final_amount: Decimal, commission_rate: Decimal) -> Decimal:
    return to_money(Decimal(str(final_amount)) * Decimal(str(commission_rate)) / HUNDRED)


def credit_commission(db: Session, transaction) -> Optional[Referral]:
    """
    Records the referral for a completed transaction and bumps the affiliate
    totals with a single UPDATE. The commission is computed once here and
    stored; it is never recomputed.
    """
    if transaction.affiliate_id is None:
        return None

    existing = (
        db.query(Referral)
        .filter(Referral.transaction_id == transaction.id)
        .first()
    )
    if existing is not None:
        return existing

    affiliate = (
        db.query(Affiliate)
        .filter(
            Affiliate.id == transaction.affiliate_id,
            Affiliate.status == AFFILIATE_ACTIVE,
        )
        .first()
    )
    if affiliate is None:
        logger.info(
            "Affiliate inactive at completion, no commission",
            transaction_id=str(transaction.id),
        )
        return None

    commission = compute_commission(transaction.final_amount, affiliate.commission_rate)
    referral = Referral(
        affiliate_id=affiliate.id,
        transaction_id=transaction.id,
        referred_email=transaction.email,
        commission_amount=commission,
        commission_paid=False,
        status="completed",
    )
    db.add(referral)

    (
        db.query(Affiliate)
        .filter(Affiliate.id == affiliate.id)
        .update(
            {
                Affiliate.total_referrals: Affiliate.total_referrals + 1,
                Affiliate.total_earnings: Affiliate.total_earnings + commission,
                Affiliate.pending_earnings: Affiliate.pending_earnings + commission,
            },
            synchronize_session=False,
        )
    )
    logger.info(
        "Affiliate commission credited",
        affiliate_id=str(affiliate.id),
        commission=str(commission),
    )
    return referral


def track_click(db: Session, code: str) -> bool:
    updated = (
        db.query(Affiliate)
        .filter(
            Affiliate.affiliate_code == normalize_code(code),
            Affiliate.status == AFFILIATE_ACTIVE,
        )
        .update(
            {Affiliate.total_clicks: Affiliate.total_clicks + 1},
            synchronize_session=False,
        )
    )
    return bool(updated)


def _generate_affiliate_code() -> str:
    alphabet = string.ascii_uppercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(8))


def create_affiliate(db: Session, data: AffiliateCreate) -> Affiliate:
    code = normalize_code(data.affiliate_code) if data.affiliate_code else _generate_affiliate_code()
    exists = db.query(Affiliate).filter(Affiliate.affiliate_code == code).first()
    if exists is not None:
        raise ConflictError(
            code="AFFILIATE_CODE_EXISTS",
            message="Affiliate code already taken",
        )

    affiliate = Affiliate(
        affiliate_code=code,
        email=data.email,
        commission_rate=data.commission_rate,
        status=AFFILIATE_ACTIVE,
        total_clicks=0,
        total_referrals=0,
        total_earnings=0,
        pending_earnings=0,
    )
    db.add(affiliate)
    db.flush()
    db.refresh(affiliate)
    return affiliate


def get_affiliate(db: Session, affiliate_id) -> Affiliate:
    affiliate = db.query(Affiliate).filter(Affiliate.id == affiliate_id).first()
    if affiliate is None:
        raise NotFoundError(code="AFFILIATE_NOT_FOUND", message="Affiliate not found")
    return affiliate


def update_affiliate(db: Session, affiliate: Affiliate, data: AffiliateUpdate) -> Affiliate:
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(affiliate, field, value)
    db.add(affiliate)
    return affiliate


def list_affiliates(db: Session, *, offset: int, limit: int) -> List[Affiliate]:
    return (
        db.query(Affiliate)
        .order_by(Affiliate.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


__all__ = [
    "resolve_active_affiliate",
    "compute_commission",
    "credit_commission",
    "track_click",
    "create_affiliate",
    "get_affiliate",
    "update_affiliate",
    "list_affiliates",
]
