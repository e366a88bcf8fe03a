from __future__ import annotations

import uuid
from typing import List

from loguru import logger
from sqlalchemy.orm import Session

from app.core.plans.models import SubscriptionPlan
from app.core.plans.schemas import PlanCreate, PlanUpdate
from app.response.errors import NotFoundError
from app.utils.redis_client import get_redis


PLANS_CACHE_KEY = "plans:active"
PLANS_CACHE_TTL_SECONDS = 120


def invalidate_plans_cache() -> None:
    try:
        redis = get_redis()
        redis.delete(PLANS_CACHE_KEY)
    except Exception as exc:
        logger.warning("plans cache invalidation failed: {!r}", exc)


def get_plan(db: Session, plan_id: uuid.UUID) -> SubscriptionPlan:
    plan = (
        db.query(SubscriptionPlan)
        .filter(SubscriptionPlan.id == plan_id)
        .first()
    )
    if plan is None:
        raise NotFoundError(
            code="PLAN_NOT_FOUND",
            message="Subscription plan not found",
        )
    return plan


def list_active_plans(db: Session) -> List[SubscriptionPlan]:
    return (
        db.query(SubscriptionPlan)
        .filter(SubscriptionPlan.is_active.is_(True))
        .order_by(SubscriptionPlan.sort_order.asc(), SubscriptionPlan.price.asc())
        .all()
    )


def create_plan(db: Session, data: PlanCreate) -> SubscriptionPlan:
    plan = SubscriptionPlan(
        name=data.name,
        description=data.description,
        price=data.price,
        currency=data.currency.upper(),
        duration_months=data.duration_months,
        max_devices=data.max_devices,
        sort_order=data.sort_order,
        is_active=True,
    )
    db.add(plan)
    db.flush()
    db.refresh(plan)
    return plan


def update_plan(db: Session, plan: SubscriptionPlan, data: PlanUpdate) -> SubscriptionPlan:
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(plan, field, value)
    db.add(plan)
    return plan


__all__ = [
    "PLANS_CACHE_KEY",
    "PLANS_CACHE_TTL_SECONDS",
    "invalidate_plans_cache",
    "get_plan",
    "list_active_plans",
    "create_plan",
    "update_plan",
]
