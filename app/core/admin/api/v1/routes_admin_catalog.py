from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.core.affiliates.models import Affiliate
from app.core.affiliates.schemas import AffiliateCreate, AffiliatePublic, AffiliateUpdate
from app.core.affiliates.services import (
    create_affiliate,
    get_affiliate,
    list_affiliates,
    update_affiliate,
)
from app.core.audit.services import log_activity
from app.core.auth.models import User
from app.core.dependencies import client_ip, get_current_admin, get_db
from app.core.plans.models import SubscriptionPlan
from app.core.plans.schemas import PlanCreate, PlanPublic, PlanUpdate
from app.core.plans.services import (
    create_plan,
    get_plan,
    invalidate_plans_cache,
    update_plan,
)
from app.core.promocodes.models import PromoCode
from app.core.promocodes.schemas import PromoCodeCreate, PromoCodePublic, PromoCodeUpdate
from app.core.promocodes.services import create_promo_code, update_promo_code
from app.response import NotFoundError, StandardResponse, make_pagination, make_success_response


router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/plans",
    response_model=StandardResponse,
)
def admin_list_plans(
    db: Session = Depends(get_db),
    _: User = Depends(get_current_admin),
) -> StandardResponse:
    plans = (
        db.query(SubscriptionPlan)
        .order_by(SubscriptionPlan.sort_order.asc(), SubscriptionPlan.price.asc())
        .all()
    )
    return make_success_response(
        result={"items": [PlanPublic.model_validate(plan) for plan in plans]}
    )


@router.post(
    "/plans",
    response_model=StandardResponse,
)
def admin_create_plan(
    payload: PlanCreate,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
) -> StandardResponse:
    plan = create_plan(db, payload)
    log_activity(
        db,
        admin_id=admin.id,
        action="create_plan",
        entity_type="subscription_plan",
        entity_id=str(plan.id),
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(plan)
    invalidate_plans_cache()
    return make_success_response(result=PlanPublic.model_validate(plan))


@router.put(
    "/plans/{plan_id}",
    response_model=StandardResponse,
)
def admin_update_plan(
    plan_id: uuid.UUID,
    payload: PlanUpdate,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
) -> StandardResponse:
    plan = update_plan(db, get_plan(db, plan_id), payload)
    log_activity(
        db,
        admin_id=admin.id,
        action="update_plan",
        entity_type="subscription_plan",
        entity_id=str(plan.id),
        details=payload.model_dump(mode="json", exclude_unset=True),
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(plan)
    invalidate_plans_cache()
    return make_success_response(result=PlanPublic.model_validate(plan))


@router.get(
    "/promocodes",
    response_model=StandardResponse,
)
def admin_list_promocodes(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    is_active: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_admin),
) -> StandardResponse:
    query = db.query(PromoCode)
    if is_active is not None:
        query = query.filter(PromoCode.is_active.is_(is_active))

    total = query.count()
    promos = (
        query.order_by(PromoCode.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return make_success_response(
        result={"items": [PromoCodePublic.model_validate(promo) for promo in promos]},
        pagination=make_pagination(page=page, page_size=page_size, total=total),
    )


@router.post(
    "/promocodes",
    response_model=StandardResponse,
)
def admin_create_promocode(
    payload: PromoCodeCreate,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
) -> StandardResponse:
    promo = create_promo_code(db, payload, created_by=admin)
    log_activity(
        db,
        admin_id=admin.id,
        action="create_promo_code",
        entity_type="promo_code",
        entity_id=str(promo.id),
        details={"code": promo.code},
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(promo)
    return make_success_response(result=PromoCodePublic.model_validate(promo))


def _get_promo(db: Session, promo_id: uuid.UUID) -> PromoCode:
    promo = db.query(PromoCode).filter(PromoCode.id == promo_id).first()
    if promo is None:
        raise NotFoundError(code="PROMO_NOT_FOUND", message="Promo code not found")
    return promo


@router.put(
    "/promocodes/{promo_id}",
    response_model=StandardResponse,
)
def admin_update_promocode(
    promo_id: uuid.UUID,
    payload: PromoCodeUpdate,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
) -> StandardResponse:
    promo = update_promo_code(db, promo=_get_promo(db, promo_id), data=payload)
    log_activity(
        db,
        admin_id=admin.id,
        action="update_promo_code",
        entity_type="promo_code",
        entity_id=str(promo.id),
        details=payload.model_dump(mode="json", exclude_unset=True),
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(promo)
    return make_success_response(result=PromoCodePublic.model_validate(promo))


@router.post(
    "/promocodes/{promo_id}/deactivate",
    response_model=StandardResponse,
)
def admin_deactivate_promocode(
    promo_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
) -> StandardResponse:
    promo = _get_promo(db, promo_id)
    promo.is_active = False
    db.add(promo)
    log_activity(
        db,
        admin_id=admin.id,
        action="deactivate_promo_code",
        entity_type="promo_code",
        entity_id=str(promo.id),
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(promo)
    return make_success_response(result=PromoCodePublic.model_validate(promo))


@router.get(
    "/affiliates",
    response_model=StandardResponse,
)
def admin_list_affiliates(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_admin),
) -> StandardResponse:
    total = db.query(Affiliate).count()
    affiliates = list_affiliates(db, offset=(page - 1) * page_size, limit=page_size)
    return make_success_response(
        result={"items": [AffiliatePublic.model_validate(item) for item in affiliates]},
        pagination=make_pagination(page=page, page_size=page_size, total=total),
    )


@router.post(
    "/affiliates",
    response_model=StandardResponse,
)
def admin_create_affiliate(
    payload: AffiliateCreate,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
) -> StandardResponse:
    affiliate = create_affiliate(db, payload)
    log_activity(
        db,
        admin_id=admin.id,
        action="create_affiliate",
        entity_type="affiliate",
        entity_id=str(affiliate.id),
        details={"affiliate_code": affiliate.affiliate_code},
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(affiliate)
    return make_success_response(result=AffiliatePublic.model_validate(affiliate))


@router.put(
    "/affiliates/{affiliate_id}",
    response_model=StandardResponse,
)
def admin_update_affiliate(
    affiliate_id: uuid.UUID,
    payload: AffiliateUpdate,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
) -> StandardResponse:
    affiliate = update_affiliate(db, get_affiliate(db, affiliate_id), payload)
    log_activity(
        db,
        admin_id=admin.id,
        action="update_affiliate",
        entity_type="affiliate",
        entity_id=str(affiliate.id),
        details=payload.model_dump(mode="json", exclude_unset=True),
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(affiliate)
    return make_success_response(result=AffiliatePublic.model_validate(affiliate))


__all__ = ["router"]
