from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.dependencies import get_db
from app.core.promocodes.schemas import (
    PromoCodeValidateRequest,
    PromoCodeValidateResponse,
)
from app.core.promocodes.services import find_promo, validate_promo_for_price
from app.response import StandardResponse, make_success_response
from app.utils.rate_limit import rate_limit


router = APIRouter(prefix="/promocodes", tags=["promocodes"])


@router.post(
    "/validate",
    response_model=StandardResponse,
    summary="Check a promo code against a plan price",
    dependencies=[Depends(rate_limit("promo_validate", "promo_validate_rate_limit"))],
)
def validate_promocode(
    payload: PromoCodeValidateRequest,
    db: Session = Depends(get_db),
) -> StandardResponse:
    quote = validate_promo_for_price(
        db,
        code=payload.code,
        plan_price=payload.plan_price,
    )
    promo = find_promo(db, payload.code)
    return make_success_response(
        result=PromoCodeValidateResponse(
            valid=True,
            code=promo.code,
            discount_type=promo.discount_type,
            discount_value=promo.discount_value,
            discount_amount=quote.discount_amount,
            final_price=quote.final_amount,
        )
    )


__all__ = ["router"]
