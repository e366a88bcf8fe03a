from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator
from pydantic.alias_generators import to_camel
from pydantic.config import ConfigDict


DiscountType = Literal["percentage", "fixed"]


class PromoCodePublic(BaseModel):
    id: uuid.UUID
    code: str
    description: Optional[str]
    discount_type: DiscountType
    discount_value: Decimal
    start_date: Optional[datetime]
    end_date: Optional[datetime]
    max_uses: Optional[int]
    current_uses: int
    min_purchase_amount: Optional[Decimal]
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PromoCodeCreate(BaseModel):
    code: Optional[str] = Field(None, min_length=3, max_length=32)
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal = Field(gt=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    max_uses: Optional[int] = Field(None, ge=1)
    min_purchase_amount: Optional[Decimal] = Field(None, ge=0)

    @model_validator(mode="after")
    def _check_rules(self) -> "PromoCodeCreate":
        if self.discount_type == "percentage" and self.discount_value > 100:
            raise ValueError("percentage discount cannot exceed 100")
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class PromoCodeUpdate(BaseModel):
    description: Optional[str] = None
    discount_value: Optional[Decimal] = Field(None, gt=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    max_uses: Optional[int] = Field(None, ge=1)
    min_purchase_amount: Optional[Decimal] = Field(None, ge=0)
    is_active: Optional[bool] = None


class PromoCodeValidateRequest(BaseModel):
    code: str = Field(min_length=1)
    plan_price: Decimal = Field(ge=0)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PromoCodeValidateResponse(BaseModel):
    valid: bool
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    discount_amount: Decimal
    final_price: Decimal


__all__ = [
    "DiscountType",
    "PromoCodePublic",
    "PromoCodeCreate",
    "PromoCodeUpdate",
    "PromoCodeValidateRequest",
    "PromoCodeValidateResponse",
]
