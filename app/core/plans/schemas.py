from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


class PlanPublic(BaseModel):
    id: uuid.UUID
    name: str
    description: str | None
    price: Decimal
    currency: str
    duration_months: int
    max_devices: int
    is_active: bool
    sort_order: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PlanCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str | None = None
    price: Decimal = Field(gt=0, decimal_places=2)
    currency: str = Field("USD", min_length=3, max_length=3)
    duration_months: int = Field(1, ge=1, le=36)
    max_devices: int = Field(1, ge=1)
    sort_order: int = 0


class PlanUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    price: Decimal | None = Field(None, gt=0, decimal_places=2)
    duration_months: int | None = Field(None, ge=1, le=36)
    max_devices: int | None = Field(None, ge=1)
    is_active: bool | None = None
    sort_order: int | None = None


__all__ = ["PlanPublic", "PlanCreate", "PlanUpdate"]
