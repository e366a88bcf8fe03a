from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field
from pydantic.config import ConfigDict


class AffiliatePublic(BaseModel):
    id: uuid.UUID
    affiliate_code: str
    email: str
    commission_rate: Decimal
    total_clicks: int
    total_referrals: int
    total_earnings: Decimal
    pending_earnings: Decimal
    status: Literal["active", "inactive"]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AffiliateCreate(BaseModel):
    email: EmailStr
    affiliate_code: Optional[str] = Field(None, min_length=3, max_length=32)
    commission_rate: Decimal = Field(Decimal("10"), gt=0, le=100)


class AffiliateUpdate(BaseModel):
    commission_rate: Optional[Decimal] = Field(None, gt=0, le=100)
    status: Optional[Literal["active", "inactive"]] = None


class TrackClickRequest(BaseModel):
    code: str = Field(min_length=1)


__all__ = [
    "AffiliatePublic",
    "AffiliateCreate",
    "AffiliateUpdate",
    "TrackClickRequest",
]
