from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


SubscriptionStatus = Literal["active", "expired", "cancelled"]


class SubscriptionPublic(BaseModel):
    id: uuid.UUID
    email: str
    contact: Optional[str]
    plan_id: uuid.UUID
    transaction_id: uuid.UUID
    status: SubscriptionStatus
    start_date: datetime
    end_date: datetime
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SubscriptionRenewRequest(BaseModel):
    days: int = Field(30, ge=1, le=730)


__all__ = ["SubscriptionStatus", "SubscriptionPublic", "SubscriptionRenewRequest"]
