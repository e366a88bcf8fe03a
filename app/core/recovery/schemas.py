from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from pydantic.config import ConfigDict


ReminderStatus = Literal["pending", "recovered"]


class ReminderPublic(BaseModel):
    id: uuid.UUID
    transaction_id: uuid.UUID
    email: str
    contact: Optional[str]
    plan_name: str
    amount: Decimal
    currency: str
    payment_url: Optional[str]
    abandoned_at: datetime
    reminder_count: int
    last_reminder_sent_at: Optional[datetime]
    status: ReminderStatus

    model_config = ConfigDict(from_attributes=True)


class SendReminderRequest(BaseModel):
    reminder_id: uuid.UUID

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


__all__ = ["ReminderStatus", "ReminderPublic", "SendReminderRequest"]
