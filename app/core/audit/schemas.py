from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from pydantic.config import ConfigDict


class AdminNotificationPublic(BaseModel):
    id: uuid.UUID
    type: str
    title: str
    message: str
    priority: str
    is_read: bool
    details: Optional[Dict[str, Any]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MarkNotificationsReadRequest(BaseModel):
    ids: Optional[List[uuid.UUID]] = None


class ActivityLogPublic(BaseModel):
    id: uuid.UUID
    admin_id: Optional[uuid.UUID]
    action: str
    entity_type: str
    entity_id: Optional[str]
    details: Optional[Dict[str, Any]] = None
    ip_address: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


__all__ = [
    "AdminNotificationPublic",
    "MarkNotificationsReadRequest",
    "ActivityLogPublic",
]
