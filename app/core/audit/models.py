from __future__ import annotations

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
    func,
)

from app.database.base import Base, JSONType
from app.utils.dates import utc_now


class SystemLog(Base):
    __tablename__ = "system_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    level = Column(String(16), nullable=False, index=True)
    category = Column(String(32), nullable=False, index=True)
    message = Column(Text, nullable=False)
    stack_trace = Column(Text, nullable=True)
    details = Column("metadata", JSONType, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=func.now(),
        index=True,
    )


class AdminNotification(Base):
    __tablename__ = "admin_notifications"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type = Column(String(32), nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(String(16), nullable=False, default="normal")
    is_read = Column(Boolean, nullable=False, default=False)
    details = Column("metadata", JSONType, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=func.now(),
        index=True,
    )


class WebhookLog(Base):
    __tablename__ = "webhook_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    provider = Column(String(32), nullable=False)
    event_type = Column(String, nullable=True)
    payload = Column(JSONType, nullable=True)
    status = Column(String(16), nullable=False)  # processed|ignored|rejected|error
    response_code = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    processing_time_ms = Column(Integer, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=func.now(),
        index=True,
    )


class AdminActivityLog(Base):
    __tablename__ = "admin_activity_log"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    admin_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    action = Column(String, nullable=False)
    entity_type = Column(String, nullable=False)
    entity_id = Column(String, nullable=True)
    details = Column(JSONType, nullable=True)
    ip_address = Column(String, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=func.now(),
        index=True,
    )


__all__ = ["SystemLog", "AdminNotification", "WebhookLog", "AdminActivityLog"]
