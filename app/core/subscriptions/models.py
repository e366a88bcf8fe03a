from __future__ import annotations

import uuid

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import relationship

from app.database.base import Base


class Subscription(Base):
    """Service access granted by one completed transaction."""

    __tablename__ = "subscriptions"

    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    email = Column(String, nullable=False, index=True)
    contact = Column(String, nullable=True)
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    plan_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("subscription_plans.id", ondelete="RESTRICT"),
        nullable=False,
    )
    transaction_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("payment_transactions.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )

    status = Column(String, nullable=False, default="active", index=True)  # active|expired|cancelled
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False, index=True)

    expiry_notified_7d = Column(DateTime(timezone=True), nullable=True)
    expiry_notified_3d = Column(DateTime(timezone=True), nullable=True)
    expiry_notified_1d = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    plan = relationship("SubscriptionPlan")
    transaction = relationship("PaymentTransaction")


__all__ = ["Subscription"]
