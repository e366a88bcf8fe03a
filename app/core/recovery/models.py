from __future__ import annotations

import uuid

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    func,
)

from app.database.base import Base


class AbandonedPaymentReminder(Base):
    __tablename__ = "abandoned_payment_reminders"

    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    # unique: two overlapping sweeps cannot both create a reminder
    transaction_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("payment_transactions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    email = Column(String, nullable=False, index=True)
    contact = Column(String, nullable=True)

    plan_name = Column(String, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    payment_url = Column(Text, nullable=True)

    abandoned_at = Column(DateTime(timezone=True), nullable=False)
    reminder_count = Column(Integer, nullable=False, default=0)
    last_reminder_sent_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(String, nullable=False, default="pending", index=True)  # pending|recovered

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


__all__ = ["AbandonedPaymentReminder"]
