from __future__ import annotations

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import relationship

from app.database.base import Base


class Affiliate(Base):
    __tablename__ = "affiliates"

    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    affiliate_code = Column(String, nullable=False, unique=True, index=True)
    email = Column(String, nullable=False)
    commission_rate = Column(Numeric(5, 2), nullable=False, default=10)

    total_clicks = Column(Integer, nullable=False, default=0)
    total_referrals = Column(Integer, nullable=False, default=0)
    total_earnings = Column(Numeric(12, 2), nullable=False, default=0)
    pending_earnings = Column(Numeric(12, 2), nullable=False, default=0)

    status = Column(String, nullable=False, default="active")  # active|inactive

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

    referrals = relationship("Referral", back_populates="affiliate")


class Referral(Base):
    __tablename__ = "referrals"

    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    affiliate_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("affiliates.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # one referral per transaction, whatever the number of confirmations
    transaction_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("payment_transactions.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    referred_email = Column(String, nullable=False)
    commission_amount = Column(Numeric(10, 2), nullable=False)
    commission_paid = Column(Boolean, nullable=False, default=False)
    status = Column(String, nullable=False, default="completed")

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    affiliate = relationship("Affiliate", back_populates="referrals")


__all__ = ["Affiliate", "Referral"]
