from __future__ import annotations

import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import relationship

from app.database.base import Base, JSONType
from app.utils.dates import utc_now


class PaymentTransaction(Base):
    """One row per payment attempt. Financial record: never deleted."""

    __tablename__ = "payment_transactions"
    __table_args__ = (
        CheckConstraint("final_amount >= 0", name="ck_payment_transactions_final_amount"),
        CheckConstraint(
            "payment_method IN ('crypto', 'card')",
            name="ck_payment_transactions_method",
        ),
    )

    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    email = Column(String, nullable=False, index=True)
    contact = Column(String, nullable=True)

    plan_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("subscription_plans.id", ondelete="RESTRICT"),
        nullable=False,
    )

    original_amount = Column(Numeric(10, 2), nullable=False)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    final_amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")

    payment_method = Column(String, nullable=False)  # crypto|card
    status = Column(String, nullable=False, default="pending", index=True)

    gateway_reference = Column(String, nullable=False, unique=True, index=True)
    gateway_response = Column(JSONType, nullable=True)

    promo_code = Column(String, nullable=True)
    affiliate_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("affiliates.id", ondelete="SET NULL"),
        nullable=True,
    )

    invoice_number = Column(String, nullable=True, unique=True)
    refund_amount = Column(Numeric(10, 2), nullable=True)
    refund_reference = Column(String, nullable=True)

    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=func.now(),
        index=True,
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    plan = relationship("SubscriptionPlan")
    affiliate = relationship("Affiliate")


class PaymentGatewayConfig(Base):
    """Crypto gateway provisioning, edited from the admin settings screen."""

    __tablename__ = "payment_gateway_config"

    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    # `address_in` returned by the wallet API, already percent-encoded
    wallet_address = Column(String, nullable=True)
    raw_wallet = Column(JSONType, nullable=True)
    payout_address = Column(String, nullable=True)
    payment_provider = Column(String, nullable=False, default="auto")

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


__all__ = ["PaymentTransaction", "PaymentGatewayConfig"]
