from __future__ import annotations

import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
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


class PromoCode(Base):
    __tablename__ = "promo_codes"
    __table_args__ = (
        CheckConstraint(
            "discount_type IN ('percentage', 'fixed')",
            name="ck_promo_codes_discount_type",
        ),
        CheckConstraint("current_uses >= 0", name="ck_promo_codes_current_uses"),
    )

    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    # stored upper-case; lookups normalise the input the same way
    code = Column(String, nullable=False, unique=True, index=True)
    description = Column(String, nullable=True)

    discount_type = Column(String, nullable=False, default="percentage")
    discount_value = Column(Numeric(10, 2), nullable=False)

    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)

    max_uses = Column(Integer, nullable=True)
    current_uses = Column(Integer, nullable=False, default=0)
    min_purchase_amount = Column(Numeric(10, 2), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)

    created_by = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

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

    creator = relationship("User")


__all__ = ["PromoCode"]
