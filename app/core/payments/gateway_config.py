from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.dependencies import get_db
from app.core.payments.models import PaymentGatewayConfig


@dataclass(frozen=True)
class GatewayConfig:
    """Snapshot of the crypto gateway provisioning for one request or sweep."""

    wallet_address: Optional[str] = None
    payout_address: Optional[str] = None
    payment_provider: str = "auto"

    @property
    def is_configured(self) -> bool:
        return bool(self.wallet_address)


def get_gateway_row(db: Session) -> Optional[PaymentGatewayConfig]:
    return (
        db.query(PaymentGatewayConfig)
        .order_by(PaymentGatewayConfig.created_at.asc())
        .first()
    )


def load_gateway_config(db: Session) -> GatewayConfig:
    row = get_gateway_row(db)
    if row is None:
        return GatewayConfig()
    return GatewayConfig(
        wallet_address=row.wallet_address or None,
        payout_address=row.payout_address or None,
        payment_provider=row.payment_provider or "auto",
    )


def get_gateway_config(db: Session = Depends(get_db)) -> GatewayConfig:
    return load_gateway_config(db)


__all__ = [
    "GatewayConfig",
    "get_gateway_row",
    "load_gateway_config",
    "get_gateway_config",
]
