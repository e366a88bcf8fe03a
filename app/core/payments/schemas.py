from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, EmailStr, Field, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel
from pydantic.config import ConfigDict


PaymentMethod = Literal["crypto", "card"]
TransactionStatus = Literal[
    "pending",
    "completed",
    "failed",
    "refunded",
    "partially_refunded",
]
RefundReason = Literal["duplicate", "fraudulent", "requested_by_customer"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Gateway payloads stored in payment_transactions.gateway_response,
# discriminated by `method`.


class CryptoGatewayData(BaseModel):
    method: Literal["crypto"] = "crypto"
    plan_name: Optional[str] = None
    payment_url: Optional[str] = None
    provider: Optional[str] = None
    callback_status: Optional[str] = None
    callback_amount: Optional[str] = None
    callback_currency: Optional[str] = None
    callback_at: Optional[datetime] = None


class CardGatewayData(BaseModel):
    method: Literal["card"] = "card"
    plan_name: Optional[str] = None
    checkout_session_id: Optional[str] = None
    checkout_url: Optional[str] = None
    payment_intent_id: Optional[str] = None
    payment_status: Optional[str] = None
    last_event_type: Optional[str] = None
    last_event_id: Optional[str] = None


GatewayData = Annotated[
    Union[CryptoGatewayData, CardGatewayData],
    Field(discriminator="method"),
]

gateway_data_adapter: TypeAdapter[GatewayData] = TypeAdapter(GatewayData)


def read_gateway_data(payment_method: str, raw: Optional[Dict[str, Any]]) -> GatewayData:
    payload = dict(raw or {})
    payload.setdefault("method", payment_method)
    return gateway_data_adapter.validate_python(payload)


def dump_gateway_data(data: GatewayData) -> Dict[str, Any]:
    return data.model_dump(mode="json")


class CheckoutRequest(_CamelModel):
    email: EmailStr
    contact: Optional[str] = Field(None, max_length=32)
    plan_id: uuid.UUID
    amount: Optional[Decimal] = Field(None, ge=0)
    promo_code: Optional[str] = Field(None, max_length=64)
    affiliate_code: Optional[str] = Field(None, max_length=64)
    payment_method: PaymentMethod = "crypto"

    @model_validator(mode="after")
    def _contact_required_for_crypto(self) -> "CheckoutRequest":
        if self.payment_method == "crypto" and not (self.contact or "").strip():
            raise ValueError("contact is required for crypto payments")
        return self


class CheckoutResponse(BaseModel):
    payment_url: str
    transaction_id: uuid.UUID
    amount: Decimal
    original_amount: Decimal
    discount_amount: Decimal
    currency: str
    payment_method: PaymentMethod


class TransactionStatusResponse(BaseModel):
    transaction_id: uuid.UUID
    status: TransactionStatus
    amount: Decimal
    currency: str
    payment_method: PaymentMethod
    plan_name: Optional[str] = None
    invoice_number: Optional[str] = None
    subscription_end_date: Optional[datetime] = None
    poll_interval_seconds: int
    max_poll_attempts: int


class TransactionPublic(BaseModel):
    id: uuid.UUID
    email: str
    contact: Optional[str]
    plan_id: uuid.UUID
    original_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    currency: str
    payment_method: PaymentMethod
    status: TransactionStatus
    gateway_reference: str
    promo_code: Optional[str]
    affiliate_id: Optional[uuid.UUID]
    invoice_number: Optional[str]
    refund_amount: Optional[Decimal]
    refund_reference: Optional[str]
    completed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InvoiceLine(BaseModel):
    description: str
    quantity: int = 1
    unit_price: Decimal
    total: Decimal


class InvoicePublic(BaseModel):
    invoice_number: str
    issued_at: datetime
    transaction_id: uuid.UUID
    customer_name: str
    customer_email: str
    lines: List[InvoiceLine]
    subtotal: Decimal
    discount_description: Optional[str] = None
    discount_amount: Decimal
    total: Decimal
    refunded_amount: Optional[Decimal] = None
    currency: str
    payment_method: PaymentMethod
    status: TransactionStatus


class RefundRequest(_CamelModel):
    transaction_id: uuid.UUID
    amount: Optional[Decimal] = Field(None, gt=0)
    reason: Optional[RefundReason] = None


class RefundResponse(BaseModel):
    success: bool
    refund: Dict[str, Any]
    transaction: TransactionPublic


class GatewayConfigPublic(BaseModel):
    wallet_address: Optional[str]
    payout_address: Optional[str]
    payment_provider: str
    is_configured: bool
    updated_at: Optional[datetime] = None


class GatewayConfigUpdate(BaseModel):
    wallet_address: Optional[str] = None
    payout_address: Optional[str] = None
    payment_provider: Optional[str] = None


class WalletGenerateRequest(_CamelModel):
    payout_address: str = Field(min_length=10)
    affiliate_address: Optional[str] = None


__all__ = [
    "PaymentMethod",
    "TransactionStatus",
    "RefundReason",
    "CryptoGatewayData",
    "CardGatewayData",
    "GatewayData",
    "gateway_data_adapter",
    "read_gateway_data",
    "dump_gateway_data",
    "CheckoutRequest",
    "CheckoutResponse",
    "TransactionStatusResponse",
    "TransactionPublic",
    "InvoiceLine",
    "InvoicePublic",
    "RefundRequest",
    "RefundResponse",
    "GatewayConfigPublic",
    "GatewayConfigUpdate",
    "WalletGenerateRequest",
]
