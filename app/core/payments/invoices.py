from __future__ import annotations

from decimal import Decimal
from typing import List

from sqlalchemy.orm import Session

from app.core.auth.models import User
from app.core.payments.ledger import STATUS_COMPLETED, STATUS_PARTIALLY_REFUNDED, STATUS_REFUNDED
from app.core.payments.models import PaymentTransaction
from app.core.payments.schemas import InvoiceLine, InvoicePublic
from app.response.errors import ConflictError, ForbiddenError


# statuses that went through completion and therefore carry an invoice number
INVOICED_STATUSES = (STATUS_COMPLETED, STATUS_PARTIALLY_REFUNDED, STATUS_REFUNDED)

DEFAULT_LINE_DESCRIPTION = "VistraTV subscription"


def ensure_invoice_access(user: User, transaction: PaymentTransaction) -> None:
    if user.is_superuser:
        return
    if (user.email or "").lower() != (transaction.email or "").lower():
        raise ForbiddenError(
            code="INVOICE_FORBIDDEN",
            message="This invoice belongs to another customer",
        )


def build_invoice(transaction: PaymentTransaction) -> InvoicePublic:
    if transaction.status not in INVOICED_STATUSES or not transaction.invoice_number:
        raise ConflictError(
            code="INVOICE_NOT_ISSUED",
            message="No invoice is issued for an unpaid transaction",
            details={"status": transaction.status},
        )

    original = Decimal(transaction.original_amount)
    discount = Decimal(transaction.discount_amount or 0)
    description = transaction.plan.name if transaction.plan else DEFAULT_LINE_DESCRIPTION

    return InvoicePublic(
        invoice_number=transaction.invoice_number,
        issued_at=transaction.completed_at or transaction.created_at,
        transaction_id=transaction.id,
        customer_name=transaction.email.split("@")[0],
        customer_email=transaction.email,
        lines=[InvoiceLine(description=description, unit_price=original, total=original)],
        subtotal=original,
        discount_description=(
            f"Promo code {transaction.promo_code}" if transaction.promo_code and discount else None
        ),
        discount_amount=discount,
        total=Decimal(transaction.final_amount),
        refunded_amount=transaction.refund_amount,
        currency=transaction.currency,
        payment_method=transaction.payment_method,
        status=transaction.status,
    )


def list_invoices_for_email(db: Session, email: str) -> List[InvoicePublic]:
    transactions = (
        db.query(PaymentTransaction)
        .filter(
            PaymentTransaction.email == email.lower(),
            PaymentTransaction.status.in_(INVOICED_STATUSES),
            PaymentTransaction.invoice_number.isnot(None),
        )
        .order_by(PaymentTransaction.completed_at.desc())
        .all()
    )
    return [build_invoice(tx) for tx in transactions]


__all__ = [
    "INVOICED_STATUSES",
    "build_invoice",
    "ensure_invoice_access",
    "list_invoices_for_email",
]
