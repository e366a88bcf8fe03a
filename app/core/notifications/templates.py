from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from app.core.config import settings


BRAND = "VistraTV"


@dataclass(frozen=True)
class EmailContent:
    subject: str
    body: str


def _money(amount: Decimal, currency: str) -> str:
    return f"{Decimal(amount):.2f} {currency}"


def _date(value: Optional[datetime]) -> str:
    if value is None:
        return "-"
    return value.strftime("%d/%m/%Y")


def _greeting(email: str) -> str:
    return f"Hello {email.split('@')[0]},"


def payment_confirmation(
    *,
    email: str,
    plan_name: str,
    amount: Decimal,
    currency: str,
    invoice_number: Optional[str],
    transaction_id: str,
    end_date: Optional[datetime],
) -> EmailContent:
    body = (
        f"{_greeting(email)}\n\n"
        f"Thank you for your purchase. Your {plan_name} subscription is now active.\n\n"
        f"Amount paid: {_money(amount, currency)}\n"
        f"Invoice: {invoice_number or '-'}\n"
        f"Transaction: {transaction_id}\n"
        f"Valid until: {_date(end_date)}\n\n"
        f"Your access details will follow shortly.\n\n"
        f"The {BRAND} team"
    )
    return EmailContent(
        subject=f"{BRAND}: payment confirmed ({invoice_number or plan_name})",
        body=body,
    )


def abandoned_cart(
    *,
    email: str,
    plan_name: str,
    amount: Decimal,
    currency: str,
    payment_url: Optional[str],
) -> EmailContent:
    link = payment_url or f"{settings.app_public_url.rstrip('/')}/checkout"
    body = (
        f"{_greeting(email)}\n\n"
        f"You started subscribing to {plan_name} ({_money(amount, currency)}) "
        f"but the payment was not completed.\n\n"
        f"You can finish it here:\n{link}\n\n"
        f"The {BRAND} team"
    )
    return EmailContent(
        subject=f"{BRAND}: your {plan_name} subscription is waiting",
        body=body,
    )


def abandoned_cart_text(*, plan_name: str, amount: Decimal, currency: str, payment_url: Optional[str]) -> str:
    link = payment_url or f"{settings.app_public_url.rstrip('/')}/checkout"
    return (
        f"{BRAND}: your {plan_name} payment ({_money(amount, currency)}) "
        f"is not finished yet. Complete it here: {link}"
    )


def subscription_expiring(
    *,
    email: str,
    plan_name: str,
    days_remaining: int,
    end_date: Optional[datetime],
) -> EmailContent:
    renew_url = f"{settings.app_public_url.rstrip('/')}/pricing"
    day_word = "day" if days_remaining == 1 else "days"
    body = (
        f"{_greeting(email)}\n\n"
        f"Your {plan_name} subscription expires in {days_remaining} {day_word} "
        f"({_date(end_date)}).\n\n"
        f"Renew now to keep watching:\n{renew_url}\n\n"
        f"The {BRAND} team"
    )
    return EmailContent(
        subject=f"{BRAND}: subscription expires in {days_remaining} {day_word}",
        body=body,
    )


def subscription_expired(*, email: str, plan_name: str) -> EmailContent:
    renew_url = f"{settings.app_public_url.rstrip('/')}/pricing"
    body = (
        f"{_greeting(email)}\n\n"
        f"Your {plan_name} subscription has expired.\n\n"
        f"Pick a plan to get back in:\n{renew_url}\n\n"
        f"The {BRAND} team"
    )
    return EmailContent(subject=f"{BRAND}: subscription expired", body=body)


def refund_processed(
    *,
    email: str,
    amount: Decimal,
    currency: str,
    invoice_number: Optional[str],
) -> EmailContent:
    body = (
        f"{_greeting(email)}\n\n"
        f"A refund of {_money(amount, currency)} was issued for invoice "
        f"{invoice_number or '-'}. It can take 5-10 business days to appear "
        f"on your statement.\n\n"
        f"The {BRAND} team"
    )
    return EmailContent(subject=f"{BRAND}: refund issued", body=body)


def system_alert(
    *,
    category: str,
    error_count: int,
    window_minutes: int,
    latest_message: str,
) -> EmailContent:
    body = (
        f"{error_count} errors in category '{category}' during the last "
        f"{window_minutes} minutes.\n\n"
        f"Latest: {latest_message}\n"
    )
    return EmailContent(
        subject=f"[{BRAND} alert] {category}: {error_count} errors",
        body=body,
    )


__all__ = [
    "EmailContent",
    "payment_confirmation",
    "abandoned_cart",
    "abandoned_cart_text",
    "subscription_expiring",
    "subscription_expired",
    "refund_processed",
    "system_alert",
]
