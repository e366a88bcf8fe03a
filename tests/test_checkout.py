"""Tests for POST /api/v1/payments/checkout."""

from decimal import Decimal

from app.core.payments.gateways import stripe_gateway
from app.core.payments.gateways.stripe_gateway import CheckoutSession
from app.core.payments.models import PaymentTransaction
from helpers import WALLET_ADDRESS, error_code, money


CHECKOUT_URL = "/api/v1/payments/checkout"


def _body(plan, **overrides):
    body = {
        "email": "Buyer@Vistra-Mail.com",
        "contact": "+33 6 12 34 56 78",
        "planId": str(plan.id),
        "amount": "29.99",
        "paymentMethod": "crypto",
    }
    body.update(overrides)
    return body


class TestCryptoCheckout:
    """Crypto path through PayGate."""

    def test_applies_promo_and_affiliate(self, client, db, plan, promo, affiliate, wallet):
        """Should price 29.99 with SAVE10 at 26.99 and keep the affiliate."""
        response = client.post(
            CHECKOUT_URL,
            json=_body(plan, promoCode="save10", affiliateCode="partner1"),
        )
        assert response.status_code == 200
        result = response.json()["result"]
        assert money(result["amount"]) == Decimal("26.99")
        assert money(result["discount_amount"]) == Decimal("3.00")
        assert money(result["original_amount"]) == Decimal("29.99")

        tx = db.query(PaymentTransaction).one()
        assert tx.status == "pending"
        assert tx.email == "buyer@vistra-mail.com"
        assert tx.promo_code == "SAVE10"
        assert tx.affiliate_id == affiliate.id
        assert tx.final_amount == Decimal("26.99")

    def test_payment_url_keeps_wallet_encoding(self, client, plan, wallet):
        """Should insert the already-encoded wallet address verbatim."""
        response = client.post(CHECKOUT_URL, json=_body(plan))
        url = response.json()["result"]["payment_url"]
        assert f"address={WALLET_ADDRESS}&" in url
        assert "%252F" not in url
        assert "amount=29.99" in url
        assert "email=buyer%40vistra-mail.com" in url

    def test_missing_wallet_is_503_with_guidance(self, client, db, plan):
        response = client.post(CHECKOUT_URL, json=_body(plan))
        assert response.status_code == 503
        error = response.json()["error"]
        assert error["code"] == "PAYMENT_GATEWAY_NOT_CONFIGURED"
        assert error["details"]["guidance"]
        assert db.query(PaymentTransaction).count() == 0

    def test_amount_mismatch_is_rejected(self, client, db, plan, wallet):
        response = client.post(CHECKOUT_URL, json=_body(plan, amount="1.00"))
        assert response.status_code == 400
        assert error_code(response) == "PAYMENT_AMOUNT_MISMATCH"
        assert db.query(PaymentTransaction).count() == 0

    def test_unknown_codes_are_dropped_silently(self, client, db, plan, wallet):
        response = client.post(
            CHECKOUT_URL,
            json=_body(plan, promoCode="GHOST", affiliateCode="NOBODY"),
        )
        assert response.status_code == 200
        tx = db.query(PaymentTransaction).one()
        assert tx.final_amount == Decimal("29.99")
        assert tx.promo_code is None
        assert tx.affiliate_id is None

    def test_inactive_affiliate_is_dropped(self, client, db, plan, affiliate, wallet):
        affiliate.status = "inactive"
        db.commit()
        client.post(CHECKOUT_URL, json=_body(plan, affiliateCode="PARTNER1"))
        assert db.query(PaymentTransaction).one().affiliate_id is None

    def test_contact_is_required_for_crypto(self, client, plan, wallet):
        body = _body(plan)
        body.pop("contact")
        response = client.post(CHECKOUT_URL, json=body)
        assert response.status_code == 400
        assert error_code(response) == "VALIDATION_ERROR"

    def test_inactive_plan_is_404(self, client, db, plan, wallet):
        plan.is_active = False
        db.commit()
        response = client.post(CHECKOUT_URL, json=_body(plan))
        assert response.status_code == 404


class TestCardCheckout:
    """Card path through Stripe Checkout."""

    def test_records_stripe_session(self, client, db, plan, monkeypatch):
        calls = []

        def _fake_session(**kwargs):
            calls.append(kwargs)
            return CheckoutSession(
                session_id="cs_test_abc",
                url="https://checkout.stripe.com/c/pay/cs_test_abc",
                payment_intent_id=None,
            )

        monkeypatch.setattr(stripe_gateway, "create_checkout_session", _fake_session)
        body = _body(plan, paymentMethod="card")
        body.pop("contact")

        response = client.post(CHECKOUT_URL, json=body)

        assert response.status_code == 200
        assert response.json()["result"]["payment_url"].endswith("cs_test_abc")
        tx = db.query(PaymentTransaction).one()
        assert tx.payment_method == "card"
        assert tx.gateway_reference == "cs_test_abc"
        assert tx.gateway_response["checkout_session_id"] == "cs_test_abc"
        assert calls[0]["transaction_id"] == str(tx.id)
        assert calls[0]["amount"] == Decimal("29.99")

    def test_stripe_not_configured_is_503(self, client, db, plan, monkeypatch):
        from app.core.config import settings

        monkeypatch.setattr(settings, "stripe_secret_key", "")
        body = _body(plan, paymentMethod="card")
        response = client.post(CHECKOUT_URL, json=body)
        assert response.status_code == 503
        assert error_code(response) == "PAYMENT_STRIPE_NOT_CONFIGURED"
        assert db.query(PaymentTransaction).count() == 0

    def test_cents_conversion(self):
        assert stripe_gateway.to_cents(Decimal("26.99")) == 2699
        assert stripe_gateway.to_cents(Decimal("0.015")) == 2
