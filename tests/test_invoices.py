"""Tests for the invoice read endpoints."""

from decimal import Decimal

from helpers import error_code, money, paygate_query


OWNER = "viewer@vistra-mail.com"


class TestTransactionInvoice:
    """GET /api/v1/payments/{id}/invoice"""

    def test_owner_reads_invoice_after_callback(self, client, db, plan, promo, make_transaction, user_headers):
        """Should describe the settled amounts once the payment completed."""
        tx = make_transaction(email=OWNER, promo_code="SAVE10", amount="26.99")
        tx.original_amount = Decimal("29.99")
        tx.discount_amount = Decimal("3.00")
        db.commit()
        client.get(
            "/api/v1/payments/webhook/paygate",
            params=paygate_query(tx.gateway_reference, "paid", amount="26.99"),
        )

        response = client.get(f"/api/v1/payments/{tx.id}/invoice", headers=user_headers)

        assert response.status_code == 200
        invoice = response.json()["result"]
        assert invoice["invoice_number"].startswith("INV-")
        assert invoice["customer_email"] == OWNER
        assert invoice["customer_name"] == "viewer"
        assert [line["description"] for line in invoice["lines"]] == [plan.name]
        assert money(invoice["subtotal"]) == Decimal("29.99")
        assert money(invoice["discount_amount"]) == Decimal("3.00")
        assert invoice["discount_description"] == "Promo code SAVE10"
        assert money(invoice["total"]) == Decimal("26.99")
        assert invoice["status"] == "completed"

    def test_admin_reads_any_invoice(self, client, make_transaction, admin_headers):
        tx = make_transaction(status="completed")
        response = client.get(f"/api/v1/payments/{tx.id}/invoice", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["result"]["invoice_number"] == tx.invoice_number

    def test_other_customer_is_forbidden(self, client, make_transaction, user_headers):
        tx = make_transaction(status="completed", email="someone@vistra-mail.com")
        response = client.get(f"/api/v1/payments/{tx.id}/invoice", headers=user_headers)
        assert response.status_code == 403
        assert error_code(response) == "INVOICE_FORBIDDEN"

    def test_pending_transaction_has_no_invoice(self, client, make_transaction, user_headers):
        tx = make_transaction(email=OWNER)
        response = client.get(f"/api/v1/payments/{tx.id}/invoice", headers=user_headers)
        assert response.status_code == 409
        assert error_code(response) == "INVOICE_NOT_ISSUED"

    def test_requires_sign_in(self, client, make_transaction):
        tx = make_transaction(status="completed")
        assert client.get(f"/api/v1/payments/{tx.id}/invoice").status_code == 401

    def test_unknown_transaction_is_404(self, client, user_headers):
        response = client.get(
            "/api/v1/payments/00000000-0000-0000-0000-000000000000/invoice",
            headers=user_headers,
        )
        assert response.status_code == 404


class TestMyInvoices:
    def test_lists_only_settled_own_transactions(self, client, make_transaction, user_headers):
        settled = make_transaction(status="completed", email=OWNER)
        make_transaction(email=OWNER)
        make_transaction(status="failed", email=OWNER)
        make_transaction(status="completed", email="someone@vistra-mail.com")

        response = client.get("/api/v1/payments/me/invoices", headers=user_headers)

        assert response.status_code == 200
        items = response.json()["result"]["items"]
        assert [item["transaction_id"] for item in items] == [str(settled.id)]
