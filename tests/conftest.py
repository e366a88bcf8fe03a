"""Pytest configuration: file-backed SQLite, Redis down, outbound messages captured."""

import os
import tempfile
import uuid
from datetime import timedelta
from decimal import Decimal

_DB_DIR = tempfile.mkdtemp(prefix="vistra-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/payments.db"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["PAYGATE_CALLBACK_SECRET"] = "paygate-test-secret"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["CRON_SECRET"] = "cron-test-secret"
os.environ["ALERT_EMAIL"] = "ops@vistra.tv"
os.environ["WHATSAPP_API_TOKEN"] = ""
os.environ["WHATSAPP_PHONE_ID"] = ""
os.environ["BATCH_SEND_DELAY_SECONDS"] = "0"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from redis.exceptions import ConnectionError as RedisConnectionError  # noqa: E402

from app.core.affiliates.models import Affiliate  # noqa: E402
from app.core.auth.schemas import UserCreate  # noqa: E402
from app.core.auth.services import create_session_and_tokens, create_user  # noqa: E402
from app.core.notifications import dispatch  # noqa: E402
from app.core.notifications import email as email_channel  # noqa: E402
from app.core.payments.models import PaymentGatewayConfig, PaymentTransaction  # noqa: E402
from app.core.payments.schemas import (  # noqa: E402
    CardGatewayData,
    CryptoGatewayData,
    dump_gateway_data,
)
from app.core.plans.models import SubscriptionPlan  # noqa: E402
from app.core.promocodes.models import PromoCode  # noqa: E402
from app.core.subscriptions.models import Subscription  # noqa: E402
from app.database.base import Base  # noqa: E402
from app.database.session import SessionLocal, engine  # noqa: E402
from app.main import app  # noqa: E402
from app.utils import redis_client  # noqa: E402
from app.utils.dates import utc_now  # noqa: E402
from helpers import WALLET_ADDRESS  # noqa: E402


class _DownRedis:
    """Every command fails the way an unreachable server does."""

    def __getattr__(self, name):
        def _fail(*args, **kwargs):
            raise RedisConnectionError("redis is down in tests")

        return _fail


class Outbox:
    def __init__(self):
        self.emails = []
        self.whatsapp = []

    def subjects_for(self, recipient):
        return [content.subject for to, content in self.emails if to == recipient]


@pytest.fixture(autouse=True)
def _database():
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture(autouse=True)
def _redis_down(monkeypatch):
    monkeypatch.setattr(redis_client, "_redis_client", _DownRedis())


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    box = Outbox()

    def _record_email(*, recipient, content):
        box.emails.append((recipient, content))

    def _record_template(*, to, template, values):
        box.whatsapp.append((to, template, values))

    def _record_text(*, to, text):
        box.whatsapp.append((to, "text", [text]))

    monkeypatch.setattr(email_channel, "schedule_email", _record_email)
    monkeypatch.setattr(dispatch, "schedule_whatsapp_template", _record_template)
    monkeypatch.setattr(dispatch, "schedule_whatsapp_text", _record_text)
    return box


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def plan(db):
    plan = SubscriptionPlan(
        name="Premium 1 month",
        price=Decimal("29.99"),
        currency="USD",
        duration_months=1,
        max_devices=2,
        is_active=True,
        sort_order=1,
    )
    db.add(plan)
    db.commit()
    db.refresh(plan)
    return plan


@pytest.fixture
def promo(db):
    promo = PromoCode(
        code="SAVE10",
        discount_type="percentage",
        discount_value=Decimal("10"),
        current_uses=0,
        is_active=True,
    )
    db.add(promo)
    db.commit()
    db.refresh(promo)
    return promo


@pytest.fixture
def affiliate(db):
    affiliate = Affiliate(
        affiliate_code="PARTNER1",
        email="partner@vistra-mail.com",
        commission_rate=Decimal("20"),
        status="active",
        total_clicks=0,
        total_referrals=0,
        total_earnings=Decimal("0"),
        pending_earnings=Decimal("0"),
    )
    db.add(affiliate)
    db.commit()
    db.refresh(affiliate)
    return affiliate


@pytest.fixture
def wallet(db):
    row = PaymentGatewayConfig(
        wallet_address=WALLET_ADDRESS,
        payout_address="0xPAYOUT0000000000",
        payment_provider="auto",
    )
    db.add(row)
    db.commit()
    return row


def _user_headers(db, *, email, superuser):
    user = create_user(db, UserCreate(email=email, password="Secret123"))
    user.is_superuser = superuser
    tokens = create_session_and_tokens(db, user)
    db.commit()
    return {"Authorization": f"Bearer {tokens.access_token}"}


@pytest.fixture
def admin_headers(db):
    return _user_headers(db, email="admin@vistra-mail.com", superuser=True)


@pytest.fixture
def user_headers(db):
    return _user_headers(db, email="viewer@vistra-mail.com", superuser=False)


@pytest.fixture
def make_transaction(db, plan):
    """Inserts a transaction directly, bypassing the gateways."""

    def _make(
        *,
        method="crypto",
        status="pending",
        amount="29.99",
        email="buyer@vistra-mail.com",
        contact="+33 6 12 34 56 78",
        age=timedelta(0),
        payment_intent_id="pi_test_123",
        affiliate_id=None,
        promo_code=None,
    ):
        reference = f"cs_test_{uuid.uuid4().hex[:12]}" if method == "card" else str(uuid.uuid4())
        if method == "card":
            data = CardGatewayData(
                plan_name=plan.name,
                checkout_session_id=reference,
                checkout_url=f"https://checkout.stripe.com/c/pay/{reference}",
                payment_intent_id=payment_intent_id,
            )
        else:
            data = CryptoGatewayData(plan_name=plan.name, provider="auto")
        created_at = utc_now() - age
        tx = PaymentTransaction(
            email=email,
            contact=contact,
            plan_id=plan.id,
            original_amount=Decimal(amount),
            discount_amount=Decimal("0.00"),
            final_amount=Decimal(amount),
            currency="USD",
            payment_method=method,
            status=status,
            gateway_reference=reference,
            gateway_response=dump_gateway_data(data),
            affiliate_id=affiliate_id,
            promo_code=promo_code,
            invoice_number=f"INV-TEST-{uuid.uuid4().hex[:6].upper()}" if status != "pending" else None,
            completed_at=created_at if status != "pending" else None,
            created_at=created_at,
        )
        db.add(tx)
        db.commit()
        db.refresh(tx)
        return tx

    return _make


@pytest.fixture
def make_subscription(db, plan, make_transaction):
    def _make(*, end_in, status="active", email="buyer@vistra-mail.com"):
        tx = make_transaction(status="completed", email=email)
        now = utc_now()
        subscription = Subscription(
            email=email,
            contact=tx.contact,
            plan_id=plan.id,
            transaction_id=tx.id,
            status=status,
            start_date=now - timedelta(days=30),
            end_date=now + end_in,
        )
        db.add(subscription)
        db.commit()
        db.refresh(subscription)
        return subscription

    return _make

