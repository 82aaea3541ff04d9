"""
Pytest configuration and fixtures.
"""
import hashlib
import hmac
import json
import os
import time
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock

# settings are read at import time
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_fake_key_for_testing"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_fake_secret"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "rzp_webhook_secret"
os.environ["BREVO_API_KEY"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from coursestore.config import settings
from coursestore.database import get_session
from coursestore.main import app
from coursestore.models import Course, User
from coursestore.services.payment_gateways import build_payment_gateways, get_payment_gateways
from coursestore.utils.token import create_access_token


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def stripe_client():
    """Stands in for stripe.StripeClient; records every API call."""
    client = MagicMock()

    def create_session(params, options):
        order_id = params["metadata"]["order_id"]
        return SimpleNamespace(
            id=f"cs_test_{order_id}",
            url=f"https://checkout.stripe.com/c/pay/cs_test_{order_id}",
        )

    client.checkout.sessions.create.side_effect = create_session
    client.checkout.sessions.retrieve.return_value = SimpleNamespace(payment_intent="pi_test_123")
    client.refunds.create.return_value = SimpleNamespace(id="re_test_123", status="succeeded")
    return client


@pytest.fixture
def razorpay_api():
    """Replaces the order/payment resources of a real razorpay.Client."""
    api = SimpleNamespace(order=MagicMock(), payment=MagicMock())
    api.order.create.side_effect = lambda data, timeout=None: {
        "id": f"order_rzp_{data['notes']['order_id']}",
        "amount": data["amount"],
        "currency": data["currency"],
        "status": "created",
    }
    return api


@pytest.fixture
def gateways(stripe_client, razorpay_api):
    gateways = build_payment_gateways(settings)

    stripe_gateway = gateways.for_provider("stripe")
    stripe_gateway.client = stripe_client

    # signature checks stay on the real razorpay utility
    razorpay_gateway = gateways.for_provider("razorpay")
    razorpay_gateway.client.order = razorpay_api.order
    razorpay_gateway.client.payment = razorpay_api.payment

    return gateways


@pytest.fixture
def client(session, gateways):
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_payment_gateways] = lambda: gateways

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def _make_user(session, *, email, role="user", first_name="Test", last_name="User"):
    user = User(first_name=first_name, last_name=last_name, email=email, role=role)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def buyer(session):
    return _make_user(session, email="buyer@example.com", first_name="Ada", last_name="Lovelace")


@pytest.fixture
def other_buyer(session):
    return _make_user(session, email="other@example.com", first_name="Alan", last_name="Turing")


@pytest.fixture
def admin(session):
    return _make_user(session, email="admin@example.com", role="admin", first_name="Grace", last_name="Hopper")


@pytest.fixture
def course(session):
    course = Course(
        title="Python for Data Engineering",
        short_description="Pipelines, testing and deployment",
        price=Decimal("49.00"),
        is_published=True,
    )
    session.add(course)
    session.commit()
    session.refresh(course)
    return course


@pytest.fixture
def second_course(session):
    course = Course(title="Async Python in Practice", price=Decimal("79.00"), is_published=True)
    session.add(course)
    session.commit()
    session.refresh(course)
    return course


def _auth(user):
    return {"Authorization": f"Bearer {create_access_token({'user_id': user.id})}"}


@pytest.fixture
def buyer_headers(buyer):
    return _auth(buyer)


@pytest.fixture
def other_headers(other_buyer):
    return _auth(other_buyer)


@pytest.fixture
def admin_headers(admin):
    return _auth(admin)


@pytest.fixture
def checkout(client, course, buyer_headers):
    """POST /payments/checkout as the buyer; returns the JSON body."""

    def _checkout(method="card", course_id=None, headers=None, **extra):
        response = client.post(
            "/payments/checkout",
            json={"course_id": course_id or course.id, "method": method, **extra},
            headers=headers or buyer_headers,
        )
        assert response.status_code == 200, response.text
        return response.json()

    return _checkout


def sign_stripe_payload(payload: bytes, secret: str, timestamp: int | None = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def sign_razorpay_payload(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


@pytest.fixture
def stripe_event():
    """Build a Checkout Session event body."""

    def _event(
        event_type,
        session_id,
        *,
        order_id=None,
        user_id=None,
        course_id=None,
        amount_total=4900,
        payment_status="paid",
    ):
        metadata = {}
        if order_id is not None:
            metadata["order_id"] = str(order_id)
        if user_id is not None:
            metadata["user_id"] = str(user_id)
        if course_id is not None:
            metadata["course_id"] = str(course_id)
        return {
            "id": f"evt_{session_id}_{event_type}",
            "object": "event",
            "type": event_type,
            "data": {
                "object": {
                    "id": session_id,
                    "object": "checkout.session",
                    "payment_status": payment_status,
                    "amount_total": amount_total,
                    "client_reference_id": str(user_id) if user_id is not None else None,
                    "metadata": metadata,
                }
            },
        }

    return _event


@pytest.fixture
def post_stripe_webhook(client):
    def _post(event, *, secret=None, signature=None):
        payload = json.dumps(event).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if signature is None:
            signature = sign_stripe_payload(payload, secret or settings.STRIPE_WEBHOOK_SECRET)
        if signature:
            headers["Stripe-Signature"] = signature
        return client.post("/payments/webhook/stripe", content=payload, headers=headers)

    return _post


@pytest.fixture
def post_razorpay_webhook(client):
    def _post(body, *, secret=None, signature=None):
        payload = json.dumps(body).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if signature is None:
            signature = sign_razorpay_payload(payload, secret or settings.RAZORPAY_WEBHOOK_SECRET)
        if signature:
            headers["X-Razorpay-Signature"] = signature
        return client.post("/payments/webhook/razorpay", content=payload, headers=headers)

    return _post
