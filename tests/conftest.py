"""Shared fixtures: in-memory database, mocked payment provider, recording notifier"""
import json
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["OTEL_ENABLED"] = "false"
os.environ["LOG_FORMAT"] = "text"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["SMTP_HOST"] = ""

import httpx
import pytest
from fastapi.testclient import TestClient
from jose import jwt

from storefront.api import routes
from storefront.db import database
from storefront.main import app
from storefront.services.payment_client import RazorpayClient

KEY_SECRET = "rzp_test_secret"


def make_token(user_id: int, is_admin: bool = False, email: str = None) -> str:
    claims = {"id": user_id, "isAdmin": is_admin}
    if email:
        claims["email"] = email
    return jwt.encode(claims, "test-secret", algorithm="HS256")


def auth_header(user_id: int = 1, is_admin: bool = False, email: str = None) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, is_admin, email)}"}


class FakeProvider:
    """Stands in for the Razorpay Orders API"""

    def __init__(self):
        self.requests = []
        self.fail = False
        self.next_id = "order_RZP123"

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        if self.fail:
            return httpx.Response(502, json={"error": {"description": "upstream down"}})
        return httpx.Response(200, json={
            "id": self.next_id,
            "entity": "order",
            "amount": body["amount"],
            "currency": body["currency"],
            "receipt": body["receipt"],
            "status": "created",
            "notes": body["notes"],
        })


class RecordingNotifier:
    def __init__(self):
        self.calls = []

    def is_enabled(self):
        return True

    def notify_order_created(self, order):
        self.calls.append(("order_created", order))
        return True

    def notify_payment_confirmed(self, order):
        self.calls.append(("payment_confirmed", order))
        return True

    def notify_status_changed(self, order):
        self.calls.append(("status_changed", order))
        return True

    def kinds(self):
        return [kind for kind, _ in self.calls]


@pytest.fixture(autouse=True)
def fresh_database():
    database.init_database("sqlite://")
    database.create_tables()
    yield
    database.Base.metadata.drop_all(bind=database.engine)


@pytest.fixture
def db_session():
    db = database.SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def payment_client(provider):
    return RazorpayClient(
        key_id="rzp_test_key",
        key_secret=KEY_SECRET,
        base_url="https://api.razorpay.test/v1",
        transport=httpx.MockTransport(provider.handler)
    )


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(payment_client, notifier):
    app.dependency_overrides[routes.get_payment_client] = lambda: payment_client
    app.dependency_overrides[routes.get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def place_order(client):
    """Create an order through the API and return its id"""
    def _place(user_id=1, email="buyer@example.com", items=None, total=19.98):
        items = items or [{"productId": 1, "quantity": 2, "price": 9.99}]
        response = client.post(
            "/api/orders",
            json={"items": items, "total": total},
            headers=auth_header(user_id, email=email)
        )
        assert response.status_code == 201, response.text
        return response.json()["orderId"]
    return _place
