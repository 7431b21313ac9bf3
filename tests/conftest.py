"""
Shared fixtures for the SprintCart test-suite.

- ``mongo``: an in-memory mongomock database patched in as ``database.db``.
- ``gateway``: a scripted payment gateway installed through
  ``app.dependency_overrides``; tests decide what the remote status is.
- ``customer`` / ``other_customer`` / ``admin``: users with ready-made tokens.
"""
from types import SimpleNamespace

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
from auth import create_token
from errors import UpstreamError
from gateway import PaymentSession, RemotePaymentStatus, get_gateway
from main import app


# ---------------------------------------------------------------------------
# Scripted gateway
# ---------------------------------------------------------------------------

class ScriptedGateway:
    name = "scripted"

    def __init__(self):
        self.statuses = {}
        self.sessions = []
        self.status_calls = 0
        self.status_references = []
        self.session_error = None

    def create_session(self, order, customer):
        if self.session_error:
            raise self.session_error
        self.sessions.append((order["id"], customer))
        n = len(self.sessions)
        return PaymentSession(session_id=f"session_{n}", order_id=order["id"], provider=self.name, reference=f"ref_{n}")

    def fetch_status(self, order_id, reference=None):
        self.status_calls += 1
        self.status_references.append(reference)
        status = self.statuses.get(order_id, "ACTIVE")
        return RemotePaymentStatus(status=status, paid=status == "PAID",
                                   transaction_id=f"cf_{order_id}", payer_email="payer@example.com")

    def order_for_session(self, session_id):
        index = int(session_id.rsplit("_", 1)[1]) - 1
        return self.sessions[index][0]

    def fail_sessions(self, message="Cashfree order create failed", upstream_status=401):
        self.session_error = UpstreamError(message, upstream_status=upstream_status)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def mongo(monkeypatch):
    test_db = mongomock.MongoClient()["sprintcart_test"]
    monkeypatch.setattr(database, "db", test_db)
    return test_db


@pytest.fixture
def gateway():
    return ScriptedGateway()


@pytest.fixture
def client(mongo, gateway):
    app.dependency_overrides[get_gateway] = lambda: gateway
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _make_user(db, name, email, role="customer"):
    doc = {"name": name, "email": email, "password_hash": "unused", "role": role, "is_active": True}
    db["user"].insert_one(doc)
    token = create_token(doc)
    return SimpleNamespace(doc=doc, id=str(doc["_id"]), token=token,
                           headers={"Authorization": f"Bearer {token}"})


@pytest.fixture
def customer(mongo):
    return _make_user(mongo, "Asha", "asha@example.com")


@pytest.fixture
def other_customer(mongo):
    return _make_user(mongo, "Ravi", "ravi@example.com")


@pytest.fixture
def admin(mongo):
    return _make_user(mongo, "Admin", "admin@example.com", role="admin")


@pytest.fixture
def order_payload():
    def build(**overrides):
        payload = {
            "items": [{
                "product_id": "prod-1",
                "name": "Trail Runner Shoes",
                "quantity": 2,
                "unit_price": 500,
                "image": "https://img.example.com/shoes.jpg",
            }],
            "shipping_address": {
                "full_name": "Asha Rao",
                "address": "12 MG Road, Near Metro",
                "city": "Bengaluru",
                "state": "Karnataka",
                "postal_code": "560001",
                "country": "India",
                "phone": "9876543210",
            },
            "payment_method": "Online",
            "promo_code": None,
            "delivery_option": "standard",
            "protection": False,
        }
        payload.update(overrides)
        return payload
    return build


@pytest.fixture
def place_order(client, customer, order_payload):
    """Create an order as ``customer`` and return its JSON."""
    def place(**overrides):
        resp = client.post("/api/orders", json=order_payload(**overrides), headers=customer.headers)
        assert resp.status_code == 201, resp.text
        return resp.json()
    return place
