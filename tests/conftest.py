"""Pytest fixtures: per-test app on a throwaway SQLite file, fake gateway transport, auth headers."""
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

# Must be set before millet_pay.main is imported (module-level app)
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from millet_pay.core.config import Settings
from millet_pay.core.database import utcnow
from millet_pay.core.rate_limit import limiter
from millet_pay.core.security import create_access_token
from millet_pay.main import create_app
from millet_pay.models import Order
from millet_pay.payments.http import GatewayResponse

ADMIN_SECRET = "admin-test-secret"
JWT_SECRET = "jwt-test-secret"
FRONTEND = "https://shop.example"
PUBLIC_BASE = "https://api.example"


@dataclass
class RecordedCall:
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    json_body: dict | None = None
    form_body: dict | None = None
    timeout: float | None = None


class FakeTransport:
    """
    Stands in for urllib_transport. Responses are matched by method and URL fragment;
    the last queued response for a route keeps answering.
    """

    def __init__(self):
        self.calls: list[RecordedCall] = []
        self._routes: list[tuple[str, str, list[GatewayResponse]]] = []

    def add(self, method: str, fragment: str, status: int = 200, data: Any = None) -> None:
        response = GatewayResponse(status=status, data=data if data is not None else {}, raw="")
        for m, f, queue in self._routes:
            if m == method and f == fragment:
                queue.append(response)
                return
        self._routes.append((method, fragment, [response]))

    def __call__(self, method, url, *, headers=None, json_body=None, form_body=None, timeout=None):
        self.calls.append(
            RecordedCall(method=method, url=url, headers=dict(headers or {}), json_body=json_body, form_body=form_body, timeout=timeout)
        )
        for m, fragment, queue in self._routes:
            if m == method and fragment in url:
                return queue.pop(0) if len(queue) > 1 else queue[0]
        raise AssertionError(f"Unexpected gateway call: {method} {url}")

    def calls_to(self, fragment: str) -> list[RecordedCall]:
        return [c for c in self.calls if fragment in c.url]


def make_settings(tmp_path, **overrides) -> Settings:
    values = {
        "database_url": f"sqlite:///{tmp_path / 'test.db'}",
        "cors_origins": FRONTEND,
        "rate_limit_per_minute": 1000,
        "admin_secret": ADMIN_SECRET,
        "cron_secret": "",
        "jwt_secret": JWT_SECRET,
        "frontend_url": FRONTEND,
        "public_base_url": PUBLIC_BASE,
        "razorpay_key_id": "rzp_test_key",
        "razorpay_key_secret": "test_secret_key",
        "phonepe_merchant_id": "MERCHANTUAT",
        "phonepe_salt_key": "salt-key",
        "phonepe_salt_index": "1",
        "phonepe_environment": "sandbox",
        "cashfree_client_id": "cf-client",
        "cashfree_client_secret": "cf-secret",
        "cashfree_environment": "sandbox",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def app(settings, transport):
    return create_app(settings, transport)


@pytest.fixture
def client(app):
    """TestClient; the lifespan creates the tables."""
    limiter.reset()
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(client, app):
    with Session(app.state.engine) as session:
        yield session


@pytest.fixture
def make_order(db):
    def _make(
        total: float = 1200.0,
        *,
        user_id: str = "user-1",
        status: str = "pending",
        payment_status: str = "pending",
        payment_type: str | None = None,
        gateway_order_ref: str | None = None,
        created_at: datetime | None = None,
        promo_code_id: int | None = None,
    ) -> Order:
        order = Order(
            user_id=user_id,
            subtotal=total,
            discount_amount=0,
            total=total,
            status=status,
            payment_status=payment_status,
            payment_type=payment_type,
            gateway_order_ref=gateway_order_ref,
            promo_code_id=promo_code_id,
            created_at=created_at or utcnow(),
        )
        db.add(order)
        db.commit()
        db.refresh(order)
        return order

    return _make


def reload_order(db: Session, order_id: str) -> Order:
    db.expire_all()
    return db.get(Order, order_id)


@pytest.fixture
def admin_headers():
    return {"X-Admin-Secret": ADMIN_SECRET}


def bearer(user_id: str) -> dict[str, str]:
    token = create_access_token({"sub": user_id, "aud": "authenticated"}, JWT_SECRET)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    return bearer("user-1")


def customer(phone: str = "9876543210") -> dict:
    return {"name": "Asha Rao", "email": "asha@example.com", "phone": phone}
