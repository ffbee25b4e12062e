"""Customer orders: cash on delivery, online orders awaiting payment, ownership, profile."""
from datetime import timedelta

from fastapi.testclient import TestClient
from sqlmodel import select

from millet_pay.core.security import create_access_token
from millet_pay.models import Profile

from conftest import bearer, reload_order


def test_cash_on_delivery_is_accepted_immediately(client: TestClient, transport, auth_headers, db):
    r = client.post(
        "/orders",
        json={"subtotal": 499, "shipping_address": "12 MG Road, Bengaluru", "payment_type": "cod"},
        headers=auth_headers,
    )
    assert r.status_code == 200, r.text
    j = r.json()
    assert j["status"] == "accepted"
    assert j["payment_type"] == "cod"
    assert j["payment_status"] == "pending"
    assert j["gateway_order_ref"] is None
    assert j["total"] == 499
    assert transport.calls == []
    assert db.get(Profile, "user-1") is not None


def test_online_order_waits_for_payment(client: TestClient, auth_headers, db):
    r = client.post("/orders", json={"subtotal": 1200, "payment_type": "razorpay"}, headers=auth_headers)
    assert r.status_code == 200
    j = r.json()
    assert (j["status"], j["payment_status"]) == ("pending", "pending")
    assert reload_order(db, j["id"]).user_id == "user-1"


def test_orders_require_sign_in(client: TestClient):
    r = client.post("/orders", json={"subtotal": 499, "payment_type": "cod"})
    assert r.status_code == 401
    assert r.json()["error"] == "Please sign in to continue."
    r = client.get("/orders", headers={"Authorization": "Bearer not-a-token"})
    assert r.status_code == 401
    assert r.json()["error"] == "Invalid or expired token."


def test_token_with_wrong_audience_rejected(client: TestClient):
    token = create_access_token({"sub": "user-1", "aud": "someone-else"}, "jwt-test-secret")
    r = client.get("/orders", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401


def test_customers_only_see_their_own_orders(client: TestClient, make_order, auth_headers):
    mine = make_order(user_id="user-1")
    theirs = make_order(user_id="user-2")

    listed = client.get("/orders", headers=auth_headers).json()
    assert [o["id"] for o in listed] == [mine.id]
    assert client.get(f"/orders/{mine.id}", headers=auth_headers).status_code == 200
    assert client.get(f"/orders/{theirs.id}", headers=auth_headers).status_code == 404
    assert client.get(f"/orders/{theirs.id}", headers=bearer("user-2")).status_code == 200


def test_invalid_order_body(client: TestClient, auth_headers):
    r = client.post("/orders", json={"subtotal": 0, "payment_type": "cod"}, headers=auth_headers)
    assert r.status_code == 422
    assert r.json()["success"] is False
    r = client.post("/orders", json={"subtotal": 100, "payment_type": "upi"}, headers=auth_headers)
    assert r.status_code == 422


def test_malformed_payment_body_is_a_validation_error(client: TestClient):
    r = client.post("/functions/v1/razorpay-payment", json={"amount": "abc", "orderId": "o1"})
    assert r.status_code == 422
    j = r.json()
    assert j["success"] is False
    assert j["error"].startswith("amount")
    assert j["errors"][0]["loc"] == ["body", "amount"]


def test_profile_upsert_is_idempotent(client: TestClient, auth_headers, db):
    first = client.put("/profile", json={"first_name": "Asha", "city": "Mysuru"}, headers=auth_headers)
    second = client.put("/profile", json={"phone": "9876543210"}, headers=auth_headers)
    assert first.status_code == second.status_code == 200
    j = second.json()
    assert (j["first_name"], j["city"], j["phone"], j["country"]) == ("Asha", "Mysuru", "9876543210", "India")
    db.expire_all()
    assert len(db.exec(select(Profile)).all()) == 1


def test_timestamps_are_stored_as_utc(client: TestClient, auth_headers, db):
    r = client.post("/orders", json={"subtotal": 499, "payment_type": "cod"}, headers=auth_headers)
    order = reload_order(db, r.json()["id"])
    assert order.created_at.tzinfo is not None
    assert order.created_at.utcoffset() == timedelta(0)
    assert order.updated_at >= order.created_at
