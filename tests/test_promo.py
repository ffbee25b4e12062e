"""Promo codes: validation rules, discounts, usage counting, admin management."""
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlmodel import select

from millet_pay.core.database import utcnow
from millet_pay.models import PromoCode, PromoCodeUserUsage
from millet_pay.services.order_state import record_payment_success
from millet_pay.services.promo import PromoCodeError, calculate_discount, validate_promo_code

from conftest import reload_order


@pytest.fixture
def make_promo(db):
    def _make(code="MILLET10", discount_type="percentage", discount_value=10, **fields) -> PromoCode:
        promo = PromoCode(code=code, discount_type=discount_type, discount_value=discount_value, **fields)
        db.add(promo)
        db.commit()
        db.refresh(promo)
        return promo

    return _make


def test_discount_calculation():
    assert calculate_discount(PromoCode(code="A", discount_type="percentage", discount_value=10), 499) == 49.9
    assert calculate_discount(PromoCode(code="B", discount_type="percentage", discount_value=15), 333.33) == 50.0
    assert calculate_discount(PromoCode(code="C", discount_type="fixed", discount_value=100), 499) == 100
    assert calculate_discount(PromoCode(code="D", discount_type="fixed", discount_value=600), 499) == 499


def test_validate_endpoint(client: TestClient, make_promo):
    make_promo()
    r = client.post("/functions/v1/promo-code-validate", json={"code": " millet10 ", "orderTotal": 500})
    assert r.status_code == 200
    j = r.json()
    assert j["success"] is True
    assert j["promoCode"]["code"] == "MILLET10"
    assert j["discountAmount"] == 50.0
    assert j["finalAmount"] == 450.0


def test_unknown_inactive_and_expired_codes(client: TestClient, make_promo, db):
    make_promo("OLD", valid_until=utcnow() - timedelta(days=1))
    make_promo("SOON", valid_from=utcnow() + timedelta(days=1))
    make_promo("OFF", is_active=False)
    for code in ("NOPE", "OLD", "SOON", "OFF"):
        r = client.post("/functions/v1/promo-code-validate", json={"code": code, "orderTotal": 500})
        assert r.status_code == 400, code
        assert r.json()["error"] == "Invalid or expired promo code"


def test_minimum_order_value(client: TestClient, make_promo):
    make_promo(minimum_order_value=1000)
    r = client.post("/functions/v1/promo-code-validate", json={"code": "MILLET10", "orderTotal": 500})
    assert r.status_code == 400
    assert r.json()["error"] == "Order must be at least ₹1000.00 to use this promo code"


def test_usage_limits(client: TestClient, make_promo, db):
    make_promo("ONCE", max_uses=1, used_count=1)
    r = client.post("/functions/v1/promo-code-validate", json={"code": "ONCE", "orderTotal": 500})
    assert r.json()["error"] == "This promo code has reached its maximum usage limit"

    promo = make_promo("PERUSER", max_uses_per_user=1)
    db.add(PromoCodeUserUsage(promo_code_id=promo.id, user_id="user-1", usage_count=1))
    db.commit()
    r = client.post(
        "/functions/v1/promo-code-validate",
        json={"code": "PERUSER", "orderTotal": 500},
        headers={"x-user-id": "user-1"},
    )
    assert r.status_code == 400
    assert r.json()["error"] == "You have reached the maximum usage limit for this promo code (1 times)"
    r = client.post("/functions/v1/promo-code-validate", json={"code": "PERUSER", "orderTotal": 500, "userId": "user-2"})
    assert r.status_code == 200


def test_missing_code(client: TestClient, db):
    with pytest.raises(PromoCodeError):
        validate_promo_code(db, "", 100)
    r = client.post("/functions/v1/promo-code-validate", json={"orderTotal": 100})
    assert r.status_code == 400


def test_cod_order_counts_promo_usage(client: TestClient, make_promo, auth_headers, db):
    promo = make_promo()
    r = client.post(
        "/orders",
        json={"subtotal": 500, "payment_type": "cod", "promo_code": "millet10"},
        headers=auth_headers,
    )
    assert r.status_code == 200, r.text
    j = r.json()
    assert (j["discount_amount"], j["total"], j["status"]) == (50.0, 450.0, "accepted")
    db.expire_all()
    assert db.get(PromoCode, promo.id).used_count == 1
    usage = db.exec(select(PromoCodeUserUsage).where(PromoCodeUserUsage.user_id == "user-1")).one()
    assert usage.usage_count == 1


def test_online_order_counts_usage_only_when_paid(client: TestClient, make_promo, auth_headers, db):
    promo = make_promo()
    r = client.post(
        "/orders",
        json={"subtotal": 500, "payment_type": "razorpay", "promo_code": "MILLET10"},
        headers=auth_headers,
    )
    order_id = r.json()["id"]
    db.expire_all()
    assert db.get(PromoCode, promo.id).used_count == 0

    record_payment_success(db, order_id, payment_id="pay_1", gateway="razorpay")
    record_payment_success(db, order_id, payment_id="pay_1", gateway="razorpay")

    db.expire_all()
    assert db.get(PromoCode, promo.id).used_count == 1
    assert reload_order(db, order_id).total == 450.0


def test_update_usage_is_admin_only(client: TestClient, make_promo, admin_headers):
    promo = make_promo()
    body = {"promoCodeId": promo.id, "userId": "user-9"}
    assert client.post("/functions/v1/promo-code-update-usage", json=body).status_code == 403
    r = client.post("/functions/v1/promo-code-update-usage", json=body, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["promoCode"]["used_count"] == 1
    r = client.post("/functions/v1/promo-code-update-usage", json={"promoCodeId": 999}, headers=admin_headers)
    assert r.status_code == 400


def test_admin_promo_crud(client: TestClient, admin_headers, make_order):
    body = {"code": "ragi20", "discount_type": "percentage", "discount_value": 20, "max_uses": 50}
    r = client.post("/admin/promo-codes", json=body, headers=admin_headers)
    assert r.status_code == 201
    promo_id = r.json()["id"]
    assert r.json()["code"] == "RAGI20"
    assert client.post("/admin/promo-codes", json=body, headers=admin_headers).status_code == 409

    too_much = {**body, "code": "HUGE", "discount_value": 150}
    assert client.post("/admin/promo-codes", json=too_much, headers=admin_headers).status_code == 400

    r = client.put(f"/admin/promo-codes/{promo_id}", json={**body, "discount_value": 25}, headers=admin_headers)
    assert r.json()["discount_value"] == 25
    assert len(client.get("/admin/promo-codes", headers=admin_headers).json()["promo_codes"]) == 1

    make_order(promo_code_id=promo_id)
    r = client.delete(f"/admin/promo-codes/{promo_id}", headers=admin_headers)
    assert r.json() == {"ok": True, "deactivated": True}

    r = client.post("/admin/promo-codes", json={**body, "code": "UNUSED"}, headers=admin_headers)
    r = client.delete(f"/admin/promo-codes/{r.json()['id']}", headers=admin_headers)
    assert r.json() == {"ok": True, "deleted": True}


def test_promo_window_accepts_naive_and_offset_times(client: TestClient, admin_headers):
    past = (utcnow() - timedelta(days=1)).replace(tzinfo=None).isoformat()
    soon = (utcnow() + timedelta(hours=1)).isoformat()
    body = {"code": "HARVEST", "discount_type": "fixed", "discount_value": 50, "valid_from": past, "valid_until": soon}
    r = client.post("/admin/promo-codes", json=body, headers=admin_headers)
    assert r.status_code == 201, r.text

    r = client.post("/functions/v1/promo-code-validate", json={"code": "harvest", "orderTotal": 300})
    assert r.status_code == 200
    assert r.json()["finalAmount"] == 250.0
