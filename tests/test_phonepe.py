"""PhonePe: pay request checksum, status checks, redirect callback and webhook."""
import base64
import json
import threading

from fastapi.testclient import TestClient
from sqlmodel import Session

from millet_pay.core.rate_limit import limiter
from millet_pay.main import create_app
from millet_pay.models import Order
from millet_pay.payments.checksum import phonepe_checksum
from millet_pay.payments.phonepe import SANDBOX_BASE, map_state, new_merchant_transaction_id, status_path

from conftest import FRONTEND, PUBLIC_BASE, FakeTransport, customer, make_settings, reload_order

PAY_URL = SANDBOX_BASE + "/pg/v1/pay"


def _pay_ok(transport, txn="TXN1700000000000ABC123"):
    transport.add(
        "POST",
        "/pg/v1/pay",
        data={
            "success": True,
            "code": "PAYMENT_INITIATED",
            "data": {
                "merchantTransactionId": txn,
                "instrumentResponse": {"redirectInfo": {"url": "https://mercury-uat.phonepe.com/transact/abc"}},
            },
        },
    )


def _status(transport, order_id, state, amount=49900, txn="OM123"):
    transport.add(
        "GET",
        status_path(order_id),
        data={"state": state, "amount": amount, "paymentDetails": [{"transactionId": txn, "state": state}]},
    )


def test_transaction_id_shape():
    txn = new_merchant_transaction_id()
    assert txn.startswith("TXN")
    assert txn[3:16].isdigit()
    assert len(txn) == 3 + 13 + 6
    assert txn[-6:].isalnum() and txn[-6:].upper() == txn[-6:]


def test_state_mapping():
    assert map_state("COMPLETED").value == "completed"
    assert map_state("success").value == "completed"
    assert map_state("FAILED").value == "failed"
    assert map_state("PENDING").value == "pending"
    assert map_state(None).value == "pending"


def test_create_phonepe_payment(client: TestClient, transport, make_order, db):
    order = make_order(499.0)
    _pay_ok(transport)

    r = client.post(
        "/functions/v1/phonepe-payment",
        json={"amount": 499, "orderId": order.id, "customerInfo": customer("98765 43210")},
    )

    assert r.status_code == 200, r.text
    j = r.json()
    assert j["transactionId"] == "TXN1700000000000ABC123"
    assert j["redirectUrl"] == "https://mercury-uat.phonepe.com/transact/abc"
    assert j["amount"] == 49900
    assert j["environment"] == "sandbox"
    assert j["orderId"] == order.id

    call = transport.calls[0]
    assert call.url == PAY_URL
    encoded = call.json_body["request"]
    assert call.headers["X-VERIFY"] == phonepe_checksum(encoded + "/pg/v1/pay", "salt-key", "1")
    assert call.headers["X-MERCHANT-ID"] == "MERCHANTUAT"
    payload = json.loads(base64.b64decode(encoded))
    assert payload["amount"] == 49900
    assert payload["mobileNumber"] == "9876543210"
    assert payload["merchantOrderId"] == order.id
    assert payload["redirectUrl"] == f"{PUBLIC_BASE}/functions/v1/phonepe-callback?orderId={order.id}"
    assert payload["paymentInstrument"] == {"type": "PAY_PAGE"}

    assert reload_order(db, order.id).gateway_order_ref == "TXN1700000000000ABC123"


def test_phone_with_country_code_is_rejected(client: TestClient, transport, make_order):
    order = make_order(499.0)
    r = client.post(
        "/functions/v1/phonepe-payment",
        json={"amount": 499, "orderId": order.id, "customerInfo": customer("+91 98765-43210")},
    )
    assert r.status_code == 400
    assert r.json()["error"] == "Phone number must be exactly 10 digits"
    assert transport.calls == []


def test_unsuccessful_pay_response_cancels_order(client: TestClient, transport, make_order, db):
    order = make_order(499.0)
    transport.add("POST", "/pg/v1/pay", data={"success": False, "code": "BAD_REQUEST", "message": "Invalid merchant"})
    r = client.post(
        "/functions/v1/phonepe-payment",
        json={"amount": 499, "orderId": order.id, "customerInfo": customer()},
    )
    assert r.status_code == 502
    assert r.json()["error"] == "Invalid merchant"
    assert reload_order(db, order.id).status == "cancelled"


def _attempt(make_order, ref="TXN123"):
    return make_order(499.0, payment_type="phonepe", gateway_order_ref=ref)


def test_verify_completed(client: TestClient, transport, make_order, db):
    order = _attempt(make_order)
    _status(transport, order.id, "COMPLETED")

    r = client.post("/functions/v1/phonepe-verify", json={"transactionId": "TXN123", "orderId": order.id})

    assert r.status_code == 200, r.text
    j = r.json()
    assert j["success"] is True
    assert j["paymentStatus"] == "COMPLETED"
    assert j["amount"] == 499.0
    assert j["paymentId"] == "OM123"
    call = transport.calls[0]
    assert call.url == SANDBOX_BASE + status_path(order.id)
    assert call.headers["X-VERIFY"] == phonepe_checksum(status_path(order.id), "salt-key", "1")
    saved = reload_order(db, order.id)
    assert (saved.status, saved.payment_status, saved.payment_id) == ("accepted", "completed", "OM123")


def test_verify_pending_leaves_order_alone(client: TestClient, transport, make_order, db):
    order = _attempt(make_order)
    _status(transport, order.id, "PENDING")

    r = client.post("/functions/v1/phonepe-verify", json={"transactionId": "TXN123", "orderId": order.id})

    assert r.status_code == 202
    assert r.json()["success"] is False
    assert r.json()["error"] == "Payment status: PENDING"
    saved = reload_order(db, order.id)
    assert (saved.status, saved.payment_status) == ("pending", "pending")


def test_verify_failed_cancels(client: TestClient, transport, make_order, db):
    order = _attempt(make_order)
    _status(transport, order.id, "FAILED")

    r = client.post("/functions/v1/phonepe-verify", json={"transactionId": "TXN123", "orderId": order.id})

    assert r.status_code == 400
    assert r.json()["error"] == "Payment failed"
    saved = reload_order(db, order.id)
    assert (saved.status, saved.payment_status) == ("cancelled", "failed")


def test_status_api_error_is_502(client: TestClient, transport, make_order, db):
    order = _attempt(make_order)
    transport.add("GET", status_path(order.id), status=500, data={"code": "INTERNAL_SERVER_ERROR"})
    r = client.post("/functions/v1/phonepe-verify", json={"transactionId": "TXN123", "orderId": order.id})
    assert r.status_code == 502
    assert reload_order(db, order.id).status == "pending"


def test_callback_redirects_to_result_page(client: TestClient, transport, make_order, db):
    order = _attempt(make_order)
    _status(transport, order.id, "COMPLETED")

    r = client.post(
        f"/functions/v1/phonepe-callback?orderId={order.id}",
        data={"code": "PAYMENT_SUCCESS", "transactionId": "TXN123", "merchantId": "MERCHANTUAT"},
        follow_redirects=False,
    )

    assert r.status_code == 302
    assert r.headers["location"] == f"{FRONTEND}/payment-success?orderId={order.id}"
    assert reload_order(db, order.id).status == "accepted"


def test_callback_finds_order_by_transaction(client: TestClient, transport, make_order):
    order = _attempt(make_order)
    _status(transport, order.id, "FAILED")
    r = client.get("/functions/v1/phonepe-callback?transactionId=TXN123", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == f"{FRONTEND}/payment-failed?orderId={order.id}"


def test_callback_without_order_goes_to_error_page(client: TestClient, transport):
    r = client.get("/functions/v1/phonepe-callback", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == f"{FRONTEND}/payment-error"
    assert transport.calls == []


def _webhook(client, body, merchant="MERCHANTUAT"):
    return client.post(
        "/functions/v1/phonepe-webhook",
        content=json.dumps(body),
        headers={"Content-Type": "application/json", "X-MERCHANT-ID": merchant},
    )


def test_webhook_rejects_wrong_merchant(client: TestClient, transport, make_order, db):
    order = _attempt(make_order)
    r = _webhook(
        client,
        {"event": "checkout.order.completed", "payload": {"merchantOrderId": order.id}},
        merchant="SOMEONE_ELSE",
    )
    assert r.status_code == 401
    assert r.json()["error"] == "Invalid merchant ID"
    assert transport.calls == []
    assert reload_order(db, order.id).status == "pending"


def test_webhook_completed_is_reconfirmed(client: TestClient, transport, make_order, db):
    order = _attempt(make_order)
    _status(transport, order.id, "COMPLETED")

    r = _webhook(
        client,
        {"event": "checkout.order.completed", "payload": {"merchantOrderId": order.id, "transactionId": "TXN123"}},
    )

    assert r.status_code == 200
    assert r.json() == {"success": True, "message": "Webhook processed successfully", "event": "checkout.order.completed"}
    assert len(transport.calls_to(status_path(order.id))) == 1
    assert reload_order(db, order.id).payment_status == "completed"


def test_webhook_claim_not_backed_by_status_api(client: TestClient, transport, make_order, db):
    order = _attempt(make_order)
    _status(transport, order.id, "PENDING")
    r = _webhook(client, {"event": "checkout.order.completed", "payload": {"merchantOrderId": order.id}})
    assert r.status_code == 200
    assert reload_order(db, order.id).status == "pending"


def test_webhook_refund_event_is_logged_only(client: TestClient, transport):
    r = _webhook(client, {"event": "pg.refund.completed", "payload": {"merchantRefundId": "R1", "state": "COMPLETED"}})
    assert r.status_code == 200
    assert r.json()["event"] == "pg.refund.completed"
    assert transport.calls == []


def test_webhook_method_and_body_checks(client: TestClient):
    assert client.get("/functions/v1/phonepe-webhook").status_code == 405
    r = client.post(
        "/functions/v1/phonepe-webhook",
        content="not json",
        headers={"Content-Type": "application/json", "X-MERCHANT-ID": "MERCHANTUAT"},
    )
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid JSON payload"


def test_production_status_uses_oauth_token(tmp_path):
    transport = FakeTransport()
    app = create_app(
        make_settings(tmp_path, phonepe_environment="PRODUCTION", phonepe_client_id="client-1"),
        transport,
    )
    limiter.reset()
    with TestClient(app) as c:
        with Session(app.state.engine) as db:
            order = Order(user_id="user-1", subtotal=499, total=499, payment_type="phonepe", gateway_order_ref="TXN9")
            db.add(order)
            db.commit()
            order_id = order.id
        transport.add("POST", "identity-manager/v1/oauth/token", data={"access_token": "tok-1", "expires_at": 0})
        _status(transport, order_id, "COMPLETED")

        r = c.post("/functions/v1/phonepe-verify", json={"transactionId": "TXN9", "orderId": order_id})

    assert r.status_code == 200, r.text
    token_call, status_call = transport.calls
    assert token_call.form_body["client_id"] == "client-1"
    assert token_call.form_body["client_secret"] == "salt-key"
    assert token_call.form_body["grant_type"] == "client_credentials"
    assert status_call.url == "https://api.phonepe.com/apis/pg" + status_path(order_id)
    assert status_call.headers["Authorization"] == "Bearer tok-1"
    assert "X-VERIFY" not in status_call.headers


def test_webhook_for_unknown_order_is_acknowledged(client: TestClient, transport):
    r = _webhook(client, {"event": "checkout.order.completed", "payload": {"merchantOrderId": "no-such-order"}})
    assert r.status_code == 200
    assert r.json() == {"success": True, "message": "Webhook acknowledged", "event": "checkout.order.completed"}
    assert transport.calls == []


def test_webhook_for_order_without_attempt_is_acknowledged(client: TestClient, transport, make_order, db):
    order = make_order(499.0)
    r = _webhook(client, {"event": "checkout.order.failed", "payload": {"merchantOrderId": order.id}})
    assert r.status_code == 200
    assert r.json()["message"] == "Webhook acknowledged"
    assert transport.calls == []
    assert reload_order(db, order.id).status == "pending"


class _GatedTransport(FakeTransport):
    """Holds every gateway call until the gate opens."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.gate = threading.Event()
        self.released_in_time = None

    def __call__(self, *args, **kwargs):
        self.entered.set()
        self.released_in_time = self.gate.wait(timeout=5)
        return super().__call__(*args, **kwargs)


def test_callback_status_check_does_not_block_other_requests(tmp_path):
    transport = _GatedTransport()
    app = create_app(make_settings(tmp_path), transport)
    limiter.reset()
    with TestClient(app) as c:
        with Session(app.state.engine) as db:
            order = Order(user_id="user-1", subtotal=499, total=499, payment_type="phonepe", gateway_order_ref="TXN123")
            db.add(order)
            db.commit()
            db.refresh(order)
        _status(transport, order.id, "COMPLETED")
        results = {}

        def shopper_returns():
            results["callback"] = c.get(
                "/functions/v1/phonepe-callback",
                params={"orderId": order.id, "transactionId": "TXN123"},
                follow_redirects=False,
            )

        worker = threading.Thread(target=shopper_returns)
        worker.start()
        assert transport.entered.wait(timeout=5)
        health = c.get("/health")
        transport.gate.set()
        worker.join(timeout=10)

    assert health.status_code == 200
    assert transport.released_in_time is True
    assert results["callback"].status_code == 302
    assert results["callback"].headers["location"] == f"{FRONTEND}/payment-success?orderId={order.id}"
