"""Cashfree: payment session creation and order-payments lookup with static credential headers."""
import logging
import time
from datetime import datetime, timezone

from millet_pay.core.config import SANDBOX
from millet_pay.core.database import as_utc
from millet_pay.payments.base import (
    GatewaySession,
    GatewayVerdict,
    PaymentGateway,
    PaymentReference,
    PaymentRequest,
    PaymentStatus,
    digits_only,
    to_minor_units,
)
from millet_pay.payments.checksum import cashfree_headers, require_secret
from millet_pay.payments.errors import GatewayAPIError, PaymentValidationError

log = logging.getLogger(__name__)

SANDBOX_BASE = "https://sandbox.cashfree.com/pg"
PRODUCTION_BASE = "https://api.cashfree.com/pg"
PAYMENT_METHODS = "cc,dc,nb,upi,paylater,emi,wallet"
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def map_payment_status(status: str | None) -> PaymentStatus:
    value = (status or "").upper()
    if value in ("SUCCESS", "COMPLETED"):
        return PaymentStatus.COMPLETED
    if value == "FAILED":
        return PaymentStatus.FAILED
    return PaymentStatus.PENDING


def _payment_time(entry: dict) -> datetime:
    raw = entry.get("payment_time") or entry.get("payment_completion_time")
    if isinstance(raw, str):
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return _EPOCH
        return as_utc(parsed)
    return _EPOCH


def latest_attempt(payments: list[dict]) -> dict | None:
    """Most recent attempt by payment_time; ties and missing timestamps keep list order (last wins)."""
    entries = [p for p in payments if isinstance(p, dict)]
    if not entries:
        return None
    indexed = sorted(enumerate(entries), key=lambda item: (_payment_time(item[1]), item[0]))
    return indexed[-1][1]


def _method_name(entry: dict) -> str | None:
    if entry.get("payment_group"):
        return str(entry["payment_group"])
    method = entry.get("payment_method")
    if isinstance(method, dict) and method:
        return next(iter(method))
    return str(method) if method else None


class CashfreeGateway(PaymentGateway):
    name = "cashfree"

    @property
    def base_url(self) -> str:
        return SANDBOX_BASE if self.settings.cashfree_environment == SANDBOX else PRODUCTION_BASE

    @property
    def configured(self) -> bool:
        return self.settings.cashfree_configured

    def ensure_configured(self) -> None:
        require_secret(self.settings.cashfree_client_id, "CASHFREE_CLIENT_ID")
        require_secret(self.settings.cashfree_client_secret, "CASHFREE_CLIENT_SECRET")

    def normalize_phone(self, phone: str) -> str:
        digits = digits_only(phone)
        if len(digits) < 10:
            raise PaymentValidationError("Phone number must have at least 10 digits")
        return digits

    def _headers(self) -> dict[str, str]:
        return cashfree_headers(
            self.settings.cashfree_client_id,
            self.settings.cashfree_client_secret,
            self.settings.cashfree_api_version,
        )

    def create(self, request: PaymentRequest) -> GatewaySession:
        self.ensure_configured()
        req = self.validate(request)
        amount_minor = to_minor_units(req.amount)
        cf_order_id = f"CF_{req.order_id}_{int(time.time() * 1000)}"
        frontend = self.settings.frontend_url
        payload = {
            "order_id": cf_order_id,
            "order_amount": amount_minor / 100,
            "order_currency": req.currency,
            "customer_details": {
                "customer_id": f"CUST_{req.order_id}",
                "customer_name": req.customer.name,
                "customer_email": req.customer.email,
                "customer_phone": req.customer.phone,
            },
            "order_meta": {
                "return_url": f"{frontend}/payment-success?order_id={req.order_id}&cf_order_id={cf_order_id}",
                "notify_url": f"{self.settings.public_base_url}/functions/v1/cashfree-verify",
                "payment_methods": PAYMENT_METHODS,
            },
            "order_note": f"Payment for order {req.order_id}",
        }
        resp = self._call("POST", f"{self.base_url}/orders", headers=self._headers(), json_body=payload)
        data = resp.json_object()
        if not resp.ok:
            message = data.get("message") or f"Cashfree order creation failed (HTTP {resp.status})"
            log.error("Cashfree order creation failed: order_id=%s status=%s type=%s", req.order_id, resp.status, data.get("type"))
            raise GatewayAPIError(message, gateway_status=resp.status)
        session_id = data.get("payment_session_id")
        if not session_id:
            raise GatewayAPIError("Cashfree response did not include a payment session id")
        gateway_order_id = data.get("order_id") or cf_order_id

        return GatewaySession(
            gateway_order_ref=gateway_order_id,
            amount_minor=amount_minor,
            currency=data.get("order_currency") or req.currency,
            client_params={
                "cfOrderId": gateway_order_id,
                "paymentSessionId": session_id,
                "amount": data.get("order_amount", amount_minor / 100),
                "currency": data.get("order_currency") or req.currency,
                "environment": self.settings.cashfree_environment,
            },
        )

    def verify(self, reference: PaymentReference) -> GatewayVerdict:
        self.ensure_configured()
        if not reference.gateway_order_ref or not reference.order_id:
            raise PaymentValidationError("Missing required fields for payment verification")
        resp = self._call("GET", f"{self.base_url}/orders/{reference.gateway_order_ref}/payments", headers=self._headers())
        if not resp.ok:
            raise GatewayAPIError(f"Payment verification failed: {resp.status}", gateway_status=resp.status)
        payments = resp.data if isinstance(resp.data, list) else []
        latest = latest_attempt(payments)
        if latest is None:
            return GatewayVerdict(status=PaymentStatus.PENDING, raw_status="NO_PAYMENTS", payment_id=reference.payment_id)
        raw_status = str(latest.get("payment_status") or "")
        payment_id = latest.get("cf_payment_id")
        return GatewayVerdict(
            status=map_payment_status(raw_status),
            raw_status=raw_status,
            payment_id=str(payment_id) if payment_id is not None else reference.payment_id,
            amount=latest.get("payment_amount"),
            method=_method_name(latest),
        )
