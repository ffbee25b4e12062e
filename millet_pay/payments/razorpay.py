"""Razorpay: server-side order creation, HMAC signature verification on return."""
import base64
import logging

from millet_pay.payments.base import (
    GatewaySession,
    GatewayVerdict,
    PaymentGateway,
    PaymentReference,
    PaymentRequest,
    PaymentStatus,
    to_minor_units,
)
from millet_pay.payments.checksum import require_secret, verify_razorpay_signature
from millet_pay.payments.errors import GatewayAPIError, PaymentValidationError, SignatureMismatchError

log = logging.getLogger(__name__)

RAZORPAY_ORDERS_URL = "https://api.razorpay.com/v1/orders"


class RazorpayGateway(PaymentGateway):
    name = "razorpay"

    @property
    def configured(self) -> bool:
        return self.settings.razorpay_configured

    def ensure_configured(self) -> None:
        require_secret(self.settings.razorpay_key_id, "RAZORPAY_KEY_ID")
        require_secret(self.settings.razorpay_key_secret, "RAZORPAY_KEY_SECRET")

    def normalize_phone(self, phone: str) -> str:
        # Prefill only; Razorpay's checkout accepts the number as typed
        return phone

    def _auth_header(self) -> dict[str, str]:
        token = f"{self.settings.razorpay_key_id}:{self.settings.razorpay_key_secret}"
        return {"Authorization": "Basic " + base64.b64encode(token.encode("utf-8")).decode("ascii")}

    def create(self, request: PaymentRequest) -> GatewaySession:
        self.ensure_configured()
        req = self.validate(request)
        amount_minor = to_minor_units(req.amount)
        payload = {
            "amount": amount_minor,
            "currency": req.currency,
            "receipt": req.order_id,
            "notes": {
                "order_id": req.order_id,
                "customer_name": req.customer.name,
                "customer_email": req.customer.email,
            },
        }
        resp = self._call("POST", RAZORPAY_ORDERS_URL, headers=self._auth_header(), json_body=payload)
        data = resp.json_object()
        if not resp.ok:
            error = data.get("error") if isinstance(data.get("error"), dict) else {}
            message = error.get("description") or f"Razorpay order creation failed (HTTP {resp.status})"
            log.error("Razorpay order creation failed: order_id=%s status=%s", req.order_id, resp.status)
            raise GatewayAPIError(message, gateway_status=resp.status)
        razorpay_order_id = data.get("id")
        if not razorpay_order_id:
            raise GatewayAPIError("Razorpay response did not include an order id")

        return GatewaySession(
            gateway_order_ref=razorpay_order_id,
            amount_minor=int(data.get("amount") or amount_minor),
            currency=data.get("currency") or req.currency,
            client_params={
                "razorpayOrderId": razorpay_order_id,
                "amount": int(data.get("amount") or amount_minor),
                "currency": data.get("currency") or req.currency,
                "keyId": self.settings.razorpay_key_id,
                "prefill": {
                    "name": req.customer.name,
                    "email": req.customer.email,
                    "contact": req.customer.phone,
                },
            },
        )

    def verify(self, reference: PaymentReference) -> GatewayVerdict:
        """The signature recomputation is the verification; no network call."""
        require_secret(self.settings.razorpay_key_secret, "RAZORPAY_KEY_SECRET")
        if not reference.gateway_order_ref or not reference.payment_id or not reference.signature:
            raise PaymentValidationError("razorpay_order_id, razorpay_payment_id and razorpay_signature are required")
        if not verify_razorpay_signature(
            self.settings.razorpay_key_secret,
            reference.gateway_order_ref,
            reference.payment_id,
            reference.signature,
        ):
            log.warning("Razorpay signature mismatch: razorpay_order_id=%s", reference.gateway_order_ref)
            raise SignatureMismatchError()
        return GatewayVerdict(
            status=PaymentStatus.COMPLETED,
            raw_status="captured",
            payment_id=reference.payment_id,
            method=self.name,
        )
