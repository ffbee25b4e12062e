"""PhonePe: hosted pay page with X-VERIFY checksums; status confirmed server-to-server."""
import logging
import secrets
import string
import time

from millet_pay.core.config import SANDBOX
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
from millet_pay.payments.checksum import encode_phonepe_payload, phonepe_checksum, require_secret
from millet_pay.payments.errors import GatewayAPIError, PaymentValidationError

log = logging.getLogger(__name__)

SANDBOX_BASE = "https://api-preprod.phonepe.com/apis/pg-sandbox"
PRODUCTION_PAY_BASE = "https://api.phonepe.com/apis/pg/checkout/v2"
PRODUCTION_API_BASE = "https://api.phonepe.com/apis/pg"
PRODUCTION_AUTH_BASE = "https://api.phonepe.com/apis/identity-manager"
SANDBOX_PAY_PATH = "/pg/v1/pay"
PRODUCTION_PAY_PATH = "/pay"

_TXN_ALPHABET = string.ascii_uppercase + string.digits


def new_merchant_transaction_id() -> str:
    """TXN + epoch milliseconds + 6 random upper-case alphanumerics."""
    suffix = "".join(secrets.choice(_TXN_ALPHABET) for _ in range(6))
    return f"TXN{int(time.time() * 1000)}{suffix}"


def status_path(order_id: str) -> str:
    return f"/checkout/v2/order/{order_id}/status"


def map_state(state: str | None) -> PaymentStatus:
    value = (state or "").upper()
    if value in ("COMPLETED", "SUCCESS", "PAYMENT_SUCCESS"):
        return PaymentStatus.COMPLETED
    if value in ("FAILED", "PAYMENT_ERROR", "PAYMENT_DECLINED"):
        return PaymentStatus.FAILED
    return PaymentStatus.PENDING


class PhonePeGateway(PaymentGateway):
    name = "phonepe"

    @property
    def sandbox(self) -> bool:
        return self.settings.phonepe_environment == SANDBOX

    @property
    def configured(self) -> bool:
        return self.settings.phonepe_configured

    def ensure_configured(self) -> None:
        require_secret(self.settings.phonepe_merchant_id, "PHONEPE_MERCHANT_ID")
        require_secret(self.settings.phonepe_salt_key, "PHONEPE_SALT_KEY")

    def normalize_phone(self, phone: str) -> str:
        digits = digits_only(phone)
        if len(digits) != 10:
            raise PaymentValidationError("Phone number must be exactly 10 digits")
        return digits

    def callback_url(self, order_id: str) -> str:
        return f"{self.settings.public_base_url}/functions/v1/phonepe-callback?orderId={order_id}"

    def create(self, request: PaymentRequest) -> GatewaySession:
        self.ensure_configured()
        req = self.validate(request)
        amount_minor = to_minor_units(req.amount)
        transaction_id = new_merchant_transaction_id()
        payload = {
            "merchantId": self.settings.phonepe_merchant_id,
            "merchantTransactionId": transaction_id,
            "merchantUserId": f"USER{req.order_id[:8]}",
            "amount": amount_minor,
            "redirectUrl": self.callback_url(req.order_id),
            "redirectMode": "POST",
            "mobileNumber": req.customer.phone,
            "paymentInstrument": {"type": "PAY_PAGE"},
            "merchantOrderId": req.order_id,
            "currency": req.currency,
        }
        encoded = encode_phonepe_payload(payload)
        if self.sandbox:
            base, path = SANDBOX_BASE, SANDBOX_PAY_PATH
        else:
            base, path = PRODUCTION_PAY_BASE, PRODUCTION_PAY_PATH
        headers = {
            "X-VERIFY": phonepe_checksum(encoded + path, self.settings.phonepe_salt_key, self.settings.phonepe_salt_index),
            "X-MERCHANT-ID": self.settings.phonepe_merchant_id,
        }
        resp = self._call("POST", base + path, headers=headers, json_body={"request": encoded})
        data = resp.json_object()
        if not resp.ok or not data.get("success"):
            message = data.get("message") or f"PhonePe payment creation failed (HTTP {resp.status})"
            log.error("PhonePe pay request failed: order_id=%s status=%s code=%s", req.order_id, resp.status, data.get("code"))
            raise GatewayAPIError(message, gateway_status=resp.status)

        body = data.get("data") or {}
        redirect_url = ((body.get("instrumentResponse") or {}).get("redirectInfo") or {}).get("url")
        if not redirect_url:
            raise GatewayAPIError("PhonePe response did not include a redirect URL")
        transaction_id = body.get("merchantTransactionId") or transaction_id

        return GatewaySession(
            gateway_order_ref=transaction_id,
            amount_minor=amount_minor,
            currency=req.currency,
            client_params={
                "transactionId": transaction_id,
                "redirectUrl": redirect_url,
                "amount": amount_minor,
                "currency": req.currency,
                "environment": self.settings.phonepe_environment,
                "orderId": req.order_id,
            },
        )

    def _access_token(self) -> str:
        """Production status checks authenticate with an OAuth client-credentials token."""
        form = {
            "client_id": self.settings.phonepe_client_id or self.settings.phonepe_merchant_id,
            "client_secret": self.settings.phonepe_salt_key,
            "client_version": self.settings.phonepe_salt_index,
            "grant_type": "client_credentials",
        }
        resp = self._call("POST", f"{PRODUCTION_AUTH_BASE}/v1/oauth/token", form_body=form)
        token = resp.json_object().get("access_token")
        if not resp.ok or not token:
            log.error("PhonePe OAuth token request failed: status=%s", resp.status)
            raise GatewayAPIError(f"PhonePe OAuth token error: {resp.status}", gateway_status=resp.status)
        return token

    def check_status(self, order_id: str) -> dict:
        self.ensure_configured()
        path = status_path(order_id)
        headers = {"X-MERCHANT-ID": self.settings.phonepe_merchant_id}
        if self.sandbox:
            headers["X-VERIFY"] = phonepe_checksum(path, self.settings.phonepe_salt_key, self.settings.phonepe_salt_index)
            url = SANDBOX_BASE + path
        else:
            headers["Authorization"] = f"Bearer {self._access_token()}"
            url = PRODUCTION_API_BASE + path
        resp = self._call("GET", url, headers=headers)
        if not resp.ok:
            raise GatewayAPIError(f"PhonePe status API error: {resp.status}", gateway_status=resp.status)
        data = resp.json_object()
        if not data:
            raise GatewayAPIError("Invalid response from PhonePe status API")
        return data

    def verify(self, reference: PaymentReference) -> GatewayVerdict:
        if not reference.order_id:
            raise PaymentValidationError("Missing required fields for payment verification")
        data = self.check_status(reference.order_id)
        raw_state = str(data.get("state") or "")
        details = data.get("paymentDetails") or []
        payment_id = None
        if details and isinstance(details[0], dict):
            payment_id = details[0].get("transactionId")
        amount = data.get("amount")
        return GatewayVerdict(
            status=map_state(raw_state),
            raw_status=raw_state,
            payment_id=payment_id or reference.payment_id or reference.gateway_order_ref,
            amount=amount / 100 if isinstance(amount, (int, float)) else None,
            method=self.name,
        )
