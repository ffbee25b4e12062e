"""Gateway signature and checksum primitives."""
import base64
import hashlib
import hmac
import json

from millet_pay.payments.errors import ConfigurationError

PHONEPE_CHECKSUM_SEPARATOR = "###"


def require_secret(value: str | None, name: str) -> str:
    """Raises before any network call or database write when a credential is absent."""
    if not value:
        raise ConfigurationError(f"{name} is not set")
    return value


def razorpay_signature(secret: str, order_id: str, payment_id: str) -> str:
    """HMAC-SHA256 over "<order_id>|<payment_id>", lowercase hex."""
    require_secret(secret, "RAZORPAY_KEY_SECRET")
    message = f"{order_id}|{payment_id}"
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_razorpay_signature(secret: str, order_id: str, payment_id: str, signature: str | None) -> bool:
    expected = razorpay_signature(secret, order_id, payment_id)
    return hmac.compare_digest(expected, (signature or "").strip())


def encode_phonepe_payload(payload: dict) -> str:
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def phonepe_checksum(message: str, salt_key: str, salt_index: str) -> str:
    """
    X-VERIFY value: SHA256(message + salt_key) + "###" + salt_index.
    For pay requests the message is base64 payload + endpoint path; for status checks it is the status path.
    """
    require_secret(salt_key, "PHONEPE_SALT_KEY")
    digest = hashlib.sha256((message + salt_key).encode("utf-8")).hexdigest()
    return f"{digest}{PHONEPE_CHECKSUM_SEPARATOR}{salt_index}"


def cashfree_headers(client_id: str, client_secret: str, api_version: str) -> dict[str, str]:
    """Cashfree authenticates every call with static credential headers; there is no body signature."""
    return {
        "x-client-id": require_secret(client_id, "CASHFREE_CLIENT_ID"),
        "x-client-secret": require_secret(client_secret, "CASHFREE_CLIENT_SECRET"),
        "x-api-version": api_version,
    }
