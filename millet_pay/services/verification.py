"""Payment verification: confirms with the gateway, then commits through the state machine."""
import logging
from dataclasses import dataclass

from sqlmodel import Session

from millet_pay.models import Order
from millet_pay.payments.base import GatewayVerdict, PaymentGateway, PaymentReference, PaymentStatus
from millet_pay.payments.errors import PaymentValidationError, SignatureMismatchError
from millet_pay.services.events import ChangeFeed
from millet_pay.services.order_state import get_order, record_payment_failure, record_payment_success

log = logging.getLogger(__name__)


@dataclass
class VerificationOutcome:
    status: PaymentStatus
    order: Order
    changed: bool
    verdict: GatewayVerdict


def verify_payment(
    db: Session,
    gateway: PaymentGateway,
    reference: PaymentReference,
    *,
    feed: ChangeFeed | None = None,
) -> VerificationOutcome:
    """
    Never trusts the client's claim: Razorpay is checked by signature, PhonePe and Cashfree by a
    status call. Pending verdicts leave the order untouched.
    """
    order = get_order(db, reference.order_id)
    if not order.gateway_order_ref or order.payment_type != gateway.name:
        raise PaymentValidationError("No payment was initiated for this order")
    if reference.gateway_order_ref != order.gateway_order_ref:
        # A valid proof for a different gateway order must not settle this one
        log.warning(
            "Payment reference mismatch: gateway=%s order_id=%s supplied=%s",
            gateway.name,
            reference.order_id,
            reference.gateway_order_ref,
        )
        raise PaymentValidationError("Payment reference does not match this order")
    try:
        verdict = gateway.verify(reference)
    except SignatureMismatchError:
        record_payment_failure(db, reference.order_id, gateway=gateway.name, reason="signature mismatch", feed=feed)
        raise

    if verdict.status == PaymentStatus.COMPLETED:
        result = record_payment_success(
            db,
            reference.order_id,
            payment_id=verdict.payment_id,
            gateway=gateway.name,
            gateway_order_ref=reference.gateway_order_ref,
            feed=feed,
        )
    elif verdict.status == PaymentStatus.FAILED:
        result = record_payment_failure(db, reference.order_id, gateway=gateway.name, reason=verdict.raw_status, feed=feed)
    else:
        log.info(
            "Payment still pending: gateway=%s order_id=%s state=%s",
            gateway.name,
            reference.order_id,
            verdict.raw_status,
        )
        return VerificationOutcome(
            status=PaymentStatus.PENDING,
            order=get_order(db, reference.order_id),
            changed=False,
            verdict=verdict,
        )
    return VerificationOutcome(status=verdict.status, order=result.order, changed=result.changed, verdict=verdict)
