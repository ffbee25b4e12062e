"""Payment initiation: checks the order, creates the gateway order, records the attempt."""
import logging

from sqlmodel import Session

from millet_pay.payments.base import GatewaySession, PaymentGateway, PaymentRequest, to_minor_units
from millet_pay.payments.errors import GatewayAPIError, OrderStateError, PaymentValidationError
from millet_pay.services.events import ChangeFeed
from millet_pay.services.order_state import OrderStatus, attach_gateway_order, get_order, record_payment_failure

log = logging.getLogger(__name__)


def start_payment(
    db: Session,
    gateway: PaymentGateway,
    request: PaymentRequest,
    *,
    feed: ChangeFeed | None = None,
) -> GatewaySession:
    """
    Credentials and request shape are checked before anything else; the order must be pending
    and its total must match the requested amount to the paisa. A gateway rejection cancels the
    order so it cannot linger as pending.
    """
    gateway.ensure_configured()
    req = gateway.validate(request)
    order = get_order(db, req.order_id)
    if order.status != OrderStatus.PENDING.value:
        raise OrderStateError()
    if to_minor_units(order.total) != to_minor_units(req.amount):
        raise PaymentValidationError("Amount does not match the order total")

    try:
        session = gateway.create(req)
    except GatewayAPIError as e:
        log.error("Gateway order creation failed: gateway=%s order_id=%s error=%s", gateway.name, req.order_id, e.message)
        record_payment_failure(db, req.order_id, gateway=gateway.name, reason=e.message, feed=feed)
        raise

    attach_gateway_order(db, req.order_id, gateway.name, session.gateway_order_ref, feed=feed)
    log.info(
        "Payment initiated: gateway=%s order_id=%s ref=%s amount_minor=%s",
        gateway.name,
        req.order_id,
        session.gateway_order_ref,
        session.amount_minor,
    )
    return session
