"""
Order status state machine.

The only writer of payment-derived order fields. Every payment transition is a conditional
UPDATE ... WHERE status = 'pending', so concurrent verification, webhook and cleanup calls
for the same order resolve to exactly one winner.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from millet_pay.core.database import utcnow
from millet_pay.models import AuditLog, Order
from millet_pay.payments.base import PaymentStatus
from millet_pay.payments.errors import OrderNotFoundError, OrderStateError, OrderUpdateError
from millet_pay.services.events import ChangeFeed, ChangeKind
from millet_pay.services.promo import record_promo_usage

log = logging.getLogger(__name__)


class OrderStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    COD = "cod"
    RAZORPAY = "razorpay"
    PHONEPE = "phonepe"
    CASHFREE = "cashfree"


# One step at a time, never backwards
FULFILMENT_NEXT = {
    OrderStatus.ACCEPTED: OrderStatus.PROCESSING,
    OrderStatus.PROCESSING: OrderStatus.SHIPPED,
    OrderStatus.SHIPPED: OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.OUT_FOR_DELIVERY: OrderStatus.DELIVERED,
    OrderStatus.DELIVERED: OrderStatus.COMPLETED,
}
TERMINAL = frozenset({OrderStatus.CANCELLED, OrderStatus.COMPLETED, OrderStatus.DELIVERED})


@dataclass
class TransitionResult:
    order: Order
    changed: bool


def order_to_dict(order: Order) -> dict:
    return {
        "id": order.id,
        "user_id": order.user_id,
        "subtotal": order.subtotal,
        "discount_amount": order.discount_amount,
        "total": order.total,
        "promo_code_id": order.promo_code_id,
        "status": order.status,
        "shipping_address": order.shipping_address,
        "tracking_number": order.tracking_number,
        "payment_type": order.payment_type,
        "payment_status": order.payment_status,
        "gateway_order_ref": order.gateway_order_ref,
        "payment_id": order.payment_id,
        "payment_verified_at": order.payment_verified_at.isoformat() if order.payment_verified_at else None,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "updated_at": order.updated_at.isoformat() if order.updated_at else None,
    }


def _audit(db: Session, event: str, order_id: str | None, actor: str | None, detail: str | None = None) -> None:
    db.add(AuditLog(event=event, order_id=order_id, actor=actor, detail=(detail or None) and detail[:500]))


def _publish(feed: ChangeFeed | None, kind: ChangeKind, order: Order) -> None:
    if feed is not None:
        feed.emit(kind, "orders", order_to_dict(order))


def get_order(db: Session, order_id: str) -> Order:
    order = db.get(Order, order_id) if order_id else None
    if not order:
        raise OrderNotFoundError()
    return order


def _reload(db: Session, order_id: str) -> Order:
    order = db.get(Order, order_id)
    if order is None:
        raise OrderNotFoundError()
    db.refresh(order)
    return order


def _guarded_update(db: Session, order_id: str, values: dict) -> bool:
    """Applies values only while the order is still pending; True when this call won."""
    result = db.exec(
        update(Order)
        .where(Order.id == order_id, Order.status == OrderStatus.PENDING.value)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def create_order(
    db: Session,
    *,
    user_id: str,
    subtotal: float,
    discount_amount: float = 0,
    promo_code_id: int | None = None,
    shipping_address: str | None = None,
    payment_type: str | None = None,
    feed: ChangeFeed | None = None,
) -> Order:
    total = round(max(subtotal - discount_amount, 0), 2)
    order = Order(
        user_id=user_id,
        subtotal=subtotal,
        discount_amount=discount_amount,
        total=total,
        promo_code_id=promo_code_id,
        shipping_address=shipping_address,
        payment_type=payment_type,
    )
    db.add(order)
    _audit(db, "order_created", order.id, user_id, f"total={total} payment_type={payment_type}")
    db.commit()
    db.refresh(order)
    _publish(feed, ChangeKind.INSERTED, order)
    if payment_type == PaymentMethod.COD.value:
        return accept_cash_on_delivery(db, order.id, feed=feed).order
    return order


def accept_cash_on_delivery(db: Session, order_id: str, *, feed: ChangeFeed | None = None) -> TransitionResult:
    """COD skips the gateway: accepted immediately, payment stays pending until delivery."""
    now = utcnow()
    changed = _guarded_update(
        db,
        order_id,
        {
            "status": OrderStatus.ACCEPTED.value,
            "payment_type": PaymentMethod.COD.value,
            "gateway_order_ref": None,
            "updated_at": now,
        },
    )
    order = _reload(db, order_id)
    if changed:
        if order.promo_code_id:
            record_promo_usage(db, order.promo_code_id, order.user_id)
        _audit(db, "order_accepted_cod", order.id, order.user_id)
        db.commit()
        db.refresh(order)
        _publish(feed, ChangeKind.UPDATED, order)
    return TransitionResult(order=order, changed=changed)


def attach_gateway_order(db: Session, order_id: str, gateway: str, gateway_order_ref: str, *, feed: ChangeFeed | None = None) -> Order:
    """Records the active payment attempt; a newer attempt replaces the previous reference."""
    if not _guarded_update(
        db,
        order_id,
        {"payment_type": gateway, "gateway_order_ref": gateway_order_ref, "updated_at": utcnow()},
    ):
        db.rollback()
        raise OrderStateError()
    _audit(db, "payment_initiated", order_id, gateway, gateway_order_ref)
    db.commit()
    order = _reload(db, order_id)
    _publish(feed, ChangeKind.UPDATED, order)
    return order


def record_payment_success(
    db: Session,
    order_id: str,
    *,
    payment_id: str | None,
    gateway: str,
    gateway_order_ref: str | None = None,
    feed: ChangeFeed | None = None,
    now: datetime | None = None,
) -> TransitionResult:
    """
    pending -> accepted with payment_status=completed. Repeating it is a no-op that keeps the
    first payment_verified_at. A success for an order that is no longer pending (e.g. swept by
    cleanup) does not resurrect it.
    """
    now = now or utcnow()
    values = {
        "status": OrderStatus.ACCEPTED.value,
        "payment_status": PaymentStatus.COMPLETED.value,
        "payment_type": gateway,
        "payment_id": payment_id,
        "payment_verified_at": now,
        "updated_at": now,
    }
    if gateway_order_ref:
        values["gateway_order_ref"] = gateway_order_ref
    try:
        changed = _guarded_update(db, order_id, values)
        order = _reload(db, order_id)
        if changed:
            if order.promo_code_id:
                record_promo_usage(db, order.promo_code_id, order.user_id)
            _audit(db, "payment_completed", order.id, gateway, payment_id)
            db.commit()
            db.refresh(order)
    except OrderNotFoundError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        log.error(
            "Reconciliation needed: payment %s (%s ref=%s) captured but order %s could not be updated: %s",
            payment_id,
            gateway,
            gateway_order_ref,
            order_id,
            e,
        )
        raise OrderUpdateError() from e

    if changed:
        log.info("Payment completed: order_id=%s gateway=%s payment_id=%s", order_id, gateway, payment_id)
        _publish(feed, ChangeKind.UPDATED, order)
        return TransitionResult(order=order, changed=True)
    if order.payment_status == PaymentStatus.COMPLETED.value:
        return TransitionResult(order=order, changed=False)
    log.error(
        "Reconciliation needed: payment %s (%s) completed for order %s in status %s",
        payment_id,
        gateway,
        order_id,
        order.status,
    )
    raise OrderStateError()


def record_payment_failure(
    db: Session,
    order_id: str,
    *,
    gateway: str | None,
    reason: str | None = None,
    feed: ChangeFeed | None = None,
) -> TransitionResult:
    """pending -> cancelled with payment_status=failed. Never cancels an order that was already paid."""
    try:
        changed = _guarded_update(
            db,
            order_id,
            {
                "status": OrderStatus.CANCELLED.value,
                "payment_status": PaymentStatus.FAILED.value,
                "updated_at": utcnow(),
            },
        )
        order = _reload(db, order_id)
        if changed:
            _audit(db, "payment_failed", order.id, gateway, reason)
            db.commit()
            db.refresh(order)
    except OrderNotFoundError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        log.error("Failed to cancel order %s after payment failure (%s): %s", order_id, gateway, e)
        raise OrderUpdateError() from e

    if changed:
        log.info("Payment failed: order_id=%s gateway=%s reason=%s", order_id, gateway, reason)
        _publish(feed, ChangeKind.UPDATED, order)
    elif order.payment_status == PaymentStatus.COMPLETED.value:
        log.warning("Ignoring failure for already paid order %s (%s)", order_id, gateway)
    return TransitionResult(order=order, changed=changed)


def check_admin_transition(current: str, target: str) -> None:
    try:
        current_status, target_status = OrderStatus(current), OrderStatus(target)
    except ValueError as exc:
        raise OrderStateError(f"Unknown order status: {target}") from exc
    if target_status == OrderStatus.CANCELLED:
        if current_status in TERMINAL:
            raise OrderStateError(f"Cannot cancel an order that is {current_status.value}")
        return
    if FULFILMENT_NEXT.get(current_status) != target_status:
        raise OrderStateError(f"Cannot move order from {current_status.value} to {target_status.value}")


def admin_set_status(
    db: Session,
    order_id: str,
    target: str,
    *,
    tracking_number: str | None = None,
    feed: ChangeFeed | None = None,
) -> Order:
    """Fulfilment moves and the cancel override; payment fields are left alone."""
    order = get_order(db, order_id)
    check_admin_transition(order.status, target)
    result = db.exec(
        update(Order)
        .where(Order.id == order_id, Order.status == order.status)
        .values(
            status=target,
            tracking_number=tracking_number if tracking_number is not None else order.tracking_number,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise OrderStateError("Order changed concurrently, reload and retry")
    _audit(db, "admin_status", order_id, "admin", f"{order.status}->{target}")
    db.commit()
    order = _reload(db, order_id)
    _publish(feed, ChangeKind.UPDATED, order)
    return order
