"""Stale-order sweep: cancels online payment attempts that never got a gateway confirmation."""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from millet_pay.core.database import utcnow
from millet_pay.models import AuditLog, Order
from millet_pay.payments.base import PaymentStatus
from millet_pay.services.events import ChangeFeed, ChangeKind
from millet_pay.services.order_state import OrderStatus, order_to_dict

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = timedelta(minutes=5)


@dataclass
class SweepResult:
    processed: int
    order_ids: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if not self.processed:
            return "No pending orders to cleanup"
        return f"Successfully cleaned up {self.processed} pending orders"


def cancel_stale_orders(
    db: Session,
    *,
    now: datetime | None = None,
    timeout: timedelta = DEFAULT_TIMEOUT,
    feed: ChangeFeed | None = None,
) -> SweepResult:
    """
    Cancels pending orders that carry a gateway reference and are older than the timeout,
    in one conditional batch update. Only ids returned by that update count as cancelled,
    so an order confirmed by a verification in the meantime is neither reported nor audited.
    Cash-on-delivery orders never carry a reference and are never touched. Idempotent.
    """
    cutoff = (now or utcnow()) - timeout
    try:
        cancelled_ids = list(
            db.exec(
                update(Order)
                .where(
                    Order.status == OrderStatus.PENDING.value,
                    Order.gateway_order_ref.is_not(None),
                    Order.created_at < cutoff,
                )
                .values(
                    status=OrderStatus.CANCELLED.value,
                    payment_status=PaymentStatus.FAILED.value,
                    updated_at=utcnow(),
                )
                .returning(Order.id)
                .execution_options(synchronize_session=False)
            ).scalars().all()
        )
        for order_id in cancelled_ids:
            db.add(AuditLog(event="order_cancelled_stale", order_id=order_id, actor="reaper"))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        log.exception("Stale order sweep failed; will retry on the next run")
        raise

    if not cancelled_ids:
        log.info("Stale order sweep: nothing to clean up (cutoff=%s)", cutoff.isoformat())
        return SweepResult(processed=0)

    log.info("Stale order sweep: cancelled %s orders", len(cancelled_ids))
    if feed is not None:
        for order in db.exec(select(Order).where(Order.id.in_(cancelled_ids))).all():
            db.refresh(order)
            feed.emit(ChangeKind.UPDATED, "orders", order_to_dict(order))
    return SweepResult(processed=len(cancelled_ids), order_ids=cancelled_ids)
