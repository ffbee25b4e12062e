"""Dashboard: order counts per status, paid revenue, failed payments, latest orders."""
from datetime import datetime

from fastapi import APIRouter, Depends
from sqlmodel import Session, func, select

from millet_pay.admin.deps import require_admin
from millet_pay.core.database import get_db, utcnow
from millet_pay.models import Order
from millet_pay.payments.base import PaymentStatus
from millet_pay.services.order_state import OrderStatus, order_to_dict

router = APIRouter(dependencies=[Depends(require_admin)])


def _paid_revenue(db: Session, since: datetime) -> float:
    total = db.exec(
        select(func.sum(Order.total))
        .where(Order.payment_status == PaymentStatus.COMPLETED.value)
        .where(Order.payment_verified_at >= since)
    ).one()
    return round(total or 0, 2)


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db)):
    now = utcnow()
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    month_start = day_start.replace(day=1)

    counts = dict(db.exec(select(Order.status, func.count(Order.id)).group_by(Order.status)).all())
    by_status = {s.value: counts.get(s.value, 0) for s in OrderStatus}
    by_method = dict(
        db.exec(
            select(Order.payment_type, func.count(Order.id))
            .where(Order.payment_type.is_not(None))
            .group_by(Order.payment_type)
        ).all()
    )
    failed_payments = db.exec(
        select(func.count(Order.id)).where(Order.payment_status == PaymentStatus.FAILED.value)
    ).one() or 0
    latest = db.exec(select(Order).order_by(Order.created_at.desc()).limit(10)).all()

    return {
        "orders_total": sum(by_status.values()),
        "orders_by_status": by_status,
        "orders_by_payment_type": by_method,
        "awaiting_payment": by_status[OrderStatus.PENDING.value],
        "failed_payments": failed_payments,
        "revenue_today": _paid_revenue(db, day_start),
        "revenue_month": _paid_revenue(db, month_start),
        "latest_orders": [order_to_dict(o) for o in latest],
    }
