"""Order management: list, detail, fulfilment moves and cancel override."""
from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from millet_pay.admin.deps import require_admin
from millet_pay.api.deps import get_change_feed
from millet_pay.core.database import get_db
from millet_pay.models import AuditLog, Order
from millet_pay.schemas.order import OrderStatusUpdate
from millet_pay.services.events import ChangeFeed
from millet_pay.services.order_state import OrderStatus, admin_set_status, order_to_dict

router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("")
@router.get("/")
def orders_list(
    db: Session = Depends(get_db),
    status: str | None = None,
    payment_type: str | None = None,
    limit: int = 100,
    offset: int = 0,
):
    stmt = select(Order)
    if status:
        if status not in {s.value for s in OrderStatus}:
            raise HTTPException(status_code=400, detail=f"Unknown status: {status}")
        stmt = stmt.where(Order.status == status)
    if payment_type:
        stmt = stmt.where(Order.payment_type == payment_type)
    rows = db.exec(stmt.order_by(Order.created_at.desc()).offset(offset).limit(min(limit, 500))).all()
    return {"orders": [order_to_dict(o) for o in rows], "count": len(rows)}


@router.get("/{order_id}")
def order_detail(order_id: str, db: Session = Depends(get_db)):
    order = db.get(Order, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found.")
    history = db.exec(select(AuditLog).where(AuditLog.order_id == order_id).order_by(AuditLog.id)).all()
    return {
        "order": order_to_dict(order),
        "timeline": [
            {
                "event": h.event,
                "actor": h.actor,
                "detail": h.detail,
                "created_at": h.created_at.isoformat() if h.created_at else None,
            }
            for h in history
        ],
    }


@router.post("/{order_id}/status")
def order_set_status(
    order_id: str,
    body: OrderStatusUpdate,
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    order = admin_set_status(db, order_id, body.status, tracking_number=body.tracking_number, feed=feed)
    return {"success": True, "order": order_to_dict(order)}
