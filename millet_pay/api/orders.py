"""Customer endpoints: own orders and profile."""
from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from millet_pay.api.deps import get_change_feed, get_current_user_id
from millet_pay.core.database import get_db
from millet_pay.models import Order
from millet_pay.schemas.order import OrderCreate, ProfileUpdate
from millet_pay.services.events import ChangeFeed
from millet_pay.services.order_state import create_order, order_to_dict
from millet_pay.services.profiles import ensure_profile
from millet_pay.services.promo import validate_promo_code

router = APIRouter(tags=["orders"])


@router.post("/orders")
def place_order(
    body: OrderCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Online orders start pending and wait for a payment attempt; COD orders come back accepted."""
    ensure_profile(db, user_id)
    discount = 0.0
    promo_code_id = None
    if body.promo_code:
        result = validate_promo_code(db, body.promo_code, body.subtotal, user_id=user_id)
        discount = result.discount_amount
        promo_code_id = result.promo.id
    order = create_order(
        db,
        user_id=user_id,
        subtotal=body.subtotal,
        discount_amount=discount,
        promo_code_id=promo_code_id,
        shipping_address=body.shipping_address,
        payment_type=body.payment_type,
        feed=feed,
    )
    return order_to_dict(order)


@router.get("/orders")
def list_orders(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    rows = db.exec(select(Order).where(Order.user_id == user_id).order_by(Order.created_at.desc())).all()
    return [order_to_dict(o) for o in rows]


@router.get("/orders/{order_id}")
def get_own_order(order_id: str, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    order = db.get(Order, order_id)
    if not order or order.user_id != user_id:
        raise HTTPException(status_code=404, detail="Order not found.")
    return order_to_dict(order)


@router.put("/profile")
def upsert_profile(
    body: ProfileUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    profile = ensure_profile(db, user_id, **body.model_dump(exclude_none=True))
    return profile.model_dump()
