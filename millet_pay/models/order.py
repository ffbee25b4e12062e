"""Storefront order: fulfilment status plus the embedded payment attempt."""
from datetime import datetime
from uuid import uuid4

from sqlmodel import Field, SQLModel

from millet_pay.core.database import UTCDateTime, utcnow


def _new_order_id() -> str:
    return str(uuid4())


class Order(SQLModel, table=True):
    __tablename__ = "orders"

    id: str = Field(default_factory=_new_order_id, primary_key=True, max_length=36)
    user_id: str = Field(index=True, max_length=64)
    subtotal: float = Field(default=0)
    discount_amount: float = Field(default=0)
    total: float = Field()  # rupees, after discount
    promo_code_id: int | None = Field(default=None, foreign_key="promo_codes.id")
    # pending | accepted | processing | shipped | out_for_delivery | delivered | completed | cancelled
    status: str = Field(default="pending", index=True, max_length=32)
    shipping_address: str | None = None
    tracking_number: str | None = Field(default=None, max_length=128)
    # cod | razorpay | phonepe | cashfree
    payment_type: str | None = Field(default=None, max_length=16)
    # pending | completed | failed
    payment_status: str = Field(default="pending", max_length=16)
    gateway_order_ref: str | None = Field(default=None, index=True, max_length=128)
    payment_id: str | None = Field(default=None, max_length=128)
    payment_verified_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, index=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
