from typing import Literal

from pydantic import BaseModel, Field


class OrderCreate(BaseModel):
    subtotal: float = Field(gt=0)
    shipping_address: str | None = None
    payment_type: Literal["cod", "razorpay", "phonepe", "cashfree"]
    promo_code: str | None = None


class OrderStatusUpdate(BaseModel):
    """Admin: next fulfilment step or cancelled."""
    status: str
    tracking_number: str | None = None


class ProfileUpdate(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    postal_code: str | None = None
    country: str | None = None
