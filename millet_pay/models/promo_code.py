"""Promo codes: percentage or fixed discount, validity window and usage limits."""
from datetime import datetime

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from millet_pay.core.database import UTCDateTime, utcnow


class PromoCode(SQLModel, table=True):
    """Created by admins, read by checkout; only the usage counter changes afterwards."""

    __tablename__ = "promo_codes"

    id: int | None = Field(default=None, primary_key=True)
    code: str = Field(unique=True, index=True, max_length=64)  # stored upper-case, e.g. MILLET10
    description: str | None = None
    discount_type: str = Field(max_length=16)  # "percentage" | "fixed"
    discount_value: float = Field()  # percentage: 0-100, fixed: rupees
    minimum_order_value: float = Field(default=0)
    max_uses: int | None = Field(default=None)  # null = unlimited
    max_uses_per_user: int | None = Field(default=None)
    used_count: int = Field(default=0)
    valid_from: datetime | None = Field(default=None, sa_type=UTCDateTime)
    valid_until: datetime | None = Field(default=None, sa_type=UTCDateTime)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class PromoCodeUserUsage(SQLModel, table=True):
    __tablename__ = "promo_code_user_usage"
    __table_args__ = (UniqueConstraint("promo_code_id", "user_id"),)

    id: int | None = Field(default=None, primary_key=True)
    promo_code_id: int = Field(foreign_key="promo_codes.id", index=True)
    user_id: str = Field(index=True, max_length=64)
    usage_count: int = Field(default=0)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
