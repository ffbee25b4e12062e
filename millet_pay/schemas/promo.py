from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class PromoValidateRequest(BaseModel):
    code: str | None = None
    orderTotal: float | None = None
    userId: str | None = None


class PromoUsageRequest(BaseModel):
    promoCodeId: int | None = None
    userId: str | None = None


class PromoCodeWrite(BaseModel):
    """Admin create/update."""
    code: str = Field(min_length=1, max_length=64)
    description: str | None = None
    discount_type: Literal["percentage", "fixed"]
    discount_value: float = Field(gt=0)
    minimum_order_value: float = Field(default=0, ge=0)
    max_uses: int | None = Field(default=None, ge=1)
    max_uses_per_user: int | None = Field(default=None, ge=1)
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    is_active: bool = True
