"""Promo code validation, discount calculation and usage counting."""
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import update
from sqlmodel import Session, select

from millet_pay.core.database import utcnow
from millet_pay.models import PromoCode, PromoCodeUserUsage
from millet_pay.payments.errors import PaymentValidationError

INVALID_CODE = "Invalid or expired promo code"


class PromoCodeError(PaymentValidationError):
    default_message = INVALID_CODE


@dataclass
class PromoValidation:
    promo: PromoCode
    discount_amount: float
    final_amount: float


def _money(value: float | Decimal) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def calculate_discount(promo: PromoCode, order_total: float) -> float:
    """Percentage of the total, or the fixed amount capped at the total."""
    if promo.discount_type == "percentage":
        discount = Decimal(str(order_total)) * Decimal(str(promo.discount_value)) / Decimal("100")
    else:
        discount = min(Decimal(str(promo.discount_value)), Decimal(str(order_total)))
    return _money(max(discount, Decimal("0")))


def user_usage_count(db: Session, promo_code_id: int, user_id: str) -> int:
    row = db.exec(
        select(PromoCodeUserUsage).where(
            PromoCodeUserUsage.promo_code_id == promo_code_id,
            PromoCodeUserUsage.user_id == user_id,
        )
    ).first()
    return row.usage_count if row else 0


def validate_promo_code(
    db: Session,
    code: str | None,
    order_total: float,
    user_id: str | None = None,
    now: datetime | None = None,
) -> PromoValidation:
    code_upper = normalize_code(code)
    if not code_upper:
        raise PromoCodeError("Missing required field: code")
    if order_total is None or order_total < 0:
        raise PromoCodeError("Invalid orderTotal")
    now = now or utcnow()

    promo = db.exec(
        select(PromoCode).where(PromoCode.code == code_upper, PromoCode.is_active == True)  # noqa: E712
    ).first()
    if not promo:
        raise PromoCodeError(INVALID_CODE)
    if promo.valid_from and promo.valid_from > now:
        raise PromoCodeError(INVALID_CODE)
    if promo.valid_until and promo.valid_until <= now:
        raise PromoCodeError(INVALID_CODE)
    if promo.max_uses is not None and (promo.used_count or 0) >= promo.max_uses:
        raise PromoCodeError("This promo code has reached its maximum usage limit")
    if user_id and promo.max_uses_per_user is not None:
        if user_usage_count(db, promo.id, user_id) >= promo.max_uses_per_user:
            raise PromoCodeError(
                f"You have reached the maximum usage limit for this promo code ({promo.max_uses_per_user} times)"
            )
    minimum = promo.minimum_order_value or 0
    if minimum and order_total < minimum:
        raise PromoCodeError(f"Order must be at least ₹{minimum:.2f} to use this promo code")

    discount = calculate_discount(promo, order_total)
    return PromoValidation(promo=promo, discount_amount=discount, final_amount=_money(Decimal(str(order_total)) - Decimal(str(discount))))


def record_promo_usage(db: Session, promo_code_id: int, user_id: str | None = None) -> None:
    """Increments the global and per-user counters; the caller commits."""
    db.exec(
        update(PromoCode)
        .where(PromoCode.id == promo_code_id)
        .values(used_count=PromoCode.used_count + 1)
    )
    if not user_id:
        return
    usage = db.exec(
        select(PromoCodeUserUsage).where(
            PromoCodeUserUsage.promo_code_id == promo_code_id,
            PromoCodeUserUsage.user_id == user_id,
        )
    ).first()
    if usage:
        usage.usage_count += 1
        usage.updated_at = utcnow()
    else:
        usage = PromoCodeUserUsage(promo_code_id=promo_code_id, user_id=user_id, usage_count=1)
    db.add(usage)


def promo_to_dict(promo: PromoCode) -> dict:
    return {
        "id": promo.id,
        "code": promo.code,
        "description": promo.description,
        "discount_type": promo.discount_type,
        "discount_value": promo.discount_value,
        "minimum_order_value": promo.minimum_order_value,
        "max_uses": promo.max_uses,
        "max_uses_per_user": promo.max_uses_per_user,
        "used_count": promo.used_count,
        "valid_from": promo.valid_from.isoformat() if promo.valid_from else None,
        "valid_until": promo.valid_until.isoformat() if promo.valid_until else None,
        "is_active": promo.is_active,
    }
