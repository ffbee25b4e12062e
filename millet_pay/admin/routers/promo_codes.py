"""Promo code management: JSON CRUD."""
from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from millet_pay.admin.deps import require_admin
from millet_pay.core.database import as_utc, get_db
from millet_pay.models import Order, PromoCode, PromoCodeUserUsage
from millet_pay.schemas.promo import PromoCodeWrite
from millet_pay.services.promo import normalize_code, promo_to_dict

router = APIRouter(dependencies=[Depends(require_admin)])


def _apply(promo: PromoCode, body: PromoCodeWrite) -> None:
    if body.discount_type == "percentage" and body.discount_value > 100:
        raise HTTPException(status_code=400, detail="Percentage discount cannot exceed 100.")
    valid_from, valid_until = as_utc(body.valid_from), as_utc(body.valid_until)
    if valid_from and valid_until and valid_until <= valid_from:
        raise HTTPException(status_code=400, detail="valid_until must be after valid_from.")
    promo.code = normalize_code(body.code)
    promo.description = body.description
    promo.discount_type = body.discount_type
    promo.discount_value = body.discount_value
    promo.minimum_order_value = body.minimum_order_value
    promo.max_uses = body.max_uses
    promo.max_uses_per_user = body.max_uses_per_user
    promo.valid_from = valid_from
    promo.valid_until = valid_until
    promo.is_active = body.is_active


@router.get("")
@router.get("/")
def promo_codes_list(db: Session = Depends(get_db)):
    rows = db.exec(select(PromoCode).order_by(PromoCode.id.desc())).all()
    return {"promo_codes": [promo_to_dict(p) for p in rows]}


@router.post("", status_code=201)
@router.post("/", status_code=201, include_in_schema=False)
def promo_code_create(body: PromoCodeWrite, db: Session = Depends(get_db)):
    code = normalize_code(body.code)
    if db.exec(select(PromoCode).where(PromoCode.code == code)).first():
        raise HTTPException(status_code=409, detail="This code already exists.")
    promo = PromoCode(code=code, discount_type=body.discount_type, discount_value=body.discount_value)
    _apply(promo, body)
    db.add(promo)
    db.commit()
    db.refresh(promo)
    return promo_to_dict(promo)


@router.put("/{promo_id}")
def promo_code_update(promo_id: int, body: PromoCodeWrite, db: Session = Depends(get_db)):
    promo = db.get(PromoCode, promo_id)
    if not promo:
        raise HTTPException(status_code=404, detail="Promo code not found.")
    code = normalize_code(body.code)
    clash = db.exec(select(PromoCode).where(PromoCode.code == code, PromoCode.id != promo_id)).first()
    if clash:
        raise HTTPException(status_code=409, detail="This code already exists.")
    _apply(promo, body)
    db.add(promo)
    db.commit()
    db.refresh(promo)
    return promo_to_dict(promo)


@router.delete("/{promo_id}")
def promo_code_delete(promo_id: int, db: Session = Depends(get_db)):
    """Codes already attached to orders are deactivated instead of deleted."""
    promo = db.get(PromoCode, promo_id)
    if not promo:
        raise HTTPException(status_code=404, detail="Promo code not found.")
    in_use = db.exec(select(Order.id).where(Order.promo_code_id == promo_id).limit(1)).first()
    if in_use:
        promo.is_active = False
        db.add(promo)
        db.commit()
        return {"ok": True, "deactivated": True}
    for usage in db.exec(select(PromoCodeUserUsage).where(PromoCodeUserUsage.promo_code_id == promo_id)).all():
        db.delete(usage)
    db.delete(promo)
    db.commit()
    return {"ok": True, "deleted": True}
