"""Customer profile upsert."""
import logging

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from millet_pay.models import Profile

log = logging.getLogger(__name__)

PROFILE_FIELDS = ("first_name", "last_name", "email", "phone", "address", "city", "postal_code", "country")


def ensure_profile(db: Session, user_id: str, **fields) -> Profile:
    """
    Idempotent: the primary key on user_id arbitrates concurrent first logins. A losing insert
    re-reads the winner's row and applies the given fields on top.
    """
    values = {k: v for k, v in fields.items() if k in PROFILE_FIELDS and v is not None}
    profile = db.get(Profile, user_id)
    if profile is None:
        try:
            profile = Profile(user_id=user_id, **values)
            db.add(profile)
            db.commit()
            db.refresh(profile)
            return profile
        except IntegrityError:
            db.rollback()
            log.info("Profile for %s created concurrently; updating existing row", user_id)
            profile = db.get(Profile, user_id)
            if profile is None:
                raise
    if values:
        for key, value in values.items():
            setattr(profile, key, value)
        db.add(profile)
        db.commit()
        db.refresh(profile)
    return profile
