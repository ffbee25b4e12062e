"""Admin auth: X-Admin-Secret header or admin_secret query, compared in constant time."""
from fastapi import Depends, Header, HTTPException, Query

from millet_pay.api.deps import get_settings
from millet_pay.core.config import Settings
from millet_pay.core.security import constant_time_equals


def require_admin(
    settings: Settings = Depends(get_settings),
    x_admin_secret: str | None = Header(None, alias="X-Admin-Secret"),
    admin_secret: str | None = Query(None, description="Admin secret"),
) -> None:
    if not settings.admin_secret:
        raise HTTPException(status_code=503, detail="Admin access is not configured (ADMIN_SECRET missing).")
    if not constant_time_equals(x_admin_secret or admin_secret, settings.admin_secret):
        raise HTTPException(status_code=403, detail="Forbidden.")
