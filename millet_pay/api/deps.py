from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from millet_pay.core.config import Settings
from millet_pay.core.security import constant_time_equals, decode_access_token
from millet_pay.payments.base import PaymentGateway
from millet_pay.services.events import ChangeFeed

security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_gateways(request: Request) -> dict[str, PaymentGateway]:
    return request.app.state.gateways


def get_change_feed(request: Request) -> ChangeFeed:
    return request.app.state.change_feed


def gateway_dependency(name: str):
    def _get(request: Request) -> PaymentGateway:
        return request.app.state.gateways[name]

    return _get


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    settings: Settings = Depends(get_settings),
) -> str:
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Please sign in to continue.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = decode_access_token(credentials.credentials, settings.jwt_secret, settings.jwt_audience)
    if not payload or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token.",
        )
    return str(payload["sub"])


def require_scheduler(
    settings: Settings = Depends(get_settings),
    x_cron_secret: str | None = Header(None, alias="X-Cron-Secret"),
    x_admin_secret: str | None = Header(None, alias="X-Admin-Secret"),
) -> None:
    """Open when CRON_SECRET is unset; otherwise the cron or admin secret must match."""
    if not settings.cron_secret:
        return
    if constant_time_equals(x_cron_secret, settings.cron_secret):
        return
    if settings.admin_secret and constant_time_equals(x_admin_secret, settings.admin_secret):
        return
    raise HTTPException(status_code=403, detail="Forbidden.")
