"""IP based rate limiting (SlowAPI); proxy aware via X-Forwarded-For."""
from contextvars import ContextVar

from fastapi import Request

from slowapi import Limiter

# Bound per request from the serving app's settings
_payment_limit: ContextVar[str] = ContextVar("payment_limit", default="30/minute")


def _get_client_ip(request: Request) -> str:
    """Real client IP behind a proxy (Render, Nginx)."""
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "127.0.0.1"


limiter = Limiter(key_func=_get_client_ip)


def bind_request_limits(request: Request) -> None:
    settings = request.app.state.settings
    _payment_limit.set(f"{settings.rate_limit_per_minute}/minute")


def payment_limit() -> str:
    """Evaluated by slowapi on each limited request."""
    return _payment_limit.get()
