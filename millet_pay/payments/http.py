"""Outbound JSON over urllib; adapters receive the transport as a callable so tests can replace it."""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from millet_pay.payments.errors import GatewayAPIError

log = logging.getLogger(__name__)


@dataclass
class GatewayResponse:
    status: int
    data: dict[str, Any] | list[Any] = field(default_factory=dict)
    raw: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json_object(self) -> dict[str, Any]:
        return self.data if isinstance(self.data, dict) else {}


Transport = Callable[..., GatewayResponse]


def _safe_preview(text: str, limit: int = 300) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit] + "...(truncated)"


def _parse(raw: str) -> dict[str, Any] | list[Any]:
    try:
        parsed = json.loads(raw or "")
    except ValueError:
        return {}
    return parsed if isinstance(parsed, (dict, list)) else {}


def urllib_transport(
    method: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    json_body: dict | None = None,
    form_body: dict | None = None,
    timeout: float = 30,
) -> GatewayResponse:
    """
    Performs one request and returns status + parsed JSON.
    Non-2xx answers are returned, not raised: each gateway words its errors differently.
    Only connection-level failures raise GatewayAPIError.
    """
    data = None
    all_headers = {"Accept": "application/json"}
    if json_body is not None:
        data = json.dumps(json_body, ensure_ascii=False).encode("utf-8")
        all_headers["Content-Type"] = "application/json"
    elif form_body is not None:
        data = urlencode(form_body).encode("utf-8")
        all_headers["Content-Type"] = "application/x-www-form-urlencoded"
    all_headers.update(headers or {})

    req = Request(url, data=data, headers=all_headers, method=method)
    try:
        with urlopen(req, timeout=timeout) as resp:
            raw = resp.read().decode("utf-8", errors="replace")
            return GatewayResponse(status=resp.status, data=_parse(raw), raw=raw)
    except HTTPError as e:
        raw = e.read().decode("utf-8", errors="replace") if e.fp else ""
        log.warning("Gateway HTTP %s for %s %s: %s", e.code, method, url, _safe_preview(raw))
        return GatewayResponse(status=e.code, data=_parse(raw), raw=raw)
    except (URLError, TimeoutError) as e:
        log.error("Gateway unreachable: %s %s (%s)", method, url, e)
        raise GatewayAPIError(f"Payment gateway unreachable: {e}") from e
