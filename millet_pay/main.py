import logging
import time
import traceback
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root wherever uvicorn is started from
_PROJ_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJ_ROOT / ".env")

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlmodel import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from millet_pay.admin import admin_router
from millet_pay.api.functions import router as functions_router
from millet_pay.api.orders import router as orders_router
from millet_pay.api.pages import router as pages_router
from millet_pay.core.config import Settings
from millet_pay.core.database import build_engine, init_db
from millet_pay.core.rate_limit import bind_request_limits, limiter
from millet_pay.logging import setup_logging
from millet_pay.models import ErrorLog
from millet_pay.payments import build_gateways
from millet_pay.payments.errors import ConfigurationError, PaymentError
from millet_pay.payments.http import Transport
from millet_pay.services.events import ALL_TABLES, ChangeFeed, log_change

setup_logging(level=logging.INFO)
log = logging.getLogger("millet_pay")


def _error_response(request: Request, status_code: int, detail: str, **extra) -> JSONResponse:
    rid = getattr(request.state, "request_id", None)
    body = {"success": False, "error": detail, "status_code": status_code, **extra}
    if rid:
        body["request_id"] = rid
    return JSONResponse(status_code=status_code, content=body)


def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    log.warning("Rate limit exceeded: path=%s ip=%s", request.url.path, request.client.host if request.client else "-")
    return _error_response(request, 429, "Too many requests. Please wait a minute and try again.")


def _payment_error_handler(request: Request, exc: PaymentError) -> JSONResponse:
    if isinstance(exc, ConfigurationError):
        log.error("Payment configuration error on %s: %s", request.url.path, exc.detail)
    elif exc.status_code >= 500:
        log.error("Payment error on %s: %s", request.url.path, exc.message)
    else:
        log.info("Payment request rejected on %s: %s", request.url.path, exc.message)
    return _error_response(request, exc.status_code, exc.message)


def _validation_error_message(exc: RequestValidationError) -> str:
    errs = exc.errors()
    if not errs:
        return "Invalid request."
    first = errs[0]
    loc = [str(p) for p in (first.get("loc") or []) if p != "body"]
    field = ".".join(loc)
    if first.get("type") == "missing":
        return f"Missing required field: {field}" if field else "Request body is missing."
    msg = first.get("msg") or "Invalid request."
    return f"{field}: {msg}" if field else msg


def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errs = exc.errors()
    log.warning("Request validation error (422): path=%s method=%s", request.url.path, request.method)
    return _error_response(request, 422, _validation_error_message(exc), errors=jsonable_errors(errs))


def jsonable_errors(errs) -> list[dict]:
    return [{"loc": list(e.get("loc") or []), "msg": e.get("msg"), "type": e.get("type")} for e in errs]


def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    response = _error_response(request, exc.status_code, detail)
    for key, value in (getattr(exc, "headers", None) or {}).items():
        response.headers[key] = value
    return response


def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("Unhandled exception: path=%s %s", request.url.path, exc)
    try:
        with Session(request.app.state.engine) as db:
            db.add(
                ErrorLog(
                    endpoint=request.url.path,
                    method=request.method,
                    error_message=str(exc)[:2000],
                    stack_trace=traceback.format_exc()[:10000],
                )
            )
            db.commit()
    except Exception as e:
        log.warning("ErrorLog write failed: %s", e)
    return _error_response(request, 500, "Unexpected server error.")


def create_app(settings: Settings | None = None, transport: Transport | None = None) -> FastAPI:
    """
    Builds the application with its own settings, engine, gateways and change feed.
    Tests pass explicit settings and a fake transport; production uses the environment.
    """
    settings = settings or Settings()
    engine = build_engine(settings.database_url)
    change_feed = ChangeFeed()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(engine)
        subscription = change_feed.subscribe(ALL_TABLES, log_change)
        log.info(
            "Gateways configured: razorpay=%s phonepe=%s (%s) cashfree=%s (%s)",
            "yes" if settings.razorpay_configured else "no",
            "yes" if settings.phonepe_configured else "no",
            settings.phonepe_environment,
            "yes" if settings.cashfree_configured else "no",
            settings.cashfree_environment,
        )
        yield
        subscription.unsubscribe()
        engine.dispose()

    app = FastAPI(
        title="Millet Pay API",
        description="Order payments for the millet store: Razorpay, PhonePe, Cashfree and cash on delivery",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.gateways = build_gateways(settings, transport)
    app.state.change_feed = change_feed
    app.state.limiter = limiter

    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)
    app.add_exception_handler(PaymentError, _payment_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)

    @app.middleware("http")
    async def request_id_and_latency(request: Request, call_next):
        request.state.request_id = str(uuid.uuid4())
        bind_request_limits(request)
        start = time.perf_counter()
        response = await call_next(request)
        latency_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = request.state.request_id
        log.info(
            "request_id=%s method=%s path=%s status=%s latency_ms=%.2f",
            request.state.request_id,
            request.method,
            request.url.path,
            response.status_code,
            latency_ms,
        )
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list(),
        allow_credentials=settings.cors_origins_list() != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(functions_router)
    app.include_router(orders_router)
    app.include_router(admin_router)
    app.include_router(pages_router)

    @app.get("/health")
    def health(request: Request):
        try:
            with Session(request.app.state.engine) as db:
                db.exec(text("SELECT 1"))
            database = "ok"
        except Exception as e:
            log.warning("Health check database error: %s", e)
            database = "error"
        return {
            "status": "ok",
            "database": database,
            "gateways": {name: gw.configured for name, gw in request.app.state.gateways.items()},
        }

    return app


app = create_app()
