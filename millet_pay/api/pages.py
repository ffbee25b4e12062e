"""Payment result pages the gateways redirect shoppers to; each counts down back into the store."""
from pathlib import Path

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from millet_pay.api.deps import get_settings
from millet_pay.core.config import Settings

router = APIRouter(include_in_schema=False)
templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))

REDIRECT_SECONDS = 5

PAGES = {
    "payment-success": {
        "title": "Payment successful",
        "message": "Thank you! Your order has been confirmed.",
        "target": "/orders",
        "tone": "success",
    },
    "payment-failed": {
        "title": "Payment failed",
        "message": "Your payment could not be completed and the order was cancelled. No money was taken.",
        "target": "/cart",
        "tone": "error",
    },
    "payment-pending": {
        "title": "Payment pending",
        "message": "We are still waiting for confirmation from the payment provider.",
        "target": "/orders",
        "tone": "pending",
    },
    "payment-error": {
        "title": "Something went wrong",
        "message": "We could not confirm your payment. If money was debited, it will be reconciled automatically.",
        "target": "/cart",
        "tone": "error",
    },
}


def _render(request: Request, settings: Settings, page: str) -> HTMLResponse:
    info = PAGES[page]
    return templates.TemplateResponse(
        request,
        "payment_result.html",
        {
            "request": request,
            "page": page,
            "title": info["title"],
            "message": info["message"],
            "tone": info["tone"],
            "order_id": request.query_params.get("orderId") or request.query_params.get("order_id"),
            "redirect_url": f"{settings.frontend_url}{info['target']}",
            "seconds": REDIRECT_SECONDS,
        },
    )


@router.get("/payment-success", response_class=HTMLResponse)
def payment_success(request: Request, settings: Settings = Depends(get_settings)):
    return _render(request, settings, "payment-success")


@router.get("/payment-failed", response_class=HTMLResponse)
def payment_failed(request: Request, settings: Settings = Depends(get_settings)):
    return _render(request, settings, "payment-failed")


@router.get("/payment-pending", response_class=HTMLResponse)
def payment_pending(request: Request, settings: Settings = Depends(get_settings)):
    return _render(request, settings, "payment-pending")


@router.get("/payment-error", response_class=HTMLResponse)
def payment_error(request: Request, settings: Settings = Depends(get_settings)):
    return _render(request, settings, "payment-error")
