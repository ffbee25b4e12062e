"""
Payment function endpoints under /functions/v1.
Creation, verification, PhonePe redirect/webhook, stale-order cleanup and promo codes.
"""
import json
import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from millet_pay.admin.deps import require_admin
from millet_pay.api.deps import (
    gateway_dependency,
    get_change_feed,
    get_settings,
    require_scheduler,
)
from millet_pay.core.config import Settings
from millet_pay.core.database import get_db
from millet_pay.core.rate_limit import limiter, payment_limit
from millet_pay.core.security import constant_time_equals
from millet_pay.models import Order, PromoCode
from millet_pay.payments.base import PaymentGateway, PaymentReference, PaymentStatus
from millet_pay.payments.errors import (
    OrderNotFoundError,
    OrderStateError,
    PaymentError,
    PaymentValidationError,
    WebhookAuthenticationError,
)
from millet_pay.schemas.payment import (
    CashfreeVerifyRequest,
    CreatePaymentRequest,
    PhonePeVerifyRequest,
    RazorpayVerifyRequest,
)
from millet_pay.schemas.promo import PromoUsageRequest, PromoValidateRequest
from millet_pay.services.checkout import start_payment
from millet_pay.services.events import ChangeFeed
from millet_pay.services.order_state import get_order
from millet_pay.services.promo import promo_to_dict, record_promo_usage, validate_promo_code
from millet_pay.services.reaper import cancel_stale_orders
from millet_pay.services.verification import VerificationOutcome, verify_payment

log = logging.getLogger(__name__)

router = APIRouter(prefix="/functions/v1", tags=["payments"])

MISSING_VERIFY_FIELDS = "Missing required fields for payment verification"
WEBHOOK_COMPLETED = "checkout.order.completed"
WEBHOOK_FAILED = "checkout.order.failed"
WEBHOOK_REFUND_EVENTS = ("pg.refund.completed", "pg.refund.failed")


def _verification_response(outcome: VerificationOutcome, **fields) -> JSONResponse:
    """completed -> 200, pending -> 202, failed -> 400; success is true only for completed."""
    body = {
        "success": outcome.status == PaymentStatus.COMPLETED,
        "paymentStatus": outcome.verdict.raw_status,
        "status": outcome.status.value,
        "orderId": outcome.order.id,
        "paymentId": outcome.order.payment_id or outcome.verdict.payment_id,
        **fields,
    }
    if outcome.status == PaymentStatus.COMPLETED:
        return JSONResponse(status_code=200, content=body)
    if outcome.status == PaymentStatus.FAILED:
        body["error"] = "Payment failed"
        return JSONResponse(status_code=400, content=body)
    body["error"] = f"Payment status: {outcome.verdict.raw_status or 'PENDING'}"
    return JSONResponse(status_code=202, content=body)


# ---------- Razorpay ----------


@router.post("/razorpay-payment")
@limiter.limit(payment_limit)
def razorpay_payment(
    request: Request,
    body: CreatePaymentRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(gateway_dependency("razorpay")),
    feed: ChangeFeed = Depends(get_change_feed),
):
    session = start_payment(db, gateway, body.to_payment_request(), feed=feed)
    return {"success": True, **session.client_params}


@router.post("/razorpay-verify")
def razorpay_verify(
    body: RazorpayVerifyRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(gateway_dependency("razorpay")),
    feed: ChangeFeed = Depends(get_change_feed),
):
    if not body.orderId:
        raise PaymentValidationError(MISSING_VERIFY_FIELDS)
    reference = PaymentReference(
        order_id=body.orderId,
        gateway_order_ref=body.razorpay_order_id or "",
        payment_id=body.razorpay_payment_id,
        signature=body.razorpay_signature,
    )
    outcome = verify_payment(db, gateway, reference, feed=feed)
    return _verification_response(outcome, paymentMethod="razorpay")


# ---------- PhonePe ----------


@router.post("/phonepe-payment")
@limiter.limit(payment_limit)
def phonepe_payment(
    request: Request,
    body: CreatePaymentRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(gateway_dependency("phonepe")),
    feed: ChangeFeed = Depends(get_change_feed),
):
    session = start_payment(db, gateway, body.to_payment_request(), feed=feed)
    return {"success": True, **session.client_params}


def _confirm_callback(
    db: Session,
    gateway: PaymentGateway,
    feed: ChangeFeed,
    frontend: str,
    order_id: str | None,
    transaction_id: str | None,
) -> RedirectResponse:
    try:
        if not order_id and transaction_id:
            order = db.exec(select(Order).where(Order.gateway_order_ref == transaction_id)).first()
            order_id = order.id if order else None
        if not order_id:
            log.warning("PhonePe callback without a resolvable order")
            return RedirectResponse(url=f"{frontend}/payment-error", status_code=302)
        order = get_order(db, order_id)
        reference = PaymentReference(
            order_id=order_id,
            gateway_order_ref=transaction_id or order.gateway_order_ref or "",
            payment_id=transaction_id,
        )
        outcome = verify_payment(db, gateway, reference, feed=feed)
    except (PaymentError, SQLAlchemyError) as e:
        log.error("PhonePe callback failed: order_id=%s error=%s", order_id, e)
        return RedirectResponse(url=f"{frontend}/payment-error?orderId={order_id or ''}", status_code=302)

    page = {
        PaymentStatus.COMPLETED: "payment-success",
        PaymentStatus.FAILED: "payment-failed",
    }.get(outcome.status, "payment-pending")
    return RedirectResponse(url=f"{frontend}/{page}?orderId={order_id}", status_code=302)


@router.api_route("/phonepe-callback", methods=["GET", "POST"])
async def phonepe_callback(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    gateway: PaymentGateway = Depends(gateway_dependency("phonepe")),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """PhonePe sends the shopper back here; confirm server-to-server and redirect to a result page."""
    params = dict(request.query_params)
    if request.method == "POST":
        form = await request.form()
        params.update({k: str(form.get(k) or "") for k in form})
    order_id = request.query_params.get("orderId")
    transaction_id = params.get("transactionId") or params.get("merchantTransactionId")
    log.info(
        "PhonePe callback: method=%s order_id=%s transaction_id=%s code=%s",
        request.method,
        (order_id or "")[:8],
        (transaction_id or "")[:8],
        params.get("code"),
    )
    # Status API call and session work are blocking
    return await run_in_threadpool(
        _confirm_callback, db, gateway, feed, settings.frontend_url, order_id, transaction_id
    )


@router.post("/phonepe-verify")
def phonepe_verify(
    body: PhonePeVerifyRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(gateway_dependency("phonepe")),
    feed: ChangeFeed = Depends(get_change_feed),
):
    if not body.transactionId or not body.orderId:
        raise PaymentValidationError(MISSING_VERIFY_FIELDS)
    reference = PaymentReference(
        order_id=body.orderId,
        gateway_order_ref=body.transactionId,
        payment_id=body.transactionId,
    )
    outcome = verify_payment(db, gateway, reference, feed=feed)
    return _verification_response(
        outcome,
        paymentMethod="phonepe",
        amount=outcome.verdict.amount,
        transactionId=body.transactionId,
    )


def _apply_webhook_event(
    db: Session,
    gateway: PaymentGateway,
    feed: ChangeFeed,
    event: str | None,
    data: dict,
) -> str:
    order_id = data.get("merchantOrderId")
    if not order_id:
        log.warning("PhonePe webhook %s without merchantOrderId", event)
        return "Webhook acknowledged"
    try:
        order = get_order(db, order_id)
        reference = PaymentReference(
            order_id=order_id,
            gateway_order_ref=order.gateway_order_ref or "",
            payment_id=data.get("transactionId"),
        )
        outcome = verify_payment(db, gateway, reference, feed=feed)
    except (OrderNotFoundError, OrderStateError, PaymentValidationError) as e:
        # Not retryable: acknowledged so the gateway stops redelivering
        log.warning("PhonePe webhook not applied: event=%s order_id=%s reason=%s", event, order_id, e.message)
        return "Webhook acknowledged"
    log.info("PhonePe webhook applied: event=%s order_id=%s status=%s", event, order_id, outcome.status.value)
    return "Webhook processed successfully"


@router.post("/phonepe-webhook")
async def phonepe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    gateway: PaymentGateway = Depends(gateway_dependency("phonepe")),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """
    Gateway-originated notification. The X-MERCHANT-ID header must match; order events are
    re-confirmed with the status API before the state machine applies them. Refund events are
    acknowledged and logged only.
    """
    gateway.ensure_configured()
    if not constant_time_equals(request.headers.get("X-MERCHANT-ID"), settings.phonepe_merchant_id):
        raise WebhookAuthenticationError()
    raw = await request.body()
    try:
        payload = json.loads(raw or b"{}")
    except ValueError as e:
        raise PaymentValidationError("Invalid JSON payload") from e
    if not isinstance(payload, dict):
        raise PaymentValidationError("Invalid JSON payload")

    event = payload.get("event")
    data = payload.get("payload") or {}
    log.info("PhonePe webhook received: event=%s", event)

    message = "Webhook processed successfully"
    if event in (WEBHOOK_COMPLETED, WEBHOOK_FAILED):
        message = await run_in_threadpool(_apply_webhook_event, db, gateway, feed, event, data)
    elif event in WEBHOOK_REFUND_EVENTS:
        log.info("PhonePe refund event %s: refund_id=%s state=%s", event, data.get("merchantRefundId"), data.get("state"))
    else:
        log.warning("Unknown PhonePe webhook event: %s", event)

    return {"success": True, "message": message, "event": event}


# ---------- Cashfree ----------


@router.post("/cashfree-payment")
@limiter.limit(payment_limit)
def cashfree_payment(
    request: Request,
    body: CreatePaymentRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(gateway_dependency("cashfree")),
    feed: ChangeFeed = Depends(get_change_feed),
):
    session = start_payment(db, gateway, body.to_payment_request(), feed=feed)
    return {"success": True, **session.client_params}


@router.post("/cashfree-verify")
def cashfree_verify(
    body: CashfreeVerifyRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(gateway_dependency("cashfree")),
    feed: ChangeFeed = Depends(get_change_feed),
):
    if not body.cfOrderId or not body.orderId:
        raise PaymentValidationError(MISSING_VERIFY_FIELDS)
    reference = PaymentReference(order_id=body.orderId, gateway_order_ref=body.cfOrderId, payment_id=body.paymentId)
    outcome = verify_payment(db, gateway, reference, feed=feed)
    return _verification_response(
        outcome,
        paymentMethod=outcome.verdict.method,
        amount=outcome.verdict.amount,
        cfOrderId=body.cfOrderId,
    )


# ---------- Stale order cleanup ----------


@router.post("/cleanup-pending-orders")
def cleanup_pending_orders(
    _=Depends(require_scheduler),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    feed: ChangeFeed = Depends(get_change_feed),
):
    result = cancel_stale_orders(
        db,
        timeout=timedelta(minutes=settings.pending_order_timeout_minutes),
        feed=feed,
    )
    return {
        "success": True,
        "message": result.message,
        "processed": result.processed,
        "orders": result.order_ids,
    }


# ---------- Promo codes ----------


@router.post("/promo-code-validate")
def promo_code_validate(
    body: PromoValidateRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    user_id = body.userId or request.headers.get("x-user-id")
    if body.orderTotal is None:
        raise PaymentValidationError("Invalid orderTotal: expected number")
    result = validate_promo_code(db, body.code, body.orderTotal, user_id=user_id)
    return {
        "success": True,
        "promoCode": promo_to_dict(result.promo),
        "discountAmount": result.discount_amount,
        "finalAmount": result.final_amount,
    }


@router.post("/promo-code-update-usage")
def promo_code_update_usage(
    body: PromoUsageRequest,
    _=Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Service-role only: checkout already counts usage when an order is accepted."""
    if body.promoCodeId is None:
        raise PaymentValidationError("Missing required field: promoCodeId")
    if db.get(PromoCode, body.promoCodeId) is None:
        raise PaymentValidationError("Promo code not found")
    record_promo_usage(db, body.promoCodeId, body.userId)
    db.commit()
    promo = db.get(PromoCode, body.promoCodeId)
    db.refresh(promo)
    return {"success": True, "promoCode": promo_to_dict(promo)}
