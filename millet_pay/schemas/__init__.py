from .order import OrderCreate, OrderStatusUpdate, ProfileUpdate
from .payment import (
    CashfreeVerifyRequest,
    CreatePaymentRequest,
    CustomerInfo,
    PhonePeVerifyRequest,
    RazorpayVerifyRequest,
)
from .promo import PromoCodeWrite, PromoUsageRequest, PromoValidateRequest

__all__ = [
    "CashfreeVerifyRequest",
    "CreatePaymentRequest",
    "CustomerInfo",
    "OrderCreate",
    "OrderStatusUpdate",
    "PhonePeVerifyRequest",
    "ProfileUpdate",
    "PromoCodeWrite",
    "PromoUsageRequest",
    "PromoValidateRequest",
    "RazorpayVerifyRequest",
]
