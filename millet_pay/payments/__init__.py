from millet_pay.core.config import Settings
from millet_pay.payments.base import PaymentGateway, PaymentStatus
from millet_pay.payments.cashfree import CashfreeGateway
from millet_pay.payments.http import Transport
from millet_pay.payments.phonepe import PhonePeGateway
from millet_pay.payments.razorpay import RazorpayGateway

GATEWAY_CLASSES: tuple[type[PaymentGateway], ...] = (RazorpayGateway, PhonePeGateway, CashfreeGateway)


def build_gateways(settings: Settings, transport: Transport | None = None) -> dict[str, PaymentGateway]:
    return {cls.name: cls(settings, transport) for cls in GATEWAY_CLASSES}


__all__ = [
    "CashfreeGateway",
    "PaymentGateway",
    "PaymentStatus",
    "PhonePeGateway",
    "RazorpayGateway",
    "build_gateways",
]
