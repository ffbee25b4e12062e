"""Request bodies of the payment function endpoints (camelCase keys as the storefront sends them)."""
from pydantic import BaseModel

from millet_pay.payments.base import Customer, PaymentRequest


class CustomerInfo(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None


class CreatePaymentRequest(BaseModel):
    """Shared by razorpay-payment, phonepe-payment and cashfree-payment."""
    amount: float | None = None
    currency: str | None = "INR"
    orderId: str | None = None
    customerInfo: CustomerInfo | None = None

    def to_payment_request(self) -> PaymentRequest:
        info = self.customerInfo or CustomerInfo()
        return PaymentRequest(
            amount=self.amount,
            currency=self.currency or "INR",
            order_id=self.orderId or "",
            customer=Customer(name=info.name or "", email=info.email or "", phone=info.phone or ""),
        )


class RazorpayVerifyRequest(BaseModel):
    razorpay_order_id: str | None = None
    razorpay_payment_id: str | None = None
    razorpay_signature: str | None = None
    orderId: str | None = None


class PhonePeVerifyRequest(BaseModel):
    transactionId: str | None = None
    orderId: str | None = None


class CashfreeVerifyRequest(BaseModel):
    cfOrderId: str | None = None
    paymentId: str | None = None
    orderId: str | None = None
