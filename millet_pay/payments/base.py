"""Common gateway contract: every adapter creates a gateway order and verifies a payment reference."""
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any

from millet_pay.core.config import Settings
from millet_pay.payments.errors import PaymentValidationError
from millet_pay.payments.http import Transport, urllib_transport


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


def to_minor_units(amount: Any) -> int:
    """Rupees -> paise in decimal arithmetic, rounded half-up (99.995 -> 10000)."""
    try:
        rupees = Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise PaymentValidationError("Invalid amount") from exc
    paise = (rupees * Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(paise)


def digits_only(phone: str | None) -> str:
    return re.sub(r"\D", "", phone or "")


@dataclass
class Customer:
    name: str
    email: str
    phone: str


@dataclass
class PaymentRequest:
    amount: float
    currency: str
    order_id: str
    customer: Customer


@dataclass
class GatewaySession:
    """Result of a successful gateway order creation; client_params go back to the storefront."""

    gateway_order_ref: str
    amount_minor: int
    currency: str
    client_params: dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentReference:
    """What the storefront hands back after checkout. Never trusted without a gateway-side check."""

    order_id: str
    gateway_order_ref: str
    payment_id: str | None = None
    signature: str | None = None


@dataclass
class GatewayVerdict:
    status: PaymentStatus
    raw_status: str
    payment_id: str | None = None
    amount: float | None = None
    method: str | None = None


class PaymentGateway(ABC):
    name: str = ""

    def __init__(self, settings: Settings, transport: Transport | None = None):
        self.settings = settings
        self.transport = transport or urllib_transport

    @property
    @abstractmethod
    def configured(self) -> bool:
        """Whether the credentials needed for network calls are present."""

    @abstractmethod
    def ensure_configured(self) -> None:
        """Raises ConfigurationError when a required credential is missing."""

    @abstractmethod
    def normalize_phone(self, phone: str) -> str:
        ...

    @abstractmethod
    def create(self, request: PaymentRequest) -> GatewaySession:
        ...

    @abstractmethod
    def verify(self, reference: PaymentReference) -> GatewayVerdict:
        ...

    def _call(self, method: str, url: str, **kwargs):
        return self.transport(method, url, timeout=self.settings.gateway_timeout_seconds, **kwargs)

    def validate(self, request: PaymentRequest) -> PaymentRequest:
        """Shared preconditions; returns the request with the gateway's phone normalization applied."""
        if not (request.order_id or "").strip():
            raise PaymentValidationError("Order ID is required")
        if request.amount is None or to_minor_units(request.amount) <= 0:
            raise PaymentValidationError("Amount must be greater than zero")
        customer = request.customer
        if customer is None or not (customer.name or "").strip() or not (customer.email or "").strip():
            raise PaymentValidationError("Customer name and email are required")
        if not (customer.phone or "").strip():
            raise PaymentValidationError("Customer phone number is required")
        phone = self.normalize_phone(customer.phone)
        return PaymentRequest(
            amount=request.amount,
            currency=(request.currency or "INR").upper(),
            order_id=request.order_id.strip(),
            customer=Customer(name=customer.name.strip(), email=customer.email.strip(), phone=phone),
        )
