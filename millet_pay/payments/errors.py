"""Payment error taxonomy; each carries the HTTP status and the message shown to the client."""


class PaymentError(Exception):
    status_code = 500
    default_message = "Payment processing failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ConfigurationError(PaymentError):
    """Missing gateway credentials. The client only sees the generic message; details go to the log."""

    status_code = 500
    default_message = "Payment gateway is not configured"

    def __init__(self, detail: str | None = None):
        self.detail = detail
        super().__init__(self.default_message)


class PaymentValidationError(PaymentError):
    status_code = 400
    default_message = "Invalid payment request"


class GatewayAPIError(PaymentError):
    status_code = 502
    default_message = "Payment gateway request failed"

    def __init__(self, message: str | None = None, gateway_status: int | None = None):
        self.gateway_status = gateway_status
        super().__init__(message)


class SignatureMismatchError(PaymentError):
    status_code = 400
    default_message = "Invalid payment signature"


class OrderNotFoundError(PaymentError):
    status_code = 404
    default_message = "Order not found"


class OrderStateError(PaymentError):
    status_code = 409
    default_message = "Order is no longer awaiting payment"


class OrderUpdateError(PaymentError):
    status_code = 500
    default_message = "Failed to update order"


class WebhookAuthenticationError(PaymentError):
    status_code = 401
    default_message = "Invalid merchant ID"
