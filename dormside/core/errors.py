"""
Storefront Error Taxonomy

Every failure the API reports to a caller is one of these exceptions.
The FastAPI exception handler in main.py renders them as
``{"error": message}`` with the class's HTTP status code.

Validation and precondition errors are raised before any external call,
so raising one never leaves partial state behind.
"""

from typing import Optional


class StorefrontError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    default_message: str = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(StorefrontError):
    """Malformed or incomplete request."""
    status_code = 400
    default_message = "Invalid request"


class InvalidAmount(ValidationError):
    """Order total is zero or negative after fees and tip."""
    default_message = "Invalid amount"


class Unauthorized(StorefrontError):
    status_code = 401
    default_message = "Unauthorized"


class OrdersClosed(StorefrontError):
    """The store-status gate is closed."""
    status_code = 403
    default_message = "Orders are closed"


class NotFound(StorefrontError):
    status_code = 404
    default_message = "Order not found"


class PaymentReconciliationError(StorefrontError):
    """A payment claim could not be matched to the order's payment intent."""
    status_code = 409
    default_message = "Payment could not be verified for this order"


class InvalidTransition(StorefrontError):
    status_code = 409
    default_message = "Order status cannot be changed"


class GatewayError(StorefrontError):
    """
    Payment processor failure (network, declined request, misconfiguration).

    ``order_id`` is set when the failure happened after the order was
    stored, so the client can retry intent creation against it.
    """
    status_code = 500
    default_message = "Payment service temporarily unavailable. Please try again."

    def __init__(self, message: Optional[str] = None, order_id: Optional[str] = None):
        super().__init__(message)
        self.order_id = order_id

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.order_id:
            payload["orderId"] = self.order_id
        return payload


class StorageUnavailable(StorefrontError):
    """Backing store misconfigured or unreachable."""
    status_code = 500
    default_message = "Order storage is unavailable. Please try again."


class ConfigurationError(StorefrontError):
    status_code = 500
    default_message = "Server configuration error"
