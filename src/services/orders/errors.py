"""
Domain errors raised by order placement, settlement and review.

Every error carries a stable ``code`` and the HTTP status the API layer
answers with, plus keyword context that is logged and returned to clients.
"""

from typing import Any


class OrderServiceError(Exception):
    """Base exception for order service errors."""

    code = "ORDER_ERROR"
    status_code = 400

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_detail(self) -> dict[str, Any]:
        """Error body returned by the API layer."""
        return {
            "message": self.message,
            "code": self.code,
            "context": {key: str(value) for key, value in self.context.items()},
        }


class InvalidInputError(OrderServiceError):
    """Raised when request data is malformed or inconsistent with the catalog."""

    code = "INVALID_INPUT"


class NotFoundError(OrderServiceError):
    """Raised when an order, line item or catalog entry does not exist."""

    code = "NOT_FOUND"
    status_code = 404


class ForbiddenError(OrderServiceError):
    """Raised when the caller does not own the order."""

    code = "FORBIDDEN"
    status_code = 403


class InvalidStateError(OrderServiceError):
    """Raised when an operation needs the order in another status."""

    code = "INVALID_STATE"


class InvalidTransitionError(OrderServiceError):
    """Raised when a status change is not allowed from the current status."""

    code = "INVALID_TRANSITION"


class InsufficientStockError(OrderServiceError):
    """Raised when tracked stock cannot cover the requested quantity."""

    code = "INSUFFICIENT_STOCK"


class InvalidVoucherError(OrderServiceError):
    """Raised when a voucher code is unknown or outside its validity window."""

    code = "INVALID_VOUCHER"


class VoucherThresholdNotMetError(OrderServiceError):
    """Raised when the subtotal is below the voucher's minimum price."""

    code = "VOUCHER_THRESHOLD_NOT_MET"


class VoucherLimitReachedError(OrderServiceError):
    """Raised when the voucher has been used by its limit of orders."""

    code = "VOUCHER_LIMIT_REACHED"


class WindowExpiredError(OrderServiceError):
    """Raised when the customer cancellation window has elapsed."""

    code = "WINDOW_EXPIRED"


class AlreadyReviewedError(OrderServiceError):
    """Raised when a line item already carries a rating."""

    code = "ALREADY_REVIEWED"


class DuplicateOrderError(OrderServiceError):
    """Raised when an order with the same identifier already exists."""

    code = "DUPLICATE_ORDER"
    status_code = 409


class ConcurrentModificationError(OrderServiceError):
    """Raised when another writer changed the order first."""

    code = "CONCURRENT_MODIFICATION"
    status_code = 409


class GatewayUnavailableError(OrderServiceError):
    """Raised when the payment gateway cannot be reached or times out."""

    code = "GATEWAY_UNAVAILABLE"
    status_code = 502


class GatewayRejectedError(OrderServiceError):
    """Raised when the payment gateway refuses a request."""

    code = "GATEWAY_REJECTED"
    status_code = 502
