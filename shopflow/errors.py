"""
Error taxonomy for the sale/inventory engine.

Every error carries a stable ``kind`` (what the calling layer switches on), a
human-readable message and optional ``details``. ``status_code`` is the HTTP
status the routes answer with.

FAMILIES:
- ValidationError: malformed or missing input (400)
- NotFoundError: a referenced record does not exist (404)
- ConflictError: a legitimate business-rule conflict (409)
- ConfigurationError: operational misconfiguration (500)
- InternalError: unexpected storage failure (500)
"""

from __future__ import annotations


class ShopflowError(Exception):
    """Base class for all typed engine errors."""

    kind = "ERROR"
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(ShopflowError):
    """400-level input problem."""
    kind = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(ShopflowError):
    kind = "NOT_FOUND"
    status_code = 404


class ConflictError(ShopflowError):
    """409-level business rule conflict."""
    kind = "CONFLICT"
    status_code = 409


class ConfigurationError(ShopflowError):
    kind = "CONFIGURATION_ERROR"
    status_code = 500


class InternalError(ShopflowError):
    kind = "INTERNAL_ERROR"
    status_code = 500


# =============================================================================
# Not found
# =============================================================================

class ProductNotFound(NotFoundError):
    kind = "PRODUCT_NOT_FOUND"


class CustomerNotFound(NotFoundError):
    kind = "CUSTOMER_NOT_FOUND"


class UserNotFound(NotFoundError):
    kind = "USER_NOT_FOUND"


class SaleNotFound(NotFoundError):
    kind = "SALE_NOT_FOUND"


class TransferNotFound(NotFoundError):
    kind = "TRANSFER_NOT_FOUND"


class StoreNotFound(NotFoundError):
    kind = "STORE_NOT_FOUND"


# =============================================================================
# State conflicts
# =============================================================================

class InsufficientStock(ConflictError):
    kind = "INSUFFICIENT_STOCK"


class ProductInactive(ConflictError):
    kind = "PRODUCT_INACTIVE"


class ProductNotAtSource(ConflictError):
    kind = "PRODUCT_NOT_AT_SOURCE"


class InsufficientPayment(ConflictError):
    kind = "INSUFFICIENT_PAYMENT"


class AlreadyCancelled(ConflictError):
    kind = "ALREADY_CANCELLED"


class InvalidStateForRefund(ConflictError):
    kind = "INVALID_STATE_FOR_REFUND"


class AlreadyRefunded(InvalidStateForRefund):
    """Raised by both cancel and refund when the sale was already refunded."""
    kind = "ALREADY_REFUNDED"


class SameStore(ConflictError):
    kind = "SAME_STORE"


class InvalidState(ConflictError):
    kind = "INVALID_STATE"


class CannotCancelCompleted(ConflictError):
    kind = "CANNOT_CANCEL_COMPLETED"


class DuplicateAward(ConflictError):
    kind = "DUPLICATE_AWARD"


class InsufficientPoints(ConflictError):
    kind = "INSUFFICIENT_POINTS"


# =============================================================================
# Configuration
# =============================================================================

class ConfigurationMissing(ConfigurationError):
    kind = "CONFIGURATION_MISSING"
