"""Domain exceptions.

Raised by the service layer; the API layer translates them into HTTP
responses. ``CacheDegradedError`` never leaves the cache coordinator.
"""
from typing import Optional


class StorefrontError(Exception):
    """Base class for all storefront errors."""

    retriable = False


class NotFoundError(StorefrontError):
    """The referenced product or order does not exist or is inactive."""


class InvalidInputError(StorefrontError):
    """A required field is missing or malformed."""


class InsufficientStockError(StorefrontError):
    """Requested quantity exceeds the product's available stock."""

    def __init__(self, product_id: int, available: Optional[int] = None, requested: Optional[int] = None):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        message = f"Insufficient stock for product {product_id}"
        if available is not None and requested is not None:
            message += f". Available: {available}, Requested: {requested}"
        super().__init__(message)


class StoreUnavailableError(StorefrontError):
    """The inventory store could not complete the operation; safe to retry."""

    retriable = True


class CacheDegradedError(StorefrontError):
    """The cache backend is unreachable or inside its reconnect backoff window."""
