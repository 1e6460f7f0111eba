"""Domain errors raised by the storefront stores.

Each error carries the HTTP status the API answers with, so route handlers
can let them propagate to the single exception handler in ``api.py``.
"""

from __future__ import annotations


class StorefrontError(Exception):
    """Base class for expected, user-facing storefront failures."""

    status_code = 400
    error = "Bad request"


class ProductNotFoundError(StorefrontError):
    status_code = 404
    error = "Product not found"


class ProductUnavailableError(StorefrontError):
    """Raised when an out-of-stock product is added or bought."""

    status_code = 409
    error = "Product unavailable"


class ConfirmationRequiredError(StorefrontError):
    """Raised when a destructive admin action is attempted unconfirmed."""

    status_code = 400
    error = "Confirmation required"


class OrderNotFoundError(StorefrontError):
    """Generic tracking failure; never says whether the ID was ever issued."""

    status_code = 404
    error = "Order not found"

    def __init__(self, message: str = "Order not found. Please verify your Tracking ID.") -> None:
        super().__init__(message)


class EmptyCheckoutError(StorefrontError):
    status_code = 400
    error = "Nothing to check out"


class InvalidCredentialsError(StorefrontError):
    status_code = 401
    error = "Invalid credentials"

    def __init__(self, message: str = "Invalid credentials") -> None:
        super().__init__(message)


class AdminRequiredError(StorefrontError):
    status_code = 403
    error = "Admin access required"


class SupportBusyError(StorefrontError):
    """Raised by the API when a reply is already pending for the transcript."""

    status_code = 409
    error = "Support is typing"


class AssistantError(Exception):
    """Raised when the query collaborator cannot produce a reply."""
