"""
Domain Exceptions

Every failure a caller should see is raised as a BillingError subclass.
The API layer renders them with the status code carried by the class.
"""

from typing import Optional


class BillingError(Exception):
    """Base class for user-visible failures."""

    status_code: int = 500
    error: str = "Internal Server Error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.error
        super().__init__(self.message)


class ValidationError(BillingError):
    """Malformed enum value or missing required field."""

    status_code = 422
    error = "Validation Error"


class NotFoundError(BillingError):
    """A referenced tenant, user, order, table or menu item does not exist."""

    status_code = 404
    error = "Not Found"


class ConflictError(BillingError):
    """The row changed since it was read (optimistic version check failed)."""

    status_code = 409
    error = "Conflict"


class AuthenticationError(BillingError):
    status_code = 401
    error = "Unauthorized"


class InvalidTokenError(AuthenticationError):
    """Token signature, type or shape is not acceptable."""

    error = "Invalid Token"


class ExpiredTokenError(AuthenticationError):
    """Token expired or has been superseded by a rotation."""

    error = "Expired Token"


class TokenError(InvalidTokenError):
    """Token could not be decoded (malformed or signed by someone else)."""
