"""Error types shared by the repositories, session store and request handlers.

Validation and not-found errors are handled by the handlers and rendered
directly. Store errors and anything unexpected bubble up to the recover stage
of the middleware chain, which is the only place that logs full detail.
"""

from typing import Dict, Optional


class SnipperError(Exception):
    """Base class for all application errors."""


class ValidationError(SnipperError):
    """
    Exception raised for invalid user input.

    Attributes:
        field_errors: Mapping of form field name to a human readable message.
    """

    def __init__(
        self, message: str, field_errors: Optional[Dict[str, str]] = None
    ) -> None:
        super().__init__(message)
        self.field_errors: Dict[str, str] = dict(field_errors or {})


class NotFoundError(SnipperError):
    """The requested record does not exist or has expired."""


class DuplicateEmailError(SnipperError):
    """A user with the submitted email address already exists."""


class AuthError(SnipperError):
    """
    Exception raised for authentication failures.

    This exception class provides static methods for creating specific
    authentication failure instances with appropriate error messages.
    """

    @staticmethod
    def invalid_credentials() -> "AuthError":
        """The submitted email and password do not match a user."""
        return AuthError("error-auth-1000 Invalid credentials")

    @staticmethod
    def csrf_mismatch() -> "AuthError":
        """The submitted CSRF token is missing or does not match the session."""
        return AuthError("error-auth-1001 CSRF token mismatch")


class StoreError(SnipperError):
    """
    Exception raised when the database or session store fails.

    Attributes:
        transient: True when the failure was a timeout or lost connection and
            the request may succeed if retried.
    """

    def __init__(self, message: str, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient
