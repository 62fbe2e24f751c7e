"""Custom exceptions for the outreach sequencer."""


class OutreachException(Exception):
    """Base exception for the outreach sequencer."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code.

        Args:
            message: Exception message
            status_code: HTTP status code
        """
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(OutreachException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize NotFoundError with 404 status code."""
        super().__init__(message, 404)


class ValidationError(OutreachException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation failed"):
        """Initialize ValidationError with 422 status code."""
        super().__init__(message, 422)


class StoreUnavailableError(OutreachException):
    """The enrollment store could not be read.

    Raised before any enrollment is touched, so the whole pass can be
    retried on the next trigger.
    """

    def __init__(self, message: str = "Enrollment store unavailable"):
        """Initialize StoreUnavailableError with 503 status code."""
        super().__init__(message, 503)
