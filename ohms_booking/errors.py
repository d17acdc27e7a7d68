class BookingError(Exception):
    """Base for everything the booking layer raises."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationError(BookingError):
    """Rejected client-side, nothing was sent."""


class ConflictError(BookingError):
    """Backend refused the change, usually a double booking."""


class SessionExpiredError(BookingError):
    """Token missing, expired or not allowed; the user has to log in again."""


class BackendError(BookingError):
    """Any other backend or transport failure."""


class InvalidTransitionError(BookingError):
    """Approval action not allowed in the request's current state."""


class DuplicateSubmissionError(BookingError):
    """Same mutation is already in flight."""


class NotFoundError(BookingError):
    """Backend has no such appointment or request."""
