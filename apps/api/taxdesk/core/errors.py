"""Service error taxonomy.

Services raise these; the API layer maps each class to a status code.
"""


class ServiceError(Exception):
    """Base exception for service errors surfaced to callers."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ServiceError):
    """Bad input shape or policy violation (user-correctable)."""

    status_code = 400
    default_message = "Invalid request"


class NotFoundError(ServiceError):
    """Token or id does not resolve."""

    status_code = 404
    default_message = "Not found"


class ConflictError(ServiceError):
    """State machine violation (e.g. uploading an item twice)."""

    status_code = 409
    default_message = "Conflict"


class ExpiredError(ServiceError):
    """Time-based terminal state reached."""

    status_code = 410
    default_message = "This link has expired"


class TransportError(ServiceError):
    """Email/SMS provider failure. Retryable."""

    status_code = 502
    default_message = "Message delivery failed"


class UnexpectedError(ServiceError):
    """Catch-all. Logged server-side, opaque to the caller."""

    status_code = 500
