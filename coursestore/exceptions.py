"""
Domain errors raised by the payment and order services.

Each error carries the HTTP status the API layer answers with and a
``status`` label ("fail" for caller mistakes, "error" for server or
upstream faults). The exception handler in ``coursestore.main`` turns
them into JSON responses.
"""


class CourseStoreError(Exception):
    status_code = 500
    status = "error"
    default_message = "An unexpected error occurred"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(CourseStoreError):
    status_code = 400
    status = "fail"
    default_message = "Invalid request"


class SignatureError(ValidationError):
    default_message = "Invalid signature"


class NotFoundError(CourseStoreError):
    status_code = 404
    status = "fail"
    default_message = "Resource not found"


class AuthorizationError(CourseStoreError):
    status_code = 403
    status = "fail"
    default_message = "Not authorized"


class ConflictError(CourseStoreError):
    status_code = 409
    status = "fail"
    default_message = "Conflicting order state"


class ConcurrentUpdateError(ConflictError):
    """Another writer changed the row between our read and our write.

    Only this conflict is worth retrying: the retry reads the winner's
    state. Every other ConflictError is a genuine business rule refusal.
    """

    default_message = "Order changed concurrently"


class ProviderError(CourseStoreError):
    """Upstream payment network failure.

    ``retryable`` separates transient faults (timeouts, connection resets,
    provider 5xx, rate limits) from terminal ones (declined, invalid
    request). Timeouts answer 504, everything else 502.
    """

    status_code = 502
    default_message = "Payment provider request failed"
    public_message = "Payment could not be processed"

    def __init__(self, message: str | None = None, *, retryable: bool = False, timeout: bool = False):
        super().__init__(message)
        self.retryable = retryable or timeout
        self.timeout = timeout
        if timeout:
            self.status_code = 504
