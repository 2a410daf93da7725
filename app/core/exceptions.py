from app.core.constants import ErrorKind, GeneralErrorDetails


class AppException(Exception):
    """Base application exception tagged with an error kind."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, data: dict | None = None):
        self.message = str(message)
        self.data = data or {}
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind}, message={self.message!r})"


class ValidationError(AppException):
    """Malformed or missing input. Carries every violated rule."""

    kind = ErrorKind.VALIDATION

    def __init__(self, errors: list[dict], message: str = GeneralErrorDetails.VALIDATION_FAILED):
        self.errors = errors
        super().__init__(message, data={"validation_errors": errors})


class ConflictError(AppException):
    """Raised when the email already belongs to an account."""

    kind = ErrorKind.CONFLICT


class RateLimitError(AppException):
    """Raised when a throttle rejects the request."""

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, message: str, retry_after: int, data: dict | None = None):
        self.retry_after = max(int(retry_after), 1)
        payload = dict(data or {})
        payload["retry_after"] = self.retry_after
        super().__init__(message, data=payload)


class AuthError(AppException):
    """Invalid credentials, token or account state."""

    kind = ErrorKind.AUTH


class NotFoundError(AppException):
    """Record lookup miss. Reported to clients as an auth failure."""

    kind = ErrorKind.NOT_FOUND


class InternalError(AppException):
    """Downstream failure. Message is redacted outside development."""

    kind = ErrorKind.INTERNAL
