"""Typed exceptions for auth failures.

Each carries a machine-readable code. AuthService converts them into
AuthResult failures; the HTTP layer maps codes to status codes.
"""


class AuthError(Exception):
    """Base class for authentication/authorization errors."""

    code = "AUTH_ERROR"


class InputValidationError(AuthError):
    """Malformed input (phone number shape, missing fields, bad code format)."""

    code = "VALIDATION_ERROR"


class RateLimitedError(AuthError):
    """Too many requests. Client should wait before retrying."""

    code = "RATE_LIMITED"

    def __init__(self, retry_after_seconds: int, message: str | None = None):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            message or f"Rate limited. Retry after {retry_after_seconds} seconds."
        )


class InvalidCodeError(AuthError):
    """No active one-time code matches."""

    code = "INVALID_CODE"


class CodeExpiredError(AuthError):
    """One-time code matched but is past its expiry."""

    code = "CODE_EXPIRED"


class TooManyAttemptsError(AuthError):
    """Too many failed verifications. A new code must be requested."""

    code = "TOO_MANY_ATTEMPTS"


class UserNotFoundError(AuthError):
    """No user account for the phone number or id."""

    code = "USER_NOT_FOUND"


class AlreadyExistsError(AuthError):
    """Phone number already belongs to an account."""

    code = "ALREADY_EXISTS"


class SessionExpiredError(AuthError):
    """Session has expired and user must re-authenticate."""

    code = "SESSION_EXPIRED"


class SessionInvalidError(AuthError):
    """Session token unknown, revoked, or its user no longer exists."""

    code = "SESSION_INVALID"


class InvalidTokenError(AuthError):
    """Access or refresh token is invalid or expired."""

    code = "INVALID_TOKEN"


class CodeDeliveryError(AuthError):
    """The one-time code could not be delivered to the phone."""

    code = "DELIVERY_FAILED"
