"""Phone + OTP authentication: rate limiting, codes, tokens, sessions."""

from auth.exceptions import (
    AuthError,
    AlreadyExistsError,
    CodeDeliveryError,
    CodeExpiredError,
    InputValidationError,
    InvalidCodeError,
    InvalidTokenError,
    RateLimitedError,
    SessionExpiredError,
    SessionInvalidError,
    TooManyAttemptsError,
    UserNotFoundError,
)
from auth.types import (
    AuthenticatedUser,
    AuthResult,
    OneTimeCode,
    RateDecision,
    Session,
    TokenPair,
    TokenPayload,
)
from auth.config import AuthConfig
from auth.phone import normalize_phone_number, is_valid_phone_number, mask_phone
from auth.database import AuthDatabase
from auth.rate_limiter import RateLimiter
from auth.otp import OTPStore
from auth.tokens import TokenIssuer
from auth.security_logger import SecurityLogger, SecurityEvent
from auth.session import SessionManager
from auth.service import AuthService
