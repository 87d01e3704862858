"""Authentication service - orchestrates phone + OTP auth flows."""

import logging
from typing import Any, Callable
from uuid import UUID

from pydantic import ValidationError

from auth.config import AuthConfig
from auth.exceptions import (
    AlreadyExistsError,
    AuthError,
    InputValidationError,
    InvalidTokenError,
    RateLimitedError,
    UserNotFoundError,
)
from auth.otp import OTPStore, is_valid_code
from auth.phone import is_valid_phone_number, mask_phone, normalize_phone_number
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.session import SessionManager
from auth.tokens import TokenIssuer
from auth.types import AuthenticatedUser, AuthResult, LoginRequest, OneTimeCode
from core.models.user import UserProfile, UserRegistration
from core.services.user_service import UserService

logger = logging.getLogger(__name__)

INTERNAL_ERROR = "INTERNAL_ERROR"

REQUIRED_REGISTRATION_FIELDS = (
    "name",
    "phone_number",
    "location",
    "preferred_language",
    "user_type",
)


def _validation_message(error: ValidationError) -> str:
    parts = []
    for detail in error.errors():
        field = ".".join(str(p) for p in detail["loc"])
        parts.append(f"{field}: {detail['msg']}")
    return "; ".join(parts)


def _with_context(error: AuthError, context: str) -> AuthError:
    """Prefix the message in place; the original type and its fields are kept."""
    error.args = (f"{context}: {error}",)
    return error


class AuthService:
    """Orchestrates phone + OTP authentication.

    Handles:
    - OTP request and resend
    - Login and registration (OTP verification, tokens, session)
    - Phone number change (both numbers proven, all sessions revoked)
    - Logout, logout everywhere, token refresh
    - Token and session validation for the request middleware

    Every public method returns an AuthResult and never raises. Typed
    AuthError failures become tagged results; anything else is logged and
    reported as INTERNAL_ERROR.
    """

    def __init__(
        self,
        config: AuthConfig,
        otp_store: OTPStore,
        token_issuer: TokenIssuer,
        session_manager: SessionManager,
        user_service: UserService,
        security_logger: SecurityLogger,
    ):
        self._config = config
        self._otp_store = otp_store
        self._token_issuer = token_issuer
        self._session_manager = session_manager
        self._user_service = user_service
        self._security_logger = security_logger

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _run(self, flow: str, action: Callable[[], AuthResult]) -> AuthResult:
        try:
            return action()
        except AuthError as e:
            logger.info(f"{flow} rejected: {e.code}")
            return AuthResult.fail(
                e.code,
                str(e),
                retry_after_seconds=getattr(e, "retry_after_seconds", None),
            )
        except Exception:
            logger.exception(f"{flow} failed")
            return AuthResult.fail(INTERNAL_ERROR, "An internal error occurred")

    @staticmethod
    def _normalize(phone_number: Any) -> str:
        """Normalize and validate, raising InputValidationError on bad shape."""
        if not isinstance(phone_number, str):
            raise InputValidationError("Invalid phone number format")
        normalized = normalize_phone_number(phone_number.strip())
        if not is_valid_phone_number(normalized):
            raise InputValidationError("Invalid phone number format")
        return normalized

    def _verify_code(
        self,
        phone_number: str,
        code: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> OneTimeCode:
        if not is_valid_code(code):
            raise InputValidationError("Invalid OTP format. Expected 6 digits.")

        try:
            record = self._otp_store.verify(phone_number, code)
        except AuthError as e:
            self._security_logger.log(
                SecurityEvent.OTP_FAILED,
                phone_number=phone_number,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"reason": e.code},
            )
            raise

        self._security_logger.log(
            SecurityEvent.OTP_VERIFIED,
            phone_number=phone_number,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return record

    def _start_session(
        self,
        user: UserProfile,
        ip_address: str | None,
        user_agent: str | None,
    ) -> AuthenticatedUser:
        tokens = self._token_issuer.issue(user)
        session = self._session_manager.create_session(user.id)

        self._security_logger.log(
            SecurityEvent.SESSION_CREATED,
            phone_number=user.phone_number,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return AuthenticatedUser(user=user, tokens=tokens, session=session)

    # -------------------------------------------------------------------------
    # OTP
    # -------------------------------------------------------------------------

    def request_otp(
        self,
        phone_number: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthResult:
        """Send a one-time code to the phone.

        Success data: {"otp_id": str}
        """

        def flow() -> AuthResult:
            phone = self._normalize(phone_number)
            try:
                record = self._otp_store.send(phone)
            except RateLimitedError:
                self._security_logger.log(
                    SecurityEvent.RATE_LIMITED,
                    phone_number=phone,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    details={"flow": "request_otp"},
                )
                raise

            self._security_logger.log(
                SecurityEvent.OTP_REQUESTED,
                phone_number=phone,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return AuthResult.ok({"otp_id": str(record.id)}, "OTP sent successfully")

        return self._run("request_otp", flow)

    def resend_otp(
        self,
        phone_number: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthResult:
        """Invalidate pending codes and send a fresh one.

        Success data: {"otp_id": str}
        """

        def flow() -> AuthResult:
            phone = self._normalize(phone_number)
            try:
                record = self._otp_store.resend(phone)
            except RateLimitedError:
                self._security_logger.log(
                    SecurityEvent.RATE_LIMITED,
                    phone_number=phone,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    details={"flow": "resend_otp"},
                )
                raise

            self._security_logger.log(
                SecurityEvent.OTP_RESENT,
                phone_number=phone,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return AuthResult.ok({"otp_id": str(record.id)}, "OTP resent successfully")

        return self._run("resend_otp", flow)

    # -------------------------------------------------------------------------
    # Login / registration
    # -------------------------------------------------------------------------

    def verify_otp(
        self,
        phone_number: str,
        code: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthResult:
        """Log an existing user in with a one-time code.

        Flow:
        1. Normalize and validate phone
        2. Verify (and consume) the code
        3. Look up user; unknown numbers are told to register
        4. Issue tokens and create a session

        Success data: AuthenticatedUser
        """

        def flow() -> AuthResult:
            phone = self._normalize(phone_number)
            self._verify_code(phone, code, ip_address, user_agent)

            user = self._user_service.get_by_phone(phone)
            if user is None:
                self._security_logger.log(
                    SecurityEvent.LOGIN_FAILED,
                    phone_number=phone,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    details={"reason": "user_not_found"},
                )
                raise UserNotFoundError("User not found. Please register first.")

            authenticated = self._start_session(user, ip_address, user_agent)
            self._security_logger.log(
                SecurityEvent.LOGIN_SUCCEEDED,
                phone_number=phone,
                user_id=user.id,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            logger.info(f"User {user.id} logged in from {mask_phone(phone)}")
            return AuthResult.ok(authenticated, "Login successful")

        return self._run("verify_otp", flow)

    def login(
        self,
        request: LoginRequest,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthResult:
        """Same as verify_otp, taking the request model."""
        return self.verify_otp(request.phone_number, request.otp, ip_address, user_agent)

    def register(
        self,
        user_data: dict[str, Any],
        code: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthResult:
        """Create an account for a phone number proven with a one-time code.

        Flow:
        1. Check required fields, normalize and validate phone
        2. Validate the rest of the profile
        3. Verify (and consume) the code
        4. Reject numbers that already have an account
        5. Create user, issue tokens, create session

        Success data: AuthenticatedUser
        """

        def flow() -> AuthResult:
            missing = [f for f in REQUIRED_REGISTRATION_FIELDS if not user_data.get(f)]
            if missing:
                raise InputValidationError(
                    f"Missing required fields: {', '.join(missing)}"
                )

            phone = self._normalize(user_data["phone_number"])
            try:
                registration = UserRegistration.model_validate(
                    {**user_data, "phone_number": phone}
                )
            except ValidationError as e:
                raise InputValidationError(_validation_message(e)) from e

            self._verify_code(phone, code, ip_address, user_agent)

            if self._user_service.get_by_phone(phone) is not None:
                raise AlreadyExistsError("User with this phone number already exists")

            user = self._user_service.create(registration)
            self._security_logger.log(
                SecurityEvent.USER_REGISTERED,
                phone_number=phone,
                user_id=user.id,
                ip_address=ip_address,
                user_agent=user_agent,
            )

            authenticated = self._start_session(user, ip_address, user_agent)
            return AuthResult.ok(authenticated, "Registration successful")

        return self._run("register", flow)

    def change_phone_number(
        self,
        user_id: UUID,
        old_phone_number: str,
        new_phone_number: str,
        old_code: str,
        new_code: str,
    ) -> AuthResult:
        """Move an account to a new phone number.

        Both numbers must pass their own OTP check. On success every
        session of the user is revoked so all devices must log in again.

        Success data: {"user": UserProfile, "sessions_revoked": int}
        """

        def flow() -> AuthResult:
            old_phone = self._normalize(old_phone_number)
            new_phone = self._normalize(new_phone_number)

            user = self._user_service.get_by_id(user_id)
            if user is None:
                raise UserNotFoundError("User not found")
            if user.phone_number != old_phone:
                raise InputValidationError("Old phone number does not match this account")
            if old_phone == new_phone:
                raise InputValidationError("New phone number must be different")

            try:
                self._verify_code(old_phone, old_code)
            except AuthError as e:
                raise _with_context(e, "Old phone verification failed")

            try:
                self._verify_code(new_phone, new_code)
            except AuthError as e:
                raise _with_context(e, "New phone verification failed")

            existing = self._user_service.get_by_phone(new_phone)
            if existing is not None and existing.id != user_id:
                raise AlreadyExistsError("New phone number is already in use")

            updated = self._user_service.update_phone_number(user_id, new_phone)
            revoked = self._session_manager.revoke_all(user_id)

            self._security_logger.log(
                SecurityEvent.PHONE_CHANGED,
                phone_number=new_phone,
                user_id=user_id,
                details={"old_phone_number": old_phone, "sessions_revoked": revoked},
            )
            return AuthResult.ok(
                {"user": updated, "sessions_revoked": revoked},
                "Phone number changed successfully. Please login again.",
            )

        return self._run("change_phone_number", flow)

    # -------------------------------------------------------------------------
    # Sessions and tokens
    # -------------------------------------------------------------------------

    def logout(self, session_token: str, ip_address: str | None = None) -> AuthResult:
        """Revoke one session. Succeeds for unknown tokens too."""

        def flow() -> AuthResult:
            session = self._session_manager.get_session(session_token)
            self._session_manager.revoke_session(session_token)

            self._security_logger.log(
                SecurityEvent.SESSION_REVOKED,
                user_id=session.user_id if session else None,
                ip_address=ip_address,
            )
            return AuthResult.ok(message="Logged out successfully")

        return self._run("logout", flow)

    def logout_all(self, user_id: UUID, ip_address: str | None = None) -> AuthResult:
        """Revoke every session of the user.

        Success data: {"sessions_revoked": int}
        """

        def flow() -> AuthResult:
            revoked = self._session_manager.revoke_all(user_id)
            self._security_logger.log(
                SecurityEvent.ALL_SESSIONS_REVOKED,
                user_id=user_id,
                ip_address=ip_address,
                details={"sessions_revoked": revoked},
            )
            return AuthResult.ok(
                {"sessions_revoked": revoked}, "Logged out from all devices"
            )

        return self._run("logout_all", flow)

    def refresh(self, refresh_token: str) -> AuthResult:
        """Issue a new token pair from a refresh token.

        Sessions are not touched; they live independently of tokens.

        Success data: TokenPair
        """

        def flow() -> AuthResult:
            payload = self._token_issuer.verify_refresh(refresh_token)
            if payload is None:
                raise InvalidTokenError("Invalid or expired token")

            user = self._user_service.get_by_id(payload.user_id)
            if user is None:
                raise UserNotFoundError("User not found")

            tokens = self._token_issuer.issue(user)
            self._security_logger.log(SecurityEvent.TOKEN_REFRESHED, user_id=user.id)
            return AuthResult.ok(tokens)

        return self._run("refresh", flow)

    def validate_jwt(self, access_token: str) -> AuthResult:
        """Resolve an access token to its user.

        Success data: UserProfile
        """

        def flow() -> AuthResult:
            payload = self._token_issuer.verify_access(access_token)
            if payload is None:
                raise InvalidTokenError("Invalid or expired token")

            user = self._user_service.get_by_id(payload.user_id)
            if user is None:
                raise UserNotFoundError("User not found")
            return AuthResult.ok(user)

        return self._run("validate_jwt", flow)

    def validate_session(self, session_token: str) -> AuthResult:
        """Resolve a session token to its user.

        Success data: UserProfile
        """

        def flow() -> AuthResult:
            return AuthResult.ok(self._session_manager.validate_session(session_token))

        return self._run("validate_session", flow)

    def get_auth_status(self, access_token: str) -> AuthResult:
        """Current user, active session count and token expiry.

        Success data: {"user", "session_count", "token_expiry"}
        """

        def flow() -> AuthResult:
            validated = self.validate_jwt(access_token)
            if not validated.success:
                return validated

            user = validated.data
            return AuthResult.ok({
                "user": user,
                "session_count": self._session_manager.count_active(user.id),
                "token_expiry": self._token_issuer.get_expiration(access_token),
            })

        return self._run("get_auth_status", flow)
