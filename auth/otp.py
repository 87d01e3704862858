"""One-time code issue and verification.

Per phone number: NONE -> REQUESTED -> VERIFIED | EXPIRED | INVALIDATED.

Records are written to otp_codes and mirrored into the cache at
otp:<phone> for the length of their validity. The cache is only an
accelerator; verification always falls back to the durable record.
"""

import logging
import math
import re
import secrets
from datetime import timedelta
from uuid import UUID

from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.exceptions import (
    CodeDeliveryError,
    CodeExpiredError,
    InvalidCodeError,
    RateLimitedError,
    TooManyAttemptsError,
)
from auth.phone import mask_phone
from auth.rate_limiter import RateLimiter
from auth.types import OneTimeCode
from clients.cache import CacheClient
from clients.errors import StoreError
from clients.sms_client import SmsGatewayClient, SmsGatewayError
from utils.timezone import now_utc, parse_iso

logger = logging.getLogger(__name__)

CODE_MIN = 100000
CODE_MAX = 999999
CODE_PATTERN = re.compile(r"[0-9]{6}")


def generate_code() -> str:
    """Uniform 6-digit code from the OS CSPRNG."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


def is_valid_code(code: object) -> bool:
    """Exactly six ASCII digits. Unicode digits are rejected."""
    return isinstance(code, str) and CODE_PATTERN.fullmatch(code) is not None


def _minutes(seconds: int) -> int:
    return max(math.ceil(seconds / 60), 1)


class OTPStore:
    """Issues, delivers and verifies one-time codes."""

    SEND = "send"
    RESEND = "resend"
    ATTEMPTS = "attempts"

    def __init__(
        self,
        auth_db: AuthDatabase,
        cache: CacheClient,
        rate_limiter: RateLimiter,
        config: AuthConfig,
        sms_client: SmsGatewayClient | None = None,
    ):
        if config.is_production and sms_client is None:
            raise ValueError("An SMS client is required in production")

        self._auth_db = auth_db
        self._cache = cache
        self._rate_limiter = rate_limiter
        self._config = config
        self._sms_client = sms_client

    def _key(self, phone_number: str) -> str:
        return f"{self._config.otp_key_prefix}{phone_number}"

    def send(self, phone_number: str) -> OneTimeCode:
        """Issue a new code and deliver it.

        Flow:
        1. Check the send limit
        2. Generate code, persist it, mirror it into the cache
        3. Count the send and give the new code fresh verify attempts
        4. Deliver by SMS (production) or log it (elsewhere)

        Raises:
            RateLimitedError: Send limit reached.
            CodeDeliveryError: SMS gateway rejected the message.
        """
        window = self._config.otp_send_window_minutes * 60
        decision = self._rate_limiter.check_allowed(
            self.SEND, phone_number, self._config.otp_send_limit, window
        )
        if not decision.allowed:
            raise RateLimitedError(
                retry_after_seconds=decision.retry_after_seconds,
                message=(
                    "Too many OTP requests. Please try again after "
                    f"{_minutes(decision.retry_after_seconds)} minutes."
                ),
            )

        code = generate_code()
        expires_at = now_utc() + timedelta(minutes=self._config.otp_expiry_minutes)
        record = self._auth_db.create_otp(phone_number, code, expires_at)

        try:
            self._cache.set_json(
                self._key(phone_number),
                {
                    "code": code,
                    "otp_id": str(record.id),
                    "expires_at": expires_at.isoformat(),
                },
                expire_seconds=self._config.otp_expiry_seconds,
            )
        except StoreError as e:
            logger.warning(f"OTP cache write failed for {mask_phone(phone_number)}: {e}")

        self._rate_limiter.record_attempt(self.SEND, phone_number, window)
        self._rate_limiter.reset(self.ATTEMPTS, phone_number)

        self._deliver(record)
        return record

    def _deliver(self, record: OneTimeCode) -> None:
        if not self._config.is_production:
            logger.info(
                f"OTP for {record.phone_number}: {record.code} (ID: {record.id})"
            )
            return

        try:
            self._sms_client.send_otp(
                record.phone_number, record.code, self._config.otp_expiry_minutes
            )
        except SmsGatewayError as e:
            logger.error(f"OTP delivery to {mask_phone(record.phone_number)} failed: {e}")
            raise CodeDeliveryError("Failed to send OTP") from e

    def verify(self, phone_number: str, code: str) -> OneTimeCode:
        """Check a code and consume it.

        Raises:
            TooManyAttemptsError: Failed-attempt limit reached; store untouched.
            InvalidCodeError: No pending code matches.
            CodeExpiredError: The pending code is past expiry.
        """
        window = self._config.otp_expiry_seconds
        decision = self._rate_limiter.check_allowed(
            self.ATTEMPTS, phone_number, self._config.otp_max_attempts, window
        )
        if not decision.allowed:
            raise TooManyAttemptsError(
                "Too many failed attempts. Please request a new OTP."
            )

        if not is_valid_code(code):
            self._rate_limiter.record_attempt(self.ATTEMPTS, phone_number, window)
            raise InvalidCodeError("Invalid OTP")

        record = self._find_active(phone_number, code)
        now = now_utc()

        if record is None:
            self._rate_limiter.record_attempt(self.ATTEMPTS, phone_number, window)
            latest = self._auth_db.find_latest_unverified_otp(phone_number)
            if latest is not None and now > latest.expires_at:
                raise CodeExpiredError("OTP has expired. Please request a new one.")
            raise InvalidCodeError("Invalid OTP")

        if now > record.expires_at:
            self._rate_limiter.record_attempt(self.ATTEMPTS, phone_number, window)
            raise CodeExpiredError("OTP has expired. Please request a new one.")

        self._auth_db.mark_otp_verified(record.id)
        self._cache.delete(self._key(phone_number))
        self._rate_limiter.reset(self.ATTEMPTS, phone_number)

        logger.info(f"OTP verified for {mask_phone(phone_number)}")
        return record.model_copy(update={"verified": True})

    def _find_active(self, phone_number: str, code: str) -> OneTimeCode | None:
        """Read-through lookup: cache mirror first, then the durable record."""
        try:
            cached = self._cache.get_json(self._key(phone_number))
        except (StoreError, ValueError) as e:
            logger.warning(f"OTP cache read failed, using database: {e}")
            cached = None

        if (
            cached
            and secrets.compare_digest(cached["code"], code)
            and parse_iso(cached["expires_at"]) > now_utc()
        ):
            record = self._auth_db.get_otp(UUID(cached["otp_id"]))
            if record is not None and not record.verified:
                return record

        return self._auth_db.find_latest_unverified_otp(phone_number, code)

    def resend(self, phone_number: str) -> OneTimeCode:
        """Invalidate pending codes and send a new one.

        Raises:
            RateLimitedError: Resend or send limit reached.
            CodeDeliveryError: SMS gateway rejected the message.
        """
        window = self._config.otp_resend_window_minutes * 60
        decision = self._rate_limiter.check_allowed(
            self.RESEND, phone_number, self._config.otp_resend_limit, window
        )
        if not decision.allowed:
            raise RateLimitedError(
                retry_after_seconds=decision.retry_after_seconds,
                message=(
                    "Too many OTP resend requests. Please try again after "
                    f"{_minutes(decision.retry_after_seconds)} minutes."
                ),
            )

        invalidated = self._auth_db.invalidate_unverified_otps(phone_number)
        self._cache.delete(self._key(phone_number))
        self._rate_limiter.record_attempt(self.RESEND, phone_number, window)
        logger.debug(f"Invalidated {invalidated} pending OTPs for {mask_phone(phone_number)}")

        return self.send(phone_number)

    def cleanup(self) -> int:
        """Delete expired codes. Never raises; returns 0 on failure."""
        try:
            deleted = self._auth_db.delete_expired_otps()
        except Exception:
            logger.exception("OTP cleanup failed")
            return 0

        if deleted:
            logger.info(f"Cleaned up {deleted} expired OTPs")
        return deleted
