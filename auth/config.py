"""Authentication configuration."""

from typing import Literal

from pydantic import BaseModel, Field


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    All durations are in their natural units (minutes for short durations,
    hours or days for longer ones) to make configuration intuitive.
    """

    environment: Literal["development", "test", "production"] = Field(
        default="development",
        description="Outside production, OTP codes are logged instead of sent by SMS",
    )

    # Tokens
    jwt_secret: str = Field(
        ...,
        description="HS256 signing secret",
        min_length=32,
    )
    jwt_issuer: str = Field(default="marketplace-mandi")
    jwt_audience: str = Field(default="marketplace-mandi-users")
    access_token_expiry_hours: int = Field(
        default=168,  # 7 days
        description="Access token lifetime",
        ge=1,
        le=720,
    )
    refresh_token_expiry_days: int = Field(
        default=30,
        description="Refresh token lifetime",
        ge=1,
        le=365,
    )

    # One-time codes
    otp_expiry_minutes: int = Field(
        default=10,
        description="How long a one-time code remains valid",
        ge=1,
        le=60,
    )
    otp_send_limit: int = Field(
        default=3,
        description="Max OTP sends per phone per window",
        ge=1,
        le=20,
    )
    otp_send_window_minutes: int = Field(default=15, ge=1, le=1440)
    otp_resend_limit: int = Field(
        default=2,
        description="Max OTP resends per phone per window",
        ge=1,
        le=20,
    )
    otp_resend_window_minutes: int = Field(default=10, ge=1, le=1440)
    otp_max_attempts: int = Field(
        default=3,
        description="Consecutive failed verifications before a new code is required",
        ge=1,
        le=10,
    )

    # Sessions
    session_expiry_hours: int = Field(
        default=24,
        description="Session lifetime in hours",
        ge=1,
        le=2160,
    )

    # Per-IP throttling of auth endpoints
    ip_rate_limit_attempts: int = Field(default=5, ge=1, le=100)
    ip_rate_limit_window_minutes: int = Field(default=15, ge=1, le=1440)

    # Cache key prefixes
    otp_key_prefix: str = Field(default="otp:")
    session_key_prefix: str = Field(default="session:")
    user_sessions_key_prefix: str = Field(default="user_sessions:")
    rate_limit_key_prefix: str = Field(default="ratelimit:")

    # Background cleanup
    cleanup_interval_minutes: int = Field(default=30, ge=1, le=1440)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def otp_expiry_seconds(self) -> int:
        return self.otp_expiry_minutes * 60

    @property
    def session_expiry_seconds(self) -> int:
        return self.session_expiry_hours * 3600
