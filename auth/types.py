"""Pydantic models for auth domain."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

from core.models.user import UserProfile, UserType


class OneTimeCode(BaseModel):
    """A one-time code issued to a phone number."""

    id: UUID
    phone_number: str
    code: str = Field(..., pattern=r"^[0-9]{6}$")
    created_at: datetime
    expires_at: datetime
    verified: bool  # Required - fail closed, no default

    model_config = {"from_attributes": True}


class Session(BaseModel):
    """An active user session."""

    id: UUID
    user_id: UUID
    token: str = Field(..., description="Session token (opaque string)")
    created_at: datetime
    expires_at: datetime

    model_config = {"from_attributes": True}


class TokenPayload(BaseModel):
    """Claims carried by access and refresh tokens."""

    user_id: UUID
    phone_number: str
    user_type: UserType
    type: Literal["refresh"] | None = None


class TokenPair(BaseModel):
    """Signed tokens handed to the client. Never persisted."""

    access_token: str
    refresh_token: str
    expires_in: int = Field(..., description="Access token lifetime in seconds")


class AuthenticatedUser(BaseModel):
    """Returned after login or registration."""

    user: UserProfile
    tokens: TokenPair
    session: Session


class PhoneRequest(BaseModel):
    """Request payload naming a phone number."""

    phone_number: str = Field(..., min_length=1, max_length=32)


class LoginRequest(BaseModel):
    """Phone number plus the code sent to it."""

    phone_number: str = Field(..., min_length=1, max_length=32)
    otp: str = Field(..., pattern=r"^[0-9]{6}$")


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class ChangePhoneRequest(BaseModel):
    """Both numbers must be proven with their own codes."""

    old_phone_number: str = Field(..., min_length=1, max_length=32)
    new_phone_number: str = Field(..., min_length=1, max_length=32)
    old_otp: str = Field(..., pattern=r"^[0-9]{6}$")
    new_otp: str = Field(..., pattern=r"^[0-9]{6}$")


@dataclass
class RateDecision:
    """Outcome of a rate-limit check."""

    allowed: bool
    retry_after_seconds: int | None = None


@dataclass
class AuthResult:
    """
    Tagged outcome of an AuthService flow.

    success=True carries data; success=False carries an error code and a
    user-facing message (plus retry_after_seconds for rate limits).
    """

    success: bool
    data: Any = None
    error: str | None = None
    message: str | None = None
    retry_after_seconds: int | None = None

    @classmethod
    def ok(cls, data: Any = None, message: str | None = None) -> "AuthResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(
        cls,
        error: str,
        message: str,
        retry_after_seconds: int | None = None,
    ) -> "AuthResult":
        return cls(
            success=False,
            error=error,
            message=message,
            retry_after_seconds=retry_after_seconds,
        )
