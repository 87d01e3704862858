"""Signed access/refresh token pairs (HS256 JWT).

Both tokens carry {sub, phone_number, user_type}; refresh tokens add
type="refresh". Verification failures return None. Whether a token was
expired or malformed is only visible in debug logs.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from pydantic import ValidationError

from auth.config import AuthConfig
from auth.types import TokenPair, TokenPayload
from core.models.user import UserProfile
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
REFRESH_TYPE = "refresh"


class TokenIssuer:
    """Mints and verifies token pairs. Stateless apart from config."""

    def __init__(self, config: AuthConfig):
        self._config = config

    def _encode(self, claims: dict[str, Any], lifetime: timedelta) -> str:
        now = now_utc()
        payload = {
            **claims,
            "iat": now,
            "exp": now + lifetime,
            "iss": self._config.jwt_issuer,
            "aud": self._config.jwt_audience,
        }
        return jwt.encode(payload, self._config.jwt_secret, algorithm=ALGORITHM)

    def issue(self, user: UserProfile) -> TokenPair:
        """Sign an access token and a refresh token for the user."""
        claims = {
            "sub": str(user.id),
            "phone_number": user.phone_number,
            "user_type": user.user_type.value,
        }
        access_lifetime = timedelta(hours=self._config.access_token_expiry_hours)

        return TokenPair(
            access_token=self._encode(claims, access_lifetime),
            refresh_token=self._encode(
                {**claims, "type": REFRESH_TYPE},
                timedelta(days=self._config.refresh_token_expiry_days),
            ),
            expires_in=int(access_lifetime.total_seconds()),
        )

    def _decode(self, token: str) -> TokenPayload | None:
        try:
            claims = jwt.decode(
                token,
                self._config.jwt_secret,
                algorithms=[ALGORITHM],
                issuer=self._config.jwt_issuer,
                audience=self._config.jwt_audience,
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            logger.debug("Token expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.debug(f"Token invalid: {e}")
            return None

        try:
            return TokenPayload(
                user_id=claims["sub"],
                phone_number=claims["phone_number"],
                user_type=claims["user_type"],
                type=claims.get("type"),
            )
        except (KeyError, ValidationError) as e:
            logger.debug(f"Token claims malformed: {e}")
            return None

    def verify_access(self, token: str) -> TokenPayload | None:
        """Verify an access token. Refresh tokens are rejected."""
        payload = self._decode(token)
        if payload is None:
            return None
        if payload.type == REFRESH_TYPE:
            logger.debug("Refresh token presented as access token")
            return None
        return payload

    def verify_refresh(self, token: str) -> TokenPayload | None:
        """Verify a refresh token. Access tokens are rejected."""
        payload = self._decode(token)
        if payload is None:
            return None
        if payload.type != REFRESH_TYPE:
            logger.debug("Access token presented as refresh token")
            return None
        return payload.model_copy(update={"type": None})

    @staticmethod
    def get_expiration(token: str) -> datetime | None:
        """Expiry claim without verifying the signature. None if unreadable."""
        try:
            claims = jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError:
            return None
        exp = claims.get("exp")
        if exp is None:
            return None
        return datetime.fromtimestamp(exp, tz=timezone.utc)

    def is_expired(self, token: str) -> bool:
        expiration = self.get_expiration(token)
        return expiration is None or expiration <= now_utc()

    @staticmethod
    def extract_bearer_token(header: str | None) -> str | None:
        """Token from an 'Authorization: Bearer <token>' header value."""
        if not header:
            return None
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return None
        return token.strip()
