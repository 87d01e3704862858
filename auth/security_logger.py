"""Security event logging for auth audit trail.

Append-only log to the security_events table. A failed audit write is
logged and does not abort the auth flow that triggered it.
"""

import logging
from enum import Enum
from typing import Any
from uuid import UUID

from psycopg2.extras import Json

from clients.errors import StoreError
from clients.postgres_client import PostgresClient
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class SecurityEvent(Enum):
    """Auth security event types."""

    OTP_REQUESTED = "otp_requested"
    OTP_RESENT = "otp_resent"
    OTP_VERIFIED = "otp_verified"
    OTP_FAILED = "otp_failed"
    RATE_LIMITED = "rate_limited"
    USER_REGISTERED = "user_registered"
    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"
    SESSION_CREATED = "session_created"
    SESSION_EXPIRED = "session_expired"
    SESSION_REVOKED = "session_revoked"
    ALL_SESSIONS_REVOKED = "all_sessions_revoked"
    PHONE_CHANGED = "phone_changed"
    TOKEN_REFRESHED = "token_refreshed"


class SecurityLogger:
    """Append-only security event logger."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def log(
        self,
        event: SecurityEvent,
        phone_number: str | None = None,
        user_id: UUID | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Log security event to database."""
        try:
            self._db.execute_returning(
                """INSERT INTO security_events
                   (event_type, phone_number, user_id, ip_address, user_agent, details, created_at)
                   VALUES (%s, %s, %s, %s, %s, %s, %s)
                   RETURNING id""",
                (
                    event.value,
                    phone_number,
                    str(user_id) if user_id else None,
                    ip_address,
                    user_agent,
                    Json(details) if details else None,
                    now_utc(),
                ),
            )
        except StoreError as e:
            logger.error(f"Failed to record security event {event.value}: {e}")

    def get_recent_events(
        self,
        phone_number: str | None = None,
        user_id: UUID | None = None,
        event_type: SecurityEvent | None = None,
        limit: int = 100,
    ) -> list[dict]:
        """Query recent security events with optional filters."""
        conditions = []
        params = []

        if phone_number:
            conditions.append("phone_number = %s")
            params.append(phone_number)

        if user_id:
            conditions.append("user_id = %s")
            params.append(str(user_id))

        if event_type:
            conditions.append("event_type = %s")
            params.append(event_type.value)

        where_clause = " AND ".join(conditions) if conditions else "1=1"
        params.append(limit)

        return self._db.execute(
            f"""SELECT id, event_type, phone_number, user_id, ip_address, user_agent, details, created_at
                FROM security_events
                WHERE {where_clause}
                ORDER BY created_at DESC
                LIMIT %s""",
            tuple(params),
        )
