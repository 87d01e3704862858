"""Durable storage for one-time codes and sessions.

Tables: otp_codes, sessions. Row-to-model conversion goes through
otp_from_row / session_from_row only.
"""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from auth.types import OneTimeCode, Session
from utils.timezone import now_utc

_OTP_COLUMNS = "id, phone_number, code, created_at, expires_at, verified"
_SESSION_COLUMNS = "id, user_id, token, created_at, expires_at"


def _as_uuid(value: Any) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


def otp_from_row(row: dict[str, Any]) -> OneTimeCode:
    """Map an otp_codes row to OneTimeCode. Raises KeyError on a missing column."""
    return OneTimeCode(
        id=_as_uuid(row["id"]),
        phone_number=row["phone_number"],
        code=row["code"],
        created_at=row["created_at"],
        expires_at=row["expires_at"],
        verified=row["verified"],
    )


def session_from_row(row: dict[str, Any]) -> Session:
    """Map a sessions row to Session. Raises KeyError on a missing column."""
    return Session(
        id=_as_uuid(row["id"]),
        user_id=_as_uuid(row["user_id"]),
        token=row["token"],
        created_at=row["created_at"],
        expires_at=row["expires_at"],
    )


class AuthDatabase:
    """Database operations for authentication."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    # -------------------------------------------------------------------------
    # One-time codes
    # -------------------------------------------------------------------------

    def create_otp(self, phone_number: str, code: str, expires_at: datetime) -> OneTimeCode:
        """Persist a new unverified code."""
        rows = self._db.execute_returning(
            f"""INSERT INTO otp_codes (id, phone_number, code, created_at, expires_at, verified)
                VALUES (%s, %s, %s, %s, %s, false)
                RETURNING {_OTP_COLUMNS}""",
            (uuid4(), phone_number, code, now_utc(), expires_at),
        )
        return otp_from_row(rows[0])

    def get_otp(self, otp_id: UUID) -> OneTimeCode | None:
        row = self._db.execute_single(
            f"SELECT {_OTP_COLUMNS} FROM otp_codes WHERE id = %s",
            (otp_id,),
        )
        return otp_from_row(row) if row else None

    def find_latest_unverified_otp(
        self, phone_number: str, code: str | None = None
    ) -> OneTimeCode | None:
        """Most recent unverified code for the phone, expired or not.

        With code given, only a record holding that code matches.
        """
        if code is None:
            row = self._db.execute_single(
                f"""SELECT {_OTP_COLUMNS} FROM otp_codes
                    WHERE phone_number = %s AND verified = false
                    ORDER BY created_at DESC
                    LIMIT 1""",
                (phone_number,),
            )
        else:
            row = self._db.execute_single(
                f"""SELECT {_OTP_COLUMNS} FROM otp_codes
                    WHERE phone_number = %s AND code = %s AND verified = false
                    ORDER BY created_at DESC
                    LIMIT 1""",
                (phone_number, code),
            )
        return otp_from_row(row) if row else None

    def mark_otp_verified(self, otp_id: UUID) -> None:
        self._db.execute_returning(
            "UPDATE otp_codes SET verified = true WHERE id = %s RETURNING id",
            (otp_id,),
        )

    def invalidate_unverified_otps(self, phone_number: str) -> int:
        """Soft-invalidate every pending code for the number. Returns count."""
        rows = self._db.execute_returning(
            """UPDATE otp_codes SET verified = true
               WHERE phone_number = %s AND verified = false
               RETURNING id""",
            (phone_number,),
        )
        return len(rows)

    def delete_expired_otps(self) -> int:
        """Delete codes past expiry. Returns count deleted."""
        rows = self._db.execute_returning(
            "DELETE FROM otp_codes WHERE expires_at < %s RETURNING id",
            (now_utc(),),
        )
        return len(rows)

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    def create_session(self, user_id: UUID, token: str, expires_at: datetime) -> Session:
        rows = self._db.execute_returning(
            f"""INSERT INTO sessions (id, user_id, token, created_at, expires_at)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING {_SESSION_COLUMNS}""",
            (uuid4(), user_id, token, now_utc(), expires_at),
        )
        return session_from_row(rows[0])

    def get_session_by_token(self, token: str) -> Session | None:
        row = self._db.execute_single(
            f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE token = %s",
            (token,),
        )
        return session_from_row(row) if row else None

    def delete_session(self, token: str) -> Session | None:
        """Delete by token. Returns the deleted session, None if absent."""
        rows = self._db.execute_returning(
            f"DELETE FROM sessions WHERE token = %s RETURNING {_SESSION_COLUMNS}",
            (token,),
        )
        return session_from_row(rows[0]) if rows else None

    def delete_user_sessions(self, user_id: UUID) -> list[str]:
        """Delete every session of a user. Returns the deleted tokens."""
        rows = self._db.execute_returning(
            "DELETE FROM sessions WHERE user_id = %s RETURNING token",
            (user_id,),
        )
        return [row["token"] for row in rows]

    def delete_expired_sessions(self) -> list[Session]:
        """Delete sessions past expiry. Returns what was deleted."""
        rows = self._db.execute_returning(
            f"DELETE FROM sessions WHERE expires_at < %s RETURNING {_SESSION_COLUMNS}",
            (now_utc(),),
        )
        return [session_from_row(row) for row in rows]

    def count_active_sessions(self, user_id: UUID) -> int:
        count = self._db.execute_scalar(
            "SELECT count(*) FROM sessions WHERE user_id = %s AND expires_at > %s",
            (user_id, now_utc()),
        )
        return int(count or 0)

    def list_active_sessions(self, user_id: UUID) -> list[Session]:
        rows = self._db.execute(
            f"""SELECT {_SESSION_COLUMNS} FROM sessions
                WHERE user_id = %s AND expires_at > %s
                ORDER BY created_at DESC""",
            (user_id, now_utc()),
        )
        return [session_from_row(row) for row in rows]
