"""
User account service.

Owns the users table. The auth core reads, creates and updates accounts
through this service; accounts are never deleted here.
"""

import logging
from typing import Any
from uuid import UUID, uuid4

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from core.models import Location, UserProfile, UserRegistration, UserUpdate
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = {"name", "location", "preferred_language", "user_type"}

DEFAULT_REPUTATION = 0.0


def user_from_row(row: dict[str, Any]) -> UserProfile:
    """Map a users row to UserProfile. Raises KeyError on a missing column."""
    return UserProfile(
        id=row["id"],
        name=row["name"],
        phone_number=row["phone_number"],
        location=Location.model_validate(row["location"]),
        preferred_language=row["preferred_language"],
        user_type=row["user_type"],
        reputation_score=float(row["reputation_score"]),
        is_verified=row["is_verified"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        last_active=row["last_active"],
    )


class UserService:
    """Service for user account operations."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def create(self, data: UserRegistration, is_verified: bool = True) -> UserProfile:
        """
        Create a user account.

        Registration only happens after the phone number passed OTP
        verification, so new accounts start verified.
        """
        now = now_utc()
        row = self.postgres.execute_returning(
            """
            INSERT INTO users (
                id, name, phone_number, location, preferred_language, user_type,
                reputation_score, is_verified, created_at, updated_at, last_active
            ) VALUES (
                %s, %s, %s, %s, %s, %s,
                %s, %s, %s, %s, %s
            )
            RETURNING *
            """,
            (
                uuid4(), data.name, data.phone_number,
                Json(data.location.model_dump(mode="json", exclude_none=True)),
                data.preferred_language.value, data.user_type.value,
                DEFAULT_REPUTATION, is_verified, now, now, now,
            ),
        )[0]

        user = user_from_row(row)
        logger.info(f"Created user {user.id}")
        return user

    def get_by_id(self, user_id: UUID) -> UserProfile | None:
        row = self.postgres.execute_single(
            "SELECT * FROM users WHERE id = %s",
            (user_id,),
        )
        return user_from_row(row) if row else None

    def get_by_phone(self, phone_number: str) -> UserProfile | None:
        """Find user by normalized phone number."""
        row = self.postgres.execute_single(
            "SELECT * FROM users WHERE phone_number = %s",
            (phone_number,),
        )
        return user_from_row(row) if row else None

    def update(self, user_id: UUID, data: UserUpdate) -> UserProfile:
        """
        Update profile fields.

        Raises:
            ValueError: If user not found
        """
        current = self.get_by_id(user_id)
        if current is None:
            raise ValueError(f"User {user_id} not found")

        updates = data.model_dump(mode="json", exclude_none=True)
        valid_updates = {k: v for k, v in updates.items() if k in _UPDATABLE_COLUMNS}
        if not valid_updates:
            return current

        set_parts = []
        params = []
        for field, value in valid_updates.items():
            set_parts.append(f"{field} = %s")
            params.append(Json(value) if field == "location" else value)

        set_parts.append("updated_at = %s")
        params.append(now_utc())
        params.append(user_id)

        row = self.postgres.execute_returning(
            f"""
            UPDATE users
            SET {', '.join(set_parts)}
            WHERE id = %s
            RETURNING *
            """,
            tuple(params),
        )[0]

        return user_from_row(row)

    def update_phone_number(self, user_id: UUID, phone_number: str) -> UserProfile:
        """
        Replace the account's phone number.

        Raises:
            ValueError: If user not found
        """
        rows = self.postgres.execute_returning(
            """
            UPDATE users
            SET phone_number = %s, updated_at = %s
            WHERE id = %s
            RETURNING *
            """,
            (phone_number, now_utc(), user_id),
        )
        if not rows:
            raise ValueError(f"User {user_id} not found")
        return user_from_row(rows[0])

    def touch_last_active(self, user_id: UUID) -> UserProfile | None:
        """Set last_active to now. Returns the updated user, None if absent."""
        rows = self.postgres.execute_returning(
            "UPDATE users SET last_active = %s WHERE id = %s RETURNING *",
            (now_utc(), user_id),
        )
        return user_from_row(rows[0]) if rows else None
