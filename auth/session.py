"""Session lifecycle management.

Sessions are written to the sessions table and mirrored into the cache at
session:<token> with a TTL matching their remaining lifetime. Each user's
tokens are also tracked in the set user_sessions:<user_id> so all of them
can be revoked at once. get_session() is the only read path and falls back
to the table whenever the cache has nothing.
"""

import logging
import secrets
from datetime import timedelta
from uuid import UUID

from clients.cache import CacheClient
from clients.errors import StoreError
from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.types import Session
from auth.exceptions import SessionExpiredError, SessionInvalidError
from core.models.user import UserProfile
from core.services.user_service import UserService
from utils.timezone import now_utc, parse_iso, seconds_until

logger = logging.getLogger(__name__)


class SessionManager:
    """Session token lifecycle management.

    Tokens are opaque (secrets.token_urlsafe). A user may hold several
    sessions at once, one per device.
    """

    def __init__(
        self,
        auth_db: AuthDatabase,
        cache: CacheClient,
        user_service: UserService,
        config: AuthConfig,
    ):
        self._auth_db = auth_db
        self._cache = cache
        self._user_service = user_service
        self._config = config

    def _key(self, token: str) -> str:
        return f"{self._config.session_key_prefix}{token}"

    def _user_key(self, user_id: UUID | str) -> str:
        return f"{self._config.user_sessions_key_prefix}{user_id}"

    def _mirror(self, session: Session, ttl_seconds: int) -> None:
        self._cache.set_json(
            self._key(session.token),
            {
                "id": str(session.id),
                "user_id": str(session.user_id),
                "created_at": session.created_at.isoformat(),
                "expires_at": session.expires_at.isoformat(),
            },
            expire_seconds=ttl_seconds,
        )

    def create_session(self, user_id: UUID) -> Session:
        """Create, persist and cache a new session for the user."""
        token = secrets.token_urlsafe(32)
        expires_at = now_utc() + timedelta(hours=self._config.session_expiry_hours)

        session = self._auth_db.create_session(user_id, token, expires_at)

        try:
            self._mirror(session, self._config.session_expiry_seconds)
            user_key = self._user_key(user_id)
            self._cache.sadd(user_key, token)
            self._cache.expire(user_key, self._config.session_expiry_seconds)
        except StoreError as e:
            logger.warning(f"Session cache write failed for user {user_id}: {e}")

        logger.info(f"Session created for user {user_id}")
        return session

    def get_session(self, token: str) -> Session | None:
        """Read-through lookup: cache first, then the sessions table.

        A table hit re-populates the cache for the remaining lifetime.
        Expired sessions are returned as-is; callers decide what to do.
        """
        try:
            cached = self._cache.get_json(self._key(token))
        except (StoreError, ValueError) as e:
            logger.warning(f"Session cache read failed, using database: {e}")
            cached = None

        if cached:
            return Session(
                id=UUID(cached["id"]),
                user_id=UUID(cached["user_id"]),
                token=token,
                created_at=parse_iso(cached["created_at"]),
                expires_at=parse_iso(cached["expires_at"]),
            )

        session = self._auth_db.get_session_by_token(token)
        if session is None:
            return None

        remaining = seconds_until(session.expires_at, now_utc())
        if remaining > 0:
            try:
                self._mirror(session, remaining)
            except StoreError as e:
                logger.warning(f"Could not re-cache session: {e}")

        return session

    def validate_session(self, token: str) -> UserProfile:
        """Validate session token and return its user.

        Touches the user's last_active on success.

        Raises:
            SessionInvalidError: Unknown token, or its user no longer exists.
            SessionExpiredError: Past expiry (the session is revoked).
        """
        session = self.get_session(token)
        if session is None:
            raise SessionInvalidError("Invalid session")

        if now_utc() >= session.expires_at:
            self.revoke_session(token)
            raise SessionExpiredError("Session expired")

        user = self._user_service.get_by_id(session.user_id)
        if user is None:
            self.revoke_session(token)
            raise SessionInvalidError("User not found")

        return self._user_service.touch_last_active(user.id) or user

    def revoke_session(self, token: str) -> None:
        """Revoke session (logout). Safe to call with nonexistent token."""
        user_id: UUID | str | None = None

        deleted = self._auth_db.delete_session(token)
        if deleted is not None:
            user_id = deleted.user_id
        else:
            cached = self._cache.get_json(self._key(token))
            if cached:
                user_id = cached["user_id"]

        self._cache.delete(self._key(token))
        if user_id is not None:
            self._cache.srem(self._user_key(user_id), token)

    def revoke_all(self, user_id: UUID) -> int:
        """Revoke every session of the user. Returns how many were revoked."""
        user_key = self._user_key(user_id)
        tokens = self._cache.smembers(user_key)
        tokens.update(self._auth_db.delete_user_sessions(user_id))

        if tokens:
            self._cache.delete(*(self._key(token) for token in tokens))
        self._cache.delete(user_key)

        logger.info(f"Revoked {len(tokens)} sessions for user {user_id}")
        return len(tokens)

    def cleanup_expired(self) -> int:
        """Delete expired sessions everywhere. Never raises; returns 0 on failure."""
        try:
            expired = self._auth_db.delete_expired_sessions()
            for session in expired:
                self._cache.delete(self._key(session.token))
                self._cache.srem(self._user_key(session.user_id), session.token)
        except Exception:
            logger.exception("Session cleanup failed")
            return 0

        if expired:
            logger.info(f"Cleaned up {len(expired)} expired sessions")
        return len(expired)

    def count_active(self, user_id: UUID) -> int:
        return self._auth_db.count_active_sessions(user_id)

    def list_active(self, user_id: UUID) -> list[Session]:
        return self._auth_db.list_active_sessions(user_id)
