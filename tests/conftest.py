"""Shared test fixtures for the marketplace test suite.

Auth components run against in-memory stand-ins for the database-backed
stores (FakeAuthDatabase, FakeUserService) and a MemoryCache driven by the
same frozen clock, so expiry can be tested by moving time forward.
"""

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import Mock
from uuid import UUID, uuid4

import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
# override=True ensures .env takes precedence over shell env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Drop any Vault client built before .env was loaded
import clients.vault_client as vault_module
vault_module.reset()

from auth.config import AuthConfig
from auth.otp import OTPStore
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityLogger
from auth.service import AuthService
from auth.session import SessionManager
from auth.tokens import TokenIssuer
from auth.types import OneTimeCode, Session
from clients.cache import MemoryCache
from core.models import Location, UserProfile, UserRegistration


# =============================================================================
# TEST CONSTANTS
# =============================================================================

TEST_PHONE = "+919876543210"
TEST_PHONE_B = "+918765432109"
TEST_JWT_SECRET = "test-jwt-secret-that-is-at-least-32-chars"

TEST_LOCATION = {"state": "Maharashtra", "district": "Pune", "pincode": "411001"}


# =============================================================================
# CLOCK
# =============================================================================


class FrozenClock:
    """Wall clock for now_utc() and a matching monotonic clock for MemoryCache."""

    def __init__(self, start: datetime):
        self.now = start
        self._origin = start

    def __call__(self) -> datetime:
        return self.now

    def monotonic(self) -> float:
        return (self.now - self._origin).total_seconds()

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock(monkeypatch):
    """Freeze now_utc() for the stores, starting at the current minute.

    Token signing keeps real time because PyJWT checks exp against the
    system clock.
    """
    frozen = FrozenClock(datetime.now(timezone.utc).replace(second=0, microsecond=0))
    for module in ("auth.otp", "auth.session", "auth.database", "jobs.cleanup"):
        monkeypatch.setattr(f"{module}.now_utc", frozen)
    return frozen


# =============================================================================
# IN-MEMORY STORES
# =============================================================================


class FakeAuthDatabase:
    """In-memory AuthDatabase with the same method contract."""

    def __init__(self, clock):
        self._clock = clock
        self.otps: list[OneTimeCode] = []
        self.sessions: dict[str, Session] = {}

    # One-time codes

    def create_otp(self, phone_number: str, code: str, expires_at: datetime) -> OneTimeCode:
        record = OneTimeCode(
            id=uuid4(),
            phone_number=phone_number,
            code=code,
            created_at=self._clock(),
            expires_at=expires_at,
            verified=False,
        )
        self.otps.append(record)
        return record

    def get_otp(self, otp_id: UUID) -> OneTimeCode | None:
        for record in self.otps:
            if record.id == otp_id:
                return record
        return None

    def find_latest_unverified_otp(self, phone_number: str, code: str | None = None):
        for record in reversed(self.otps):
            if record.phone_number != phone_number or record.verified:
                continue
            if code is None or record.code == code:
                return record
        return None

    def _replace_otp(self, otp_id: UUID, **changes) -> None:
        self.otps = [
            record.model_copy(update=changes) if record.id == otp_id else record
            for record in self.otps
        ]

    def mark_otp_verified(self, otp_id: UUID) -> None:
        self._replace_otp(otp_id, verified=True)

    def invalidate_unverified_otps(self, phone_number: str) -> int:
        pending = [
            r for r in self.otps if r.phone_number == phone_number and not r.verified
        ]
        for record in pending:
            self._replace_otp(record.id, verified=True)
        return len(pending)

    def delete_expired_otps(self) -> int:
        now = self._clock()
        before = len(self.otps)
        self.otps = [r for r in self.otps if r.expires_at >= now]
        return before - len(self.otps)

    # Sessions

    def create_session(self, user_id: UUID, token: str, expires_at: datetime) -> Session:
        session = Session(
            id=uuid4(),
            user_id=user_id,
            token=token,
            created_at=self._clock(),
            expires_at=expires_at,
        )
        self.sessions[token] = session
        return session

    def get_session_by_token(self, token: str) -> Session | None:
        return self.sessions.get(token)

    def delete_session(self, token: str) -> Session | None:
        return self.sessions.pop(token, None)

    def delete_user_sessions(self, user_id: UUID) -> list[str]:
        tokens = [t for t, s in self.sessions.items() if s.user_id == user_id]
        for token in tokens:
            del self.sessions[token]
        return tokens

    def delete_expired_sessions(self) -> list[Session]:
        now = self._clock()
        expired = [s for s in self.sessions.values() if s.expires_at < now]
        for session in expired:
            del self.sessions[session.token]
        return expired

    def count_active_sessions(self, user_id: UUID) -> int:
        return len(self.list_active_sessions(user_id))

    def list_active_sessions(self, user_id: UUID) -> list[Session]:
        now = self._clock()
        return [
            s for s in self.sessions.values()
            if s.user_id == user_id and s.expires_at > now
        ]


class FakeUserService:
    """In-memory UserService covering the calls the auth core makes."""

    def __init__(self, clock):
        self._clock = clock
        self.users: dict[UUID, UserProfile] = {}

    def create(self, data: UserRegistration, is_verified: bool = True) -> UserProfile:
        now = self._clock()
        user = UserProfile(
            id=uuid4(),
            name=data.name,
            phone_number=data.phone_number,
            location=data.location,
            preferred_language=data.preferred_language,
            user_type=data.user_type,
            reputation_score=0.0,
            is_verified=is_verified,
            created_at=now,
            updated_at=now,
            last_active=now,
        )
        self.users[user.id] = user
        return user

    def get_by_id(self, user_id: UUID) -> UserProfile | None:
        return self.users.get(user_id)

    def get_by_phone(self, phone_number: str) -> UserProfile | None:
        for user in self.users.values():
            if user.phone_number == phone_number:
                return user
        return None

    def update_phone_number(self, user_id: UUID, phone_number: str) -> UserProfile:
        if user_id not in self.users:
            raise ValueError(f"User {user_id} not found")
        user = self.users[user_id].model_copy(
            update={"phone_number": phone_number, "updated_at": self._clock()}
        )
        self.users[user_id] = user
        return user

    def touch_last_active(self, user_id: UUID) -> UserProfile | None:
        if user_id not in self.users:
            return None
        user = self.users[user_id].model_copy(update={"last_active": self._clock()})
        self.users[user_id] = user
        return user

    def delete(self, user_id: UUID) -> None:
        self.users.pop(user_id, None)


# =============================================================================
# AUTH COMPONENT FIXTURES
# =============================================================================


@pytest.fixture
def config() -> AuthConfig:
    return AuthConfig(environment="test", jwt_secret=TEST_JWT_SECRET)


@pytest.fixture
def cache(clock) -> MemoryCache:
    return MemoryCache(clock=clock.monotonic)


@pytest.fixture
def auth_db(clock) -> FakeAuthDatabase:
    return FakeAuthDatabase(clock)


@pytest.fixture
def user_service(clock) -> FakeUserService:
    return FakeUserService(clock)


@pytest.fixture
def rate_limiter(cache, config) -> RateLimiter:
    return RateLimiter(cache, config)


@pytest.fixture
def otp_store(auth_db, cache, rate_limiter, config) -> OTPStore:
    return OTPStore(auth_db, cache, rate_limiter, config)


@pytest.fixture
def token_issuer(config) -> TokenIssuer:
    return TokenIssuer(config)


@pytest.fixture
def session_manager(auth_db, cache, user_service, config) -> SessionManager:
    return SessionManager(auth_db, cache, user_service, config)


@pytest.fixture
def security_logger():
    return Mock(spec=SecurityLogger)


@pytest.fixture
def auth_service(
    config, otp_store, token_issuer, session_manager, user_service, security_logger
) -> AuthService:
    return AuthService(
        config=config,
        otp_store=otp_store,
        token_issuer=token_issuer,
        session_manager=session_manager,
        user_service=user_service,
        security_logger=security_logger,
    )


def registration_data(phone_number: str = TEST_PHONE, **overrides) -> dict:
    data = {
        "name": "Ramesh Patil",
        "phone_number": phone_number,
        "location": dict(TEST_LOCATION),
        "preferred_language": "mr",
        "user_type": "seller",
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_user(user_service):
    """Create a user directly in the store, bypassing registration."""

    def _make(phone_number: str = TEST_PHONE, **overrides) -> UserProfile:
        registration = UserRegistration.model_validate(
            registration_data(phone_number, **overrides)
        )
        return user_service.create(registration)

    return _make


@pytest.fixture
def test_user(make_user) -> UserProfile:
    return make_user()


@pytest.fixture
def registration():
    """Factory for registration payloads."""
    return registration_data


# =============================================================================
# VALKEY FIXTURES
# =============================================================================


@pytest.fixture(scope="session")
def valkey():
    """Session-scoped ValkeyClient. Skipped unless VALKEY_URL is set."""
    url = os.getenv("VALKEY_URL")
    if not url:
        pytest.skip("VALKEY_URL not set")

    from clients.valkey_client import ValkeyClient

    client = ValkeyClient(url)
    yield client
    client.close()


@pytest.fixture
def location() -> Location:
    return Location.model_validate(TEST_LOCATION)
