"""Tests for auth API routes."""

from unittest.mock import Mock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from auth.api import IP_LIMITS, _get_client_ip, create_auth_router
from auth.security_middleware import AuthMiddleware

PHONE = "+919876543210"
NEW_PHONE = "+918765432109"


@pytest.fixture
def app_with_auth(auth_service, rate_limiter, config):
    """FastAPI app with auth routes and middleware."""
    app = FastAPI()
    app.add_middleware(AuthMiddleware, auth_service=auth_service)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    app.include_router(create_auth_router(auth_service, rate_limiter, config), prefix="/auth")
    return app


@pytest.fixture
def client(app_with_auth):
    """Test client."""
    return TestClient(app_with_auth, raise_server_exceptions=False)


@pytest.fixture
def code_for(auth_db):
    """Latest pending code for a phone."""

    def _code(phone_number: str = PHONE) -> str:
        return auth_db.find_latest_unverified_otp(phone_number).code

    return _code


@pytest.fixture
def logged_in(client, code_for, test_user):
    """Log the test user in. Returns the response body data."""
    client.post("/auth/request-otp", json={"phone_number": PHONE})
    response = client.post("/auth/verify-otp", json={"phone_number": PHONE, "otp": code_for()})
    assert response.status_code == 200
    return response.json()["data"]


def bearer(data: dict) -> dict:
    return {"Authorization": f"Bearer {data['tokens']['access_token']}"}


class TestRequestOtp:
    """Test POST /auth/request-otp endpoint."""

    def test_sends_code(self, client, auth_db):
        response = client.post("/auth/request-otp", json={"phone_number": PHONE})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["otp_id"] == str(auth_db.otps[-1].id)
        assert body["message"] == "OTP sent successfully"
        assert body["meta"]["request_id"] == response.headers["X-Request-ID"]

    def test_invalid_phone_is_400(self, client):
        response = client.post("/auth/request-otp", json={"phone_number": "12345"})

        assert response.status_code == 400
        assert response.json()["error"] == {
            "code": "VALIDATION_ERROR",
            "message": "Invalid phone number format",
        }

    def test_missing_body_field_is_422(self, client):
        response = client.post("/auth/request-otp", json={})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_rate_limited_is_429_with_retry_after(self, client):
        for _ in range(3):
            client.post("/auth/request-otp", json={"phone_number": PHONE})

        response = client.post("/auth/request-otp", json={"phone_number": PHONE})

        assert response.status_code == 429
        assert response.json()["error"]["code"] == "RATE_LIMITED"
        assert int(response.headers["Retry-After"]) > 0


class TestIpThrottle:
    """Per-IP limits on auth endpoints."""

    def test_blocks_after_endpoint_limit(self, client, monkeypatch):
        monkeypatch.setattr("auth.api._get_client_ip", lambda request: "203.0.113.7")
        max_count, _ = IP_LIMITS["request-otp"]
        phones = ["+91987654321" + str(i) for i in range(max_count + 1)]

        statuses = [
            client.post("/auth/request-otp", json={"phone_number": p}).status_code
            for p in phones
        ]

        assert statuses[:max_count] == [200] * max_count
        assert statuses[max_count] == 429

    def test_unparseable_client_address_not_throttled(self):
        request = Mock()
        request.client.host = "testclient"
        assert _get_client_ip(request) is None

    def test_valid_client_address(self):
        request = Mock()
        request.client.host = "2001:db8::1"
        assert _get_client_ip(request) == "2001:db8::1"


class TestVerifyOtp:
    """Test POST /auth/verify-otp and /auth/login."""

    def test_login_sets_session_cookie(self, client, logged_in, test_user):
        assert logged_in["user"]["id"] == str(test_user.id)
        assert logged_in["tokens"]["expires_in"] == 168 * 3600
        assert client.cookies.get("session_token") == logged_in["session"]["token"]

    def test_unknown_user_is_404(self, client, code_for):
        client.post("/auth/request-otp", json={"phone_number": PHONE})
        response = client.post("/auth/verify-otp", json={"phone_number": PHONE, "otp": code_for()})

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "USER_NOT_FOUND"
        assert "session_token" not in client.cookies

    def test_wrong_code_is_400(self, client, test_user):
        client.post("/auth/request-otp", json={"phone_number": PHONE})
        response = client.post("/auth/login", json={"phone_number": PHONE, "otp": "000000"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_CODE"

    def test_malformed_code_is_422(self, client):
        response = client.post("/auth/login", json={"phone_number": PHONE, "otp": "12ab"})
        assert response.status_code == 422


class TestRegister:
    """Test POST /auth/register."""

    def test_registers_and_logs_in(self, client, code_for, registration):
        client.post("/auth/request-otp", json={"phone_number": PHONE})

        response = client.post("/auth/register", json={**registration(PHONE), "otp": code_for()})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["user"]["phone_number"] == PHONE
        assert data["user"]["user_type"] == "seller"
        assert client.cookies.get("session_token") == data["session"]["token"]

    def test_missing_otp(self, client, registration):
        response = client.post("/auth/register", json=registration(PHONE))

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Missing required fields: otp"

    def test_existing_user_is_409(self, client, code_for, registration, test_user):
        client.post("/auth/request-otp", json={"phone_number": PHONE})
        response = client.post("/auth/register", json={**registration(PHONE), "otp": code_for()})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ALREADY_EXISTS"


class TestMe:
    """Test GET /auth/me."""

    def test_requires_authentication(self, client):
        response = client.get("/auth/me")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "NOT_AUTHENTICATED"

    def test_with_bearer_token(self, client, logged_in, test_user):
        client.cookies.clear()
        response = client.get("/auth/me", headers=bearer(logged_in))

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["user"]["id"] == str(test_user.id)
        assert data["session_count"] == 1
        assert data["token_expiry"] is not None

    def test_with_session_cookie(self, client, logged_in, test_user):
        response = client.get("/auth/me")

        assert response.status_code == 200
        assert response.json()["data"]["user"]["id"] == str(test_user.id)

    def test_refresh_token_not_accepted(self, client, logged_in):
        client.cookies.clear()
        response = client.get(
            "/auth/me",
            headers={"Authorization": f"Bearer {logged_in['tokens']['refresh_token']}"},
        )
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_TOKEN"


class TestRefresh:

    def test_new_pair(self, client, logged_in):
        response = client.post(
            "/auth/refresh", json={"refresh_token": logged_in["tokens"]["refresh_token"]}
        )

        assert response.status_code == 200
        assert response.json()["data"]["access_token"]

    def test_invalid_token_is_401(self, client):
        response = client.post("/auth/refresh", json={"refresh_token": "garbage"})

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid or expired token"


class TestLogout:

    def test_logout_revokes_and_clears_cookie(self, client, logged_in):
        token = logged_in["session"]["token"]

        response = client.post("/auth/logout")

        assert response.status_code == 200
        assert "session_token" not in client.cookies

        client.cookies.set("session_token", token)
        response = client.get("/auth/me")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "SESSION_INVALID"

    def test_logout_without_session(self, client):
        response = client.post("/auth/logout")
        assert response.status_code == 200
        assert response.json()["message"] == "Logged out successfully"

    def test_logout_all(self, client, logged_in):
        response = client.post("/auth/logout-all", headers=bearer(logged_in))

        assert response.status_code == 200
        assert response.json()["data"] == {"sessions_revoked": 1}

    def test_logout_all_requires_authentication(self, client):
        assert client.post("/auth/logout-all").status_code == 401


class TestChangePhone:

    def test_change_phone(self, client, logged_in, code_for):
        client.post("/auth/request-otp", json={"phone_number": PHONE})
        client.post("/auth/request-otp", json={"phone_number": NEW_PHONE})

        response = client.post(
            "/auth/change-phone",
            headers=bearer(logged_in),
            json={
                "old_phone_number": PHONE,
                "new_phone_number": NEW_PHONE,
                "old_otp": code_for(PHONE),
                "new_otp": code_for(NEW_PHONE),
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["data"]["user"]["phone_number"] == NEW_PHONE
        assert body["data"]["sessions_revoked"] == 1
        assert "session_token" not in client.cookies

    def test_requires_authentication(self, client):
        response = client.post(
            "/auth/change-phone",
            json={
                "old_phone_number": PHONE,
                "new_phone_number": NEW_PHONE,
                "old_otp": "123456",
                "new_otp": "654321",
            },
        )
        assert response.status_code == 401
