"""Tests for AuthMiddleware - token/session validation and user context."""

from unittest.mock import Mock

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from auth.security_middleware import AuthMiddleware
from auth.service import AuthService
from auth.types import AuthResult


@pytest.fixture
def mock_auth_service():
    """Mock AuthService."""
    return Mock(spec=AuthService)


@pytest.fixture
def app_with_middleware(mock_auth_service):
    """FastAPI app with auth middleware."""
    app = FastAPI()
    app.add_middleware(AuthMiddleware, auth_service=mock_auth_service)

    @app.get("/api/users/me")
    async def protected_route(request: Request):
        return {
            "user_id": str(request.state.user_id),
            "auth_method": request.state.auth_method,
        }

    @app.get("/auth/request-otp")
    async def public_request_otp():
        return {"public": True}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/api/listings")
    async def list_listings():
        return {"public": True}

    @app.post("/api/listings")
    async def create_listing(request: Request):
        return {"user_id": str(request.state.user_id)}

    @app.get("/api/categories/{category_id}")
    async def get_category(category_id: str):
        return {"category": category_id}

    @app.get("/auth/request-otp-extra")
    async def lookalike():
        return {"public": False}

    return app


@pytest.fixture
def client(app_with_middleware):
    return TestClient(app_with_middleware)


class TestPublicPaths:
    """Test that public paths skip authentication."""

    def test_auth_endpoint_without_credentials(self, client, mock_auth_service):
        """Auth request-otp works without any credentials."""
        response = client.get("/auth/request-otp")

        assert response.status_code == 200
        mock_auth_service.validate_session.assert_not_called()

    def test_health_endpoint(self, client):
        assert client.get("/health").json()["status"] == "ok"

    def test_public_path_ignores_bad_cookie(self, client, mock_auth_service):
        """Public paths never look at the session cookie."""
        client.cookies.set("session_token", "garbage")

        assert client.get("/health").status_code == 200
        mock_auth_service.validate_session.assert_not_called()

    def test_prefix_lookalike_is_protected(self, client):
        """Only exact paths and their sub-paths are public."""
        assert client.get("/auth/request-otp-extra").status_code == 401


class TestPublicReadPaths:
    """Catalog reads are public, writes are not."""

    def test_get_listings_is_public(self, client):
        assert client.get("/api/listings").status_code == 200

    def test_get_category_subpath_is_public(self, client):
        assert client.get("/api/categories/abc").json()["category"] == "abc"

    def test_post_listings_requires_auth(self, client):
        response = client.post("/api/listings")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "NOT_AUTHENTICATED"


class TestProtectedPaths:
    """Test protected path authentication."""

    def test_no_credentials_returns_401(self, client):
        response = client.get("/api/users/me")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "NOT_AUTHENTICATED"

    def test_bearer_token_sets_user(self, client, mock_auth_service, test_user):
        mock_auth_service.validate_jwt.return_value = AuthResult.ok(test_user)

        response = client.get("/api/users/me", headers={"Authorization": "Bearer abc"})

        assert response.status_code == 200
        assert response.json() == {"user_id": str(test_user.id), "auth_method": "jwt"}
        mock_auth_service.validate_jwt.assert_called_once_with("abc")

    def test_session_cookie_sets_user(self, client, mock_auth_service, test_user):
        mock_auth_service.validate_session.return_value = AuthResult.ok(test_user)
        client.cookies.set("session_token", "the-token-value")

        response = client.get("/api/users/me")

        assert response.json()["auth_method"] == "session"
        mock_auth_service.validate_session.assert_called_once_with("the-token-value")

    def test_bearer_wins_over_cookie(self, client, mock_auth_service, test_user):
        mock_auth_service.validate_jwt.return_value = AuthResult.ok(test_user)
        client.cookies.set("session_token", "cookie-token")

        client.get("/api/users/me", headers={"Authorization": "Bearer abc"})

        mock_auth_service.validate_session.assert_not_called()

    def test_expired_session_keeps_code(self, client, mock_auth_service):
        mock_auth_service.validate_session.return_value = AuthResult.fail(
            "SESSION_EXPIRED", "Session expired"
        )
        client.cookies.set("session_token", "old")

        response = client.get("/api/users/me")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "SESSION_EXPIRED"

    def test_non_auth_failure_reported_as_invalid_token(self, client, mock_auth_service):
        """A token for a vanished user is just an invalid token to the caller."""
        mock_auth_service.validate_jwt.return_value = AuthResult.fail(
            "USER_NOT_FOUND", "User not found"
        )

        response = client.get("/api/users/me", headers={"Authorization": "Bearer abc"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_TOKEN"

    def test_internal_error_is_500(self, client, mock_auth_service):
        mock_auth_service.validate_jwt.return_value = AuthResult.fail(
            "INTERNAL_ERROR", "An internal error occurred"
        )

        response = client.get("/api/users/me", headers={"Authorization": "Bearer abc"})
        assert response.status_code == 500
