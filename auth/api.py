"""HTTP routes for authentication."""

import ipaddress
import logging
from typing import Any

from fastapi import APIRouter, Body, Request
from fastapi.responses import JSONResponse

from api.base import success_response, ErrorCodes
from api.errors import error_json
from auth.config import AuthConfig
from auth.rate_limiter import RateLimiter
from auth.service import AuthService
from auth.tokens import TokenIssuer
from auth.types import (
    AuthenticatedUser,
    AuthResult,
    ChangePhoneRequest,
    LoginRequest,
    PhoneRequest,
    RefreshRequest,
)

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session_token"

# Per-IP limits as (max requests, window minutes). Unlisted endpoints use
# AuthConfig.ip_rate_limit_attempts / ip_rate_limit_window_minutes.
IP_LIMITS = {
    "request-otp": (3, 15),
    "resend-otp": (2, 10),
    "verify-otp": (5, 15),
    "login": (5, 15),
    "register": (3, 60),
}


def _get_client_ip(request: Request) -> str | None:
    """Extract valid IP address from request, or None if invalid."""
    if not request.client:
        return None
    host = request.client.host
    try:
        ipaddress.ip_address(host)
        return host
    except ValueError:
        return None


def _result_response(result: AuthResult, request: Request) -> JSONResponse:
    """Map an AuthResult onto the unified envelope and status code."""
    if result.success:
        return JSONResponse(
            status_code=200,
            content=success_response(
                result.data, result.message, request
            ).model_dump(mode="json"),
        )
    return error_json(
        result.error,
        result.message,
        request,
        retry_after_seconds=result.retry_after_seconds,
    )


def create_auth_router(
    auth_service: AuthService,
    rate_limiter: RateLimiter,
    config: AuthConfig,
) -> APIRouter:
    """Create auth router with injected service and per-IP throttle."""
    router = APIRouter(tags=["auth"])

    def throttle(request: Request, endpoint: str) -> JSONResponse | None:
        """429 response when the client IP is over the endpoint's limit."""
        ip_address = _get_client_ip(request)
        if ip_address is None:
            return None

        max_count, window_minutes = IP_LIMITS.get(
            endpoint,
            (config.ip_rate_limit_attempts, config.ip_rate_limit_window_minutes),
        )
        decision = rate_limiter.hit(
            f"ip:{endpoint}", ip_address, max_count, window_minutes * 60
        )
        if decision.allowed:
            return None

        logger.info(f"IP throttle hit on {endpoint}")
        return error_json(
            ErrorCodes.RATE_LIMITED,
            f"Too many requests. Please wait {decision.retry_after_seconds} seconds.",
            request,
            retry_after_seconds=decision.retry_after_seconds,
        )

    def with_session_cookie(result: AuthResult, request: Request) -> JSONResponse:
        response = _result_response(result, request)
        if result.success and isinstance(result.data, AuthenticatedUser):
            session = result.data.session
            response.set_cookie(
                key=SESSION_COOKIE,
                value=session.token,
                httponly=True,
                secure=config.is_production,
                samesite="lax",
                max_age=int((session.expires_at - session.created_at).total_seconds()),
            )
        return response

    @router.post("/request-otp")
    async def request_otp(request: Request, body: PhoneRequest):
        """Send a one-time code to the phone number."""
        blocked = throttle(request, "request-otp")
        if blocked is not None:
            return blocked

        result = auth_service.request_otp(
            body.phone_number,
            ip_address=_get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
        return _result_response(result, request)

    @router.post("/resend-otp")
    async def resend_otp(request: Request, body: PhoneRequest):
        """Invalidate pending codes and send a new one."""
        blocked = throttle(request, "resend-otp")
        if blocked is not None:
            return blocked

        result = auth_service.resend_otp(
            body.phone_number,
            ip_address=_get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
        return _result_response(result, request)

    @router.post("/verify-otp")
    async def verify_otp(request: Request, body: LoginRequest):
        """Verify code and log in. Sets session_token cookie on success."""
        blocked = throttle(request, "verify-otp")
        if blocked is not None:
            return blocked

        result = auth_service.verify_otp(
            body.phone_number,
            body.otp,
            ip_address=_get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
        return with_session_cookie(result, request)

    @router.post("/login")
    async def login(request: Request, body: LoginRequest):
        """Log in with phone number and code. Sets session_token cookie on success."""
        blocked = throttle(request, "login")
        if blocked is not None:
            return blocked

        result = auth_service.login(
            body,
            ip_address=_get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
        return with_session_cookie(result, request)

    @router.post("/register")
    async def register(request: Request, body: dict[str, Any] = Body(...)):
        """Register a new user. Body holds the profile fields plus "otp"."""
        blocked = throttle(request, "register")
        if blocked is not None:
            return blocked

        user_data = dict(body)
        code = user_data.pop("otp", None)
        if not isinstance(code, str) or not code:
            return error_json(
                ErrorCodes.VALIDATION_ERROR, "Missing required fields: otp", request
            )

        result = auth_service.register(
            user_data,
            code,
            ip_address=_get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
        return with_session_cookie(result, request)

    @router.post("/refresh")
    async def refresh(request: Request, body: RefreshRequest):
        """Exchange a refresh token for a new token pair."""
        blocked = throttle(request, "refresh")
        if blocked is not None:
            return blocked

        return _result_response(auth_service.refresh(body.refresh_token), request)

    @router.post("/logout")
    async def logout(request: Request):
        """Logout - revoke session and clear cookie."""
        session_token = request.cookies.get(SESSION_COOKIE)

        if session_token:
            result = auth_service.logout(session_token, ip_address=_get_client_ip(request))
        else:
            result = AuthResult.ok(message="Logged out successfully")

        response = _result_response(result, request)
        response.delete_cookie(key=SESSION_COOKIE)
        return response

    @router.post("/logout-all")
    async def logout_all(request: Request):
        """Revoke every session of the current user.

        Requires authentication (middleware sets user context).
        """
        result = auth_service.logout_all(
            request.state.user_id, ip_address=_get_client_ip(request)
        )
        response = _result_response(result, request)
        response.delete_cookie(key=SESSION_COOKIE)
        return response

    @router.post("/change-phone")
    async def change_phone(request: Request, body: ChangePhoneRequest):
        """Move the current account to a new phone number.

        Requires authentication. All sessions are revoked on success.
        """
        blocked = throttle(request, "change-phone")
        if blocked is not None:
            return blocked

        result = auth_service.change_phone_number(
            request.state.user_id,
            body.old_phone_number,
            body.new_phone_number,
            body.old_otp,
            body.new_otp,
        )
        response = _result_response(result, request)
        if result.success:
            response.delete_cookie(key=SESSION_COOKIE)
        return response

    @router.get("/me")
    async def get_current_user(request: Request):
        """Current user. With a bearer token, also session count and token expiry.

        Requires authentication (middleware sets user context).
        """
        access_token = TokenIssuer.extract_bearer_token(request.headers.get("Authorization"))
        if access_token:
            return _result_response(auth_service.get_auth_status(access_token), request)

        return success_response({"user": request.state.user}, request=request).model_dump(mode="json")

    return router
