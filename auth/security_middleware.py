"""Security middleware for FastAPI - token/session validation and user context."""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from api.base import ErrorCodes
from api.errors import error_json, status_for
from auth.service import AuthService
from auth.tokens import TokenIssuer


class AuthMiddleware(BaseHTTPMiddleware):
    """Middleware that authenticates the caller and sets user context.

    For protected routes:
    1. Uses the 'Authorization: Bearer' access token if present
    2. Otherwise the 'session_token' cookie
    3. Sets user and user_id in request.state

    Public paths bypass authentication entirely. Public read paths bypass
    it for GET only.
    """

    PUBLIC_PATHS = [
        "/auth/request-otp",
        "/auth/resend-otp",
        "/auth/verify-otp",
        "/auth/login",
        "/auth/register",
        "/auth/refresh",
        "/auth/logout",
        "/health",
        "/docs",
        "/openapi.json",
    ]

    PUBLIC_READ_PATHS = [
        "/api/categories",
        "/api/listings",
    ]

    def __init__(self, app, auth_service: AuthService):
        super().__init__(app)
        self._auth_service = auth_service

    def _is_public_path(self, request: Request) -> bool:
        path = request.url.path
        for public_path in self.PUBLIC_PATHS:
            if path == public_path or path.startswith(public_path + "/"):
                return True
        if request.method == "GET":
            for public_path in self.PUBLIC_READ_PATHS:
                if path == public_path or path.startswith(public_path + "/"):
                    return True
        return False

    async def dispatch(self, request: Request, call_next):
        """Process request through middleware."""
        if self._is_public_path(request):
            return await call_next(request)

        access_token = TokenIssuer.extract_bearer_token(
            request.headers.get("Authorization")
        )
        session_token = request.cookies.get("session_token")

        if access_token:
            result = self._auth_service.validate_jwt(access_token)
        elif session_token:
            result = self._auth_service.validate_session(session_token)
        else:
            return error_json(
                ErrorCodes.NOT_AUTHENTICATED, "Authentication required", request
            )

        if not result.success:
            code = result.error
            if status_for(code) not in (401, 500):
                code = ErrorCodes.INVALID_TOKEN
            return error_json(code, result.message, request)

        request.state.user = result.data
        request.state.user_id = result.data.id
        request.state.auth_method = "jwt" if access_token else "session"

        return await call_next(request)
