"""Global exception handlers and error-code to HTTP status mapping."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from auth.exceptions import AuthError
from clients.errors import StoreError

logger = logging.getLogger(__name__)

# Codes not listed map to 400
STATUS_BY_CODE = {
    ErrorCodes.NOT_AUTHENTICATED: 401,
    ErrorCodes.SESSION_EXPIRED: 401,
    ErrorCodes.SESSION_INVALID: 401,
    ErrorCodes.INVALID_TOKEN: 401,
    ErrorCodes.FORBIDDEN: 403,
    ErrorCodes.NOT_FOUND: 404,
    ErrorCodes.USER_NOT_FOUND: 404,
    ErrorCodes.ALREADY_EXISTS: 409,
    ErrorCodes.CATEGORY_IN_USE: 409,
    ErrorCodes.RATE_LIMITED: 429,
    ErrorCodes.TOO_MANY_ATTEMPTS: 429,
    ErrorCodes.INTERNAL_ERROR: 500,
    ErrorCodes.DELIVERY_FAILED: 502,
    ErrorCodes.SERVICE_UNAVAILABLE: 503,
}


def status_for(code: str) -> int:
    return STATUS_BY_CODE.get(code, 400)


def error_json(
    code: str,
    message: str,
    request: Request | None = None,
    retry_after_seconds: int | None = None,
) -> JSONResponse:
    """Error envelope with the status code that belongs to the error code."""
    headers = None
    if retry_after_seconds is not None:
        headers = {"Retry-After": str(retry_after_seconds)}
    return JSONResponse(
        status_code=status_for(code),
        headers=headers,
        content=error_response(code, message, request).model_dump(mode="json"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        return error_json(
            exc.code,
            str(exc),
            request,
            retry_after_seconds=getattr(exc, "retry_after_seconds", None),
        )

    @app.exception_handler(PermissionError)
    async def permission_error_handler(request: Request, exc: PermissionError):
        return error_json(ErrorCodes.FORBIDDEN, str(exc), request)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        message = str(exc)
        if "not found" in message.lower():
            return error_json(ErrorCodes.NOT_FOUND, message, request)
        return error_json(ErrorCodes.INVALID_REQUEST, message, request)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=error_response(
                ErrorCodes.VALIDATION_ERROR,
                str(exc.errors()),
                request,
            ).model_dump(mode="json"),
        )

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.error(f"Store unavailable: {exc}")
        return error_json(
            ErrorCodes.SERVICE_UNAVAILABLE,
            "A backing service is unavailable. Please try again.",
            request,
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return error_json(ErrorCodes.INTERNAL_ERROR, "An internal error occurred", request)
