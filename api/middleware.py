"""Request-scoped middleware for API requests."""

import logging
import re
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Incoming IDs are echoed back, so accept only short opaque tokens
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9\-_.]{1,64}$")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tags every request with an ID and logs how it finished.

    A well-formed incoming X-Request-ID is reused so a client or proxy can
    correlate its own logs; otherwise a fresh UUID is assigned.
    """

    async def dispatch(self, request: Request, call_next):
        incoming = request.headers.get(REQUEST_ID_HEADER)
        if incoming and _VALID_REQUEST_ID.match(incoming):
            request_id = incoming
        else:
            request_id = str(uuid4())

        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id

        logger.debug(
            f"{request.method} {request.url.path} -> {response.status_code} [{request_id}]"
        )
        return response
