"""
Error Sanitization Middleware

Keeps internal error details out of 5xx responses outside debug mode.
"""

import json
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from storyexport.config import logger

# Proxy failures reach the client as gateway errors, not as 500s
GATEWAY_STATUSES = {502, 504}


def sanitized_response(status_code: int, request_id: str) -> Response:
    detail = "Upstream fetch failed" if status_code in GATEWAY_STATUSES else "Internal server error"
    return Response(
        content=json.dumps({"detail": detail, "request_id": request_id}),
        status_code=status_code,
        media_type="application/json",
    )


class ErrorSanitizationMiddleware(BaseHTTPMiddleware):
    """
    Replaces 5xx bodies with a generic detail and the request ID.

    The status code is preserved. Unhandled exceptions are logged with their
    traceback and become a 500; in debug mode they propagate instead.
    """

    def __init__(self, app: ASGIApp, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = getattr(request.state, "request_id", "unknown")
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.exception("Unhandled exception in request %s: %s", request_id, exc)
            if self.debug:
                raise
            return sanitized_response(500, request_id)

        if response.status_code >= 500 and not self.debug:
            return sanitized_response(response.status_code, request_id)
        return response
