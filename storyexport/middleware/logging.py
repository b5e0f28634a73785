"""
Request Logging Middleware

One line per request and response, correlated by request ID. Export
downloads also log the packed and failed asset counts.
"""

import time
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from storyexport.config import logger

EXPORT_TOTAL_HEADER = "X-Export-Total"
EXPORT_FAILED_HEADER = "X-Export-Failed"


def _export_summary(response: Response) -> str:
    total = response.headers.get(EXPORT_TOTAL_HEADER)
    if total is None:
        return ""
    return f" | packed={total} failed={response.headers.get(EXPORT_FAILED_HEADER, '0')}"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status, duration and size of each HTTP request."""

    def __init__(self, app: ASGIApp, exclude_paths: Optional[set] = None):
        super().__init__(app)
        self.exclude_paths = exclude_paths or {"/health", "/healthz", "/ready"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        started = time.perf_counter()
        request_id = getattr(request.state, "request_id", "unknown")
        logger.info("-> %s %s [%s]", request.method, request.url.path, request_id)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "x  %s %s failed after %.0fms: %s [%s]",
                request.method,
                request.url.path,
                (time.perf_counter() - started) * 1000,
                exc,
                request_id,
            )
            raise

        logger.info(
            "<- %s %s %d in %.0fms size=%s%s [%s]",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
            response.headers.get("content-length", "-"),
            _export_summary(response),
            request_id,
        )
        return response
