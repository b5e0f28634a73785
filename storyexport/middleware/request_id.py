"""
Request ID Middleware

Injects a unique request ID into each request for tracing.
"""

import re
import secrets
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_ID_HEADER = "X-Request-ID"
_REQUEST_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")


def get_request_id(request: Request) -> str:
    """Reuse a well-formed incoming request ID or generate one."""
    request_id = request.headers.get(REQUEST_ID_HEADER)
    if request_id and _REQUEST_ID_RE.match(request_id):
        return request_id
    return secrets.token_hex(16)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Injects a unique request ID into each request for tracing.

    - Uses existing X-Request-ID header if valid
    - Generates new ID otherwise
    - Adds ID to response headers
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = get_request_id(request)
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id

        return response
