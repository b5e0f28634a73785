"""
Middleware stack for the export service.

Provides:
- Request ID injection
- Request/response logging
- Error sanitization
"""

from storyexport.middleware.request_id import RequestIDMiddleware
from storyexport.middleware.logging import RequestLoggingMiddleware
from storyexport.middleware.error_sanitization import ErrorSanitizationMiddleware

__all__ = [
    "RequestIDMiddleware",
    "RequestLoggingMiddleware",
    "ErrorSanitizationMiddleware",
]
