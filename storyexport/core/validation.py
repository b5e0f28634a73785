"""
Input validation for externally supplied values.
"""

import ipaddress
import re
from typing import Optional
from urllib.parse import urlparse

from storyexport.config import PROXY_ALLOWED_HOSTS

MAX_URL_LENGTH = 4096
PROJECT_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{1,100}$")


class ValidationError(Exception):
    """Raised when user input fails validation."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


def _is_private_host(host: str) -> bool:
    if host in {"localhost", "localhost.localdomain"}:
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return address.is_private or address.is_loopback or address.is_link_local


def validate_media_url(url: str) -> str:
    """
    Validate a URL the fetch proxy is asked to retrieve.

    Raises:
        ValidationError: If URL is malformed, not http(s), private or not allowed.

    Returns:
        Sanitized URL string.
    """
    if not url or not isinstance(url, str):
        raise ValidationError("URL is required", field="url")

    url = url.strip()

    if len(url) > MAX_URL_LENGTH:
        raise ValidationError(f"URL exceeds maximum length of {MAX_URL_LENGTH}", field="url")

    try:
        parsed = urlparse(url)
    except ValueError:
        raise ValidationError("Invalid URL format", field="url")

    if parsed.scheme not in ("http", "https"):
        raise ValidationError("URL must use HTTP or HTTPS", field="url")

    host = (parsed.hostname or "").lower()
    if not host:
        raise ValidationError("Invalid URL: missing host", field="url")

    if _is_private_host(host):
        raise ValidationError("URL host is not reachable through the proxy", field="url")

    if PROXY_ALLOWED_HOSTS and host not in PROXY_ALLOWED_HOSTS:
        raise ValidationError("URL host is not allowed", field="url")

    return url


def validate_project_id(project_id: str) -> str:
    """Project IDs are used as Firestore document keys."""
    if not project_id or not PROJECT_ID_RE.match(project_id):
        raise ValidationError("Invalid project ID format", field="project_id")
    return project_id
