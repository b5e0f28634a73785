"""
URL and file-name helpers shared by the export pipeline.

`normalize_url` produces the identity key used for deduplication. The
original URL is always what gets fetched.
"""

import posixpath
import re
from typing import Optional
from urllib.parse import unquote, urlparse

# Everything outside ASCII word characters and CJK ideographs
_UNSAFE_NAME_RE = re.compile(r"[^\w\u4e00-\u9fa5]+", re.ASCII)

_KNOWN_EXTENSIONS = {
    "image": {".png", ".jpg", ".jpeg", ".webp", ".gif", ".bmp"},
    "video": {".mp4", ".mov", ".webm", ".m4v", ".mkv"},
    "audio": {".mp3", ".wav", ".m4a", ".aac", ".ogg", ".flac"},
}

DEFAULT_EXTENSIONS = {
    "image": "png",
    "video": "mp4",
    "audio": "mp3",
}


def normalize_url(url: str) -> str:
    """
    Build the deduplication key for a URL.

    Trims whitespace and drops the fragment and query string, so signed
    variants of one object (`?sig=1`, `?sig=2`) share a key.
    """
    key = (url or "").strip()
    key = key.split("#", 1)[0]
    key = key.split("?", 1)[0]
    return key


def sanitize_name(text: Optional[str], fallback: str = "untitled") -> str:
    """
    Collapse every run of unsafe characters into a single underscore.

    Alphanumerics, underscores and CJK ideographs survive unchanged.
    """
    safe = _UNSAFE_NAME_RE.sub("_", (text or "").strip()).strip("_")
    return safe or fallback


def guess_extension(url: str, kind: str) -> str:
    """Extension (without dot) taken from the URL path, or the kind's default."""
    try:
        path = unquote(urlparse(url).path)
    except ValueError:
        path = ""
    ext = posixpath.splitext(path)[1].lower()
    if ext in _KNOWN_EXTENSIONS.get(kind, set()):
        return "jpg" if ext == ".jpeg" else ext[1:]
    return DEFAULT_EXTENSIONS.get(kind, "bin")


def host_of(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""
