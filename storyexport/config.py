import os
import logging
import logging.config
from pathlib import Path

# Base Paths
APP_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = APP_DIR.parent

# Resources
EXPORTS_DIR = Path(
    os.getenv("EXPORTS_DIR", str(PROJECT_ROOT / "exports"))
)  # scratch directory for archives awaiting delivery

# Logging Setup
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_FILE_PATH = os.getenv(
    "LOG_FILE_PATH",
    str((PROJECT_ROOT / "logs" / "storyexport.log").resolve()),
)

LOG_DIR = Path(LOG_FILE_PATH).parent
LOG_DIR.mkdir(parents=True, exist_ok=True)

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": LOG_FORMAT,
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": LOG_LEVEL,
            "formatter": "standard",
            "stream": "ext://sys.stdout",
        },
        "file": {
            "class": "logging.handlers.RotatingFileHandler",
            "level": LOG_LEVEL,
            "formatter": "standard",
            "filename": LOG_FILE_PATH,
            "maxBytes": 10 * 1024 * 1024,  # 10 MB
            "backupCount": 5,
            "encoding": "utf8",
        },
    },
    "loggers": {
        "storyexport": {
            "handlers": ["console", "file"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
        "httpx": {"level": "WARNING"},
        "uvicorn.error": {"level": "INFO"},
        "uvicorn.access": {"level": "INFO"},
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
}

logging.config.dictConfig(LOGGING_CONFIG)
logger = logging.getLogger("storyexport")

EXPORTS_DIR.mkdir(parents=True, exist_ok=True)


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


# -----------------------------------------------------------------------------
# Export pipeline
# -----------------------------------------------------------------------------

# Worker pool
EXPORT_CONCURRENCY = int(os.getenv("EXPORT_CONCURRENCY", "6"))
MIN_EXPORT_CONCURRENCY = 1
EXPORT_MAX_CONCURRENCY_LIMIT = int(os.getenv("EXPORT_MAX_CONCURRENCY_LIMIT", "16"))

# Media fetcher
FETCH_MAX_ATTEMPTS = int(os.getenv("FETCH_MAX_ATTEMPTS", "3"))
FETCH_RETRY_BACKOFF_SECONDS = float(os.getenv("FETCH_RETRY_BACKOFF_SECONDS", "1.0"))
FETCH_TIMEOUT_IMAGE_SECONDS = float(os.getenv("FETCH_TIMEOUT_IMAGE_SECONDS", "30"))
FETCH_TIMEOUT_MEDIA_SECONDS = float(os.getenv("FETCH_TIMEOUT_MEDIA_SECONDS", "120"))
FETCH_PROXY_URL = os.getenv("FETCH_PROXY_URL", "")
MAX_ASSET_BYTES = int(os.getenv("MAX_ASSET_BYTES", str(1024 * 1024 * 1024)))  # 1GB

# Hosts whose public objects must bypass intermediary caches
NO_CACHE_HOST_SUFFIXES = tuple(
    _split_csv(os.getenv("NO_CACHE_HOST_SUFFIXES", ".r2.dev,.r2.cloudflarestorage.com"))
)

# Archive
ARCHIVE_COMPRESSION_LEVEL = int(os.getenv("ARCHIVE_COMPRESSION_LEVEL", "6"))
ARCHIVE_EXTENSION = "zip"
DEFAULT_PROJECT_TITLE = os.getenv("DEFAULT_PROJECT_TITLE", "untitled_project")

# Firestore collection holding generation-task records per project
TASKS_COLLECTION = os.getenv("TASKS_COLLECTION", "generation_tasks")

# -----------------------------------------------------------------------------
# Security Configuration
# -----------------------------------------------------------------------------

ALLOWED_HOSTS = _split_csv(os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1"))

CORS_ORIGINS = _split_csv(
    os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:8000")
)

# Hosts the fetch proxy may reach; empty means any public http(s) host
PROXY_ALLOWED_HOSTS = frozenset(
    host.lower() for host in _split_csv(os.getenv("PROXY_ALLOWED_HOSTS", ""))
)

# Environment
ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()
IS_PRODUCTION = ENVIRONMENT == "production"
DEBUG = not IS_PRODUCTION
