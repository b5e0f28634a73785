"""Storyboard Asset Export - FastAPI Application Entry Point.

Serves:
- WebSocket export with live progress (/ws/export)
- HTTP export returning the archive (/api/projects/export)
- Media fetch proxy used as the download fallback (/api/fetch-media)
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from storyexport.config import (
    ALLOWED_HOSTS,
    CORS_ORIGINS,
    DEBUG,
    EXPORTS_DIR,
    FETCH_PROXY_URL,
    logger,
)
from storyexport.core.firebase_client import firebase_configured
from storyexport.middleware import (
    ErrorSanitizationMiddleware,
    RequestIDMiddleware,
    RequestLoggingMiddleware,
)
from storyexport.routers import export, proxy
from storyexport.version import __version__
from storyexport.schemas import HealthResponse


# -----------------------------------------------------------------------------
# Application Lifespan
# -----------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    logger.info("Starting Storyboard Asset Export v%s", __version__)
    logger.info(
        "Scratch dir=%s | fetch proxy=%s | task store=%s",
        EXPORTS_DIR,
        FETCH_PROXY_URL or "disabled",
        "firestore" if firebase_configured() else "request-only",
    )
    yield
    logger.info("Shutting down Storyboard Asset Export")


# -----------------------------------------------------------------------------
# Application Factory
# -----------------------------------------------------------------------------

def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Storyboard Asset Export",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if DEBUG else None,
        redoc_url="/redoc" if DEBUG else None,
        openapi_url="/openapi.json" if DEBUG else None,
    )

    # -------------------------------------------------------------------------
    # Middleware Stack (first added = last executed)
    # -------------------------------------------------------------------------

    app.add_middleware(ErrorSanitizationMiddleware, debug=DEBUG)
    app.add_middleware(
        RequestLoggingMiddleware,
        exclude_paths={"/health", "/healthz", "/ready"},
    )
    app.add_middleware(RequestIDMiddleware)

    if ALLOWED_HOSTS and ALLOWED_HOSTS != ["*"]:
        app.add_middleware(
            TrustedHostMiddleware,
            allowed_hosts=ALLOWED_HOSTS,
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=[
            "X-Request-ID",
            "Content-Disposition",
            "X-Export-Images",
            "X-Export-Videos",
            "X-Export-Audio",
            "X-Export-Total",
            "X-Export-Failed",
        ],
        max_age=600,
    )

    # -------------------------------------------------------------------------
    # Exception Handlers
    # -------------------------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle Pydantic validation errors with clean messages."""
        errors = exc.errors()
        clean_errors = [
            {"field": ".".join(str(loc) for loc in err.get("loc", [])), "message": err.get("msg", "Invalid value")}
            for err in errors[:5]
        ]
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": clean_errors},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    # -------------------------------------------------------------------------
    # Health Check Endpoints
    # -------------------------------------------------------------------------

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    @app.get("/healthz", response_model=HealthResponse, include_in_schema=False)
    async def health_check() -> HealthResponse:
        return HealthResponse(
            status="healthy",
            version=__version__,
            timestamp=datetime.now(timezone.utc),
        )

    @app.get("/ready", tags=["Health"])
    async def readiness_check():
        """Readiness check: the scratch directory must be writable."""
        if not EXPORTS_DIR.is_dir():
            return JSONResponse(status_code=503, content={"status": "unavailable"})
        return {"status": "ready"}

    app.include_router(export.router)
    app.include_router(proxy.router)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "storyexport.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        limit_concurrency=100,
        limit_max_requests=10000,
    )
