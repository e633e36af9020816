"""
Tubely FastAPI Application Entry Point

This module builds the FastAPI application for the Tubely upload service:
- Structured logging configured during lifespan startup
- MongoDB connection lifecycle (init on startup, close on shutdown)
- CORS middleware and request timing/logging middleware
- API v1 routers under the /api prefix
- Static serving of locally published thumbnails under /assets
- Exception handlers translating TubelyError subclasses into
  ``{"error": "<message>"}`` responses with the mapped status code

Usage:
    # Run with uvicorn directly
    uvicorn tubely.main:app --host 0.0.0.0 --port 8091

    # Run as a module
    python -m tubely.main
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import uvicorn
from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from tubely import __version__
from tubely.api.v1 import api_router
from tubely.config import Settings, get_settings
from tubely.core.database import close_db, init_db
from tubely.core.exceptions import InvalidCredential, TubelyError, Unauthenticated
from tubely.utils.logger import setup_logging


# Configure module logger
logger = logging.getLogger(__name__)

# Status codes >= this are logged as server errors
SERVER_ERROR_THRESHOLD = 500
HTTP_ERROR_THRESHOLD = 400


# =============================================================================
# Exception Handlers
# =============================================================================


async def tubely_error_handler(request: Request, exc: TubelyError) -> JSONResponse:
    """
    Translate a pipeline error into its HTTP response.

    The internal detail and any chained cause are logged; the client only
    receives the error class's generic public message.
    """
    log_extra = {
        "method": request.method,
        "path": request.url.path,
        "status_code": exc.status_code,
        "error_type": type(exc).__name__,
    }
    if exc.status_code >= SERVER_ERROR_THRESHOLD:
        logger.error("Request failed: %s", exc.detail, extra=log_extra, exc_info=exc)
    else:
        logger.info("Request rejected: %s", exc.detail, extra=log_extra)

    headers = None
    if isinstance(exc, (Unauthenticated, InvalidCredential)):
        headers = {"WWW-Authenticate": "Bearer"}

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.public_message},
        headers=headers,
    )


async def http_error_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render framework HTTP errors (unknown routes, wrong methods) in the same shape."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected errors and return a generic 500 body."""
    logger.error(
        "Internal server error on %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


# =============================================================================
# Application Factory
# =============================================================================


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to build with; the cached global settings if None.

    Returns:
        FastAPI: The configured application.
    """
    settings = settings or get_settings()
    assets_root = Path(settings.assets_root)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        """Configure logging and manage the MongoDB connection."""
        setup_logging(log_level=settings.log_level, json_logs=settings.json_logs)

        logger.info(
            "%s API starting",
            settings.app_name,
            extra={
                "environment": settings.app_env,
                "host": settings.host,
                "port": settings.port,
                "assets_root": assets_root,
                "s3_bucket": settings.s3_bucket_name,
            },
        )

        assets_root.mkdir(parents=True, exist_ok=True)

        try:
            await init_db(settings)
        except Exception as e:
            logger.exception("Failed to initialize MongoDB")
            raise RuntimeError(f"MongoDB initialization failed: {e}") from e

        logger.info("%s API ready to accept requests", settings.app_name)

        yield

        logger.info("%s API shutting down", settings.app_name)
        await close_db()

    app = FastAPI(
        title=f"{settings.app_name} API",
        description="Video and thumbnail uploads for Tubely video records.",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )

    # =========================================================================
    # Middleware
    # =========================================================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Process-Time"],
    )

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next) -> Response:
        """Log each request with its status and processing time."""
        request_id = f"{time.time_ns()}"
        start_time = time.perf_counter()

        response = await call_next(request)

        process_time_ms = round((time.perf_counter() - start_time) * 1000, 2)
        response.headers["X-Process-Time"] = f"{process_time_ms}ms"
        response.headers["X-Request-ID"] = request_id

        log_level = (
            logging.DEBUG if response.status_code < HTTP_ERROR_THRESHOLD else logging.WARNING
        )
        logger.log(
            log_level,
            "Request completed: %s %s [%s]",
            request.method,
            request.url.path,
            response.status_code,
            extra={"request_id": request_id, "process_time_ms": process_time_ms},
        )
        return response

    # =========================================================================
    # Exception Handlers
    # =========================================================================

    app.add_exception_handler(TubelyError, tubely_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    # =========================================================================
    # Routes
    # =========================================================================

    app.include_router(api_router, prefix="/api")

    # check_dir=False: the directory is created during lifespan startup
    app.mount("/assets", StaticFiles(directory=assets_root, check_dir=False), name="assets")

    @app.get("/health", tags=["health"], summary="Health Check")
    async def health_check() -> dict[str, Any]:
        """Liveness probe; does not check MongoDB or S3."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "version": __version__,
            "service": settings.app_name,
        }

    return app


app = create_app()


if __name__ == "__main__":
    _settings = get_settings()
    uvicorn.run(
        "tubely.main:app",
        host=_settings.host,
        port=_settings.port,
        reload=_settings.is_development,
        log_level=_settings.log_level,
    )
