"""
FastAPI application entry point.

This module creates and configures the FastAPI application.
Using an application factory (create_app) keeps initialization order
explicit and lets tests build an app per configuration.

For local development:
    uvicorn astroadmin.main:app --reload

For production:
    gunicorn astroadmin.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.dependencies import close_database
from .api.errors import ApiError, api_error_handler, error_body
from .api.routes import app_config, auth, health, media, notifications, wallet
from .config.settings import get_settings
from .infrastructure.mongo.client import DatabaseError
from .infrastructure.storage.client import StorageError

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Logs configuration problems on startup and closes the shared
    MongoDB client on shutdown.
    """
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    logger.info(
        "AstroAdmin API starting",
        extra={
            "version": __version__,
            "mock_mode": {"mongo": settings.mongo_mock_mode},
            "storage_backend": settings.storage_backend,
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    yield

    close_database()
    logger.info("AstroAdmin API shutting down")


def create_app() -> FastAPI:
    """
    Application factory.

    Called once at import time for uvicorn, and by tests after they have
    overridden settings.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Admin backend for the astrology consultation platform.

        ## Authentication

        Endpoints read a JWT from the `Authorization: Bearer` header or the
        `auth-token` cookie. Admin media endpoints also require the
        `x-csrf-token` header to match the `csrf-token` cookie issued by
        `GET /api/auth/csrf-token`.
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
    app.include_router(wallet.router, prefix="/api/customers/wallet", tags=["Wallet"])
    app.include_router(notifications.router, prefix="/api/notifications", tags=["Notifications"])
    app.include_router(app_config.router, prefix="/api/app-config", tags=["App Config"])
    app.include_router(media.router, prefix="/api/admin/media", tags=["Media"])

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": "AstroAdmin API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    app.add_exception_handler(ApiError, api_error_handler)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request, exc):
        """Malformed or missing request bodies use the shared 400 error body."""
        errors = exc.errors()
        message = "Invalid request body"
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()))
            message = f"{location}: {first.get('msg', message)}" if location else first.get("msg", message)

        return JSONResponse(
            status_code=400,
            content=error_body("INVALID_INPUT", message),
        )

    @app.exception_handler(DatabaseError)
    async def database_error_handler(request, exc):
        logger.error(
            "Database unavailable",
            extra={"path": request.url.path, "error": str(exc)},
        )
        return JSONResponse(
            status_code=503,
            content=error_body("DATABASE_UNAVAILABLE", "The database is temporarily unavailable."),
        )

    @app.exception_handler(StorageError)
    async def storage_error_handler(request, exc):
        logger.error(
            "Storage operation failed",
            extra={"path": request.url.path, "error": str(exc)},
        )
        return JSONResponse(
            status_code=500,
            content=error_body("STORAGE_ERROR", "The file could not be stored or read."),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """
        Catch-all exception handler.

        Logs the full error server-side and returns a generic message,
        so stack traces never reach clients.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content=error_body("Internal server error", "An unexpected error occurred."),
        )

    return app


# This is what uvicorn/gunicorn will import
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "astroadmin.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
