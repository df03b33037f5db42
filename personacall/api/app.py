"""
FastAPI Application Module

This module provides the main FastAPI application setup with all
routes, middleware, and exception handling.
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config import Settings
from ..core.logging import LogContext, setup_logging
from ..database.base import DatabaseManager
from ..di.container import Container
from ..di.services import configure_services
from ..errors import ErrorCode, NotFoundError, PersonaCallError
from ..providers.storage import AudioStore
from .base import (
    REQUEST_ID_HEADER,
    error_envelope,
    error_from_exception,
    get_request_id,
    internal_error,
)
from .routes import ai_router, voice_router, whatsapp_router


logger = logging.getLogger(__name__)


# =============================================================================
# Health Check Models
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str
    timestamp: datetime
    checks: Dict[str, Any] = {}


# =============================================================================
# Exception Handlers
# =============================================================================


async def persona_call_exception_handler(request: Request, exc: PersonaCallError):
    """Translate domain errors into the error envelope."""
    request_id = get_request_id(request)
    if exc.status_code >= 500:
        logger.error(
            f"{exc.code.value}: {exc.message}",
            extra={"path": request.url.path, "details": exc.details},
        )
    else:
        logger.info(
            f"{exc.code.value}: {exc.message}",
            extra={"path": request.url.path},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_from_exception(request_id, exc),
        headers={REQUEST_ID_HEADER: request_id},
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are client errors, reported as 400."""
    request_id = get_request_id(request)
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=error_envelope(
            request_id,
            ErrorCode.VALIDATION_ERROR.value,
            "Invalid request",
            {"errors": errors},
        ),
        headers={REQUEST_ID_HEADER: request_id},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    request_id = get_request_id(request)
    error_codes = {
        400: ErrorCode.VALIDATION_ERROR,
        404: ErrorCode.RESOURCE_NOT_FOUND,
    }
    code = error_codes.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(request_id, code.value, str(exc.detail)),
        headers={REQUEST_ID_HEADER: request_id},
    )


async def generic_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    request_id = get_request_id(request)
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(status_code=500, content=internal_error(request_id))


# =============================================================================
# Application Factory
# =============================================================================


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[Container] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Application settings
        container: Pre-populated container; registrations already present
            (test doubles, for instance) are kept

    Returns:
        Configured FastAPI application
    """
    settings = settings or Settings.from_env()
    container = configure_services(container or Container(), settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(level=settings.log_level, format=settings.log_format)
        logger.info(f"Starting {settings.title} v{settings.version}...")

        db = await container.resolve(DatabaseManager)
        if settings.create_tables:
            logger.info("Creating database tables...")
            await db.create_all()

        if await db.health_check():
            logger.info("Database connection established successfully")
        else:
            logger.error("Database connection failed!")

        yield

        logger.info(f"Shutting down {settings.title}...")
        await container.dispose()

    app = FastAPI(
        title=settings.title,
        description=settings.description,
        version=settings.version,
        docs_url="/docs" if settings.docs_enabled else None,
        redoc_url="/redoc" if settings.docs_enabled else None,
        openapi_url="/openapi.json" if settings.docs_enabled else None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.container = container

    # ==========================================================================
    # Middleware
    # ==========================================================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = get_request_id(request)
        with LogContext(request_id=request_id):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    # ==========================================================================
    # Exception Handlers
    # ==========================================================================

    app.add_exception_handler(PersonaCallError, persona_call_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # ==========================================================================
    # Routes
    # ==========================================================================

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check():
        """Health check endpoint."""
        db = await container.resolve(DatabaseManager)
        db_healthy = await db.health_check()

        return HealthResponse(
            status="healthy" if db_healthy else "degraded",
            version=settings.version,
            timestamp=datetime.utcnow(),
            checks={
                "api": "ok",
                "database": "ok" if db_healthy else "error",
            },
        )

    @app.get("/ready", tags=["Health"])
    async def readiness_check():
        """Readiness check."""
        db = await container.resolve(DatabaseManager)
        if not await db.health_check():
            return JSONResponse(
                status_code=503,
                content={"status": "not_ready", "reason": "database_unavailable"},
            )
        return {"status": "ready"}

    @app.get(settings.media_path.rstrip("/") + "/{filename}", tags=["Media"])
    async def get_media(filename: str):
        """Serve a stored synthesized audio clip."""
        store = await container.resolve(AudioStore)
        path = store.path_for(filename)
        if path is None or not os.path.isfile(path):
            raise NotFoundError("Audio", filename)
        return FileResponse(path, media_type="audio/mpeg", filename=filename)

    app.include_router(whatsapp_router, prefix="/api")
    app.include_router(voice_router, prefix="/api")
    app.include_router(ai_router, prefix="/api")

    return app


# =============================================================================
# Entry Point
# =============================================================================


def run_server(
    host: str = "0.0.0.0",
    port: int = 8000,
    reload: bool = False,
):
    """Run the API server."""
    import uvicorn

    uvicorn.run(
        "personacall.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    run_server(reload=True)
