"""FastAPI application entry point for the photo store."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from photostore.api.health import router as health_router
from photostore.api.photos import router as photos_router
from photostore.config import Settings
from photostore.exceptions import (
    DeleteError,
    InvalidUploadError,
    PhotoNotFoundError,
    StorageInitError,
    WriteError,
)
from photostore.services.content_store import ContentStore

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool) -> None:
    """Configure application logging."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)


def open_store(settings: Settings) -> ContentStore:
    """Build the content store, logging and re-raising any startup failure."""
    try:
        return ContentStore.open(settings.photo_dir, settings.eligible_extensions)
    except StorageInitError as exc:
        logger.critical("Failed to initialize photo store at %s: %s", settings.photo_dir, exc)
        raise


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan: startup and shutdown."""
    settings: Settings = app.state.settings
    _configure_logging(settings.debug)
    logger.info("Starting photo store (debug=%s)", settings.debug)
    logger.info("Photo directory: %s", settings.photo_dir)

    app.state.store = open_store(settings)

    yield

    logger.info("Photo store stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="Photo Store",
        description="Content-addressed photo storage",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.debug else None,
    )
    app.state.settings = settings

    app.include_router(health_router)
    app.include_router(photos_router)

    # Global exception handlers: store failures become explicit responses

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = []
        for err in exc.errors():
            loc = err.get("loc", ())
            field = str(loc[-1]) if loc else "unknown"
            errors.append({"field": field, "message": err.get("msg", "Invalid value")})
        logger.warning(
            "RequestValidationError in %s %s: %s",
            request.method,
            request.url.path,
            errors,
        )
        return JSONResponse(status_code=422, content={"detail": errors})

    @app.exception_handler(PhotoNotFoundError)
    async def not_found_handler(request: Request, exc: PhotoNotFoundError) -> JSONResponse:
        logger.info("%s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=404, content={"detail": "Photo not found"})

    @app.exception_handler(InvalidUploadError)
    async def invalid_upload_handler(request: Request, exc: InvalidUploadError) -> JSONResponse:
        logger.warning("Rejected upload in %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(WriteError)
    async def write_error_handler(request: Request, exc: WriteError) -> JSONResponse:
        logger.error(
            "WriteError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(status_code=500, content={"detail": "Failed to store photo"})

    @app.exception_handler(DeleteError)
    async def delete_error_handler(request: Request, exc: DeleteError) -> JSONResponse:
        logger.error(
            "DeleteError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(status_code=500, content={"detail": "Failed to delete photo"})

    @app.exception_handler(OSError)
    async def os_error_handler(request: Request, exc: OSError) -> JSONResponse:
        if isinstance(exc, (ConnectionError, TimeoutError)):
            raise exc
        logger.error("OSError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"detail": "Storage operation failed"},
        )

    return app


def cli_entry() -> None:
    """CLI entry point for running the server."""
    import uvicorn

    settings = Settings()
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
    )
