"""FastAPI application for Courier."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from courier import __version__
from courier.config import Settings
from courier.exceptions import CourierError, NotFoundError, ValidationError
from courier.logging import configure_logging, get_logger
from courier.service import WebhookService

from .router import router, set_service

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan.

    Initializes the WebhookService on startup. On shutdown every retry
    worker is stopped and store clients are closed.
    """
    settings: Settings = app.state.settings

    # Configure structured logging
    configure_logging(level=settings.log_level, format=settings.log_format)
    logger.info(
        "Starting Courier API",
        log_level=settings.log_level,
        log_format=settings.log_format,
        remote_enabled=settings.remote_enabled,
    )

    service: WebhookService = app.state.service or WebhookService.create(settings)
    await service.initialize()
    set_service(service)

    yield

    # Cleanup
    await service.close()
    set_service(None)


def create_app(
    settings: Settings | None = None,
    service: WebhookService | None = None,
) -> FastAPI:
    """Create a FastAPI application.

    Args:
        settings: Optional settings. Uses environment if None.
        service: Pre-built service (tests). Created from settings if None.

    Returns:
        Configured FastAPI application.

    Example:
        ```python
        from courier.api import create_app

        app = create_app()
        # Run with: uvicorn courier.api:app --reload
        ```
    """
    if settings is None:
        settings = service.settings if service is not None else Settings()

    app = FastAPI(
        title="Courier",
        description="Signed webhook delivery with durable retries.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.service = service

    # Register exception handlers
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        """Handle validation errors with 400 status."""
        logger.warning(
            "Validation error", field=exc.field, error=exc.message, path=str(request.url)
        )
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(NotFoundError)
    async def not_found_error_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        """Handle not found errors with 404 status."""
        logger.info(
            "Resource not found",
            resource_type=exc.resource_type,
            resource_id=exc.resource_id,
            path=str(request.url),
        )
        return JSONResponse(status_code=404, content=exc.to_dict())

    @app.exception_handler(CourierError)
    async def courier_error_handler(request: Request, exc: CourierError) -> JSONResponse:
        """Handle all other Courier errors (storage exhausted etc.) with 500 status."""
        logger.error("Courier error", error=exc.message, code=exc.code, path=str(request.url))
        return JSONResponse(status_code=500, content=exc.to_dict())

    app.include_router(router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
