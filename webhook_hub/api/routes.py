"""FastAPI application for the WebHook API.

This module provides:
- Registration, filter and notification routers
- Dispatcher startup and shutdown in the application lifespan
- Error handling with structured ``detail``/``instance`` payloads
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from webhook_hub import __version__
from webhook_hub.webhooks.services import get_webhook_services

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: ARG001
    """Start the delivery workers and release the HTTP client on shutdown."""
    logger.info("application_starting")
    services = get_webhook_services()
    await services.dispatcher.start()

    yield

    logger.info("application_shutting_down")
    await services.dispatcher.shutdown()


OPENAPI_TAGS = [
    {
        "name": "Registrations",
        "description": "Create, inspect, modify and delete the WebHooks of the calling user.",
    },
    {
        "name": "Filters",
        "description": "Filters a WebHook can be registered with.",
    },
    {
        "name": "Notifications",
        "description": "Raise notifications delivered to matching WebHooks.",
    },
    {
        "name": "Health",
        "description": "Liveness check.",
    },
]


def create_app(
    title: str = "WebHook Hub API",
    version: str = __version__,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        title: API title.
        version: API version.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title=title,
        version=version,
        lifespan=lifespan,
        openapi_tags=OPENAPI_TAGS,
    )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException  # noqa: ARG001
    ) -> JSONResponse:
        content = exc.detail if isinstance(exc.detail, dict) else {"detail": exc.detail}
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error("unhandled_exception", path=request.url.path, error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc), "instance": request.url.path},
        )

    register_routes(app)

    return app


def register_routes(app: FastAPI) -> None:
    """Register all routes on the application.

    Args:
        app: FastAPI application.
    """
    from webhook_hub.api.filters import router as filters_router
    from webhook_hub.api.notifications import router as notifications_router
    from webhook_hub.api.registrations import router as registrations_router

    app.include_router(registrations_router)
    app.include_router(filters_router)
    app.include_router(notifications_router)

    @app.get("/health", tags=["Health"])
    async def health() -> dict[str, Any]:
        """Basic liveness check."""
        return {"status": "ok", "timestamp": datetime.now(UTC).isoformat()}
