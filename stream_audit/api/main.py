"""FastAPI application for the StreamAudit service."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..exceptions import (
    IllegalTransitionError,
    OperationNotSupportedError,
    StoreUnavailableError,
    StreamAuditError,
)
from ..utils.config import GlobalSettings, ensure_runtime_configuration, get_settings
from ..utils.health_checks import register_all_health_checks
from ..utils.logging import setup_logger
from .dependencies import StoreContainer, build_container
from .routes import audit, health, metrics, monitoring, queue

logger = setup_logger(__name__, context={"component": "api"})

_ERROR_STATUS: dict[type[StreamAuditError], int] = {
    StoreUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    OperationNotSupportedError: status.HTTP_405_METHOD_NOT_ALLOWED,
    IllegalTransitionError: status.HTTP_409_CONFLICT,
}


@asynccontextmanager
async def lifespan(app: FastAPI):  # type: ignore
    """Connect the stores, start the driver, and undo both on shutdown."""
    settings: GlobalSettings = app.state.settings
    container: StoreContainer | None = app.state.container
    owns_container = container is None

    if owns_container:
        ensure_runtime_configuration(settings)
        container = build_container(settings)
        try:
            await container.connect()
        except Exception:
            logger.exception("Failed to connect to a required store; aborting startup")
            await container.close()
            raise
        app.state.container = container
        register_all_health_checks(container.health_components())

    logger.info(
        f"StreamAudit API starting up in {settings.queue_mode} mode",
        extra={"status": "starting"},
    )
    if settings.scheduler.enabled:
        container.build_driver().start()

    yield

    logger.info("StreamAudit API shutting down...", extra={"status": "stopping"})
    if container.driver is not None:
        await container.driver.stop()
    if owns_container:
        await container.close()
        app.state.container = None


async def stream_audit_exception_handler(request: Request, exc: StreamAuditError) -> JSONResponse:
    """Map domain errors to ``{success: false, message}`` responses."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, code in _ERROR_STATUS.items():
        if isinstance(exc, error_type):
            status_code = code
            break

    logger.error(
        f"{exc.__class__.__name__}: {exc}",
        extra={"status": "error", "object_id": request.url.path},
    )
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": str(exc), "error_type": exc.__class__.__name__},
    )


def create_app(
    container: StoreContainer | None = None,
    *,
    settings: GlobalSettings | None = None,
) -> FastAPI:
    """Build the application.

    When ``container`` is given its stores are used as-is: the lifespan does not
    connect or close them, and health checks are registered immediately.
    """
    settings = settings or (container.settings if container else get_settings())

    app = FastAPI(
        title="StreamAudit API",
        description="Live queue state, audit trail and business metrics for the payment pipeline",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.container = container
    if container is not None:
        register_all_health_checks(container.health_components())

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "DELETE", "OPTIONS"],
        allow_headers=["Cache-Control", "Content-Type"],
    )
    app.add_exception_handler(StreamAuditError, stream_audit_exception_handler)  # type: ignore[arg-type]

    app.include_router(health.router, tags=["health"])
    app.include_router(queue.router, prefix="/api/queue", tags=["queue"])
    app.include_router(audit.router, prefix="/api/audit", tags=["audit"])
    app.include_router(metrics.router, prefix="/api/metrics", tags=["metrics"])
    app.include_router(monitoring.router, prefix="/api/monitoring", tags=["monitoring"])

    @app.api_route(
        "/api/{path:path}",
        methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        include_in_schema=False,
    )
    async def api_not_found(path: str) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"success": False, "message": "API route not found"},
        )

    return app


app = create_app()
