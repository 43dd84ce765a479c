"""Operational probes and Prometheus exposition."""

from __future__ import annotations

import os
import platform
from typing import Any

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ... import __version__
from ...monitoring.metrics import uptime_seconds
from ...schemas.base import utcnow
from ...utils.health import HealthStatus, get_health_checker
from ..dependencies import StoreContainer, get_container

router = APIRouter()


def _status_code(health: HealthStatus) -> int:
    if health == HealthStatus.UNHEALTHY:
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_200_OK


@router.get("/health")
async def system_health() -> JSONResponse:
    """Aggregate health of every registered component."""

    health = await get_health_checker().check_all()
    return JSONResponse(
        status_code=_status_code(health.status),
        content=health.model_dump(mode="json"),
    )


@router.get("/health/{service}")
async def component_health(service: str) -> JSONResponse:
    checker = get_health_checker()
    if not checker.is_registered(service):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={
                "status": "not_found",
                "message": f"Health check for service '{service}' not found",
                "timestamp": utcnow().isoformat(),
            },
        )
    component = await checker.check_component(service)
    return JSONResponse(
        status_code=_status_code(component.status),
        content=component.model_dump(mode="json"),
    )


@router.get("/metrics", include_in_schema=False)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics collected by the service."""

    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/info")
async def service_info(container: StoreContainer = Depends(get_container)) -> dict[str, Any]:
    settings = container.settings
    return {
        "name": "StreamAudit",
        "version": __version__,
        "environment": settings.environment,
        "queueMode": settings.queue_mode,
        "timestamp": utcnow().isoformat(),
        "uptime": uptime_seconds(),
        "pythonVersion": platform.python_version(),
        "platform": platform.system().lower(),
        "architecture": platform.machine(),
        "pid": os.getpid(),
        "features": {
            "redisCache": True,
            "cassandraStorage": container.durable,
            "clickhouseMetrics": container.metrics is not None,
            "sseRealtime": True,
            "auditLogging": True,
            "syntheticDriver": container.driver is not None and container.driver.running,
        },
    }


@router.get("/readiness")
async def readiness() -> JSONResponse:
    health = await get_health_checker().check_all()
    ready = health.status == HealthStatus.HEALTHY
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "ready": ready,
            "timestamp": utcnow().isoformat(),
            "details": health.model_dump(mode="json"),
        },
    )


@router.get("/liveness")
async def liveness() -> dict[str, Any]:
    return {"alive": True, "timestamp": utcnow().isoformat(), "uptime": uptime_seconds()}
