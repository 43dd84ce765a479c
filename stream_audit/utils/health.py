"""Component health aggregation for the monitoring routes.

Each store registers one check returning a :class:`ComponentHealth`. The system
status is the worst component status, and it is mirrored into the
``app_health_status`` gauge every time it is computed.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .. import __version__
from ..monitoring.metrics import set_health_status, uptime_seconds

SERVICE_NAME = "stream_audit"


class HealthStatus(str, Enum):
    """Health status levels."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


# Worst status wins; also the value published on the gauge.
_SEVERITY: dict[HealthStatus, float] = {
    HealthStatus.HEALTHY: 1.0,
    HealthStatus.DEGRADED: 0.5,
    HealthStatus.UNHEALTHY: 0.0,
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ComponentHealth(BaseModel):
    """Result of one component check."""

    name: str
    status: HealthStatus
    message: str | None = None
    checked_at: datetime = Field(default_factory=_now)
    metadata: dict[str, Any] = Field(default_factory=dict)


class SystemHealth(BaseModel):
    """Aggregated status served by ``/api/monitoring/health``."""

    status: HealthStatus
    service: str = SERVICE_NAME
    version: str = __version__
    checked_at: datetime = Field(default_factory=_now)
    components: dict[str, ComponentHealth] = Field(default_factory=dict)
    uptime_seconds: float = Field(default_factory=uptime_seconds)


class HealthChecker:
    """Registry of named component checks."""

    def __init__(self) -> None:
        self._checks: dict[str, Callable[[], Any]] = {}

    @property
    def components(self) -> list[str]:
        return sorted(self._checks)

    def register_check(self, component_name: str, check_fn: Callable[[], Any]) -> None:
        """Register ``check_fn`` (sync or async) under ``component_name``."""
        self._checks[component_name] = check_fn

    def is_registered(self, component_name: str) -> bool:
        return component_name in self._checks

    async def check_component(self, component_name: str) -> ComponentHealth:
        """Run one check; a missing or raising check reports unhealthy."""
        check_fn = self._checks.get(component_name)
        if check_fn is None:
            return ComponentHealth(
                name=component_name,
                status=HealthStatus.UNHEALTHY,
                message=f"Component '{component_name}' not registered",
            )

        try:
            if asyncio.iscoroutinefunction(check_fn):
                return await check_fn()
            return await asyncio.to_thread(check_fn)
        except Exception as exc:
            return ComponentHealth(
                name=component_name,
                status=HealthStatus.UNHEALTHY,
                message=f"Health check failed: {exc}",
            )

    async def _check_within(self, component_name: str, timeout: float) -> ComponentHealth:
        try:
            return await asyncio.wait_for(self.check_component(component_name), timeout)
        except asyncio.TimeoutError:
            return ComponentHealth(
                name=component_name,
                status=HealthStatus.UNHEALTHY,
                message=f"Health check timed out after {timeout:g}s",
            )

    async def check_all(self, timeout: float = 5.0) -> SystemHealth:
        """Run every check concurrently, each bounded by ``timeout`` seconds.

        With nothing registered the service cannot vouch for any store and
        reports unhealthy.
        """
        names = self.components
        results = await asyncio.gather(*(self._check_within(name, timeout) for name in names))
        components = dict(zip(names, results))

        if components:
            overall = min(
                (component.status for component in components.values()),
                key=_SEVERITY.__getitem__,
            )
        else:
            overall = HealthStatus.UNHEALTHY
        set_health_status(_SEVERITY[overall])

        return SystemHealth(status=overall, components=components)


_health_checker: HealthChecker | None = None


def get_health_checker() -> HealthChecker:
    """Return the process-wide checker, creating it on first use."""
    global _health_checker
    if _health_checker is None:
        _health_checker = HealthChecker()
    return _health_checker


def reset_health_checker() -> None:
    global _health_checker
    _health_checker = None
