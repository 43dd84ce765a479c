"""Component health check implementations."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

from ..stores.base import StoreAdapter
from .health import ComponentHealth, HealthChecker, HealthStatus, get_health_checker


def store_check(
    name: str, store: StoreAdapter, *, role: str | None = None
) -> Callable[[], Awaitable[ComponentHealth]]:
    """Build an async check that pings ``store`` and reports its latency."""

    async def _check() -> ComponentHealth:
        started = time.perf_counter()
        try:
            answered = await store.ping()
        except Exception as e:
            return ComponentHealth(
                name=name,
                status=HealthStatus.UNHEALTHY,
                message=f"{name.capitalize()} connection failed: {e}",
            )

        metadata: dict[str, object] = {
            "latency_ms": round((time.perf_counter() - started) * 1000, 2),
        }
        if role:
            metadata["role"] = role
        if not answered:
            return ComponentHealth(
                name=name,
                status=HealthStatus.DEGRADED,
                message=f"{name.capitalize()} did not answer ping",
                metadata=metadata,
            )
        return ComponentHealth(
            name=name,
            status=HealthStatus.HEALTHY,
            message=f"{name.capitalize()} connection successful",
            metadata=metadata,
        )

    return _check


def check_api() -> ComponentHealth:
    """Check API service health (always healthy if code is running)."""
    return ComponentHealth(
        name="api",
        status=HealthStatus.HEALTHY,
        message="API service is running",
    )


def register_all_health_checks(
    stores: dict[str, tuple[StoreAdapter, str]],
    checker: HealthChecker | None = None,
) -> HealthChecker:
    """Register one check per connected store plus the API itself.

    ``stores`` maps a component name to the store answering its ping and a
    short role description shown in the health payload.
    """
    checker = checker or get_health_checker()
    for name, (store, role) in stores.items():
        checker.register_check(name, store_check(name, store, role=role))
    checker.register_check("api", check_api)
    return checker
