"""Business metrics endpoints backed by the analytical store."""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from ...exceptions import StoreUnavailableError
from ...schemas.base import utcnow
from ...schemas.metrics import MetricsHealth
from ...stores.clickhouse_store import ClickHouseMetricsStore
from ...utils.logging import setup_logger
from ..dependencies import StoreContainer, get_container, get_metrics_store
from ..streaming import event_stream, poll_events

logger = setup_logger(__name__, context={"component": "api.metrics", "store": "clickhouse"})
router = APIRouter()

LIVE_EVENTS_MAX = 100


def _envelope(data: Any, *, count: bool = False) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": True, "data": data}
    if count:
        payload["count"] = len(data)
    payload["timestamp"] = utcnow().isoformat()
    return payload


def _dump(rows: list[Any]) -> list[dict[str, Any]]:
    return [row.model_dump(mode="json") for row in rows]


@router.get("/today-summary")
async def today_summary(
    store: ClickHouseMetricsStore = Depends(get_metrics_store),
) -> dict[str, Any]:
    summary = await store.today_summary()
    return _envelope(summary.model_dump(mode="json"))


@router.get("/company-breakdown")
async def company_breakdown(
    store: ClickHouseMetricsStore = Depends(get_metrics_store),
) -> dict[str, Any]:
    return _envelope(_dump(await store.company_breakdown()), count=True)


@router.get("/hourly-trends")
async def hourly_trends(
    store: ClickHouseMetricsStore = Depends(get_metrics_store),
) -> dict[str, Any]:
    """Hourly buckets over the last 24 hours."""

    return _envelope(_dump(await store.hourly_trends()), count=True)


@router.get("/live-events")
async def live_events(
    limit: int = Query(20, ge=1),
    store: ClickHouseMetricsStore = Depends(get_metrics_store),
) -> dict[str, Any]:
    """Most recent completions; ``limit`` is capped at 100."""

    events = await store.recent_events(min(limit, LIVE_EVENTS_MAX))
    return _envelope(_dump(events), count=True)


@router.get("/performance")
async def performance(
    store: ClickHouseMetricsStore = Depends(get_metrics_store),
) -> dict[str, Any]:
    result = await store.performance()
    return _envelope(result.model_dump(mode="json"))


@router.get("/health")
async def metrics_health(
    store: ClickHouseMetricsStore = Depends(get_metrics_store),
) -> dict[str, Any]:
    try:
        connected = await store.ping()
        total = await store.event_count() if connected else 0
    except StoreUnavailableError as exc:
        logger.warning(f"Metrics store health probe failed: {exc}", extra={"status": "unhealthy"})
        connected, total = False, 0
    health = MetricsHealth(
        status="healthy" if connected else "unhealthy",
        clickhouse_connected=connected,
        total_events=total,
        last_check=utcnow(),
    )
    return {"success": True, "data": health.model_dump(mode="json")}


@router.get("/stream")
async def stream_metrics(
    request: Request,
    container: StoreContainer = Depends(get_container),
    store: ClickHouseMetricsStore = Depends(get_metrics_store),
) -> StreamingResponse:
    """Push ``connected`` once, then a ``metrics-update`` frame per tick."""

    async def _produce() -> dict[str, Any]:
        summary, breakdown, recent = await asyncio.gather(
            store.today_summary(),
            store.company_breakdown(),
            store.recent_events(5),
        )
        return {
            "type": "metrics-update",
            "timestamp": utcnow().isoformat(),
            "data": {
                "summary": summary.model_dump(mode="json"),
                "breakdown": _dump(breakdown[:5]),
                "recent": _dump(recent),
            },
        }

    def _error(exc: Exception) -> dict[str, Any]:
        return {
            "type": "error",
            "timestamp": utcnow().isoformat(),
            "message": "Failed to fetch metrics update",
        }

    return event_stream(
        poll_events(
            request,
            "metrics",
            container.settings.streams.metrics_interval_seconds,
            _produce,
            on_error=_error,
            initial=[{"type": "connected", "timestamp": utcnow().isoformat()}],
        )
    )
