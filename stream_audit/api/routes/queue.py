"""Queue endpoints: merged listing, aggregate stats and their live streams."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from ...exceptions import OperationNotSupportedError
from ...schemas.base import utcnow
from ...utils.logging import setup_logger
from ..dependencies import StoreContainer, get_container
from ..streaming import default_error_payload, event_stream, poll_events

logger = setup_logger(__name__, context={"component": "api.queue"})
router = APIRouter()


async def _queue_payload(container: StoreContainer, limit: int) -> dict[str, Any]:
    objects = await container.reconciler.list(limit)
    return {
        "success": True,
        "data": [obj.to_api() for obj in objects],
        "count": len(objects),
    }


async def _stats_payload(container: StoreContainer) -> dict[str, Any]:
    stats = await container.reconciler.stats()
    return {"success": True, "data": stats.to_api()}


@router.get("")
async def list_queue(
    limit: int = Query(100, ge=1, le=1000),
    container: StoreContainer = Depends(get_container),
) -> dict[str, Any]:
    """Return the most recently updated objects from the merged view."""

    return await _queue_payload(container, limit)


@router.get("/stats")
async def queue_stats(container: StoreContainer = Depends(get_container)) -> dict[str, Any]:
    """Counts by status and outcome plus the total record count."""

    return await _stats_payload(container)


@router.delete("/clear")
async def clear_queue(container: StoreContainer = Depends(get_container)) -> dict[str, Any]:
    """Drop the live queue; refused when Cassandra backs the queue view."""

    if container.durable:
        raise OperationNotSupportedError(
            "Queue clearing is disabled while the durable store backs the queue"
        )
    await container.queue_fast.clear()
    logger.info("Queue cleared via API", extra={"status": "cleared"})
    return {"success": True, "message": "Queue cleared successfully"}


@router.get("/stream")
async def stream_queue(
    request: Request,
    limit: int = Query(100, ge=1, le=1000),
    container: StoreContainer = Depends(get_container),
) -> StreamingResponse:
    async def _produce() -> dict[str, Any]:
        payload = await _queue_payload(container, limit)
        payload["timestamp"] = utcnow().isoformat()
        return payload

    return event_stream(
        poll_events(
            request,
            "queue",
            container.settings.streams.queue_interval_seconds,
            _produce,
            on_error=default_error_payload("Failed to fetch queue data"),
        )
    )


@router.get("/stats/stream")
async def stream_queue_stats(
    request: Request,
    container: StoreContainer = Depends(get_container),
) -> StreamingResponse:
    async def _produce() -> dict[str, Any]:
        payload = await _stats_payload(container)
        payload["timestamp"] = utcnow().isoformat()
        return payload

    return event_stream(
        poll_events(
            request,
            "queue_stats",
            container.settings.streams.queue_stats_interval_seconds,
            _produce,
            on_error=default_error_payload("Failed to fetch queue stats"),
        )
    )
