"""Audit trail endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from ...schemas.base import utcnow
from ...schemas.queue import ObjectType
from ..dependencies import StoreContainer, get_container
from ..streaming import default_error_payload, event_stream, poll_events

router = APIRouter()


async def _recent_payload(container: StoreContainer, limit: int) -> dict[str, Any]:
    entries = await container.audit_recent.query_recent(limit)
    return {
        "success": True,
        "data": [entry.to_api() for entry in entries],
        "count": len(entries),
    }


@router.get("")
async def recent_audit(
    limit: int = Query(100, ge=1, le=1000),
    container: StoreContainer = Depends(get_container),
) -> dict[str, Any]:
    """Global view of recent audit writes (bounded window, may be empty)."""

    return await _recent_payload(container, limit)


@router.get("/stream")
async def stream_audit(
    request: Request,
    limit: int = Query(100, ge=1, le=1000),
    container: StoreContainer = Depends(get_container),
) -> StreamingResponse:
    async def _produce() -> dict[str, Any]:
        payload = await _recent_payload(container, limit)
        payload["timestamp"] = utcnow().isoformat()
        return payload

    return event_stream(
        poll_events(
            request,
            "audit",
            container.settings.streams.audit_interval_seconds,
            _produce,
            on_error=default_error_payload("Failed to fetch audit data"),
        )
    )


@router.get("/object/{object_type}/{object_id}")
async def audit_for_object(
    object_type: ObjectType,
    object_id: str,
    limit: int = Query(50, ge=1, le=1000),
    container: StoreContainer = Depends(get_container),
) -> dict[str, Any]:
    """Full history of one batch or item, newest first."""

    entries = await container.audit_reader.query_by_object(object_type, object_id, limit)
    return {
        "success": True,
        "data": [entry.to_api() for entry in entries],
        "count": len(entries),
        "objectType": object_type.value,
        "objectId": object_id,
    }


@router.get("/items/parent/{parent_id}")
async def audit_for_parent(
    parent_id: str,
    limit: int = Query(100, ge=1, le=1000),
    container: StoreContainer = Depends(get_container),
) -> dict[str, Any]:
    """Item-level history under one batch together with its summary."""

    store = container.audit_reader
    entries = await store.query_by_parent(parent_id, limit)
    stats = await store.stats_by_parent(parent_id, container.settings.stats_scan_limit)
    return {
        "success": True,
        "data": [entry.to_api() for entry in entries],
        "stats": stats.to_api(),
        "count": len(entries),
        "parentId": parent_id,
    }


@router.get("/items/parent/{parent_id}/stats")
async def audit_stats_for_parent(
    parent_id: str,
    container: StoreContainer = Depends(get_container),
) -> dict[str, Any]:
    stats = await container.audit_reader.stats_by_parent(
        parent_id, container.settings.stats_scan_limit
    )
    return {"success": True, "data": stats.to_api(), "parentId": parent_id}
