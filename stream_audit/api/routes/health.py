"""Plain liveness endpoint used by load balancers."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from ...schemas.base import utcnow

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, Any]:
    return {"status": "OK", "service": "stream_audit", "timestamp": utcnow().isoformat()}
