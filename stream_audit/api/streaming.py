"""Server-sent event helpers shared by the streaming endpoints.

Each stream is a polling producer: fetch, emit one ``data: <json>`` frame,
sleep, repeat. A failed fetch emits an error frame and the next tick simply
tries again. The loop ends when the client disconnects; Starlette also
cancels the generator on disconnect, and the ``finally`` block releases the
gauge either way.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from fastapi import Request
from fastapi.responses import StreamingResponse

from ..monitoring.metrics import stream_closed, stream_opened
from ..schemas.base import utcnow
from ..utils.logging import setup_logger

logger = setup_logger(__name__, context={"component": "sse"})

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

Producer = Callable[[], Awaitable[dict[str, Any]]]
ErrorFormatter = Callable[[Exception], dict[str, Any]]
SleepFunc = Callable[[float], Awaitable[None]]


def sse_frame(payload: dict[str, Any]) -> str:
    """Encode one SSE ``data`` frame."""

    return f"data: {json.dumps(payload, default=str)}\n\n"


def default_error_payload(message: str) -> ErrorFormatter:
    def _format(exc: Exception) -> dict[str, Any]:
        return {"success": False, "error": message, "timestamp": utcnow().isoformat()}

    return _format


async def poll_events(
    request: Request,
    stream: str,
    interval: float,
    produce: Producer,
    *,
    on_error: ErrorFormatter,
    initial: list[dict[str, Any]] | None = None,
    sleep: SleepFunc = asyncio.sleep,
) -> AsyncIterator[str]:
    """Yield SSE frames from ``produce`` every ``interval`` seconds until disconnect."""

    stream_opened(stream)
    logger.info(f"SSE client connected to {stream}", extra={"status": "connected"})
    try:
        for payload in initial or ():
            yield sse_frame(payload)

        while not await request.is_disconnected():
            try:
                payload = await produce()
            except Exception as exc:
                logger.error(f"Error in {stream} SSE stream: {exc}", extra={"status": "error"})
                payload = on_error(exc)
            yield sse_frame(payload)
            await sleep(interval)
    finally:
        stream_closed(stream)
        logger.info(f"SSE client disconnected from {stream}", extra={"status": "disconnected"})


def event_stream(frames: AsyncIterator[str]) -> StreamingResponse:
    """Wrap a frame iterator in a ``text/event-stream`` response."""

    return StreamingResponse(frames, media_type="text/event-stream", headers=SSE_HEADERS)
