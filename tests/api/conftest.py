"""Fixtures for exercising the HTTP surface over ASGI."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

import pytest
from httpx import ASGITransport, AsyncClient

from stream_audit.api.dependencies import StoreContainer
from stream_audit.api.main import create_app


@pytest.fixture
def api_client() -> Callable[[StoreContainer], AsyncIterator[AsyncClient]]:
    """Open an AsyncClient against an app wired to ``container``."""

    @asynccontextmanager
    async def _open(container: StoreContainer) -> AsyncIterator[AsyncClient]:
        app = create_app(container)
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client

    return _open
