"""Pytest configuration - no path manipulation, rely on proper package installation."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import pytest

from stream_audit.api.dependencies import StoreContainer
from stream_audit.lifecycle import Status
from stream_audit.schemas.queue import QueueObject
from stream_audit.testing.memory import (
    InMemoryAuditStore,
    InMemoryMetricsStore,
    InMemoryQueueStore,
)
from stream_audit.utils.config import GlobalSettings, get_settings
from stream_audit.utils.health import reset_health_checker

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch):
    """Run every test against the cache-only test profile."""

    monkeypatch.setenv("STREAM_AUDIT_ENVIRONMENT", "test")
    monkeypatch.setenv("STREAM_AUDIT_QUEUE_MODE", "cache")
    monkeypatch.setenv("STREAM_AUDIT_SCHEDULER__ENABLED", "false")
    get_settings(reload=True)
    reset_health_checker()
    yield
    reset_health_checker()


@pytest.fixture
def make_object() -> Callable[..., QueueObject]:
    """Factory for queue objects with predictable timestamps."""

    def _make(
        object_id: str,
        *,
        status: Status = Status.RECEIVED,
        minutes: int = 0,
        **fields,
    ) -> QueueObject:
        stamp = T0 + timedelta(minutes=minutes)
        fields.setdefault("created", stamp)
        fields.setdefault("updated", stamp)
        return QueueObject(object_id=object_id, status=status, **fields)

    return _make


@pytest.fixture
def make_container() -> Callable[..., StoreContainer]:
    """Factory for a store container backed by in-memory stores."""

    def _make(*, durable: bool = False, metrics: bool = True, **overrides) -> StoreContainer:
        settings = GlobalSettings(queue_mode="durable" if durable else "cache", **overrides)
        container = StoreContainer(
            settings=settings,
            queue_fast=InMemoryQueueStore(name="redis"),
            audit_fast=InMemoryAuditStore(name="redis", recent_window=settings.audit_recent_window),
            metrics=InMemoryMetricsStore() if metrics else None,
        )
        if durable:
            container.queue_durable = InMemoryQueueStore(name="cassandra", supports_clear=False)
            container.audit_durable = InMemoryAuditStore(name="cassandra")
        return container

    return _make
