"""Abstract store interfaces and the shared call wrapper.

Every outbound store call goes through :meth:`StoreAdapter._call`, which bounds
it with the configured timeout, records Prometheus metrics and converts driver
failures into :class:`StoreUnavailableError`. No retry happens here; callers
that poll (the SSE producers, the synthetic driver) simply try again on their
next tick.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from ..exceptions import OperationNotSupportedError, StoreUnavailableError
from ..monitoring.metrics import record_store_operation
from ..schemas.audit import AuditEntry, ItemAuditStats
from ..schemas.queue import ObjectType, QueueObject, QueueObjectUpdate
from ..utils.logging import log_store_call, setup_logger

logger = setup_logger(__name__, context={"component": "stores"})

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 3.0


def sort_queue_objects(objects: list[QueueObject]) -> list[QueueObject]:
    """Order by ``updated`` descending, ties broken by ``created`` descending."""

    return sorted(objects, key=lambda obj: (obj.updated, obj.created), reverse=True)


def sort_audit_entries(entries: list[AuditEntry]) -> list[AuditEntry]:
    """Order audit rows newest first."""

    return sorted(entries, key=lambda entry: entry.timestamp, reverse=True)


class StoreAdapter(ABC):
    """Common plumbing for every store adapter."""

    store_name: str = "store"

    def __init__(self, *, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self.timeout = timeout

    async def _call(
        self,
        operation: str,
        func: Callable[[], Awaitable[T]],
        *,
        object_id: str | None = None,
    ) -> T:
        """Run one store call under the timeout and translate its failures."""

        started = time.perf_counter()
        try:
            result = await asyncio.wait_for(func(), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            self._observe(operation, "timeout", started, object_id)
            raise StoreUnavailableError(
                self.store_name, operation, f"timed out after {self.timeout:.1f}s"
            ) from exc
        except (StoreUnavailableError, OperationNotSupportedError):
            self._observe(operation, "error", started, object_id)
            raise
        except Exception as exc:
            self._observe(operation, "error", started, object_id)
            raise StoreUnavailableError(self.store_name, operation, str(exc)) from exc

        self._observe(operation, "success", started, object_id)
        return result

    async def _call_sync(
        self,
        operation: str,
        func: Callable[..., T],
        *args: Any,
        object_id: str | None = None,
    ) -> T:
        """Run a blocking driver call in a worker thread under :meth:`_call`."""

        async def _run() -> T:
            return await asyncio.to_thread(func, *args)

        return await self._call(operation, _run, object_id=object_id)

    def _observe(
        self, operation: str, status: str, started: float, object_id: str | None
    ) -> None:
        elapsed = time.perf_counter() - started
        record_store_operation(self.store_name, operation, status, elapsed)
        log_store_call(
            logger,
            store=self.store_name,
            operation=operation,
            duration_ms=int(elapsed * 1000),
            status=status,
            object_id=object_id,
        )

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection; failures propagate so startup can abort."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the store answers a trivial query."""

    async def close(self) -> None:
        """Release the connection."""
        return None


class QueueStore(StoreAdapter):
    """Current state of queue objects keyed by object id."""

    @abstractmethod
    async def put(self, obj: QueueObject) -> None:
        """Upsert the full object state."""

    @abstractmethod
    async def get(self, object_id: str) -> QueueObject | None:
        """Return one object or None when unknown."""

    @abstractmethod
    async def list(self, limit: int = 100) -> list[QueueObject]:
        """Return up to ``limit`` objects, most recently updated first."""

    @abstractmethod
    async def update(self, object_id: str, patch: QueueObjectUpdate) -> bool:
        """Merge-patch status/outcome/updated; unknown ids are a no-op returning False."""

    @abstractmethod
    async def count(self) -> int:
        """Return the number of tracked objects."""

    async def clear(self) -> None:
        raise OperationNotSupportedError(
            f"{self.store_name} queue store does not support clearing"
        )


class AuditStore(StoreAdapter):
    """Append-only audit log with per-object, per-parent and recent views."""

    @abstractmethod
    async def append_entry(self, entry: AuditEntry) -> None:
        """Write one entry; existing rows are never touched."""

    @abstractmethod
    async def query_by_object(
        self, object_type: ObjectType, object_id: str, limit: int = 50
    ) -> list[AuditEntry]:
        """Return entries for one subject, newest first."""

    @abstractmethod
    async def query_by_parent(self, parent_id: str, limit: int = 100) -> list[AuditEntry]:
        """Return item entries under one batch, newest first."""

    @abstractmethod
    async def query_recent(self, limit: int = 100) -> list[AuditEntry]:
        """Return a bounded view of recent writes, newest first."""

    async def stats_by_parent(self, parent_id: str, limit: int = 1000) -> ItemAuditStats:
        """Summarise the item rows under ``parent_id``; computed per call."""

        entries = await self.query_by_parent(parent_id, limit)
        return summarize_item_entries(parent_id, entries)


def summarize_item_entries(parent_id: str, entries: list[AuditEntry]) -> ItemAuditStats:
    """Count distinct items by the status of their newest audit row."""

    latest: dict[str, AuditEntry] = {}
    for entry in entries:
        current = latest.get(entry.object_id)
        if current is None or entry.timestamp > current.timestamp:
            latest[entry.object_id] = entry

    by_status = Counter(entry.new_status.value for entry in latest.values())
    last_updated = max((entry.timestamp for entry in entries), default=None)
    return ItemAuditStats(
        parent_id=parent_id,
        total_items=len(latest),
        total_entries=len(entries),
        by_status=dict(by_status),
        last_updated=last_updated,
    )
