"""Merged queue view over the durable baseline and the fast-store overlay.

The durable store holds every object but lags behind; the fast store holds
only the most recent writes. A display read fetches both, lets the overlay
replace any baseline object with the same id and re-sorts. Nothing is cached
between calls, so two concurrent readers may observe different snapshots when
a write lands between their sub-fetches.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

from ..schemas.queue import QueueObject, QueueStats
from ..stores.base import QueueStore, sort_queue_objects
from ..utils.logging import setup_logger

logger = setup_logger(__name__, context={"component": "reconciliation"})


def merge_queue_views(
    durable: Iterable[QueueObject],
    overlay: Iterable[QueueObject],
    limit: int,
) -> list[QueueObject]:
    """Merge two snapshots into one ordered, truncated list.

    Overlay objects always win on an id conflict, whatever their timestamps.
    The inputs are not modified.
    """

    merged: dict[str, QueueObject] = {obj.object_id: obj for obj in durable}
    for obj in overlay:
        merged[obj.object_id] = obj
    return sort_queue_objects(list(merged.values()))[: max(limit, 0)]


def compute_queue_stats(objects: Iterable[QueueObject]) -> QueueStats:
    """Count objects by status and outcome and sum their records."""

    by_status: Counter[str] = Counter()
    by_outcome: Counter[str] = Counter()
    total = 0
    total_records = 0
    for obj in objects:
        total += 1
        total_records += obj.records
        by_status[obj.status.value] += 1
        if obj.outcome is not None:
            by_outcome[obj.outcome.value] += 1

    return QueueStats(
        total=total,
        by_status=dict(by_status),
        by_outcome=dict(by_outcome),
        total_records=total_records,
    )


class QueueReconciler:
    """Reads the queue for display, merging stores when a durable one exists."""

    def __init__(
        self,
        fast: QueueStore,
        durable: QueueStore | None = None,
        *,
        durable_fetch_limit: int = 1000,
        overlay_fetch_limit: int = 100,
        stats_scan_limit: int = 1000,
    ) -> None:
        self.fast = fast
        self.durable = durable
        self.durable_fetch_limit = durable_fetch_limit
        self.overlay_fetch_limit = overlay_fetch_limit
        self.stats_scan_limit = stats_scan_limit

    @property
    def mode(self) -> str:
        return "durable" if self.durable is not None else "cache"

    async def list(self, limit: int = 100) -> list[QueueObject]:
        """Return up to ``limit`` objects, most recently updated first."""

        if self.durable is None:
            return await self.fast.list(limit)

        baseline = await self.durable.list(max(self.durable_fetch_limit, limit))
        overlay = await self.fast.list(self.overlay_fetch_limit)
        merged = merge_queue_views(baseline, overlay, limit)
        logger.debug(
            "Merged queue view",
            extra={"store": self.mode, "status": f"{len(baseline)}+{len(overlay)}->{len(merged)}"},
        )
        return merged

    async def stats(self) -> QueueStats:
        """Aggregate counts from a single-store scan.

        With a durable store configured only the baseline is scanned, which can
        trail the overlay by a few transitions but skips the merge.
        """

        source = self.durable if self.durable is not None else self.fast
        return compute_queue_stats(await source.list(self.stats_scan_limit))
