"""Testing helpers for StreamAudit."""

from .memory import InMemoryAuditStore, InMemoryMetricsStore, InMemoryQueueStore

__all__ = [
    "InMemoryAuditStore",
    "InMemoryMetricsStore",
    "InMemoryQueueStore",
]
