"""Store adapters package initialization."""
from .base import (
    AuditStore,
    QueueStore,
    StoreAdapter,
    sort_audit_entries,
    sort_queue_objects,
    summarize_item_entries,
)

__all__ = [
    "AuditStore",
    "QueueStore",
    "StoreAdapter",
    "sort_audit_entries",
    "sort_queue_objects",
    "summarize_item_entries",
]
