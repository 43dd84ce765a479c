"""Domain services: merged reads, lifecycle writes and the synthetic driver."""

from .reconciliation import QueueReconciler, compute_queue_stats, merge_queue_views
from .recorder import LifecycleRecorder
from .scheduler import SyntheticDriver

__all__ = [
    "LifecycleRecorder",
    "QueueReconciler",
    "SyntheticDriver",
    "compute_queue_stats",
    "merge_queue_views",
]
