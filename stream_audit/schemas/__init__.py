"""Schemas package initialization."""
from .audit import AuditAction, AuditEntry, ItemAuditStats
from .metadata import (
    MetadataDecodeResult,
    PaymentMetadata,
    decode_metadata,
    encode_metadata,
    render_metadata,
)
from .metrics import (
    CompanyBreakdown,
    HourlyTrend,
    MetricsHealth,
    PerformanceMetrics,
    RecentEvent,
    TodaySummary,
)
from .queue import ObjectType, QueueObject, QueueObjectUpdate, QueueStats

__all__ = [
    "AuditAction",
    "AuditEntry",
    "ItemAuditStats",
    "MetadataDecodeResult",
    "PaymentMetadata",
    "decode_metadata",
    "encode_metadata",
    "render_metadata",
    "CompanyBreakdown",
    "HourlyTrend",
    "MetricsHealth",
    "PerformanceMetrics",
    "RecentEvent",
    "TodaySummary",
    "ObjectType",
    "QueueObject",
    "QueueObjectUpdate",
    "QueueStats",
]
