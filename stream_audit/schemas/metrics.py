"""Pydantic schemas for analytical metrics over completed events."""

from __future__ import annotations

import math
from datetime import datetime

from pydantic import BaseModel, Field, ValidationInfo, field_validator


class _ZeroFilledModel(BaseModel):
    """Coerce NULL and NaN aggregate columns to zero."""

    @field_validator("*", mode="before")
    @classmethod
    def _none_to_zero(cls, value: object, info: ValidationInfo) -> object:
        field = cls.model_fields[info.field_name]
        if field.annotation not in (int, float):
            return value
        if value is None or (isinstance(value, float) and math.isnan(value)):
            return 0
        return value


class TodaySummary(_ZeroFilledModel):
    total_events: int = 0
    total_amount: float = 0.0
    success_events: int = 0
    failure_events: int = 0
    success_rate: float = 0.0
    avg_amount_per_event: float = 0.0


class CompanyBreakdown(_ZeroFilledModel):
    company_id: str
    company_name: str
    total_events: int = 0
    total_amount: float = 0.0
    success_events: int = 0
    failure_events: int = 0
    success_rate: float = 0.0


class HourlyTrend(_ZeroFilledModel):
    hour: datetime
    event_count: int = 0
    total_amount: float = 0.0
    success_count: int = 0
    failure_count: int = 0


class RecentEvent(_ZeroFilledModel):
    event_id: str
    audit_id: str
    company_name: str
    amount: float = 0.0
    status: str
    outcome: str
    completed_at: datetime
    processing_time_ms: int = 0


class PerformanceMetrics(_ZeroFilledModel):
    avg_processing_time: float = 0.0
    min_processing_time: float = 0.0
    max_processing_time: float = 0.0
    percentile_95: float = 0.0
    total_processed: int = 0


class MetricsHealth(BaseModel):
    """Connectivity summary for the metrics store."""

    status: str = Field(..., description="healthy or unhealthy")
    clickhouse_connected: bool
    total_events: int = 0
    last_check: datetime
