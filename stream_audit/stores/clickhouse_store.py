"""ClickHouse-backed analytical metrics over completed audit events.

All queries read ``audit_completions``, one row per object that reached a
terminal status. Aggregates over an empty window come back as zeros.
"""

from __future__ import annotations

from typing import Any

import clickhouse_connect
from clickhouse_connect.driver.client import Client

from ..schemas.metrics import (
    CompanyBreakdown,
    HourlyTrend,
    PerformanceMetrics,
    RecentEvent,
    TodaySummary,
)
from ..utils.logging import setup_logger
from .base import DEFAULT_TIMEOUT_SECONDS, StoreAdapter

logger = setup_logger(__name__, context={"component": "stores", "store": "clickhouse"})

TODAY_SUMMARY_SQL = """
    SELECT
        count() AS total_events,
        sum(amount) AS total_amount,
        countIf(outcome = 'SUCCESS') AS success_events,
        countIf(outcome = 'FAILURE') AS failure_events,
        if(count() > 0, countIf(outcome = 'SUCCESS') * 100.0 / count(), 0) AS success_rate,
        if(count() > 0, sum(amount) / count(), 0) AS avg_amount_per_event
    FROM audit_completions
    WHERE toDate(completed_at) = today()
"""

COMPANY_BREAKDOWN_SQL = """
    SELECT
        company_id,
        company_name,
        count() AS total_events,
        sum(amount) AS total_amount,
        countIf(outcome = 'SUCCESS') AS success_events,
        countIf(outcome = 'FAILURE') AS failure_events,
        if(count() > 0, countIf(outcome = 'SUCCESS') * 100.0 / count(), 0) AS success_rate
    FROM audit_completions
    WHERE toDate(completed_at) = today()
    GROUP BY company_id, company_name
    ORDER BY total_amount DESC
"""

HOURLY_TRENDS_SQL = """
    SELECT
        toStartOfHour(completed_at) AS hour,
        count() AS event_count,
        sum(amount) AS total_amount,
        countIf(outcome = 'SUCCESS') AS success_count,
        countIf(outcome = 'FAILURE') AS failure_count
    FROM audit_completions
    WHERE completed_at >= (now() - INTERVAL 24 HOUR)
    GROUP BY hour
    ORDER BY hour ASC
"""

RECENT_EVENTS_SQL = """
    SELECT
        event_id,
        audit_id,
        company_name,
        amount,
        status,
        outcome,
        completed_at,
        processing_time_ms
    FROM audit_completions
    ORDER BY completed_at DESC
    LIMIT {limit:UInt32}
"""

PERFORMANCE_SQL = """
    SELECT
        avg(processing_time_ms) AS avg_processing_time,
        min(processing_time_ms) AS min_processing_time,
        max(processing_time_ms) AS max_processing_time,
        quantile(0.95)(processing_time_ms) AS percentile_95,
        count() AS total_processed
    FROM audit_completions
    WHERE completed_at >= (now() - INTERVAL 24 HOUR)
"""

EVENT_COUNT_SQL = "SELECT count() AS total FROM audit_completions"


class ClickHouseMetricsStore(StoreAdapter):
    """Read-only analytical queries for the business metrics dashboard."""

    store_name = "clickhouse"

    def __init__(
        self,
        url: str | None = None,
        *,
        database: str = "default",
        client: Client | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__(timeout=timeout)
        self.url = url or "http://localhost:8123"
        self.database = database
        self._client = client

    def _open(self) -> Client:
        if self._client is None:
            self._client = clickhouse_connect.get_client(
                dsn=self.url,
                database=self.database,
                connect_timeout=self.timeout,
                send_receive_timeout=self.timeout,
                compress=True,
            )
        return self._client

    def _rows(self, sql: str, parameters: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        result = self._open().query(sql, parameters=parameters)
        return list(result.named_results())

    async def connect(self) -> None:
        await self._call_sync("connect", self._open)
        await self._call_sync("connect", self._rows, "SELECT 1 AS ok")
        logger.info("ClickHouse connection established successfully")

    async def ping(self) -> bool:
        return bool(await self._call_sync("ping", lambda: self._open().ping()))

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info("ClickHouse connection closed")

    async def today_summary(self) -> TodaySummary:
        rows = await self._call_sync("today_summary", self._rows, TODAY_SUMMARY_SQL)
        return TodaySummary.model_validate(rows[0]) if rows else TodaySummary()

    async def company_breakdown(self) -> list[CompanyBreakdown]:
        rows = await self._call_sync("company_breakdown", self._rows, COMPANY_BREAKDOWN_SQL)
        return [CompanyBreakdown.model_validate(row) for row in rows]

    async def hourly_trends(self) -> list[HourlyTrend]:
        rows = await self._call_sync("hourly_trends", self._rows, HOURLY_TRENDS_SQL)
        return [HourlyTrend.model_validate(row) for row in rows]

    async def recent_events(self, limit: int = 50) -> list[RecentEvent]:
        rows = await self._call_sync(
            "recent_events", self._rows, RECENT_EVENTS_SQL, {"limit": max(limit, 0)}
        )
        events = []
        for row in rows:
            row = {**row, "event_id": str(row["event_id"]), "audit_id": str(row["audit_id"])}
            events.append(RecentEvent.model_validate(row))
        return events

    async def performance(self) -> PerformanceMetrics:
        rows = await self._call_sync("performance", self._rows, PERFORMANCE_SQL)
        return PerformanceMetrics.model_validate(rows[0]) if rows else PerformanceMetrics()

    async def event_count(self) -> int:
        rows = await self._call_sync("event_count", self._rows, EVENT_COUNT_SQL)
        return int(rows[0]["total"]) if rows else 0
