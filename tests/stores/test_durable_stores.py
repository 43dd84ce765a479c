"""Tests for the Cassandra and ClickHouse adapters with scripted drivers."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from stream_audit.exceptions import OperationNotSupportedError, StoreUnavailableError
from stream_audit.lifecycle import Outcome, Status
from stream_audit.schemas.audit import AuditAction, AuditEntry
from stream_audit.schemas.metrics import PerformanceMetrics
from stream_audit.schemas.queue import ObjectType, QueueObjectUpdate
from stream_audit.stores.cassandra_store import CassandraAuditStore, CassandraQueueStore
from stream_audit.stores.clickhouse_store import ClickHouseMetricsStore

NAIVE_T0 = datetime(2024, 5, 1, 12, 0)


class ScriptedConnection:
    """Stands in for CassandraConnection; answers by prepared-statement name."""

    timeout = 1.0

    def __init__(self, responses: dict[str, list[dict]] | None = None) -> None:
        self.responses = responses or {}
        self.executed: list[tuple[str, str, tuple]] = []
        self.shut_down = False

    def connect(self):
        return self

    def execute(self, name: str, query: str, params: tuple = ()) -> list[dict]:
        self.executed.append((name, query, params))
        response = self.responses.get(name, [])
        if isinstance(response, Exception):
            raise response
        return list(response)

    def ping(self) -> bool:
        return True

    def shutdown(self) -> None:
        self.shut_down = True


def _object_row(object_id: str, minutes: int, **overrides) -> dict:
    row = {
        "object_id": object_id,
        "object_type": "batch",
        "parent_id": None,
        "status": "RECEIVED",
        "outcome": None,
        "metadata": {"region": "US", "amount": "65.00"},
        "records": 3,
        "created": NAIVE_T0,
        "updated": NAIVE_T0 + timedelta(minutes=minutes),
    }
    row.update(overrides)
    return row


def _audit_row(object_id: str, seconds: int, **overrides) -> dict:
    row = {
        "audit_id": uuid.uuid4(),
        "object_id": object_id,
        "object_type": "item",
        "parent_id": "batch-1",
        "parent_type": "batch",
        "action": "UPDATED",
        "previous_status": "RECEIVED",
        "new_status": "VALIDATING",
        "previous_outcome": None,
        "new_outcome": None,
        "timestamp": NAIVE_T0 + timedelta(seconds=seconds),
        "metadata": None,
    }
    row.update(overrides)
    return row


@pytest.mark.asyncio
async def test_cassandra_rows_become_utc_objects_sorted_newest_first():
    connection = ScriptedConnection(
        {"object_scan": [_object_row("a", 0), _object_row("b", 5, outcome="")]}
    )
    store = CassandraQueueStore(connection)

    objects = await store.list(10)

    assert [obj.object_id for obj in objects] == ["b", "a"]
    assert objects[0].updated.tzinfo is timezone.utc
    assert objects[0].outcome is None
    assert '"region": "US"' in objects[0].metadata
    assert connection.executed[0][2] == (10,)


@pytest.mark.asyncio
async def test_cassandra_put_stores_metadata_as_a_map(make_object):
    connection = ScriptedConnection()
    store = CassandraQueueStore(connection)

    await store.put(make_object("a", metadata="{region=AU, amount=12}"))

    name, _, params = connection.executed[0]
    assert name == "object_insert"
    assert params[5] == {"region": "AU", "amount": "12"}
    assert params[4] is None


@pytest.mark.asyncio
async def test_cassandra_conditional_update_reports_unknown_ids():
    connection = ScriptedConnection({"object_update_outcome": [{"[applied]": False}]})
    store = CassandraQueueStore(connection)

    applied = await store.update(
        "ghost", QueueObjectUpdate(status=Status.COMPLETE, outcome=Outcome.SUCCESS)
    )

    assert applied is False
    name, query, params = connection.executed[0]
    assert "IF EXISTS" in query
    assert params[:2] == ("COMPLETE", "SUCCESS")


@pytest.mark.asyncio
async def test_cassandra_update_without_outcome_leaves_it_untouched():
    connection = ScriptedConnection({"object_update": [{"[applied]": True}]})
    store = CassandraQueueStore(connection)

    assert await store.update("a", QueueObjectUpdate(status=Status.VALIDATING))
    assert "outcome" not in connection.executed[0][1]


@pytest.mark.asyncio
async def test_cassandra_count_and_clear():
    store = CassandraQueueStore(ScriptedConnection({"object_count": [{"total": 7}]}))

    assert await store.count() == 7
    with pytest.raises(OperationNotSupportedError):
        await store.clear()


@pytest.mark.asyncio
async def test_cassandra_parent_query_keeps_only_item_rows():
    connection = ScriptedConnection(
        {
            "audit_by_parent": [
                _audit_row("i1", 1),
                _audit_row("batch-1", 2, object_type="batch"),
                _audit_row("i2", 3, previous_status=None, action="CREATED", new_status="RECEIVED"),
            ]
        }
    )
    store = CassandraAuditStore(connection)

    entries = await store.query_by_parent("batch-1")

    assert [entry.object_id for entry in entries] == ["i2", "i1"]
    assert entries[0].previous_status is None
    assert all(entry.parent_type is ObjectType.BATCH for entry in entries)


@pytest.mark.asyncio
async def test_cassandra_limited_parent_query_filters_after_the_scan():
    connection = ScriptedConnection(
        {
            "audit_by_parent": [
                _audit_row("batch-1", 9, object_type="batch"),
                _audit_row("i1", 1),
            ]
        }
    )
    store = CassandraAuditStore(connection)

    entries = await store.query_by_parent("batch-1", limit=2)

    assert connection.executed[0][2] == ("batch-1", 2)
    assert [entry.object_id for entry in entries] == ["i1"]


@pytest.mark.asyncio
async def test_cassandra_audit_append_binds_uuid_and_nulls():
    connection = ScriptedConnection()
    store = CassandraAuditStore(connection)
    entry = AuditEntry(object_id="a", action=AuditAction.CREATED, new_status=Status.RECEIVED)

    await store.append_entry(entry)

    params = connection.executed[0][2]
    assert params[0] == uuid.UUID(entry.audit_id)
    assert params[3] is None
    assert params[6] is None


@pytest.mark.asyncio
async def test_cassandra_failures_surface_as_unavailable():
    store = CassandraAuditStore(ScriptedConnection({"audit_scan": RuntimeError("no hosts")}))

    with pytest.raises(StoreUnavailableError):
        await store.query_recent()


@pytest.mark.asyncio
async def test_cassandra_close_shuts_the_session_down():
    connection = ScriptedConnection()
    store = CassandraAuditStore(connection)

    assert await store.ping()
    await store.close()

    assert connection.shut_down


class FakeQueryResult:
    def __init__(self, rows: list[dict]) -> None:
        self._rows = rows

    def named_results(self):
        return iter(self._rows)


class FakeClickHouseClient:
    def __init__(self, responses: dict[str, list[dict]]) -> None:
        self.responses = responses
        self.queries: list[tuple[str, dict | None]] = []
        self.closed = False

    def query(self, sql: str, parameters=None) -> FakeQueryResult:
        self.queries.append((sql, parameters))
        for marker, rows in self.responses.items():
            if marker in sql:
                return FakeQueryResult(rows)
        return FakeQueryResult([])

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        self.closed = True


@pytest.mark.asyncio
async def test_clickhouse_zero_fills_empty_aggregates():
    client = FakeClickHouseClient(
        {
            "avg_amount_per_event": [
                {
                    "total_events": 0,
                    "total_amount": None,
                    "success_events": 0,
                    "failure_events": 0,
                    "success_rate": float("nan"),
                    "avg_amount_per_event": None,
                }
            ]
        }
    )
    store = ClickHouseMetricsStore(client=client)

    summary = await store.today_summary()

    assert summary.total_amount == 0
    assert summary.success_rate == 0
    assert await store.performance() == PerformanceMetrics()


@pytest.mark.asyncio
async def test_clickhouse_recent_events_pass_the_limit_and_stringify_ids():
    event_id = uuid.uuid4()
    client = FakeClickHouseClient(
        {
            "ORDER BY completed_at DESC": [
                {
                    "event_id": event_id,
                    "audit_id": uuid.uuid4(),
                    "company_name": "Telstra",
                    "amount": 65.5,
                    "status": "COMPLETE",
                    "outcome": "SUCCESS",
                    "completed_at": NAIVE_T0,
                    "processing_time_ms": 1200,
                }
            ]
        }
    )
    store = ClickHouseMetricsStore(client=client)

    events = await store.recent_events(5)

    assert events[0].event_id == str(event_id)
    assert client.queries[-1][1] == {"limit": 5}


@pytest.mark.asyncio
async def test_clickhouse_event_count_and_close():
    client = FakeClickHouseClient({"count() AS total": [{"total": 42}]})
    store = ClickHouseMetricsStore(client=client)

    assert await store.event_count() == 42
    assert await store.ping()
    await store.close()

    assert client.closed
