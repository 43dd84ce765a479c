"""Tests for writing lifecycle transitions with their audit rows."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from stream_audit.exceptions import IllegalTransitionError
from stream_audit.lifecycle import Outcome, Status, validate_walk
from stream_audit.schemas.audit import AuditAction
from stream_audit.schemas.queue import ObjectType
from stream_audit.services.recorder import LifecycleRecorder
from stream_audit.testing.memory import InMemoryAuditStore, InMemoryQueueStore


@pytest.fixture
def stores():
    return InMemoryQueueStore(), InMemoryAuditStore()


@pytest.mark.asyncio
async def test_full_lifecycle_scenario(stores):
    queue, audit = stores
    recorder = LifecycleRecorder([queue], [audit])

    obj = await recorder.create(object_id="A", records=3)
    for status in (Status.VALIDATING, Status.ENRICHING, Status.PROCESSING, Status.COMPLETE):
        obj = await recorder.advance(obj, status)

    stored = await queue.get("A")
    assert stored.status is Status.COMPLETE
    assert stored.outcome is Outcome.SUCCESS

    trail = await audit.query_by_object(ObjectType.BATCH, "A")
    assert len(trail) == 5

    ascending = list(reversed(trail))
    assert [entry.timestamp for entry in ascending] == sorted(entry.timestamp for entry in trail)
    assert [entry.action for entry in ascending] == [AuditAction.CREATED] + [AuditAction.UPDATED] * 4
    assert validate_walk(entry.new_status for entry in ascending)
    assert ascending[0].previous_status is None
    assert ascending[-1].previous_status is Status.PROCESSING
    assert ascending[-1].new_outcome is Outcome.SUCCESS
    assert trail[0].new_status == stored.status
    assert trail[0].new_outcome == stored.outcome


@pytest.mark.asyncio
async def test_invalid_branch_fails_the_object(stores):
    queue, audit = stores
    recorder = LifecycleRecorder([queue], [audit])

    obj = await recorder.create()
    obj = await recorder.advance(obj, Status.VALIDATING)
    obj = await recorder.advance(obj, Status.INVALID)

    assert obj.outcome is Outcome.FAILURE
    assert (await queue.get(obj.object_id)).outcome is Outcome.FAILURE


@pytest.mark.asyncio
async def test_terminal_objects_are_refused(stores):
    queue, audit = stores
    recorder = LifecycleRecorder([queue], [audit])
    obj = await recorder.create()
    obj = await recorder.advance(obj, Status.VALIDATING)
    obj = await recorder.advance(obj, Status.INVALID)

    with pytest.raises(IllegalTransitionError):
        await recorder.advance(obj, Status.ENRICHING)

    assert len(audit.entries) == 3


@pytest.mark.asyncio
async def test_skipping_a_step_is_refused(stores):
    queue, audit = stores
    recorder = LifecycleRecorder([queue], [audit])
    obj = await recorder.create()

    with pytest.raises(IllegalTransitionError):
        await recorder.advance(obj, Status.PROCESSING)
    assert (await queue.get(obj.object_id)).status is Status.RECEIVED


@pytest.mark.asyncio
async def test_unknown_object_is_a_no_op(stores, make_object):
    queue, audit = stores
    recorder = LifecycleRecorder([queue], [audit])

    result = await recorder.advance(make_object("ghost"), Status.VALIDATING)

    assert result is None
    assert audit.entries == []
    assert await queue.count() == 0


@pytest.mark.asyncio
async def test_timestamps_move_forward_with_a_frozen_clock(stores):
    queue, audit = stores
    recorder = LifecycleRecorder([queue], [audit])
    frozen = datetime(2024, 1, 1, tzinfo=timezone.utc)

    obj = await recorder.create(now=frozen)
    advanced = await recorder.advance(obj, Status.VALIDATING, now=frozen)

    assert advanced.updated > obj.updated
    assert advanced.created == obj.created


@pytest.mark.asyncio
async def test_item_rows_link_to_their_batch(stores):
    queue, audit = stores
    recorder = LifecycleRecorder([queue], [audit])
    batch = await recorder.create()

    item = await recorder.create(object_type=ObjectType.ITEM, parent_id=batch.object_id, records=1)
    await recorder.advance(item, Status.VALIDATING)

    rows = await audit.query_by_parent(batch.object_id)
    assert len(rows) == 2
    assert all(row.parent_type is ObjectType.BATCH for row in rows)
    assert {row.object_id for row in rows} == {item.object_id}

    stats = await audit.stats_by_parent(batch.object_id)
    assert stats.total_items == 1
    assert stats.total_entries == 2
    assert stats.by_status == {"VALIDATING": 1}


@pytest.mark.asyncio
async def test_writes_reach_every_store():
    fast, durable = InMemoryQueueStore(name="redis"), InMemoryQueueStore(name="cassandra")
    fast_audit, durable_audit = InMemoryAuditStore(name="redis"), InMemoryAuditStore(name="cassandra")
    recorder = LifecycleRecorder([fast, durable], [fast_audit, durable_audit])

    obj = await recorder.create()
    await recorder.advance(obj, Status.VALIDATING)

    for store in (fast, durable):
        assert (await store.get(obj.object_id)).status is Status.VALIDATING
    assert len(fast_audit.entries) == len(durable_audit.entries) == 2


def test_recorder_requires_a_queue_store():
    with pytest.raises(ValueError):
        LifecycleRecorder([])
