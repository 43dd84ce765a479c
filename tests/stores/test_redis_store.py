"""Tests for the Redis stores against an in-process fake client."""

from __future__ import annotations

from datetime import timedelta

import pytest

from stream_audit.lifecycle import Outcome, Status
from stream_audit.schemas.audit import AuditAction, AuditEntry
from stream_audit.schemas.queue import ObjectType, QueueObjectUpdate
from stream_audit.stores.redis_store import (
    RedisAuditStore,
    RedisQueueStore,
    decode_queue_object,
    encode_queue_object,
)


class FakePipeline:
    def __init__(self, client: "FakeRedis") -> None:
        self._client = client
        self._calls: list[tuple[str, tuple, dict]] = []

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self._calls.clear()

    def __getattr__(self, name: str):
        def _queue(*args, **kwargs):
            self._calls.append((name, args, kwargs))
            return self

        return _queue

    async def execute(self) -> list:
        results = []
        for name, args, kwargs in self._calls:
            results.append(await getattr(self._client, name)(*args, **kwargs))
        self._calls.clear()
        return results


class FakeRedis:
    """The subset of redis.asyncio.Redis the stores use, with decoded strings."""

    def __init__(self) -> None:
        self.hashes: dict[str, dict[str, str]] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.lists: dict[str, list[str]] = {}
        self.closed = False

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        self.closed = True

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    async def hset(self, key: str, mapping: dict[str, str]) -> int:
        self.hashes.setdefault(key, {}).update({k: str(v) for k, v in mapping.items()})
        return len(mapping)

    async def hgetall(self, key: str) -> dict[str, str]:
        return dict(self.hashes.get(key, {}))

    async def exists(self, key: str) -> int:
        return int(key in self.hashes or key in self.zsets or key in self.lists)

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            for space in (self.hashes, self.zsets, self.lists):
                if space.pop(key, None) is not None:
                    removed += 1
        return removed

    async def zadd(self, key: str, mapping: dict[str, float]) -> int:
        self.zsets.setdefault(key, {}).update(mapping)
        return len(mapping)

    def _ordered(self, key: str) -> list[str]:
        members = self.zsets.get(key, {})
        return [member for member, _ in sorted(members.items(), key=lambda item: (item[1], item[0]))]

    @staticmethod
    def _slice(values: list[str], start: int, end: int) -> list[str]:
        return values[start:] if end == -1 else values[start : end + 1]

    async def zrange(self, key: str, start: int, end: int) -> list[str]:
        return self._slice(self._ordered(key), start, end)

    async def zrevrange(self, key: str, start: int, end: int, withscores: bool = False) -> list:
        members = self._slice(list(reversed(self._ordered(key))), start, end)
        if withscores:
            return [(member, self.zsets[key][member]) for member in members]
        return members

    async def zrangebyscore(self, key: str, minimum: float, maximum: float) -> list[str]:
        scores = self.zsets.get(key, {})
        return [member for member in self._ordered(key) if minimum <= scores[member] <= maximum]

    async def zcard(self, key: str) -> int:
        return len(self.zsets.get(key, {}))

    async def lpush(self, key: str, *values: str) -> int:
        target = self.lists.setdefault(key, [])
        for value in values:
            target.insert(0, value)
        return len(target)

    async def ltrim(self, key: str, start: int, end: int) -> bool:
        if key in self.lists:
            self.lists[key] = self._slice(self.lists[key], start, end)
        return True

    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        return self._slice(self.lists.get(key, []), start, end)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


def test_queue_object_hash_round_trip_keeps_empty_outcome(make_object):
    obj = make_object("abc", records=4, metadata='{"region": "US"}')

    encoded = encode_queue_object(obj)

    assert encoded["outcome"] == ""
    assert encoded["parentId"] == ""
    assert decode_queue_object(encoded) == obj


def test_partial_hashes_are_ignored():
    assert decode_queue_object({}) is None
    assert decode_queue_object({"objectId": "x"}) is None


@pytest.mark.asyncio
async def test_queue_put_list_and_update(fake_redis, make_object):
    store = RedisQueueStore(client=fake_redis, prefix="test")
    await store.put(make_object("a", minutes=0))
    await store.put(make_object("b", minutes=1))

    assert [obj.object_id for obj in await store.list(10)] == ["b", "a"]
    assert await store.count() == 2

    later = make_object("a").updated + timedelta(minutes=5)
    applied = await store.update("a", QueueObjectUpdate(status=Status.VALIDATING, updated=later))

    assert applied
    listed = await store.list(1)
    assert [(obj.object_id, obj.status) for obj in listed] == [("a", Status.VALIDATING)]
    assert "test:object:a" in fake_redis.hashes


@pytest.mark.asyncio
async def test_list_breaks_ties_at_the_limit_by_created(fake_redis, make_object):
    store = RedisQueueStore(client=fake_redis)
    updated = make_object("x").updated + timedelta(minutes=10)
    await store.put(make_object("a", minutes=0, updated=updated))
    await store.put(make_object("z", minutes=1, updated=updated))
    await store.put(make_object("m", minutes=2, updated=updated))

    assert [obj.object_id for obj in await store.list(1)] == ["m"]
    assert [obj.object_id for obj in await store.list(2)] == ["m", "z"]
    assert [obj.object_id for obj in await store.list(5)] == ["m", "z", "a"]


@pytest.mark.asyncio
async def test_update_of_unknown_id_creates_nothing(fake_redis):
    store = RedisQueueStore(client=fake_redis)

    applied = await store.update("ghost", QueueObjectUpdate(status=Status.VALIDATING))

    assert applied is False
    assert await store.get("ghost") is None
    assert fake_redis.hashes == {}


@pytest.mark.asyncio
async def test_terminal_update_sets_outcome(fake_redis, make_object):
    store = RedisQueueStore(client=fake_redis)
    await store.put(make_object("p", status=Status.PROCESSING))

    await store.update(
        "p", QueueObjectUpdate(status=Status.COMPLETE, outcome=Outcome.SUCCESS)
    )

    stored = await store.get("p")
    assert stored.status is Status.COMPLETE
    assert stored.outcome is Outcome.SUCCESS


@pytest.mark.asyncio
async def test_clear_removes_objects_and_index(fake_redis, make_object):
    store = RedisQueueStore(client=fake_redis)
    await store.put(make_object("a"))
    await store.put(make_object("b"))

    await store.clear()

    assert await store.count() == 0
    assert await store.list() == []
    assert fake_redis.hashes == {}


@pytest.mark.asyncio
async def test_connect_ping_and_close(fake_redis):
    store = RedisQueueStore(client=fake_redis)

    await store.connect()
    assert await store.ping() is True
    await store.close()

    assert fake_redis.closed


@pytest.mark.asyncio
async def test_audit_views_by_object_parent_and_recent(fake_redis, make_object):
    store = RedisAuditStore(client=fake_redis, recent_window=3)
    base = make_object("x").created

    batch_row = AuditEntry(
        object_id="batch-1",
        action=AuditAction.CREATED,
        new_status=Status.RECEIVED,
        timestamp=base,
    )
    item_rows = [
        AuditEntry(
            object_id="item-1",
            object_type=ObjectType.ITEM,
            parent_id="batch-1",
            parent_type=ObjectType.BATCH,
            action=AuditAction.CREATED,
            new_status=Status.RECEIVED,
            timestamp=base + timedelta(seconds=1),
        ),
        AuditEntry(
            object_id="item-1",
            object_type=ObjectType.ITEM,
            parent_id="batch-1",
            parent_type=ObjectType.BATCH,
            action=AuditAction.UPDATED,
            previous_status=Status.RECEIVED,
            new_status=Status.VALIDATING,
            timestamp=base + timedelta(seconds=2),
        ),
        AuditEntry(
            object_id="item-2",
            object_type=ObjectType.ITEM,
            parent_id="batch-1",
            parent_type=ObjectType.BATCH,
            action=AuditAction.CREATED,
            new_status=Status.RECEIVED,
            timestamp=base + timedelta(seconds=3),
        ),
    ]
    for entry in [batch_row, *item_rows]:
        await store.append_entry(entry)

    by_object = await store.query_by_object(ObjectType.ITEM, "item-1")
    assert [entry.new_status for entry in by_object] == [Status.VALIDATING, Status.RECEIVED]
    assert by_object[1].previous_status is None
    assert by_object[0].previous_outcome is None

    by_parent = await store.query_by_parent("batch-1")
    assert [entry.audit_id for entry in by_parent] == [row.audit_id for row in reversed(item_rows)]

    recent = await store.query_recent(10)
    assert len(recent) == 3
    assert batch_row.audit_id not in {entry.audit_id for entry in recent}

    stats = await store.stats_by_parent("batch-1")
    assert stats.total_items == 2
    assert stats.by_status == {"VALIDATING": 1, "RECEIVED": 1}
    assert stats.last_updated == item_rows[-1].timestamp
