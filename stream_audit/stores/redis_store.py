"""Redis-backed fast stores: live queue state and the recent audit window.

Key layout (prefix defaults to ``paydash``)::

    <prefix>:object:<objectId>                 hash   queue object fields
    <prefix>:queue                             zset   objectId scored by updated
    <prefix>:audit:entry:<auditId>             hash   audit entry fields
    <prefix>:audit:object:<type>:<objectId>    list   auditIds, newest first
    <prefix>:audit:parent:<parentId>           list   item auditIds, newest first
    <prefix>:audit:queue                       list   global auditIds, trimmed
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import redis.asyncio as redis

from ..schemas.audit import AuditEntry
from ..schemas.queue import ObjectType, QueueObject, QueueObjectUpdate
from ..utils.logging import setup_logger
from .base import (
    DEFAULT_TIMEOUT_SECONDS,
    AuditStore,
    QueueStore,
    sort_audit_entries,
    sort_queue_objects,
)

logger = setup_logger(__name__, context={"component": "stores", "store": "redis"})

DEFAULT_PREFIX = "paydash"


def _score(value: datetime) -> float:
    return value.timestamp()


def encode_queue_object(obj: QueueObject) -> dict[str, str]:
    """Flatten a queue object into Redis hash fields."""

    return {
        "objectId": obj.object_id,
        "objectType": obj.object_type.value,
        "parentId": obj.parent_id or "",
        "created": obj.created.isoformat(),
        "updated": obj.updated.isoformat(),
        "status": obj.status.value,
        "metadata": obj.metadata,
        "records": str(obj.records),
        "outcome": obj.outcome.value if obj.outcome else "",
    }


def decode_queue_object(data: dict[str, Any]) -> QueueObject | None:
    """Rebuild a queue object from hash fields; None for missing or partial hashes."""

    if not data or not data.get("objectId") or not data.get("status"):
        return None
    return QueueObject.model_validate(
        {
            "objectId": data["objectId"],
            "objectType": data.get("objectType") or ObjectType.BATCH.value,
            "parentId": data.get("parentId") or None,
            "created": data["created"],
            "updated": data["updated"],
            "status": data["status"],
            "metadata": data.get("metadata") or "{}",
            "records": int(data.get("records") or 0),
            "outcome": data.get("outcome") or None,
        }
    )


def encode_audit_entry(entry: AuditEntry) -> dict[str, str]:
    """Flatten an audit entry into Redis hash fields (absent values as "")."""

    encoded: dict[str, str] = {}
    for key, value in entry.to_api().items():
        encoded[key] = "" if value is None else str(value)
    return encoded


def decode_audit_entry(data: dict[str, Any]) -> AuditEntry | None:
    if not data or not data.get("auditId"):
        return None
    return AuditEntry.model_validate(data)


class _RedisStoreMixin:
    """Connection handling shared by both Redis stores."""

    store_name = "redis"

    def _init_client(
        self,
        url: str | None,
        client: redis.Redis | None,
        timeout: float,
    ) -> redis.Redis:
        if client is not None:
            return client
        return redis.from_url(
            url or "redis://localhost:6379/0",
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )

    async def connect(self) -> None:
        await self._client.ping()  # type: ignore[attr-defined]
        logger.info("Connected to Redis")

    async def ping(self) -> bool:
        return bool(await self._call("ping", self._client.ping))  # type: ignore[attr-defined]

    async def close(self) -> None:
        await self._client.aclose()  # type: ignore[attr-defined]


class RedisQueueStore(_RedisStoreMixin, QueueStore):
    """Fast, recent-state queue store."""

    def __init__(
        self,
        url: str | None = None,
        *,
        client: redis.Redis | None = None,
        prefix: str = DEFAULT_PREFIX,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__(timeout=timeout)
        self._client = self._init_client(url, client, timeout)
        self._queue_key = f"{prefix}:queue"
        self._object_prefix = f"{prefix}:object:"

    def _object_key(self, object_id: str) -> str:
        return f"{self._object_prefix}{object_id}"

    async def put(self, obj: QueueObject) -> None:
        async def _put() -> None:
            await self._client.hset(self._object_key(obj.object_id), mapping=encode_queue_object(obj))
            await self._client.zadd(self._queue_key, {obj.object_id: _score(obj.updated)})

        await self._call("put", _put, object_id=obj.object_id)

    async def get(self, object_id: str) -> QueueObject | None:
        async def _get() -> QueueObject | None:
            return decode_queue_object(await self._client.hgetall(self._object_key(object_id)))

        return await self._call("get", _get, object_id=object_id)

    async def list(self, limit: int = 100) -> list[QueueObject]:
        """Return the ``limit`` most recently updated objects.

        Redis orders equal scores by member id, so every member tied with the
        last score in the window is fetched and the cut is made after sorting
        by ``created``.
        """

        async def _list() -> list[QueueObject]:
            window = await self._client.zrevrange(self._queue_key, 0, limit - 1, withscores=True)
            if not window:
                return []
            object_ids = [object_id for object_id, _ in window]
            if len(window) == limit:
                boundary = window[-1][1]
                seen = set(object_ids)
                tied = await self._client.zrangebyscore(self._queue_key, boundary, boundary)
                object_ids.extend(object_id for object_id in tied if object_id not in seen)
            async with self._client.pipeline(transaction=False) as pipe:
                for object_id in object_ids:
                    pipe.hgetall(self._object_key(object_id))
                rows = await pipe.execute()
            objects = [obj for obj in (decode_queue_object(row) for row in rows) if obj]
            return sort_queue_objects(objects)[:limit]

        return await self._call("list", _list)

    async def update(self, object_id: str, patch: QueueObjectUpdate) -> bool:
        key = self._object_key(object_id)

        async def _update() -> bool:
            if not await self._client.exists(key):
                logger.warning(
                    "Ignoring update for unknown object",
                    extra={"object_id": object_id, "status": "skipped"},
                )
                return False
            fields = {"status": patch.status.value, "updated": patch.updated.isoformat()}
            if patch.outcome is not None:
                fields["outcome"] = patch.outcome.value
            await self._client.hset(key, mapping=fields)
            await self._client.zadd(self._queue_key, {object_id: _score(patch.updated)})
            return True

        return await self._call("update", _update, object_id=object_id)

    async def count(self) -> int:
        return int(await self._call("count", lambda: self._client.zcard(self._queue_key)))

    async def clear(self) -> None:
        async def _clear() -> None:
            object_ids = await self._client.zrange(self._queue_key, 0, -1)
            keys = [self._object_key(object_id) for object_id in object_ids]
            if keys:
                await self._client.delete(*keys)
            await self._client.delete(self._queue_key)

        await self._call("clear", _clear)
        logger.info("Queue cleared")


class RedisAuditStore(_RedisStoreMixin, AuditStore):
    """Recent audit window kept next to the live queue state.

    The global ``audit:queue`` list is trimmed to ``recent_window`` ids on every
    append, which is what makes :meth:`query_recent` a cheap bounded read.
    Entry hashes and per-object lists are not expired.
    """

    def __init__(
        self,
        url: str | None = None,
        *,
        client: redis.Redis | None = None,
        prefix: str = DEFAULT_PREFIX,
        recent_window: int = 1000,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__(timeout=timeout)
        self._client = self._init_client(url, client, timeout)
        self._entry_prefix = f"{prefix}:audit:entry:"
        self._object_prefix = f"{prefix}:audit:object:"
        self._parent_prefix = f"{prefix}:audit:parent:"
        self._recent_key = f"{prefix}:audit:queue"
        self.recent_window = recent_window

    def _object_key(self, object_type: ObjectType, object_id: str) -> str:
        return f"{self._object_prefix}{ObjectType(object_type).value}:{object_id}"

    async def append_entry(self, entry: AuditEntry) -> None:
        async def _append() -> None:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.hset(f"{self._entry_prefix}{entry.audit_id}", mapping=encode_audit_entry(entry))
                pipe.lpush(self._object_key(entry.object_type, entry.object_id), entry.audit_id)
                if entry.is_item_entry:
                    pipe.lpush(f"{self._parent_prefix}{entry.parent_id}", entry.audit_id)
                pipe.lpush(self._recent_key, entry.audit_id)
                pipe.ltrim(self._recent_key, 0, self.recent_window - 1)
                await pipe.execute()

        await self._call("append_entry", _append, object_id=entry.object_id)

    async def _load(self, audit_ids: list[str]) -> list[AuditEntry]:
        if not audit_ids:
            return []
        async with self._client.pipeline(transaction=False) as pipe:
            for audit_id in audit_ids:
                pipe.hgetall(f"{self._entry_prefix}{audit_id}")
            rows = await pipe.execute()
        entries = [entry for entry in (decode_audit_entry(row) for row in rows) if entry]
        return sort_audit_entries(entries)

    async def query_by_object(
        self, object_type: ObjectType, object_id: str, limit: int = 50
    ) -> list[AuditEntry]:
        async def _query() -> list[AuditEntry]:
            ids = await self._client.lrange(self._object_key(object_type, object_id), 0, limit - 1)
            return await self._load(ids)

        return await self._call("query_by_object", _query, object_id=object_id)

    async def query_by_parent(self, parent_id: str, limit: int = 100) -> list[AuditEntry]:
        async def _query() -> list[AuditEntry]:
            ids = await self._client.lrange(f"{self._parent_prefix}{parent_id}", 0, limit - 1)
            return await self._load(ids)

        return await self._call("query_by_parent", _query, object_id=parent_id)

    async def query_recent(self, limit: int = 100) -> list[AuditEntry]:
        async def _query() -> list[AuditEntry]:
            ids = await self._client.lrange(self._recent_key, 0, limit - 1)
            return await self._load(ids)

        return await self._call("query_recent", _query)
