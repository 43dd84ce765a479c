"""Cassandra-backed durable stores: batch object snapshots and the audit trail.

``audit_entries`` is partitioned by ``(object_type, object_id)`` and clustered
by ``timestamp DESC``, so the per-object read is a single partition slice.
The per-parent read goes through the ``parent_id`` secondary index and costs
O(matching rows) across the cluster, not O(1). There is no global ordering
index: :meth:`CassandraAuditStore.query_recent` is a bounded token-order scan
sorted client-side, i.e. a sample of recent-ish rows rather than a true
"latest N" view.

The DataStax driver is synchronous; every statement runs in a worker thread.
"""

from __future__ import annotations

import uuid
from typing import Any

from cassandra.cluster import Cluster, Session
from cassandra.policies import DCAwareRoundRobinPolicy
from cassandra.query import PreparedStatement, dict_factory

from ..schemas.audit import AuditEntry
from ..schemas.metadata import decode_metadata, encode_metadata
from ..schemas.queue import ObjectType, QueueObject, QueueObjectUpdate
from ..utils.logging import setup_logger
from .base import (
    DEFAULT_TIMEOUT_SECONDS,
    AuditStore,
    QueueStore,
    sort_audit_entries,
    sort_queue_objects,
)

logger = setup_logger(__name__, context={"component": "stores", "store": "cassandra"})

SCHEMA_STATEMENTS = (
    """
    CREATE KEYSPACE IF NOT EXISTS {keyspace}
    WITH REPLICATION = {{'class': 'SimpleStrategy', 'replication_factor': 1}}
    """,
    """
    CREATE TABLE IF NOT EXISTS {keyspace}.batch_objects (
        object_id text PRIMARY KEY,
        object_type text,
        parent_id text,
        status text,
        outcome text,
        metadata map<text, text>,
        records int,
        created timestamp,
        updated timestamp
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS {keyspace}.audit_entries (
        audit_id uuid,
        object_id text,
        object_type text,
        parent_id text,
        parent_type text,
        action text,
        previous_status text,
        new_status text,
        previous_outcome text,
        new_outcome text,
        timestamp timestamp,
        metadata text,
        PRIMARY KEY ((object_type, object_id), timestamp, audit_id)
    ) WITH CLUSTERING ORDER BY (timestamp DESC)
    """,
    "CREATE INDEX IF NOT EXISTS idx_audit_parent_id ON {keyspace}.audit_entries (parent_id)",
)

_OBJECT_COLUMNS = (
    "object_id, object_type, parent_id, status, outcome, metadata, records, created, updated"
)
_AUDIT_COLUMNS = (
    "audit_id, object_id, object_type, parent_id, parent_type, action, "
    "previous_status, new_status, previous_outcome, new_outcome, timestamp, metadata"
)


class CassandraConnection:
    """One cluster session shared by the queue and audit stores."""

    def __init__(
        self,
        hosts: list[str],
        *,
        port: int = 9042,
        keyspace: str = "paydash",
        local_dc: str = "datacenter1",
        create_schema: bool = False,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.hosts = hosts
        self.port = port
        self.keyspace = keyspace
        self.local_dc = local_dc
        self.create_schema = create_schema
        self.timeout = timeout
        self._cluster: Cluster | None = None
        self._session: Session | None = None
        self._prepared: dict[str, PreparedStatement] = {}

    @property
    def session(self) -> Session:
        if self._session is None:
            raise RuntimeError("Cassandra session used before connect()")
        return self._session

    def connect(self) -> Session:
        """Open the session (blocking); failures propagate to abort startup."""

        if self._session is not None:
            return self._session

        cluster = Cluster(
            contact_points=self.hosts,
            port=self.port,
            load_balancing_policy=DCAwareRoundRobinPolicy(local_dc=self.local_dc),
            connect_timeout=self.timeout,
        )
        session = cluster.connect()
        if self.create_schema:
            for statement in SCHEMA_STATEMENTS:
                session.execute(statement.format(keyspace=self.keyspace))
            logger.info("Cassandra keyspace and tables created/verified")
        session.set_keyspace(self.keyspace)
        session.row_factory = dict_factory
        session.default_timeout = self.timeout

        self._cluster = cluster
        self._session = session
        logger.info("Connected to Cassandra", extra={"status": "connected"})
        return session

    def prepare(self, name: str, query: str) -> PreparedStatement:
        """Prepare ``query`` once and cache it under ``name``."""

        statement = self._prepared.get(name)
        if statement is None:
            statement = self.session.prepare(query)
            self._prepared[name] = statement
        return statement

    def execute(self, name: str, query: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        result = self.session.execute(self.prepare(name, query), params)
        return list(result)

    def ping(self) -> bool:
        rows = list(self.session.execute("SELECT release_version FROM system.local"))
        return bool(rows)

    def shutdown(self) -> None:
        if self._cluster is not None:
            self._cluster.shutdown()
        self._cluster = None
        self._session = None
        self._prepared.clear()
        logger.info("Disconnected from Cassandra")


def _object_from_row(row: dict[str, Any]) -> QueueObject:
    metadata = row.get("metadata")
    return QueueObject.model_validate(
        {
            "objectId": row["object_id"],
            "objectType": row.get("object_type") or ObjectType.BATCH.value,
            "parentId": row.get("parent_id") or None,
            "status": row["status"],
            "outcome": row.get("outcome") or None,
            "metadata": encode_metadata(dict(metadata)) if metadata else "{}",
            "records": row.get("records") or 0,
            "created": row["created"],
            "updated": row["updated"],
        }
    )


def _entry_from_row(row: dict[str, Any]) -> AuditEntry:
    return AuditEntry.model_validate(
        {
            "auditId": str(row["audit_id"]),
            "objectId": row["object_id"],
            "objectType": row["object_type"],
            "parentId": row.get("parent_id"),
            "parentType": row.get("parent_type"),
            "action": row["action"],
            "previousStatus": row.get("previous_status"),
            "newStatus": row["new_status"],
            "previousOutcome": row.get("previous_outcome"),
            "newOutcome": row.get("new_outcome"),
            "timestamp": row["timestamp"],
            "metadata": row.get("metadata") or "{}",
        }
    )


class _CassandraStoreMixin:
    store_name = "cassandra"

    async def connect(self) -> None:
        await self._call_sync("connect", self._connection.connect)  # type: ignore[attr-defined]

    async def ping(self) -> bool:
        return await self._call_sync("ping", self._connection.ping)  # type: ignore[attr-defined]

    async def close(self) -> None:
        self._connection.shutdown()  # type: ignore[attr-defined]


class CassandraQueueStore(_CassandraStoreMixin, QueueStore):
    """Durable snapshot of every batch/item, the baseline of the merged view."""

    def __init__(self, connection: CassandraConnection, *, timeout: float | None = None) -> None:
        super().__init__(timeout=timeout or connection.timeout)
        self._connection = connection

    async def put(self, obj: QueueObject) -> None:
        decoded = decode_metadata(obj.metadata)
        metadata = {key: str(value) for key, value in (decoded.fields or {}).items()}
        params = (
            obj.object_id,
            obj.object_type.value,
            obj.parent_id,
            obj.status.value,
            obj.outcome.value if obj.outcome else None,
            metadata,
            obj.records,
            obj.created,
            obj.updated,
        )
        await self._call_sync(
            "put",
            self._connection.execute,
            "object_insert",
            f"INSERT INTO batch_objects ({_OBJECT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            params,
            object_id=obj.object_id,
        )

    async def get(self, object_id: str) -> QueueObject | None:
        rows = await self._call_sync(
            "get",
            self._connection.execute,
            "object_select",
            f"SELECT {_OBJECT_COLUMNS} FROM batch_objects WHERE object_id = ?",
            (object_id,),
            object_id=object_id,
        )
        return _object_from_row(rows[0]) if rows else None

    async def list(self, limit: int = 1000) -> list[QueueObject]:
        rows = await self._call_sync(
            "list",
            self._connection.execute,
            "object_scan",
            f"SELECT {_OBJECT_COLUMNS} FROM batch_objects LIMIT ?",
            (limit,),
        )
        return sort_queue_objects([_object_from_row(row) for row in rows])

    async def update(self, object_id: str, patch: QueueObjectUpdate) -> bool:
        if patch.outcome is not None:
            name = "object_update_outcome"
            query = (
                "UPDATE batch_objects SET status = ?, outcome = ?, updated = ? "
                "WHERE object_id = ? IF EXISTS"
            )
            params: tuple[Any, ...] = (
                patch.status.value,
                patch.outcome.value,
                patch.updated,
                object_id,
            )
        else:
            name = "object_update"
            query = "UPDATE batch_objects SET status = ?, updated = ? WHERE object_id = ? IF EXISTS"
            params = (patch.status.value, patch.updated, object_id)

        rows = await self._call_sync(
            "update", self._connection.execute, name, query, params, object_id=object_id
        )
        applied = bool(rows and rows[0].get("[applied]"))
        if not applied:
            logger.warning(
                "Ignoring update for unknown object",
                extra={"object_id": object_id, "status": "skipped"},
            )
        return applied

    async def count(self) -> int:
        rows = await self._call_sync(
            "count",
            self._connection.execute,
            "object_count",
            "SELECT COUNT(*) AS total FROM batch_objects",
        )
        return int(rows[0]["total"]) if rows else 0


class CassandraAuditStore(_CassandraStoreMixin, AuditStore):
    """Durable, append-only audit trail."""

    def __init__(self, connection: CassandraConnection, *, timeout: float | None = None) -> None:
        super().__init__(timeout=timeout or connection.timeout)
        self._connection = connection

    async def append_entry(self, entry: AuditEntry) -> None:
        params = (
            uuid.UUID(entry.audit_id),
            entry.object_id,
            entry.object_type.value,
            entry.parent_id,
            entry.parent_type.value if entry.parent_type else None,
            entry.action.value,
            entry.previous_status.value if entry.previous_status else None,
            entry.new_status.value,
            entry.previous_outcome.value if entry.previous_outcome else None,
            entry.new_outcome.value if entry.new_outcome else None,
            entry.timestamp,
            entry.metadata,
        )
        await self._call_sync(
            "append_entry",
            self._connection.execute,
            "audit_insert",
            f"INSERT INTO audit_entries ({_AUDIT_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            params,
            object_id=entry.object_id,
        )

    async def query_by_object(
        self, object_type: ObjectType, object_id: str, limit: int = 50
    ) -> list[AuditEntry]:
        rows = await self._call_sync(
            "query_by_object",
            self._connection.execute,
            "audit_by_object",
            f"SELECT {_AUDIT_COLUMNS} FROM audit_entries "
            "WHERE object_type = ? AND object_id = ? LIMIT ?",
            (ObjectType(object_type).value, object_id, limit),
            object_id=object_id,
        )
        return sort_audit_entries([_entry_from_row(row) for row in rows])

    async def query_by_parent(self, parent_id: str, limit: int = 100) -> list[AuditEntry]:
        """Return item rows under ``parent_id``, newest first.

        ``LIMIT`` applies to the secondary-index scan, which yields rows in token
        order, and the item filter runs afterwards. A limited call therefore
        returns an arbitrary subset of the trail rather than the newest rows,
        and may hold fewer than ``limit`` entries.
        """

        rows = await self._call_sync(
            "query_by_parent",
            self._connection.execute,
            "audit_by_parent",
            f"SELECT {_AUDIT_COLUMNS} FROM audit_entries WHERE parent_id = ? LIMIT ?",
            (parent_id, limit),
            object_id=parent_id,
        )
        # Producers may tag batch rows with their own id as parent_id; keep only items.
        entries = [
            _entry_from_row(row)
            for row in rows
            if row.get("object_type") == ObjectType.ITEM.value and row["object_id"] != parent_id
        ]
        return sort_audit_entries(entries)

    async def query_recent(self, limit: int = 100) -> list[AuditEntry]:
        """Return up to ``limit`` rows sorted newest first.

        The table has no global time order, so this is a token-order sample of
        the trail; the recent view reads the fast store instead.
        """

        rows = await self._call_sync(
            "query_recent",
            self._connection.execute,
            "audit_scan",
            f"SELECT {_AUDIT_COLUMNS} FROM audit_entries LIMIT ?",
            (limit,),
        )
        return sort_audit_entries([_entry_from_row(row) for row in rows])
