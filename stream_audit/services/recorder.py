"""Writes queue state changes together with their audit rows.

A queue write and its audit append are two separate store calls. A crash in
between leaves the queue ahead of the audit trail; nothing reconciles that.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import datetime, timedelta

from ..exceptions import IllegalTransitionError
from ..lifecycle import INITIAL_STATUS, Status, is_terminal, outcome_for, require_transition
from ..monitoring.metrics import record_transition
from ..schemas.audit import AuditAction, AuditEntry
from ..schemas.base import ensure_utc, utcnow
from ..schemas.queue import ObjectType, QueueObject, QueueObjectUpdate
from ..stores.base import AuditStore, QueueStore
from ..utils.logging import setup_logger

logger = setup_logger(__name__, context={"component": "recorder"})

_TICK = timedelta(microseconds=1)


class LifecycleRecorder:
    """Creates and advances queue objects on every configured store.

    Writes go to each queue store in order, then to each audit store. Store
    failures propagate to the caller after whatever writes already landed.
    """

    def __init__(
        self,
        queue_stores: Sequence[QueueStore],
        audit_stores: Sequence[AuditStore] = (),
    ) -> None:
        if not queue_stores:
            raise ValueError("at least one queue store is required")
        self.queue_stores = list(queue_stores)
        self.audit_stores = list(audit_stores)

    async def create(
        self,
        *,
        object_type: ObjectType = ObjectType.BATCH,
        parent_id: str | None = None,
        records: int = 0,
        metadata: str = "{}",
        object_id: str | None = None,
        now: datetime | None = None,
    ) -> QueueObject:
        """Store a new ``RECEIVED`` object and its ``CREATED`` audit row."""

        timestamp = ensure_utc(now) if now else utcnow()
        obj = QueueObject(
            object_id=object_id or str(uuid.uuid4()),
            object_type=object_type,
            parent_id=parent_id,
            status=INITIAL_STATUS,
            metadata=metadata,
            records=records,
            created=timestamp,
            updated=timestamp,
        )
        for store in self.queue_stores:
            await store.put(obj)

        await self._append(
            AuditEntry(
                object_id=obj.object_id,
                object_type=obj.object_type,
                parent_id=obj.parent_id,
                parent_type=ObjectType.BATCH if obj.parent_id else None,
                action=AuditAction.CREATED,
                new_status=obj.status,
                timestamp=timestamp,
                metadata=obj.metadata,
            )
        )
        logger.info(
            "Created queue object",
            extra={"object_id": obj.object_id, "status": obj.status.value},
        )
        return obj

    async def advance(
        self,
        obj: QueueObject,
        new_status: Status,
        *,
        now: datetime | None = None,
    ) -> QueueObject | None:
        """Move ``obj`` one step along the lifecycle.

        Returns the updated object, or None when no queue store knew the id
        (the update is then a no-op and nothing is audited).

        Raises:
            IllegalTransitionError: ``obj`` is terminal or the step is not in
                the transition table.
        """

        new_status = Status(new_status)
        if is_terminal(obj.status):
            raise IllegalTransitionError(obj.status, new_status)
        require_transition(obj.status, new_status)

        # Timestamps must move forward even when the clock does not.
        timestamp = ensure_utc(now) if now else utcnow()
        if timestamp <= obj.updated:
            timestamp = obj.updated + _TICK

        patch = QueueObjectUpdate(
            status=new_status,
            outcome=outcome_for(new_status),
            updated=timestamp,
        )
        applied = False
        for store in self.queue_stores:
            applied = await store.update(obj.object_id, patch) or applied
        if not applied:
            logger.warning(
                "Skipped transition for unknown object",
                extra={"object_id": obj.object_id, "status": new_status.value},
            )
            return None

        updated = patch.apply(obj)
        await self._append(
            AuditEntry(
                object_id=obj.object_id,
                object_type=obj.object_type,
                parent_id=obj.parent_id,
                parent_type=ObjectType.BATCH if obj.parent_id else None,
                action=AuditAction.UPDATED,
                previous_status=obj.status,
                new_status=updated.status,
                previous_outcome=obj.outcome,
                new_outcome=updated.outcome,
                timestamp=timestamp,
                metadata=obj.metadata,
            )
        )
        record_transition(obj.status.value, new_status.value)
        logger.info(
            f"Advanced {obj.status.value} -> {new_status.value}",
            extra={"object_id": obj.object_id, "status": new_status.value},
        )
        return updated

    async def _append(self, entry: AuditEntry) -> None:
        for store in self.audit_stores:
            await store.append_entry(entry)
