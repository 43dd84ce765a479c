"""Pydantic schemas for the append-only audit trail."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from pydantic import Field, field_validator

from ..lifecycle import Outcome, Status
from .base import CamelModel, ensure_utc, utcnow
from .queue import ObjectType


class AuditAction(str, Enum):
    """Kind of event an audit row records."""

    CREATED = "CREATED"
    UPDATED = "UPDATED"


class AuditEntry(CamelModel):
    """Immutable record of one creation or transition."""

    audit_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    object_id: str
    object_type: ObjectType = ObjectType.BATCH
    parent_id: str | None = None
    parent_type: ObjectType | None = None
    action: AuditAction
    previous_status: Status | None = None
    new_status: Status
    previous_outcome: Outcome | None = None
    new_outcome: Outcome | None = None
    timestamp: datetime = Field(default_factory=utcnow)
    metadata: str | None = None

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_validator(
        "previous_status",
        "previous_outcome",
        "new_outcome",
        "parent_id",
        "parent_type",
        "metadata",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        return value or None

    @property
    def is_item_entry(self) -> bool:
        """True for item rows linked to a parent batch."""

        return self.object_type is ObjectType.ITEM and self.parent_id is not None


class ItemAuditStats(CamelModel):
    """Per-batch summary derived from the item audit rows under it."""

    parent_id: str
    total_items: int = 0
    total_entries: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    last_updated: datetime | None = None
