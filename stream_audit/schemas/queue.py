"""Pydantic schemas for queue objects and their aggregate statistics."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import Field, field_validator, model_validator

from ..lifecycle import Outcome, Status
from .base import CamelModel, ensure_utc, utcnow


class ObjectType(str, Enum):
    """Kind of unit flowing through the pipeline."""

    BATCH = "batch"
    ITEM = "item"


class QueueObject(CamelModel):
    """Current state of one batch or item."""

    object_id: str = Field(..., description="Globally unique identifier, immutable")
    object_type: ObjectType = Field(ObjectType.BATCH, description="batch or item")
    parent_id: str | None = Field(None, description="Owning batch id for items")
    status: Status = Field(..., description="Current lifecycle status")
    outcome: Outcome | None = Field(None, description="Set once the status is terminal")
    metadata: str = Field("{}", description="Serialized metadata payload")
    records: int = Field(0, ge=0, description="Number of sub-items represented")
    created: datetime = Field(default_factory=utcnow, description="Creation time")
    updated: datetime = Field(default_factory=utcnow, description="Last transition time")

    @field_validator("created", "updated")
    @classmethod
    def _normalize_timestamps(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_validator("outcome", mode="before")
    @classmethod
    def _blank_outcome(cls, value: object) -> object:
        # Stores persist "no outcome" as an empty string.
        return value or None

    @model_validator(mode="after")
    def _check_parent(self) -> "QueueObject":
        if self.parent_id is not None and self.object_type is not ObjectType.ITEM:
            raise ValueError("only items may reference a parent batch")
        return self


class QueueObjectUpdate(CamelModel):
    """Merge-patch applied to an existing queue object."""

    status: Status
    updated: datetime = Field(default_factory=utcnow)
    outcome: Outcome | None = None

    @field_validator("updated")
    @classmethod
    def _normalize_updated(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    def apply(self, obj: QueueObject) -> QueueObject:
        """Return a copy of ``obj`` with this patch applied."""

        changes: dict[str, object] = {"status": self.status, "updated": self.updated}
        if self.outcome is not None:
            changes["outcome"] = self.outcome
        return obj.model_copy(update=changes)


class QueueStats(CamelModel):
    """Aggregate counts over a scan of current queue objects."""

    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    by_outcome: dict[str, int] = Field(default_factory=dict)
    total_records: int = 0
