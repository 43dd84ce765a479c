"""Custom exceptions for StreamAudit."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from stream_audit.lifecycle import Status


class StreamAuditError(Exception):
    """Base exception for all StreamAudit errors."""

    pass


class ConfigurationError(StreamAuditError):
    """Raised when configuration is invalid or missing."""

    pass


class StoreUnavailableError(StreamAuditError):
    """Raised when a backing store is unreachable or does not answer in time."""

    def __init__(self, store: str, operation: str, reason: str | None = None) -> None:
        message = f"Store '{store}' unavailable during '{operation}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.store = store
        self.operation = operation
        self.reason = reason


class OperationNotSupportedError(StreamAuditError):
    """Raised when a store or mode does not support the requested operation."""

    pass


class IllegalTransitionError(StreamAuditError):
    """Raised when a status change is not part of the lifecycle table."""

    def __init__(self, current: Status, requested: Status) -> None:
        super().__init__(
            f"Illegal status transition {current.value} -> {requested.value}"
        )
        self.current = current
        self.requested = requested


class MetadataDecodeError(StreamAuditError):
    """Describes a metadata payload that matched neither supported encoding.

    Returned inside a decode result rather than raised; callers render the
    payload raw instead of failing.
    """

    def __init__(self, raw: str, reason: str) -> None:
        super().__init__(f"Unable to decode metadata ({reason})")
        self.raw = raw
        self.reason = reason
