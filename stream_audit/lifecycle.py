"""Status lifecycle for batch and item queue objects.

Every object enters the pipeline as ``RECEIVED`` and walks forward through the
table below until it reaches a terminal status::

    RECEIVED   -> VALIDATING
    VALIDATING -> INVALID | ENRICHING
    ENRICHING  -> PROCESSING
    PROCESSING -> COMPLETE

``INVALID`` and ``COMPLETE`` are terminal. The outcome of an object is only
known once it is terminal: ``COMPLETE`` succeeds and ``INVALID`` fails.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum
from types import MappingProxyType
from typing import NamedTuple

from .exceptions import IllegalTransitionError


class Status(str, Enum):
    """Lifecycle status of a queue object."""

    RECEIVED = "RECEIVED"
    VALIDATING = "VALIDATING"
    INVALID = "INVALID"
    ENRICHING = "ENRICHING"
    PROCESSING = "PROCESSING"
    COMPLETE = "COMPLETE"


class Outcome(str, Enum):
    """Final result of a terminal queue object."""

    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


INITIAL_STATUS = Status.RECEIVED
TERMINAL_STATUSES: frozenset[Status] = frozenset({Status.INVALID, Status.COMPLETE})

TRANSITIONS: Mapping[Status, frozenset[Status]] = MappingProxyType(
    {
        Status.RECEIVED: frozenset({Status.VALIDATING}),
        Status.VALIDATING: frozenset({Status.INVALID, Status.ENRICHING}),
        Status.ENRICHING: frozenset({Status.PROCESSING}),
        Status.PROCESSING: frozenset({Status.COMPLETE}),
        Status.INVALID: frozenset(),
        Status.COMPLETE: frozenset(),
    }
)

_TERMINAL_OUTCOMES: Mapping[Status, Outcome] = MappingProxyType(
    {
        Status.COMPLETE: Outcome.SUCCESS,
        Status.INVALID: Outcome.FAILURE,
    }
)


def next_statuses(status: Status) -> frozenset[Status]:
    """Return the statuses reachable from ``status`` in one step."""

    return TRANSITIONS[Status(status)]


def is_terminal(status: Status) -> bool:
    """Return True when no further transition is allowed from ``status``."""

    return Status(status) in TERMINAL_STATUSES


def outcome_for(status: Status) -> Outcome | None:
    """Return the outcome implied by ``status`` (None while non-terminal)."""

    return _TERMINAL_OUTCOMES.get(Status(status))


def is_valid_transition(current: Status, new: Status) -> bool:
    """Return True when ``current -> new`` is a row of the transition table."""

    return Status(new) in next_statuses(current)


def require_transition(current: Status, new: Status) -> None:
    """Raise :class:`IllegalTransitionError` unless ``current -> new`` is legal."""

    if not is_valid_transition(current, new):
        raise IllegalTransitionError(Status(current), Status(new))


def validate_walk(statuses: Iterable[Status]) -> bool:
    """Check that an ordered status history is a legal walk from ``RECEIVED``.

    The walk may stop on any status; an empty history is not a walk.
    """

    history = [Status(status) for status in statuses]
    if not history or history[0] is not INITIAL_STATUS:
        return False
    return all(
        is_valid_transition(previous, current)
        for previous, current in zip(history, history[1:])
    )


class DisplayAttributes(NamedTuple):
    """Presentation hints for a status or outcome badge."""

    label: str
    color: str
    icon: str


_STATUS_DISPLAY: Mapping[Status, DisplayAttributes] = MappingProxyType(
    {
        Status.RECEIVED: DisplayAttributes("Received", "blue", "inbox"),
        Status.VALIDATING: DisplayAttributes("Validating", "yellow", "search"),
        Status.INVALID: DisplayAttributes("Invalid", "red", "x-circle"),
        Status.ENRICHING: DisplayAttributes("Enriching", "purple", "layers"),
        Status.PROCESSING: DisplayAttributes("Processing", "orange", "loader"),
        Status.COMPLETE: DisplayAttributes("Complete", "green", "check-circle"),
    }
)

_OUTCOME_DISPLAY: Mapping[Outcome, DisplayAttributes] = MappingProxyType(
    {
        Outcome.SUCCESS: DisplayAttributes("Success", "green", "thumbs-up"),
        Outcome.FAILURE: DisplayAttributes("Failure", "red", "thumbs-down"),
    }
)

_NO_OUTCOME = DisplayAttributes("-", "gray", "minus")


def status_display(status: Status) -> DisplayAttributes:
    """Return badge attributes for ``status``."""

    return _STATUS_DISPLAY[Status(status)]


def outcome_display(outcome: Outcome | None) -> DisplayAttributes:
    """Return badge attributes for ``outcome``; a missing outcome renders as ``-``."""

    if outcome is None:
        return _NO_OUTCOME
    return _OUTCOME_DISPLAY[Outcome(outcome)]
