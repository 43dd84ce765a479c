"""Prometheus metrics definitions for StreamAudit."""

from __future__ import annotations

import time

from prometheus_client import Counter, Gauge, Histogram

STORE_OPERATIONS = Counter(
    "store_operations_total",
    "Total store operations by store, operation and status.",
    labelnames=("store", "operation", "status"),
)

STORE_OPERATION_DURATION = Histogram(
    "store_operation_duration_seconds",
    "Distribution of store call durations in seconds.",
    labelnames=("store", "operation"),
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1, 2, 5),
)

LIFECYCLE_TRANSITIONS = Counter(
    "lifecycle_transitions_total",
    "Status transitions written by the lifecycle recorder.",
    labelnames=("from_status", "to_status"),
)

SCHEDULER_TICKS = Counter(
    "scheduler_ticks_total",
    "Synthetic driver timer callbacks grouped by timer and result.",
    labelnames=("timer", "status"),
)

SSE_ACTIVE_STREAMS = Gauge(
    "sse_active_streams",
    "Number of currently connected server-sent event clients.",
    labelnames=("stream",),
)

APP_UPTIME_SECONDS = Gauge(
    "app_uptime_seconds",
    "Application uptime in seconds.",
)

APP_HEALTH_STATUS = Gauge(
    "app_health_status",
    "Application health status (1=healthy, 0.5=degraded, 0=unhealthy).",
)

_START_TIME = time.monotonic()
APP_UPTIME_SECONDS.set_function(lambda: time.monotonic() - _START_TIME)


def record_store_operation(store: str, operation: str, status: str, duration_seconds: float) -> None:
    """Count a store call and record how long it took."""

    STORE_OPERATIONS.labels(store=store, operation=operation, status=status).inc()
    STORE_OPERATION_DURATION.labels(store=store, operation=operation).observe(
        max(duration_seconds, 0.0)
    )


def record_transition(from_status: str, to_status: str) -> None:
    """Increment the transitions counter for ``from_status -> to_status``."""

    LIFECYCLE_TRANSITIONS.labels(from_status=from_status, to_status=to_status).inc()


def record_scheduler_tick(timer: str, status: str) -> None:
    """Increment the scheduler ticks counter with the supplied labels."""

    SCHEDULER_TICKS.labels(timer=timer, status=status).inc()


def stream_opened(stream: str) -> None:
    SSE_ACTIVE_STREAMS.labels(stream=stream).inc()


def stream_closed(stream: str) -> None:
    SSE_ACTIVE_STREAMS.labels(stream=stream).dec()


def set_health_status(value: float) -> None:
    """Publish the last computed overall health (1, 0.5 or 0)."""

    APP_HEALTH_STATUS.set(value)


def uptime_seconds() -> float:
    return time.monotonic() - _START_TIME
