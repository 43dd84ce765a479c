"""Shared FastAPI dependencies and the per-app store container."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from fastapi import Request
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from ..exceptions import StoreUnavailableError
from ..services.reconciliation import QueueReconciler
from ..services.recorder import LifecycleRecorder
from ..services.scheduler import SyntheticDriver
from ..stores.base import AuditStore, QueueStore, StoreAdapter
from ..stores.cassandra_store import CassandraAuditStore, CassandraConnection, CassandraQueueStore
from ..stores.clickhouse_store import ClickHouseMetricsStore
from ..stores.redis_store import RedisAuditStore, RedisQueueStore
from ..utils.config import GlobalSettings, get_settings
from ..utils.logging import setup_logger

logger = setup_logger(__name__, context={"component": "api"})


@dataclass
class StoreContainer:
    """Stores and services shared by every request of one application.

    ``queue_durable``/``audit_durable`` are only set in durable mode. Recent
    audit reads always go to the fast store's bounded index; per-object and
    per-parent reads prefer the durable trail.
    """

    settings: GlobalSettings
    queue_fast: QueueStore
    audit_fast: AuditStore
    metrics: StoreAdapter | None = None
    queue_durable: QueueStore | None = None
    audit_durable: AuditStore | None = None
    driver: SyntheticDriver | None = None
    _reconciler: QueueReconciler | None = field(default=None, init=False, repr=False)
    _recorder: LifecycleRecorder | None = field(default=None, init=False, repr=False)

    @property
    def durable(self) -> bool:
        return self.queue_durable is not None

    @property
    def reconciler(self) -> QueueReconciler:
        if self._reconciler is None:
            self._reconciler = QueueReconciler(
                self.queue_fast,
                self.queue_durable,
                durable_fetch_limit=self.settings.durable_fetch_limit,
                overlay_fetch_limit=self.settings.overlay_fetch_limit,
                stats_scan_limit=self.settings.stats_scan_limit,
            )
        return self._reconciler

    @property
    def recorder(self) -> LifecycleRecorder:
        if self._recorder is None:
            queue_stores = [self.queue_fast]
            audit_stores = [self.audit_fast]
            if self.queue_durable is not None:
                queue_stores.append(self.queue_durable)
            if self.audit_durable is not None:
                audit_stores.append(self.audit_durable)
            self._recorder = LifecycleRecorder(queue_stores, audit_stores)
        return self._recorder

    @property
    def audit_reader(self) -> AuditStore:
        return self.audit_durable or self.audit_fast

    @property
    def audit_recent(self) -> AuditStore:
        return self.audit_fast

    def build_driver(self) -> SyntheticDriver:
        self.driver = SyntheticDriver(self.recorder, self.reconciler, self.settings.scheduler)
        return self.driver

    def health_components(self) -> dict[str, tuple[StoreAdapter, str]]:
        """Component name -> (store answering the ping, role)."""

        components: dict[str, tuple[StoreAdapter, str]] = {
            "redis": (self.queue_fast, "live queue and recent audit window"),
        }
        if self.queue_durable is not None:
            components["cassandra"] = (self.queue_durable, "durable queue and audit trail")
        if self.metrics is not None:
            components["clickhouse"] = (self.metrics, "analytical metrics")
        return components

    def all_stores(self) -> list[StoreAdapter]:
        stores: list[StoreAdapter] = [self.queue_fast, self.audit_fast]
        for store in (self.queue_durable, self.audit_durable, self.metrics):
            if store is not None:
                stores.append(store)
        return stores

    async def connect(self) -> None:
        """Connect every store, retrying a bounded number of times."""

        for store in self.all_stores():
            retrying = AsyncRetrying(
                stop=stop_after_attempt(self.settings.startup_connect_attempts),
                wait=wait_fixed(self.settings.startup_connect_backoff_seconds),
                retry=retry_if_exception_type(Exception),
                before_sleep=before_sleep_log(logger.logger, logging.WARNING),
                reraise=True,
            )
            async for attempt in retrying:
                with attempt:
                    await store.connect()

    async def close(self) -> None:
        for store in self.all_stores():
            try:
                await store.close()
            except Exception as exc:
                logger.warning(
                    f"Failed to close store cleanly: {exc}",
                    extra={"store": store.store_name, "status": "error"},
                )


def build_container(settings: GlobalSettings | None = None) -> StoreContainer:
    """Instantiate the stores selected by ``settings`` (no I/O happens here)."""

    settings = settings or get_settings()
    timeout = settings.store_timeout_seconds

    container = StoreContainer(
        settings=settings,
        queue_fast=RedisQueueStore(settings.redis_url, timeout=timeout),
        audit_fast=RedisAuditStore(
            settings.redis_url,
            recent_window=settings.audit_recent_window,
            timeout=timeout,
        ),
    )
    if settings.durable_enabled:
        connection = CassandraConnection(
            settings.cassandra_hosts,
            port=settings.cassandra_port,
            keyspace=settings.cassandra_keyspace,
            local_dc=settings.cassandra_local_dc,
            create_schema=settings.cassandra_create_schema,
            timeout=timeout,
        )
        container.queue_durable = CassandraQueueStore(connection)
        container.audit_durable = CassandraAuditStore(connection)
    if settings.clickhouse_url:
        container.metrics = ClickHouseMetricsStore(
            settings.clickhouse_url,
            database=settings.clickhouse_database,
            timeout=timeout,
        )
    return container


def get_container(request: Request) -> StoreContainer:
    """Return the container attached to the running application."""

    container: StoreContainer | None = getattr(request.app.state, "container", None)
    if container is None:
        raise StoreUnavailableError("api", "startup", "stores are not initialised")
    return container


def get_metrics_store(request: Request) -> ClickHouseMetricsStore:
    container = get_container(request)
    if container.metrics is None:
        raise StoreUnavailableError("clickhouse", "connect", "metrics store is not configured")
    return container.metrics  # type: ignore[return-value]
