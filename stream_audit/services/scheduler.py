"""Synthetic traffic driver for demos and tests.

Two independent timers share nothing but the stores:

* the insert timer creates a new ``RECEIVED`` batch (and, optionally, a few
  items under a recent batch);
* the update timer picks one random non-terminal object from the most recent
  page and advances it one legal step.

Each timer is an asyncio task guarded by its own running flag and stop event.
Stopping sets both, which interrupts the sleep but never a tick already in
progress: :meth:`SyntheticDriver.stop` waits for that tick to finish its queue
and audit writes, so no write is issued once it returns and no object is left
ahead of its audit trail.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from decimal import Decimal

from ..lifecycle import is_terminal, next_statuses
from ..monitoring.metrics import record_scheduler_tick
from ..schemas.metadata import encode_metadata
from ..schemas.queue import ObjectType, QueueObject
from ..utils.config import SchedulerSettings
from ..utils.logging import setup_logger
from .reconciliation import QueueReconciler
from .recorder import LifecycleRecorder

logger = setup_logger(__name__, context={"component": "scheduler"})

SleepFunc = Callable[[float], Awaitable[None]]

INSERT_TIMER = "insert"
UPDATE_TIMER = "update"

COMPANIES_BY_REGION: dict[str, tuple[str, ...]] = {
    "US": ("Verizon", "AT&T", "Comcast", "Duke Energy", "State Farm", "Geico"),
    "AU": ("Telstra", "Optus", "AGL Energy", "Origin Energy", "NRMA", "Medibank"),
    "UK": ("British Gas", "Octopus Energy", "EDF Energy", "Aviva", "Admiral Group", "BT"),
}

CURRENCY_BY_REGION: dict[str, str] = {"US": "USD", "AU": "AUD", "UK": "GBP"}


def generate_amount(rng: random.Random) -> Decimal:
    """Draw a payment amount: mostly 50-80, sometimes small, rarely large."""

    roll = rng.random()
    if roll < 0.70:
        value = min(80.0, max(50.0, rng.gauss(65.0, 8.0)))
    elif roll < 0.90:
        value = 20.0 + rng.random() * 29.0
    else:
        value = 81.0 + rng.random() * 119.0
    return Decimal(f"{value:.2f}")


def generate_metadata(rng: random.Random) -> str:
    """Build a synthetic JSON metadata payload for a new batch."""

    region = rng.choice(sorted(COMPANIES_BY_REGION))
    return encode_metadata(
        {
            "company": rng.choice(COMPANIES_BY_REGION[region]),
            "amount": str(generate_amount(rng)),
            "currency": CURRENCY_BY_REGION[region],
            "region": region,
            "source": "automated",
            "priority": "high" if rng.random() > 0.5 else "normal",
        }
    )


class SyntheticDriver:
    """Randomly creates and advances queue objects on two timers."""

    def __init__(
        self,
        recorder: LifecycleRecorder,
        reader: QueueReconciler,
        settings: SchedulerSettings | None = None,
        *,
        rng: random.Random | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self.recorder = recorder
        self.reader = reader
        self.settings = settings or SchedulerSettings()
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._flags: dict[str, bool] = {INSERT_TIMER: False, UPDATE_TIMER: False}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._stop_events: dict[str, asyncio.Event] = {}

    @property
    def running(self) -> bool:
        return any(self._flags.values())

    def timer_running(self, timer: str) -> bool:
        return self._flags[timer]

    def start(self) -> None:
        """Start both timers; already running timers are left alone."""

        bounds = {
            INSERT_TIMER: (self.settings.insert_min_seconds, self.settings.insert_max_seconds),
            UPDATE_TIMER: (self.settings.update_min_seconds, self.settings.update_max_seconds),
        }
        callbacks = {INSERT_TIMER: self.insert_once, UPDATE_TIMER: self.update_once}
        for timer in (INSERT_TIMER, UPDATE_TIMER):
            if self._flags[timer]:
                continue
            self._flags[timer] = True
            stopped = self._stop_events[timer] = asyncio.Event()
            self._tasks[timer] = asyncio.create_task(
                self._run_timer(timer, bounds[timer], callbacks[timer], stopped),
                name=f"synthetic-driver-{timer}",
            )
        logger.info("Synthetic driver started", extra={"status": "running"})

    async def stop(self) -> None:
        """Stop both timers and wait until neither can write again."""

        await self.stop_insert()
        await self.stop_update()
        logger.info("Synthetic driver stopped", extra={"status": "stopped"})

    async def stop_insert(self) -> None:
        await self._stop_timer(INSERT_TIMER)

    async def stop_update(self) -> None:
        await self._stop_timer(UPDATE_TIMER)

    async def _stop_timer(self, timer: str) -> None:
        self._flags[timer] = False
        stopped = self._stop_events.pop(timer, None)
        if stopped is not None:
            stopped.set()
        task = self._tasks.pop(timer, None)
        if task is None:
            return
        # The tick in flight finishes both of its writes before the task exits.
        await task

    async def _pause(self, delay: float, stopped: asyncio.Event) -> bool:
        """Sleep for ``delay``; return False if ``stopped`` was set meanwhile."""

        sleeper = asyncio.ensure_future(self._sleep(delay))
        waiter = asyncio.ensure_future(stopped.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            waiter.cancel()
        return not stopped.is_set()

    async def _run_timer(
        self,
        timer: str,
        bounds: tuple[float, float],
        callback: Callable[[], Awaitable[object]],
        stopped: asyncio.Event,
    ) -> None:
        while self._flags[timer]:
            if not await self._pause(self._rng.uniform(*bounds), stopped):
                break
            if not self._flags[timer]:
                break
            try:
                await callback()
            except Exception as exc:
                record_scheduler_tick(timer, "error")
                logger.error(
                    f"Synthetic {timer} tick failed: {exc}",
                    extra={"status": "error"},
                )
            else:
                record_scheduler_tick(timer, "success")

    async def insert_once(self) -> QueueObject:
        """Create one new batch, plus child items when configured."""

        batch = await self.recorder.create(
            object_type=ObjectType.BATCH,
            records=self._rng.randint(1, 10),
            metadata=generate_metadata(self._rng),
        )
        logger.info(
            f"Inserted batch with {batch.records} records",
            extra={"object_id": batch.object_id, "status": batch.status.value},
        )

        if self.settings.item_probability and self._rng.random() < self.settings.item_probability:
            await self._insert_items()
        return batch

    async def _insert_items(self) -> None:
        recent = await self.reader.list(self.settings.update_page_size)
        batches = [obj for obj in recent if obj.object_type is ObjectType.BATCH]
        if not batches:
            return
        parent = self._rng.choice(batches)
        for _ in range(self._rng.randint(1, self.settings.max_items_per_batch)):
            await self.recorder.create(
                object_type=ObjectType.ITEM,
                parent_id=parent.object_id,
                records=1,
                metadata=parent.metadata,
            )

    async def update_once(self) -> QueueObject | None:
        """Advance one random non-terminal object; None when there is nothing to do."""

        recent = await self.reader.list(self.settings.update_page_size)
        candidates = [obj for obj in recent if not is_terminal(obj.status)]
        if not candidates:
            logger.debug("No non-terminal objects to advance")
            return None

        target = self._rng.choice(candidates)
        choices = sorted(next_statuses(target.status), key=lambda status: status.value)
        return await self.recorder.advance(target, self._rng.choice(choices))
