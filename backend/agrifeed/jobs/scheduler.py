"""Per-feed periodic triggers.

Every feed gets its own asyncio task that sleeps until the next fire time
computed by an APScheduler trigger, then starts the feed's RefreshJob as a
separate task without awaiting it. A slow or failing feed therefore never
delays another feed's trigger, and a fire that arrives while the previous
run of the same feed is still in flight is skipped rather than queued.
"""

from __future__ import annotations

import asyncio
import datetime
from enum import Enum
from typing import Callable, Iterable

import structlog
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from pydantic import BaseModel

from agrifeed.jobs.refresh import RefreshJob
from agrifeed.schemas.feed import FeedId, RefreshResult, ScheduleSpec

logger = structlog.get_logger()

RETRY_DELAY_SECONDS = 5.0


class TriggerState(str, Enum):
    IDLE = "idle"
    FIRING = "firing"
    SKIPPED = "skipped"


class TriggerStatus(BaseModel):
    feed_id: FeedId
    state: TriggerState = TriggerState.IDLE
    last_fire: TriggerState | None = None
    next_fire_time: datetime.datetime | None = None
    fire_count: int = 0
    skip_count: int = 0
    last_outcome: str | None = None
    last_finished_at: datetime.datetime | None = None


def build_trigger(spec: ScheduleSpec, timezone: str) -> BaseTrigger:
    if spec.interval_seconds is not None:
        return IntervalTrigger(
            seconds=spec.interval_seconds,
            jitter=spec.jitter_seconds,
            timezone=timezone,
        )
    if spec.cron is None:
        raise ValueError(f"Schedule for {spec.feed_id.value} has neither interval nor cron.")
    fields = spec.cron.split()
    if len(fields) != 5:
        raise ValueError(f"Wrong number of fields in cron expression: {spec.cron!r}")
    minute, hour, day, month, day_of_week = fields
    return CronTrigger(
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=day_of_week,
        jitter=spec.jitter_seconds,
        timezone=timezone,
    )


class Scheduler:
    def __init__(
        self,
        jobs: dict[FeedId, RefreshJob],
        specs: Iterable[ScheduleSpec],
        *,
        timezone: str = "UTC",
        refresh_on_startup: bool = False,
        clock: Callable[..., datetime.datetime] = datetime.datetime.now,
    ) -> None:
        self.jobs = jobs
        self.specs = {spec.feed_id: spec for spec in specs}
        missing = set(self.specs) - set(jobs)
        if missing:
            names = ", ".join(sorted(feed_id.value for feed_id in missing))
            raise ValueError(f"No refresh job for scheduled feeds: {names}")
        self.timezone = timezone
        self.refresh_on_startup = refresh_on_startup
        self.clock = clock
        self._status = {feed_id: TriggerStatus(feed_id=feed_id) for feed_id in self.specs}
        self._trigger_tasks: list[asyncio.Task] = []
        self._inflight: set[asyncio.Task] = set()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def status(self) -> dict[FeedId, TriggerStatus]:
        return {feed_id: status.model_copy() for feed_id, status in self._status.items()}

    def start(self) -> None:
        if self._running:
            raise RuntimeError("Scheduler already started.")
        self._running = True
        for spec in self.specs.values():
            trigger = build_trigger(spec, self.timezone)
            task = asyncio.create_task(
                self._trigger_loop(spec.feed_id, trigger), name=f"trigger:{spec.feed_id.value}"
            )
            self._trigger_tasks.append(task)
        logger.info("scheduler_started", feeds=[feed_id.value for feed_id in self.specs])
        if self.refresh_on_startup:
            for feed_id in self.specs:
                self.fire(feed_id)

    def fire(self, feed_id: FeedId) -> asyncio.Task | None:
        """Start a refresh for ``feed_id`` unless one is already in flight."""
        if not self._running:
            logger.info("trigger_ignored", feed_id=feed_id.value, reason="scheduler_stopped")
            return None

        status = self._status[feed_id]
        status.fire_count += 1
        job = self.jobs[feed_id]
        if status.state is TriggerState.FIRING or job.in_flight:
            status.skip_count += 1
            status.last_fire = TriggerState.SKIPPED
            logger.info("trigger_skipped", feed_id=feed_id.value, skip_count=status.skip_count)
            return None

        status.state = TriggerState.FIRING
        status.last_fire = TriggerState.FIRING
        task = asyncio.create_task(job.run(), name=f"refresh:{feed_id.value}")
        self._inflight.add(task)
        task.add_done_callback(lambda done: self._on_run_done(feed_id, done))
        return task

    def _on_run_done(self, feed_id: FeedId, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        status = self._status[feed_id]
        status.state = TriggerState.IDLE
        status.last_finished_at = datetime.datetime.now(datetime.timezone.utc)
        if task.cancelled():
            status.last_outcome = "cancelled"
            return
        exc = task.exception()
        if exc is not None:
            status.last_outcome = "failed"
            logger.error("refresh_crashed", feed_id=feed_id.value, error=repr(exc))
            return
        result: RefreshResult = task.result()
        status.last_outcome = result.outcome

    async def _trigger_loop(self, feed_id: FeedId, trigger: BaseTrigger) -> None:
        status = self._status[feed_id]
        previous: datetime.datetime | None = None
        while True:
            try:
                now = self.clock(trigger.timezone)
                if previous is not None and now < previous:
                    now = previous
                next_fire = trigger.get_next_fire_time(previous, now)
            except Exception:
                logger.exception("trigger_schedule_failed", feed_id=feed_id.value)
                await asyncio.sleep(RETRY_DELAY_SECONDS)
                continue

            if next_fire is None:
                status.next_fire_time = None
                logger.info("trigger_exhausted", feed_id=feed_id.value)
                return

            status.next_fire_time = next_fire
            await self._wait_until(next_fire)
            previous = next_fire
            self.fire(feed_id)

    async def _wait_until(self, when: datetime.datetime) -> None:
        # Sleep again on an early wake; a slot fires only once the clock has reached it.
        while True:
            remaining = (when - self.clock(when.tzinfo)).total_seconds()
            if remaining <= 0:
                return
            await asyncio.sleep(remaining)

    async def stop(self, grace_seconds: float = 5.0) -> None:
        """Stop triggers now; give in-flight runs ``grace_seconds`` before cancelling them."""
        if not self._running:
            return
        self._running = False

        for task in self._trigger_tasks:
            task.cancel()
        await asyncio.gather(*self._trigger_tasks, return_exceptions=True)
        self._trigger_tasks.clear()

        pending = set(self._inflight)
        if pending:
            logger.info("scheduler_draining", in_flight=len(pending), grace_seconds=grace_seconds)
            _, pending = await asyncio.wait(pending, timeout=grace_seconds)
        if pending:
            logger.warning(
                "refresh_abandoned",
                feeds=sorted(task.get_name() for task in pending),
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("scheduler_stopped")
