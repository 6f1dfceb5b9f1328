"""In-process scheduler firing the daily and hourly crawl batches.

A single asyncio loop computes the next fire time for each trigger. Batches
run in a worker thread; each trigger has its own in-progress guard so an
overrunning batch causes the next firing to be skipped, not duplicated.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from app.config import settings
from app.models.source import CrawlFrequency
from app.observability.metrics import metrics
from pipelines.crawl import SCHEDULED_FREQUENCIES, resolve_frequency, utc_now
from pipelines.crawl.pipeline import BatchSummary, CrawlPipeline

logger = logging.getLogger("pipelines.crawl.scheduler")

PipelineFactory = Callable[[], CrawlPipeline]
Clock = Callable[[], datetime]


def next_fire_time(
    frequency: CrawlFrequency,
    now: datetime,
    *,
    tz: ZoneInfo,
    daily_hour: int = 2,
    daily_minute: int = 0,
) -> datetime:
    """Next firing strictly after ``now`` (aware), returned in ``tz``."""
    local = now.astimezone(tz)
    if frequency is CrawlFrequency.HOURLY:
        return local.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
    candidate = local.replace(hour=daily_hour, minute=daily_minute, second=0, microsecond=0)
    if candidate <= local:
        candidate = candidate + timedelta(days=1)
    return candidate


class CrawlScheduler:
    def __init__(
        self,
        pipeline_factory: PipelineFactory,
        *,
        timezone: str | None = None,
        daily_hour: int | None = None,
        daily_minute: int | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._pipeline_factory = pipeline_factory
        self._tz = ZoneInfo(timezone or settings.scheduler_timezone)
        self._daily_hour = settings.scheduler_daily_hour if daily_hour is None else daily_hour
        self._daily_minute = settings.scheduler_daily_minute if daily_minute is None else daily_minute
        self._clock = clock or utc_now
        self._guards = {frequency: threading.Lock() for frequency in SCHEDULED_FREQUENCIES}
        self._loop_task: asyncio.Task | None = None
        self._runs: set[asyncio.Task] = set()

    def is_running(self, frequency: CrawlFrequency) -> bool:
        return self._guards[frequency].locked()

    def trigger(self, frequency: CrawlFrequency | str) -> BatchSummary | None:
        """Run one batch now unless the same trigger is already in progress."""
        frequency = resolve_frequency(frequency)
        guard = self._guards[frequency]
        if not guard.acquire(blocking=False):
            logger.warning("crawl.trigger.skipped", extra={"frequency": frequency.value})
            metrics.increment("crawl.trigger.skipped", tags={"frequency": frequency.value})
            return None
        try:
            return self._pipeline_factory().run_batch(frequency)
        finally:
            guard.release()

    def next_fire_times(self, now: datetime | None = None) -> dict[CrawlFrequency, datetime]:
        now = now or self._clock()
        return {
            frequency: next_fire_time(
                frequency,
                now,
                tz=self._tz,
                daily_hour=self._daily_hour,
                daily_minute=self._daily_minute,
            )
            for frequency in SCHEDULED_FREQUENCIES
        }

    async def run_forever(self) -> None:
        schedule = self.next_fire_times()
        logger.info(
            "crawl.scheduler.started",
            extra={freq.value: fire_at.isoformat() for freq, fire_at in schedule.items()},
        )
        while True:
            due_at = min(schedule.values())
            delay = (due_at - self._clock()).total_seconds()
            if delay > 0:
                await asyncio.sleep(delay)
            now = self._clock()
            for frequency, fire_at in list(schedule.items()):
                if fire_at <= now:
                    self._launch(frequency)
                    schedule[frequency] = next_fire_time(
                        frequency,
                        now,
                        tz=self._tz,
                        daily_hour=self._daily_hour,
                        daily_minute=self._daily_minute,
                    )

    def _launch(self, frequency: CrawlFrequency) -> None:
        task = asyncio.create_task(asyncio.to_thread(self._safe_trigger, frequency))
        self._runs.add(task)
        task.add_done_callback(self._runs.discard)

    def _safe_trigger(self, frequency: CrawlFrequency) -> BatchSummary | None:
        try:
            return self.trigger(frequency)
        except Exception:
            logger.exception("crawl.trigger.failed", extra={"frequency": frequency.value})
            return None

    def start(self) -> None:
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.create_task(self.run_forever())

    async def stop(self) -> None:
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        logger.info("crawl.scheduler.stopped", extra={"in_flight": len(self._runs)})
