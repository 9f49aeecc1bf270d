"""
Wall-clock scheduler for the batch jobs.

Each job runs at a fixed hour in the configured timezone, either daily or on
one weekday. Run times are computed with pytz so DST transitions keep the
local hour stable.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, List, NamedTuple, Optional, Set

import pytz

from truthrank.utils.clock import Clock

logger = logging.getLogger(__name__)


class ScheduledJob(NamedTuple):
    name: str
    hour: int
    run: Callable[[], Awaitable[Any]]
    weekday: Optional[int] = None  # Monday=0 ... Sunday=6; None means daily


def next_run_time(now: datetime, hour: int, timezone_name: str = 'UTC',
                  weekday: Optional[int] = None) -> datetime:
    """Next occurrence (as UTC) of hour:00 local time, strictly after now."""
    tz = pytz.timezone(timezone_name)
    local_now = now.astimezone(tz)
    candidate = local_now.replace(tzinfo=None, hour=hour, minute=0, second=0, microsecond=0)
    step = timedelta(days=1)
    if weekday is not None:
        candidate += timedelta(days=(weekday - candidate.weekday()) % 7)
        step = timedelta(days=7)

    localized = tz.localize(candidate)
    while localized <= local_now:
        candidate += step
        localized = tz.localize(candidate)
    return localized.astimezone(pytz.utc)


class JobScheduler:
    """Runs each scheduled job forever; a failing run is logged and the loop continues."""

    def __init__(self, clock: Clock, jobs: List[ScheduledJob], timezone_name: str = 'UTC'):
        self.clock = clock
        self.jobs = jobs
        self.timezone_name = timezone_name
        self._tasks: Set[asyncio.Task] = set()

    def start(self):
        for job in self.jobs:
            task = asyncio.create_task(self._loop(job), name=f"schedule:{job.name}")
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def stop(self):
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    async def run_forever(self):
        self.start()
        try:
            await asyncio.gather(*self._tasks)
        finally:
            await self.stop()

    async def run_job(self, job: ScheduledJob):
        try:
            result = await job.run()
            logger.info(f"Scheduled job {job.name} completed: {result}")
        except Exception as e:
            logger.error(f"Scheduled job {job.name} failed: {e}", exc_info=True)

    async def _loop(self, job: ScheduledJob):
        while True:
            now = self.clock.now()
            next_run = next_run_time(now, job.hour, self.timezone_name, job.weekday)
            delay = (next_run - now).total_seconds()
            logger.info(f"Next {job.name} run at {next_run.isoformat()} (in {delay:.0f}s)")
            await asyncio.sleep(delay)
            await self.run_job(job)
