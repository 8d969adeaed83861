"""Cron-style scheduling of the discovery scans on the asyncio loop."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable

from croniter import CroniterError, croniter

from .config import SchedulerSettings
from .discovery import DiscoveryService
from .models import UTC

LOGGER = logging.getLogger(__name__)

Job = Callable[[], Awaitable[Any]]


@dataclass(slots=True, frozen=True)
class CronSchedule:
    """A five-field cron expression evaluated in UTC.

    Names (``SUN``, ``JAN``) and ``7`` for Sunday are accepted. When both the
    day of month and the day of week are restricted, either one matching fires.
    """

    expression: str

    @classmethod
    def parse(cls, expression: str) -> "CronSchedule":
        normalized = " ".join(expression.split())
        if len(normalized.split()) != 5:
            raise ValueError(f"Cron expression must have 5 fields: {expression!r}")
        try:
            croniter(normalized)
        except (CroniterError, ValueError) as exc:
            raise ValueError(f"Invalid cron expression {expression!r}: {exc}") from exc
        return cls(expression=normalized)

    def next_after(self, moment: datetime) -> datetime:
        """Return the first firing strictly after ``moment``."""

        return croniter(self.expression, moment.astimezone(UTC)).get_next(datetime)


@dataclass(slots=True)
class ScheduledJob:
    name: str
    schedule: CronSchedule
    task: Job


class Scheduler:
    """Runs each registered job at its cron times.

    A job's next firing is computed only after the current run finishes, so
    runs of the same job never overlap. Failures are logged and the job waits
    for its next firing.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self._sleep = sleep
        self._jobs: list[ScheduledJob] = []
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def jobs(self) -> list[ScheduledJob]:
        return list(self._jobs)

    def add(self, name: str, expression: str, task: Job) -> ScheduledJob:
        job = ScheduledJob(name=name, schedule=CronSchedule.parse(expression), task=task)
        self._jobs.append(job)
        return job

    def start(self) -> None:
        if self._tasks:
            return
        LOGGER.info("Starting scheduler...")
        for job in self._jobs:
            self._tasks.append(asyncio.create_task(self._loop(job), name=f"scheduler:{job.name}"))
        LOGGER.info("Scheduler started with %s jobs", len(self._tasks))

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        LOGGER.info("Scheduler stopped")

    async def wait(self) -> None:
        await asyncio.gather(*self._tasks)

    async def run_job(self, job: ScheduledJob) -> bool:
        """Run one job, logging instead of raising on failure."""

        LOGGER.info("Running scheduled job %s", job.name)
        try:
            await job.task()
        except Exception:
            LOGGER.exception("Scheduled job %s failed", job.name)
            return False
        return True

    async def _loop(self, job: ScheduledJob) -> None:
        last_fire: datetime | None = None
        while True:
            now = self._clock()
            # A sleep may wake a little early; never fire the same slot twice.
            fire_at = job.schedule.next_after(now if last_fire is None else max(now, last_fire))
            LOGGER.debug("Next run of %s at %s", job.name, fire_at.isoformat())
            await self._sleep(max((fire_at - now).total_seconds(), 0.0))
            await self.run_job(job)
            last_fire = fire_at


def build_scheduler(settings: SchedulerSettings, discovery: DiscoveryService, **kwargs: Any) -> Scheduler:
    """Register the discovery scans whose cron expression is set."""

    scheduler = Scheduler(**kwargs)
    jobs: dict[str, tuple[str, Job]] = {
        "trending": (settings.trending, discovery.scan_trending),
        "popular": (settings.popular, discovery.scan_popular),
        "refresh": (settings.refresh, discovery.refresh_tracked),
    }
    for name, (expression, task) in jobs.items():
        if expression.strip():
            scheduler.add(name, expression, task)
    return scheduler


__all__ = ["CronSchedule", "Scheduler", "ScheduledJob", "build_scheduler"]
