"""Clock abstraction for repeating background tasks"""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Protocol

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Awaitable[None]]


class RepeatingTask(Protocol):
    """Handle to a task scheduled with Clock.call_every()"""

    @property
    def next_run_at(self) -> datetime | None: ...

    def cancel(self) -> None: ...


class Clock(Protocol):
    """Source of time and repeating task scheduling"""

    def now(self) -> datetime: ...

    def call_every(
        self, interval_seconds: float, callback: TickCallback, task_id: str
    ) -> RepeatingTask: ...


class APSchedulerTask:
    """Repeating task backed by an APScheduler job"""

    def __init__(self, scheduler: AsyncIOScheduler, job_id: str):
        self.scheduler = scheduler
        self.job_id = job_id

    @property
    def next_run_at(self) -> datetime | None:
        job = self.scheduler.get_job(self.job_id)
        # Jobs added before the scheduler starts have no next_run_time yet
        return getattr(job, "next_run_time", None) if job else None

    def cancel(self) -> None:
        try:
            self.scheduler.remove_job(self.job_id)
            logger.info(f"Removed scheduled job {self.job_id}")
        except JobLookupError:
            logger.warning(f"Scheduled job {self.job_id} not found during cancel")


class APSchedulerClock:
    """Clock running tasks on an AsyncIOScheduler (shares the app's event loop)"""

    def __init__(self, scheduler: AsyncIOScheduler):
        self.scheduler = scheduler

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def call_every(
        self, interval_seconds: float, callback: TickCallback, task_id: str
    ) -> APSchedulerTask:
        """
        Schedule callback every interval_seconds, first run one interval from now

        Args:
            interval_seconds: Seconds between runs
            callback: Coroutine function executed on each tick
            task_id: Job id, replacing any existing job with the same id
        """
        trigger = IntervalTrigger(seconds=interval_seconds)

        self.scheduler.add_job(
            callback,
            trigger=trigger,
            id=task_id,
            name=task_id.replace("_", " ").title(),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

        logger.info(f"Scheduled {task_id} every {interval_seconds:g}s")
        return APSchedulerTask(self.scheduler, task_id)
