"""Job manager for scheduling alert checks and health checks."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.triggers.date import DateTrigger

logger = logging.getLogger(__name__)


@dataclass
class _ScheduledJob:
    callback: Callable
    seconds: float
    name: str
    run_immediately: bool


class JobManager:
    """
    Manages recurring async jobs.

    Uses APScheduler for async job scheduling. Jobs are registered first
    and added to a fresh scheduler on every start, so a stopped manager
    can be started again.
    """

    def __init__(self):
        """Initialize the job manager."""
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._jobs: Dict[str, _ScheduledJob] = {}
        self._is_running = False

    def add_interval_job(
        self,
        callback: Callable,
        seconds: float,
        job_id: str,
        name: Optional[str] = None,
        run_immediately: bool = False,
    ) -> None:
        """
        Register a recurring job.

        Args:
            callback: Async function to call on each run
            seconds: Seconds between runs
            job_id: Unique job identifier
            name: Human readable job name
            run_immediately: Also run once as soon as the scheduler starts
        """
        if seconds <= 0:
            raise ValueError(f"Job interval must be positive, got {seconds}")

        self._jobs[job_id] = _ScheduledJob(
            callback=callback,
            seconds=seconds,
            name=name or job_id,
            run_immediately=run_immediately,
        )
        if self._is_running:
            self._schedule(job_id, self._jobs[job_id])

    def remove_job(self, job_id: str) -> None:
        """Unregister a job and unschedule it if running."""
        self._jobs.pop(job_id, None)
        if self._is_running and self.scheduler.get_job(job_id):
            self.scheduler.remove_job(job_id)

    def start(self) -> None:
        """
        Start the scheduler.

        Adds every registered job; jobs flagged run_immediately also get a
        one-off run on startup.
        """
        if not self._jobs:
            raise ValueError("No jobs registered. Call add_interval_job first.")

        if self._is_running:
            logger.warning("Scheduler is already running")
            return

        self.scheduler = AsyncIOScheduler()
        for job_id, job in self._jobs.items():
            self._schedule(job_id, job)

        self.scheduler.start()
        self._is_running = True

        logger.info(f"Scheduler started with {len(self._jobs)} job(s)")

    def stop(self) -> None:
        """Stop the scheduler without waiting for running jobs."""
        if self._is_running:
            self.scheduler.shutdown(wait=False)
            self._is_running = False
            logger.info("Scheduler stopped")

    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._is_running

    def get_next_run_time(self, job_id: str) -> Optional[datetime]:
        """Get the next scheduled run time of a job."""
        if not self._is_running:
            return None
        job = self.scheduler.get_job(job_id)
        if job:
            return job.next_run_time
        return None

    def _schedule(self, job_id: str, job: _ScheduledJob) -> None:
        # Recurring job; a slow run is never overlapped by the next one
        self.scheduler.add_job(
            job.callback,
            IntervalTrigger(seconds=job.seconds),
            id=job_id,
            name=job.name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        if job.run_immediately:
            self.scheduler.add_job(
                job.callback,
                DateTrigger(run_date=datetime.now()),
                id=f"{job_id}_immediate",
                name=f"Initial {job.name}",
                replace_existing=True,
            )
