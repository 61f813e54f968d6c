"""Job Scheduler Service.

Optional in-process scheduler that runs the named batch jobs on fixed
intervals. Disabled by default: production deployments usually drive
the ``/jobs/{name}`` endpoints from an external cron instead.

Each run opens its own database session; jobs share no state in memory.
"""

from __future__ import annotations

import asyncio
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from clinic_followup.config import SchedulerSettings, Settings
from clinic_followup.core.clock import utc_now
from clinic_followup.core.logging import get_logger
from clinic_followup.db.session import get_db_context
from clinic_followup.integrations.channels import ChannelAdapter
from clinic_followup.workflows.jobs import JOBS, run_job

log = get_logger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class SchedulerState(str, Enum):
    """Scheduler states."""

    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class JobStats:
    """Run statistics for one job."""

    interval_seconds: int
    runs: int = 0
    errors: int = 0
    last_run_at: datetime | None = None
    last_processed: int = 0
    last_error: str | None = None
    next_due_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "interval_seconds": self.interval_seconds,
            "runs": self.runs,
            "errors": self.errors,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_processed": self.last_processed,
            "last_error": self.last_error,
        }


def job_intervals(settings: SchedulerSettings) -> dict[str, int]:
    """Map job names to their configured interval in seconds."""
    return {
        "reminders-24hr": settings.reminders_24hr_interval,
        "reminders-2hr": settings.reminders_2hr_interval,
        "no-shows": settings.no_shows_interval,
        "followups": settings.followups_interval,
        "confirmation-calls": settings.confirmation_calls_interval,
    }


class JobScheduler:
    """Background loop running each registered job on its own interval.

    Usage:
        scheduler = JobScheduler(settings, channels)

        # In application lifespan
        await scheduler.start()

        # When shutting down
        await scheduler.stop()
    """

    def __init__(
        self,
        settings: Settings,
        channels: ChannelAdapter,
        session_factory: SessionFactory = get_db_context,
        tick_seconds: float = 5.0,
    ) -> None:
        self.settings = settings
        self.channels = channels
        self._session_factory = session_factory
        self._tick_seconds = tick_seconds

        self._state = SchedulerState.STOPPED
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()
        self._stats = {
            name: JobStats(interval_seconds=interval)
            for name, interval in job_intervals(settings.scheduler).items()
            if name in JOBS and interval > 0
        }

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == SchedulerState.RUNNING

    async def start(self) -> None:
        """Start the scheduler background task."""
        if self._state != SchedulerState.STOPPED:
            log.warning("Scheduler already started", state=self._state.value)
            return

        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        self._state = SchedulerState.RUNNING
        log.info("Job scheduler started", jobs=sorted(self._stats))

    async def stop(self, timeout: float = 30.0) -> None:
        """Stop the scheduler, letting a running job finish first.

        Args:
            timeout: Maximum time to wait for the current job
        """
        if self._state == SchedulerState.STOPPED:
            return

        self._state = SchedulerState.STOPPING
        self._stop_event.set()

        if self._task:
            try:
                await asyncio.wait_for(self._task, timeout=timeout)
            except asyncio.TimeoutError:
                log.warning("Scheduler stop timed out, cancelling task")
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass

        self._state = SchedulerState.STOPPED
        log.info("Job scheduler stopped")

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            for name in self.due_jobs(utc_now()):
                if self._stop_event.is_set():
                    break
                await self.run_once(name)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._tick_seconds)
            except asyncio.TimeoutError:
                pass

    def due_jobs(self, now: datetime) -> list[str]:
        return [
            name
            for name, stats in self._stats.items()
            if stats.next_due_at is None or stats.next_due_at <= now
        ]

    async def run_once(self, name: str) -> None:
        """Run one job now and schedule its next run.

        Errors are recorded and logged; the loop carries on with the
        other jobs.
        """
        stats = self._stats[name]
        started = utc_now()
        stats.last_run_at = started
        stats.next_due_at = started + timedelta(seconds=stats.interval_seconds)
        stats.runs += 1

        try:
            async with self._session_factory() as session:
                batch = await run_job(name, session, self.channels, self.settings)
        except Exception as e:
            stats.errors += 1
            stats.last_error = str(e)
            log.error("Scheduled job failed", job=name, error=str(e))
            return

        stats.last_processed = batch.processed
        stats.last_error = None
        log.info(
            "Scheduled job finished",
            job=name,
            processed=batch.processed,
            failed=batch.failed,
        )

    def get_status(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "jobs": {name: stats.to_dict() for name, stats in self._stats.items()},
        }
