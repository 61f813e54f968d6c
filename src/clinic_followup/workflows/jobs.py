"""Named batch jobs.

The same registry backs the HTTP batch triggers, the ``run-job`` CLI
command and the in-process scheduler.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from clinic_followup.config import Settings
from clinic_followup.core.exceptions import RecordNotFoundError
from clinic_followup.integrations.channels import ChannelAdapter
from clinic_followup.workflows.confirmation_calls import ConfirmationCallDispatcher
from clinic_followup.workflows.followup import FollowupSequencer
from clinic_followup.workflows.noshow import NoShowDetector
from clinic_followup.workflows.reminders import ReminderScheduler
from clinic_followup.workflows.results import BatchResult

JobFn = Callable[[AsyncSession, ChannelAdapter, Settings, datetime | None], Awaitable[BatchResult]]


async def _reminders_24hr(session, channels, settings, now):
    return await ReminderScheduler(session, channels, settings).send_24hr_reminders(now)


async def _reminders_2hr(session, channels, settings, now):
    return await ReminderScheduler(session, channels, settings).send_2hr_reminders(now)


async def _no_shows(session, channels, settings, now):
    return await NoShowDetector(session, channels, settings).detect(now)


async def _followups(session, channels, settings, now):
    return await FollowupSequencer(session, channels, settings).run(now)


async def _confirmation_calls(session, channels, settings, now):
    return await ConfirmationCallDispatcher(session, channels, settings).run(now)


JOBS: dict[str, JobFn] = {
    "reminders-24hr": _reminders_24hr,
    "reminders-2hr": _reminders_2hr,
    "no-shows": _no_shows,
    "followups": _followups,
    "confirmation-calls": _confirmation_calls,
}


async def run_job(
    name: str,
    session: AsyncSession,
    channels: ChannelAdapter,
    settings: Settings,
    now: datetime | None = None,
) -> BatchResult:
    """Run a registered job by name.

    Raises:
        RecordNotFoundError: No job with that name
    """
    job = JOBS.get(name)
    if job is None:
        raise RecordNotFoundError(
            f"Unknown job: {name}",
            details={"available": sorted(JOBS)},
        )
    return await job(session, channels, settings, now)
