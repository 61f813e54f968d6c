"""Reminder scheduler.

Two independent batch jobs with the same shape:

- 24-hour job: tomorrow's appointments (clinic-local day)
- 2-hour job: today's appointments whose slot is 1.5 to 2.5 hours away

Each appointment gets at most one reminder per window. The order is
send, log, flag: a crash between send and flag can cause one duplicate
on the next run, never a lost reminder. The flag write is a conditional
update so two overlapping runs of the same job cannot both record it.
"""

from __future__ import annotations

from datetime import datetime

from clinic_followup.core.clock import clinic_today, clinic_tomorrow, hours_until
from clinic_followup.core.exceptions import ChannelError
from clinic_followup.core.logging import get_logger
from clinic_followup.db.models import AppointmentModel
from clinic_followup.db.models.enums import CONFIRMED_STATUSES
from clinic_followup.workflows import messages
from clinic_followup.workflows.base import Workflow
from clinic_followup.workflows.results import BatchResult, ItemResult

log = get_logger(__name__)


class ReminderScheduler(Workflow):
    """Sends the 24-hour and 2-hour appointment reminders."""

    async def send_24hr_reminders(self, now: datetime | None = None) -> BatchResult:
        """Remind every patient booked for tomorrow.

        Args:
            now: Current time (defaults to the wall clock)

        Returns:
            One result per appointment attempted
        """
        now = self._now(now)
        self.channels.require_text()

        tomorrow = clinic_tomorrow(now, self.clinic.timezone)
        batch = BatchResult(job="reminders-24hr")
        due = await self.appointments.find_due_for_reminder("24hr", tomorrow)

        log.info("Running 24h reminders", date=tomorrow.isoformat(), candidates=len(due))

        for appointment in due:
            batch.add(await self._remind(appointment, "24hr", now))
            await self.session.commit()

        log.info(
            "24h reminders complete",
            processed=batch.processed,
            failed=batch.failed,
        )
        return batch

    async def send_2hr_reminders(self, now: datetime | None = None) -> BatchResult:
        """Remind patients whose slot today is inside the 2-hour window.

        Appointments outside the window are left for a later run (too
        early) or skipped for good (window passed); neither appears in
        the results.
        """
        now = self._now(now)
        self.channels.require_text()

        tz = self.clinic.timezone
        window = self.settings.reminders
        today = clinic_today(now, tz)
        batch = BatchResult(job="reminders-2hr")
        due = await self.appointments.find_due_for_reminder("2hr", today)

        log.info("Running 2h reminders", date=today.isoformat(), candidates=len(due))

        for appointment in due:
            remaining = hours_until(
                appointment.appointment_date, appointment.appointment_time, now, tz
            )
            if not (
                window.two_hour_window_min_hours <= remaining <= window.two_hour_window_max_hours
            ):
                continue
            if (
                window.skip_confirmed_two_hour
                and appointment.confirmation_status in CONFIRMED_STATUSES
            ):
                continue

            batch.add(await self._remind(appointment, "2hr", now))
            await self.session.commit()

        log.info(
            "2h reminders complete",
            processed=batch.processed,
            failed=batch.failed,
        )
        return batch

    async def _remind(
        self,
        appointment: AppointmentModel,
        window: str,
        now: datetime,
    ) -> ItemResult:
        templates = self.settings.messaging.wati.templates
        if window == "24hr":
            template_id = templates.reminder_24hr
            body = messages.reminder_24hr(appointment, self.clinic)
        else:
            template_id = templates.reminder_2hr
            body = messages.reminder_2hr(appointment, self.clinic)

        action = f"reminder_{window}_sent"
        try:
            await self.notify(
                appointment.phone,
                body,
                appointment_id=appointment.id,
                template_id=template_id or None,
                params=messages.reminder_params(appointment),
                broadcast_key=f"reminder_{window}_{appointment.id}",
            )
        except ChannelError as e:
            return ItemResult(id=str(appointment.id), success=False).fail(e)

        flagged = await self.appointments.mark_reminder_sent(appointment.id, window, now)
        if not flagged:
            log.warning(
                "Reminder flag already set by a concurrent run",
                appointment_id=str(appointment.id),
                window=window,
            )

        log.info("Reminder sent", appointment_id=str(appointment.id), window=window)
        return ItemResult(
            id=str(appointment.id),
            success=True,
            action=action,
            details={} if flagged else {"flag_already_set": True},
        )
