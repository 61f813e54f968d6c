"""No-show detector.

Marks today's appointments that are still ``upcoming`` well after their
slot as ``no_show``, starts the follow-up ladder and sends the first
outreach message. The ``upcoming -> no_show`` transition is a
conditional update, so an appointment can only be claimed once.
"""

from __future__ import annotations

from datetime import datetime

from clinic_followup.core.clock import clinic_today, hours_until
from clinic_followup.core.exceptions import ChannelError
from clinic_followup.core.logging import get_logger
from clinic_followup.workflows import messages
from clinic_followup.workflows.base import Workflow
from clinic_followup.workflows.results import BatchResult, ItemResult

log = get_logger(__name__)


class NoShowDetector(Workflow):
    """Detects missed appointments and starts follow-up."""

    async def detect(self, now: datetime | None = None) -> BatchResult:
        """Mark overdue ``upcoming`` appointments as no-shows.

        Args:
            now: Current time (defaults to the wall clock)

        Returns:
            One result per appointment transitioned
        """
        now = self._now(now)
        self.channels.require_text()

        tz = self.clinic.timezone
        grace = self.settings.noshow.grace_period_hours
        today = clinic_today(now, tz)
        batch = BatchResult(job="no-shows")
        templates = self.settings.messaging.wati.templates

        for appointment in await self.appointments.find_no_show_candidates(today):
            overdue_by = -hours_until(
                appointment.appointment_date, appointment.appointment_time, now, tz
            )
            if overdue_by <= grace:
                continue

            if not await self.appointments.mark_no_show(appointment.id):
                continue
            await self.session.commit()

            log.info(
                "Appointment marked no-show",
                appointment_id=str(appointment.id),
                overdue_hours=round(overdue_by, 2),
            )

            item = batch.add(ItemResult(id=str(appointment.id), success=True, action="marked_no_show"))

            if appointment.reminders_paused:
                item.details["outreach"] = "paused"
                continue

            try:
                await self.notify(
                    appointment.phone,
                    messages.no_show_outreach(appointment, self.clinic),
                    appointment_id=appointment.id,
                    template_id=templates.no_show or None,
                    params=messages.reminder_params(appointment),
                    broadcast_key=f"noshow_{appointment.id}",
                )
            except ChannelError as e:
                item.fail(e)
            await self.session.commit()

        log.info("No-show detection complete", processed=batch.processed, failed=batch.failed)
        return batch
