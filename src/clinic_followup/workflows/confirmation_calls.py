"""Confirmation calls.

Escalates an unanswered 24h reminder to an AI voice call, and lets staff
place the same call on demand. The call's outcome arrives later through
the call-outcome webhook.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from clinic_followup.core.clock import clinic_today
from clinic_followup.core.exceptions import ChannelError, ValidationError
from clinic_followup.core.logging import get_logger
from clinic_followup.db.models import AppointmentModel, AppointmentStatus
from clinic_followup.workflows import messages
from clinic_followup.workflows.base import Workflow
from clinic_followup.workflows.results import BatchResult, ItemResult

log = get_logger(__name__)


class ConfirmationCallDispatcher(Workflow):
    """Places confirmation calls for unconfirmed appointments."""

    def day_label(self, appointment: AppointmentModel, now: datetime) -> str:
        today = clinic_today(now, self.clinic.timezone)
        days = (appointment.appointment_date - today).days
        if days == 0:
            return "today"
        if days == 1:
            return "tomorrow"
        return f"on {messages.slot_date(appointment)}"

    async def run(self, now: datetime | None = None) -> BatchResult:
        """Call every patient whose 24h reminder went unanswered.

        An appointment is called at most once: any voice entry already in
        its log (including a failed attempt) excludes it.
        """
        now = self._now(now)
        self.channels.require_voice()

        delay = timedelta(hours=self.settings.confirmation_calls.delay_after_reminder_hours)
        batch = BatchResult(job="confirmation-calls")
        candidates = await self.appointments.find_unanswered_reminders(
            now - delay, clinic_today(now, self.clinic.timezone)
        )

        for appointment in candidates:
            if await self.communications.has_voice_call(appointment.id):
                continue

            try:
                handle, _ = await self.call(
                    appointment.phone,
                    messages.confirmation_call_opening(
                        appointment, self.clinic, self.day_label(appointment, now)
                    ),
                    messages.confirmation_call_context(appointment),
                    appointment_id=appointment.id,
                    description=(
                        f"Confirmation call initiated for "
                        f"{appointment.appointment_date.isoformat()} at {messages.slot_time(appointment)}"
                    ),
                )
            except ChannelError as e:
                batch.add(ItemResult(id=str(appointment.id), success=False).fail(e))
            else:
                batch.add(
                    ItemResult(
                        id=str(appointment.id),
                        success=True,
                        action="call_initiated",
                        details={"callId": handle.call_id},
                    )
                )
            await self.session.commit()

        log.info(
            "Confirmation calls complete",
            processed=batch.processed,
            failed=batch.failed,
        )
        return batch

    async def manual_call(
        self,
        appointment_id: UUID | str | None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Place a confirmation call requested by staff.

        Raises:
            ValidationError: No id, or the appointment is cancelled or rescheduled
            RecordNotFoundError: Unknown appointment
            ChannelError: The provider refused the call (attempt is logged)
        """
        if not appointment_id:
            raise ValidationError("appointment_id is required")

        now = self._now(now)
        appointment = await self.appointments.get_or_raise(appointment_id)
        if appointment.status in (
            AppointmentStatus.CANCELLED.value,
            AppointmentStatus.RESCHEDULED.value,
        ):
            raise ValidationError(
                f"Appointment is {appointment.status}",
                details={"appointment_id": str(appointment.id)},
            )

        self.channels.require_voice()
        try:
            handle, _ = await self.call(
                appointment.phone,
                messages.confirmation_call_opening(
                    appointment,
                    self.clinic,
                    self.day_label(appointment, now),
                    after_reminder=False,
                ),
                messages.confirmation_call_context(appointment),
                appointment_id=appointment.id,
                description="Manual confirmation call initiated by staff",
            )
        except ChannelError:
            await self.session.commit()
            raise
        await self.session.commit()

        log.info("Manual confirmation call placed", appointment_id=str(appointment.id))
        return {"success": True, "call_id": handle.call_id}
