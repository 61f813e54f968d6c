"""No-show follow-up sequencer.

Drives the re-engagement ladder for appointments marked ``no_show``.
New and returning patients climb different ladders; the day count is the
number of clinic-local calendar days since the missed slot.

Each run fires at most one rung per appointment: the highest rung whose
day threshold is met and whose step is above the stored step. Rungs that
were missed (e.g. the job did not run for a week) are skipped rather than
sent late.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from clinic_followup.config import ClinicSettings
from clinic_followup.core.clock import clinic_today
from clinic_followup.core.exceptions import ChannelError, ValidationError
from clinic_followup.core.logging import get_logger
from clinic_followup.db.models import AppointmentModel
from clinic_followup.workflows import messages
from clinic_followup.workflows.base import Workflow
from clinic_followup.workflows.results import BatchResult, ItemResult

log = get_logger(__name__)

MessageBuilder = Callable[[AppointmentModel, ClinicSettings], str]


@dataclass(frozen=True)
class FollowupRung:
    """One step of a follow-up ladder."""

    step: int
    min_days: int
    action: str
    message: MessageBuilder | None = None
    place_call: bool = False
    completes: bool = False


NEW_PATIENT_LADDER: tuple[FollowupRung, ...] = (
    FollowupRung(1, 1, "nudge", messages.followup_nudge),
    FollowupRung(2, 3, "social_proof", messages.followup_social_proof),
    FollowupRung(3, 7, "reserve_spot", messages.followup_reserve_spot, place_call=True),
    FollowupRung(4, 14, "completed", completes=True),
)

RETURNING_PATIENT_LADDER: tuple[FollowupRung, ...] = (
    FollowupRung(1, 1, "reschedule_nudge", messages.followup_nudge),
    FollowupRung(2, 3, "gentle_reminder", messages.followup_gentle_reminder, completes=True),
)


def ladder_for(appointment: AppointmentModel) -> tuple[FollowupRung, ...]:
    return NEW_PATIENT_LADDER if appointment.is_new_patient else RETURNING_PATIENT_LADDER


def due_rung(
    ladder: tuple[FollowupRung, ...],
    days_since: int,
    current_step: int,
) -> FollowupRung | None:
    """Highest rung whose day threshold is met and step is not yet done."""
    due = None
    for rung in ladder:
        if days_since >= rung.min_days and rung.step > current_step:
            due = rung
    return due


class FollowupSequencer(Workflow):
    """Advances active no-show follow-up ladders."""

    async def run(self, now: datetime | None = None) -> BatchResult:
        """Fire the due rung for every active follow-up.

        A failed message leaves the step unchanged so the rung is retried
        on the next run. A failed escalation call is logged and the step
        still advances, since the message part of the rung went out.
        """
        now = self._now(now)
        self.channels.require_text()

        today = clinic_today(now, self.clinic.timezone)
        batch = BatchResult(job="followups")

        plan: list[tuple[AppointmentModel, FollowupRung]] = []
        for appointment in await self.appointments.find_active_followups():
            days_since = (today - appointment.appointment_date).days
            rung = due_rung(ladder_for(appointment), days_since, appointment.followup_step)
            if rung is not None:
                plan.append((appointment, rung))

        if any(rung.place_call for _, rung in plan):
            self.channels.require_voice()

        log.info("Running follow-ups", date=today.isoformat(), due=len(plan))

        for appointment, rung in plan:
            batch.add(await self._fire(appointment, rung))
            await self.session.commit()

        log.info("Follow-ups complete", processed=batch.processed, failed=batch.failed)
        return batch

    async def _fire(self, appointment: AppointmentModel, rung: FollowupRung) -> ItemResult:
        item = ItemResult(id=str(appointment.id), success=True, action=rung.action)
        item.details["step"] = rung.step

        if rung.message is not None:
            try:
                await self.notify(
                    appointment.phone,
                    rung.message(appointment, self.clinic),
                    appointment_id=appointment.id,
                )
            except ChannelError as e:
                return item.fail(e)

        if rung.place_call:
            try:
                handle, _ = await self.call(
                    appointment.phone,
                    messages.followup_call_opening(appointment, self.clinic),
                    messages.followup_call_context(appointment),
                    appointment_id=appointment.id,
                    description=f"Follow-up call (Day {rung.min_days}) for no-show",
                )
                item.details["call_id"] = handle.call_id
            except ChannelError as e:
                item.details["call_error"] = e.message

        advanced = await self.appointments.advance_followup(
            appointment.id, rung.step, complete=rung.completes
        )
        if not advanced:
            # Stopped by a reply or advanced by an overlapping run
            item.details["advanced"] = False

        log.info(
            "Follow-up step fired",
            appointment_id=str(appointment.id),
            step=rung.step,
            action=rung.action,
            advanced=advanced,
        )
        return item

    async def stop(
        self,
        phone: str | None = None,
        appointment_id: UUID | str | None = None,
    ) -> int:
        """Stop active follow-ups for a patient.

        Args:
            phone: Patient phone in any format
            appointment_id: Appointment whose phone identifies the patient

        Returns:
            Number of follow-up ladders stopped

        Raises:
            ValidationError: Neither phone nor appointment_id given
            RecordNotFoundError: Unknown appointment
        """
        if not phone and not appointment_id:
            raise ValidationError("phone or appointment_id is required")

        if not phone:
            appointment = await self.appointments.get_or_raise(appointment_id)
            phone = appointment.phone

        stopped = await self.appointments.stop_followups_for_phone(self.variants(phone))
        await self.session.commit()

        log.info("Follow-ups stopped", stopped=stopped)
        return stopped
