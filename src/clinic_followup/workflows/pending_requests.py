"""Pending-request resolver.

Applies a staff decision to a request the engine could not act on by
itself. ``approve`` and ``decline`` close the request exactly once;
``suggest_alternative`` and ``reply`` keep it open for the patient's
answer.
"""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Any
from uuid import UUID

from clinic_followup.core.exceptions import ChannelError, ValidationError
from clinic_followup.core.logging import get_logger
from clinic_followup.db.models import (
    AppointmentModel,
    AppointmentStatus,
    ConfirmationStatus,
    PendingRequestModel,
    RequestStatus,
    RequestType,
)
from clinic_followup.workflows import messages
from clinic_followup.workflows.base import Workflow

log = get_logger(__name__)

ACTIONS = ("approve", "suggest_alternative", "reply", "decline")
DEFAULT_SERVICE = "Consultation"


def parse_date(value: Any, field: str) -> date:
    try:
        return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()
    except ValueError as e:
        raise ValidationError(f"{field} must be YYYY-MM-DD", details={field: value}) from e


def parse_time(value: Any, field: str) -> time:
    text = str(value).strip()
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise ValidationError(f"{field} must be HH:MM", details={field: value})


class PendingRequestResolver(Workflow):
    """Executes staff decisions on pending requests."""

    async def resolve(
        self,
        request_id: UUID | str | None,
        action: str | None,
        staff_name: str | None = None,
        params: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Apply one staff decision.

        Args:
            request_id: Pending request ID
            action: approve, suggest_alternative, reply or decline
            staff_name: Staff member taking the action
            params: Action-specific fields (new_date, new_time, service,
                alt_date, alt_time, message, reason)
            now: Current time (defaults to the wall clock)

        Returns:
            ``{"success": True, ...}``

        Raises:
            ValidationError: Missing or invalid input, or request already handled
            RecordNotFoundError: Unknown request
            ConfigurationError: No text channel; nothing is changed
            ChannelError: The patient message failed; the decision and the
                failed send are already committed
        """
        if not request_id or not action:
            raise ValidationError("request_id and action required")
        if action not in ACTIONS:
            raise ValidationError(f"Unknown action: {action}", details={"allowed": list(ACTIONS)})

        # Every action ends in a patient message
        self.channels.require_text()

        now = self._now(now)
        request = await self.pending_requests.get_or_raise(request_id)
        if request.status == RequestStatus.HANDLED.value:
            raise ValidationError("Request already handled", details={"request_id": str(request.id)})

        staff = staff_name or "staff"
        handler = getattr(self, f"_{action}")
        result, body = await handler(request, staff, now, params or {})
        await self.session.commit()

        log.info(
            "Pending request action applied",
            request_id=str(request.id),
            action=action,
            staff=staff,
        )

        try:
            await self.notify(request.phone, body, appointment_id=request.appointment_id)
        except ChannelError:
            await self.session.commit()
            raise
        await self.session.commit()

        return {"success": True, **result}

    async def _claim(
        self,
        request: PendingRequestModel,
        staff: str,
        now: datetime,
        staff_reply: str,
    ) -> None:
        handled = await self.pending_requests.mark_handled(
            request.id, handled_by=staff, handled_at=now, staff_reply=staff_reply
        )
        if not handled:
            raise ValidationError("Request already handled", details={"request_id": str(request.id)})

    async def _approve(
        self,
        request: PendingRequestModel,
        staff: str,
        now: datetime,
        params: dict[str, Any],
    ) -> tuple[dict[str, Any], str]:
        if request.request_type == RequestType.RESCHEDULE.value:
            parsed = request.ai_parsed_details or {}
            raw_date = params.get("new_date") or parsed.get("new_date")
            raw_time = params.get("new_time") or parsed.get("new_time")
            if not raw_date or not raw_time:
                raise ValidationError("new_date and new_time required for reschedule")
            new_date = parse_date(raw_date, "new_date")
            new_time = parse_time(raw_time, "new_time")

            await self._claim(request, staff, now, f"Approved: {request.request_type}")
            new_appointment = await self._reschedule(request, staff, now, new_date, new_time, params)
            body = messages.reschedule_approved(
                request.patient_name or "there",
                new_date.isoformat(),
                new_time.strftime("%H:%M"),
            )
            return {"new_appointment_id": str(new_appointment.id)}, body

        await self._claim(request, staff, now, f"Approved: {request.request_type}")
        if request.appointment_id:
            await self.appointments.mark_cancelled(request.appointment_id)
        return {}, messages.cancellation_approved(request.patient_name or "there")

    async def _reschedule(
        self,
        request: PendingRequestModel,
        staff: str,
        now: datetime,
        new_date: date,
        new_time: time,
        params: dict[str, Any],
    ) -> AppointmentModel:
        previous = None
        if request.appointment_id:
            previous = await self.appointments.get(request.appointment_id)
            await self.appointments.mark_rescheduled(request.appointment_id)

        service = params.get("service") or (previous.service if previous else None)
        new_appointment = await self.appointments.create(
            AppointmentModel(
                patient_name=request.patient_name or (previous.patient_name if previous else "Unknown"),
                phone=request.phone or (previous.phone if previous else ""),
                appointment_date=new_date,
                appointment_time=new_time,
                service=service or DEFAULT_SERVICE,
                booked_by=staff,
                is_new_patient=previous.is_new_patient if previous else False,
                status=AppointmentStatus.UPCOMING.value,
                confirmation_status=ConfirmationStatus.CONFIRMED_WHATSAPP.value,
                confirmed_at=now,
                rescheduled_from=request.appointment_id,
            )
        )
        log.info(
            "Appointment rescheduled",
            old_appointment_id=str(request.appointment_id) if request.appointment_id else None,
            new_appointment_id=str(new_appointment.id),
            date=new_date.isoformat(),
        )
        return new_appointment

    async def _suggest_alternative(
        self,
        request: PendingRequestModel,
        staff: str,
        now: datetime,
        params: dict[str, Any],
    ) -> tuple[dict[str, Any], str]:
        alt_date, alt_time = params.get("alt_date"), params.get("alt_time")
        if not alt_date or not alt_time:
            raise ValidationError("alt_date and alt_time required")

        await self._keep_open(request, f"Suggested alternative: {alt_date} at {alt_time}")
        return {}, messages.suggest_alternative(request.patient_name or "there", alt_date, alt_time)

    async def _reply(
        self,
        request: PendingRequestModel,
        staff: str,
        now: datetime,
        params: dict[str, Any],
    ) -> tuple[dict[str, Any], str]:
        message = params.get("message")
        if not message:
            raise ValidationError("message required")

        await self._keep_open(request, message)
        return {}, message

    async def _decline(
        self,
        request: PendingRequestModel,
        staff: str,
        now: datetime,
        params: dict[str, Any],
    ) -> tuple[dict[str, Any], str]:
        reason = params.get("reason") or messages.DEFAULT_DECLINE_REASON
        await self._claim(request, staff, now, f"Declined: {reason}")
        return {}, messages.decline(request.patient_name or "there", reason, self.clinic)

    async def _keep_open(self, request: PendingRequestModel, staff_reply: str) -> None:
        if not await self.pending_requests.record_reply(request.id, staff_reply):
            raise ValidationError("Request already handled", details={"request_id": str(request.id)})
