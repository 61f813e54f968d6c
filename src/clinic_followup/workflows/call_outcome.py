"""Call-outcome reconciler.

Handles the voice provider's end-of-call webhook. The payload arrives
asynchronously and possibly more than once; it is matched to the
originating appointment by phone, classified, and turned into a
confirmation transition or a pending request for staff.

Replays are detected by provider call id: a call already reconciled has
its log entry refreshed but no transition is applied a second time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from clinic_followup.config import Settings
from clinic_followup.core.clock import clinic_today
from clinic_followup.core.exceptions import ChannelError
from clinic_followup.core.logging import get_logger
from clinic_followup.db.models import (
    AppointmentModel,
    CallStatus,
    Channel,
    CommunicationLogModel,
    ConfirmationStatus,
    Direction,
    PendingRequestModel,
    RequestStatus,
    RequestType,
)
from clinic_followup.integrations.channels import ChannelAdapter
from clinic_followup.services.intent_classifier import IntentClassifier, IntentResult
from clinic_followup.workflows import messages
from clinic_followup.workflows.base import Workflow

log = get_logger(__name__)

NO_ANSWER_REASONS = frozenset(
    {"no-answer", "customer-did-not-answer", "customer-busy", "twilio-failed-to-connect"}
)
VOICEMAIL_REASONS = frozenset({"voicemail"})


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _first(*values: Any) -> Any:
    for value in values:
        if value not in (None, ""):
            return value
    return None


@dataclass
class CallReport:
    """Fields extracted from an end-of-call webhook envelope."""

    call_id: str = ""
    status: str = "unknown"
    ended_reason: str = ""
    duration_seconds: int | None = None
    transcript: str = ""
    summary: str = ""
    customer_number: str = ""
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, body: dict[str, Any]) -> CallReport:
        """Extract call fields, tolerating the provider's envelope variants."""
        message = _dict(body.get("message")) or body
        call = _dict(message.get("call")) or _dict(body.get("call")) or message
        artifact = _dict(message.get("artifact"))
        analysis = _dict(message.get("analysis"))
        customer = _dict(call.get("customer")) or _dict(body.get("customer"))

        duration = _first(
            message.get("durationSeconds"),
            call.get("duration"),
            message.get("duration"),
            body.get("duration"),
        )
        try:
            duration_seconds = int(float(duration)) if duration is not None else None
        except (TypeError, ValueError):
            duration_seconds = None

        transcript = _first(
            message.get("transcript"),
            artifact.get("transcript"),
            body.get("transcript"),
            call.get("transcript"),
        )
        summary = _first(
            message.get("summary"),
            analysis.get("summary"),
            body.get("summary"),
            call.get("summary"),
        )

        return cls(
            call_id=str(_first(call.get("id"), body.get("id")) or ""),
            status=str(_first(call.get("status"), message.get("status"), body.get("status")) or "unknown"),
            ended_reason=str(_first(message.get("endedReason"), call.get("endedReason"), body.get("endedReason")) or ""),
            duration_seconds=duration_seconds,
            transcript=transcript if isinstance(transcript, str) else "",
            summary=summary if isinstance(summary, str) else "",
            customer_number=str(_first(customer.get("number"), body.get("phone")) or ""),
            raw=body,
        )

    @property
    def call_status(self) -> str:
        """answered, no_answer or voicemail."""
        if self.ended_reason in VOICEMAIL_REASONS or self.status == "voicemail":
            return CallStatus.VOICEMAIL.value
        if self.ended_reason in NO_ANSWER_REASONS or self.status == "no-answer":
            return CallStatus.NO_ANSWER.value
        return CallStatus.ANSWERED.value

    @property
    def answered(self) -> bool:
        return self.status == "ended" and self.call_status == CallStatus.ANSWERED.value


def appointment_context(appointment: AppointmentModel | None) -> str:
    if appointment is None:
        return "No upcoming appointment found"
    return (
        f"Patient: {appointment.patient_name}, "
        f"Date: {appointment.appointment_date.isoformat()}, "
        f"Time: {messages.slot_time(appointment)}, "
        f"Service: {messages.service_name(appointment)}, "
        f"Confirmation: {appointment.confirmation_status}"
    )


class CallOutcomeReconciler(Workflow):
    """Applies voice call outcomes to appointments."""

    def __init__(
        self,
        session: AsyncSession,
        channels: ChannelAdapter,
        settings: Settings,
        classifier: IntentClassifier,
    ):
        super().__init__(session, channels, settings)
        self.classifier = classifier

    async def handle(
        self,
        payload: dict[str, Any],
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Reconcile one end-of-call report.

        Args:
            payload: Raw webhook body
            now: Current time (defaults to the wall clock)

        Returns:
            ``{success, appointmentId, intent, callStatus}``
        """
        now = self._now(now)
        self.channels.require_text()

        report = CallReport.from_payload(payload)
        today = clinic_today(now, self.clinic.timezone)
        variants = self.variants(report.customer_number)

        if report.answered and variants:
            stopped = await self.appointments.stop_followups_for_phone(variants)
            if stopped:
                log.info("Follow-ups stopped by answered call", stopped=stopped)

        appointment = await self.appointments.find_next_for_phone(variants, today)

        if report.answered and report.transcript.strip():
            intent = await self.classifier.classify_transcript(
                report.transcript,
                appointment_context=appointment_context(appointment),
                today=today,
            )
        else:
            intent = IntentResult.unclear(report.summary)

        entry, replay = await self._record(report, appointment, intent)

        log.info(
            "Call outcome received",
            call_id=report.call_id,
            call_status=report.call_status,
            appointment_id=str(appointment.id) if appointment else None,
            intent=intent.intent,
            confidence=intent.confidence,
            replay=replay,
        )

        if appointment is not None and not replay:
            await self._apply(appointment, report, intent, now)

        await self.session.commit()

        return {
            "success": True,
            "appointmentId": str(appointment.id) if appointment else None,
            "intent": intent.intent,
            "callStatus": report.call_status,
        }

    async def _record(
        self,
        report: CallReport,
        appointment: AppointmentModel | None,
        intent: IntentResult,
    ) -> tuple[CommunicationLogModel, bool]:
        """Write the outcome into the log, in place when the call was logged.

        Returns:
            The entry and whether this call id was already reconciled
        """
        fields = {
            "call_status": report.call_status,
            "call_duration_seconds": report.duration_seconds,
            "call_summary": report.summary or intent.summary or None,
            "patient_reply": report.transcript or None,
            "ai_parsed_intent": intent.intent,
            "ai_confidence": intent.confidence,
            "needs_human_review": intent.needs_human_review,
            "raw_response": report.raw,
        }

        entry = None
        if report.call_id:
            entry = await self.communications.find_by_call_id(report.call_id)
        if entry is None and appointment is not None:
            entry = await self.communications.find_latest_initiated_call(appointment.id)
            if entry is not None and report.call_id:
                fields["provider_call_id"] = report.call_id

        if entry is not None:
            # The guarded write decides which delivery applies the outcome
            if await self.communications.claim_outcome(entry.id, **fields):
                return entry, False
            return await self.communications.attach_outcome(entry, **fields), True

        entry = await self.communications.log(
            appointment_id=appointment.id if appointment else None,
            phone=report.customer_number or None,
            channel=Channel.VOICE_CALL.value,
            direction=Direction.OUTBOUND.value,
            message_sent="Voice call outcome",
            provider_call_id=report.call_id or None,
            **fields,
        )
        return entry, False

    async def _apply(
        self,
        appointment: AppointmentModel,
        report: CallReport,
        intent: IntentResult,
        now: datetime,
    ) -> None:
        if not report.answered:
            await self.appointments.set_confirmation(
                appointment.id, ConfirmationStatus.CALLED_NO_ANSWER
            )
            return

        if intent.is_confident_confirm:
            already = appointment.confirmation_status in (
                ConfirmationStatus.CONFIRMED_WHATSAPP.value,
                ConfirmationStatus.DOUBLE_CONFIRMED.value,
            )
            await self.appointments.set_confirmation(
                appointment.id,
                ConfirmationStatus.DOUBLE_CONFIRMED if already else ConfirmationStatus.CONFIRMED_CALL,
                confirmed_at=now,
            )
            try:
                await self.notify(
                    appointment.phone,
                    messages.call_confirmation_echo(appointment),
                    appointment_id=appointment.id,
                )
            except ChannelError as e:
                # Confirmation stands; the failed echo is in the log
                log.warning(
                    "Confirmation echo not delivered",
                    appointment_id=str(appointment.id),
                    error_code=e.error_code,
                )
            return

        if intent.intent == "reschedule":
            await self._raise_request(appointment, report, intent, RequestType.RESCHEDULE)
            await self.appointments.set_confirmation(
                appointment.id, ConfirmationStatus.CALLED_RESCHEDULE
            )
            return

        if intent.intent == "cancel":
            await self._raise_request(appointment, report, intent, RequestType.CANCELLATION)
            await self.appointments.set_confirmation(appointment.id, ConfirmationStatus.CANCELLED)
            return

        await self.appointments.set_confirmation(
            appointment.id, ConfirmationStatus.CALLED_NO_ANSWER
        )

    async def _raise_request(
        self,
        appointment: AppointmentModel,
        report: CallReport,
        intent: IntentResult,
        request_type: RequestType,
    ) -> PendingRequestModel:
        request = await self.pending_requests.create(
            PendingRequestModel(
                appointment_id=appointment.id,
                patient_name=appointment.patient_name,
                phone=report.customer_number or appointment.phone,
                request_type=request_type.value,
                original_message=f"[Phone call] {report.transcript}",
                ai_parsed_details=intent.to_dict(),
                ai_confidence=intent.confidence,
                ai_suggested_reply=intent.suggested_reply,
                status=RequestStatus.PENDING.value,
            )
        )
        log.info(
            "Pending request raised from call",
            request_id=str(request.id),
            appointment_id=str(appointment.id),
            request_type=request_type.value,
        )
        return request
