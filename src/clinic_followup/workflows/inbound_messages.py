"""Inbound WhatsApp replies.

A patient reply is classified like a call transcript. Only a
high-confidence confirmation is acted on directly; reschedule and cancel
requests go to staff as pending requests, and anything else is flagged
for review on the log entry.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from clinic_followup.config import Settings
from clinic_followup.core.clock import clinic_today
from clinic_followup.core.exceptions import ChannelError, ValidationError
from clinic_followup.core.logging import get_logger
from clinic_followup.db.models import (
    AppointmentModel,
    Channel,
    ConfirmationStatus,
    DeliveryStatus,
    Direction,
    PendingRequestModel,
    RequestStatus,
    RequestType,
)
from clinic_followup.integrations.channels import ChannelAdapter
from clinic_followup.services.intent_classifier import IntentClassifier, IntentResult
from clinic_followup.workflows import messages
from clinic_followup.workflows.base import Workflow
from clinic_followup.workflows.call_outcome import appointment_context

log = get_logger(__name__)

_REQUEST_TYPES = {
    "reschedule": (RequestType.RESCHEDULE, messages.RESCHEDULE_ACK),
    "cancel": (RequestType.CANCELLATION, messages.CANCELLATION_ACK),
}


class InboundMessageHandler(Workflow):
    """Applies patient WhatsApp replies."""

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
        """Process one inbound message webhook.

        Returns:
            ``{success, appointmentId, intent}``

        Raises:
            ValidationError: Sender phone or message text missing
        """
        if payload.get("owner") is True:
            # Echo of a message the clinic itself sent
            return {"success": True, "appointmentId": None, "intent": None, "ignored": True}

        phone = str(payload.get("waId") or payload.get("senderPhone") or payload.get("from") or "")
        text = payload.get("text") or payload.get("message") or payload.get("body") or ""
        if isinstance(text, dict):
            text = text.get("body") or ""
        text = str(text).strip()
        if not phone or not text:
            raise ValidationError("Missing phone or message")

        now = self._now(now)
        self.channels.require_text()

        today = clinic_today(now, self.clinic.timezone)
        variants = self.variants(phone)

        stopped = await self.appointments.stop_followups_for_phone(variants)
        appointment = await self.appointments.find_next_for_phone(variants, today)

        intent = await self.classifier.classify_message(
            text,
            appointment_context=appointment_context(appointment),
            today=today,
        )
        auto_confirm = appointment is not None and intent.intent == "confirm" and intent.confidence == "high"
        actionable = appointment is not None and (auto_confirm or intent.intent in _REQUEST_TYPES)

        await self.communications.log(
            appointment_id=appointment.id if appointment else None,
            phone=phone,
            channel=Channel.WHATSAPP.value,
            direction=Direction.INBOUND.value,
            patient_reply=text,
            delivery_status=DeliveryStatus.RECEIVED.value,
            ai_parsed_intent=intent.intent,
            ai_confidence=intent.confidence,
            needs_human_review=not actionable,
            raw_response={"payload": payload, "classification": intent.to_dict()},
        )

        log.info(
            "Inbound message received",
            appointment_id=str(appointment.id) if appointment else None,
            intent=intent.intent,
            confidence=intent.confidence,
            followups_stopped=stopped,
        )

        if appointment is not None:
            if auto_confirm:
                await self._confirm(appointment, text, now)
            elif intent.intent in _REQUEST_TYPES:
                await self._raise_request(appointment, phone, text, intent)
            else:
                await self.appointments.record_reply(appointment.id, text)

        await self.session.commit()
        return {
            "success": True,
            "appointmentId": str(appointment.id) if appointment else None,
            "intent": intent.intent,
        }

    async def _confirm(self, appointment: AppointmentModel, text: str, now: datetime) -> None:
        already_called = appointment.confirmation_status in (
            ConfirmationStatus.CONFIRMED_CALL.value,
            ConfirmationStatus.DOUBLE_CONFIRMED.value,
        )
        await self.appointments.set_confirmation(
            appointment.id,
            ConfirmationStatus.DOUBLE_CONFIRMED if already_called else ConfirmationStatus.CONFIRMED_WHATSAPP,
            confirmed_at=now,
            last_reply=text,
        )
        await self._reply(appointment, messages.whatsapp_confirmation(appointment, self.clinic))

    async def _raise_request(
        self,
        appointment: AppointmentModel,
        phone: str,
        text: str,
        intent: IntentResult,
    ) -> None:
        request_type, ack = _REQUEST_TYPES[intent.intent]
        await self.pending_requests.create(
            PendingRequestModel(
                appointment_id=appointment.id,
                patient_name=appointment.patient_name,
                phone=phone,
                request_type=request_type.value,
                original_message=text,
                ai_parsed_details=intent.to_dict(),
                ai_confidence=intent.confidence,
                ai_suggested_reply=intent.suggested_reply,
                status=RequestStatus.PENDING.value,
            )
        )
        await self.appointments.record_reply(appointment.id, text)
        await self._reply(appointment, ack)

    async def _reply(self, appointment: AppointmentModel, body: str) -> None:
        try:
            await self.notify(appointment.phone, body, appointment_id=appointment.id)
        except ChannelError as e:
            log.warning(
                "Reply to patient not delivered",
                appointment_id=str(appointment.id),
                error_code=e.error_code,
            )
