"""Shared plumbing for the orchestration workflows.

Every workflow is a short-lived object built per invocation around one
database session. It re-reads all state it needs; nothing survives
between runs.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from clinic_followup.config import ClinicSettings, Settings
from clinic_followup.core.clock import utc_now
from clinic_followup.core.exceptions import ChannelError
from clinic_followup.core.logging import get_logger
from clinic_followup.core.phone import phone_variants
from clinic_followup.db.models import (
    CallStatus,
    Channel,
    CommunicationLogModel,
    DeliveryStatus,
    Direction,
)
from clinic_followup.db.repositories import (
    AppointmentRepository,
    CommunicationLogRepository,
    PendingRequestRepository,
)
from clinic_followup.integrations.channels import (
    CallHandle,
    ChannelAdapter,
    TemplateParameter,
)

log = get_logger(__name__)


class Workflow:
    """Base class wiring repositories and the channel adapter."""

    def __init__(
        self,
        session: AsyncSession,
        channels: ChannelAdapter,
        settings: Settings,
    ):
        self.session = session
        self.channels = channels
        self.settings = settings
        self.appointments = AppointmentRepository(session)
        self.communications = CommunicationLogRepository(session)
        self.pending_requests = PendingRequestRepository(session)

    @property
    def clinic(self) -> ClinicSettings:
        return self.settings.clinic

    @staticmethod
    def _now(now: datetime | None) -> datetime:
        return now or utc_now()

    def variants(self, phone: str | None) -> list[str]:
        return phone_variants(phone or "", self.clinic.country_code)

    # ========================================================================
    # Logged Sends
    # ========================================================================

    async def notify(
        self,
        phone: str,
        body: str,
        *,
        appointment_id: UUID | None = None,
        template_id: str | None = None,
        params: list[TemplateParameter] | None = None,
        broadcast_key: str | None = None,
    ) -> CommunicationLogModel:
        """Send a WhatsApp message and append it to the communication log.

        Uses the template when one is given, else sends ``body`` as text.
        A failed send is logged with its error before the error is re-raised.

        Raises:
            ChannelError: The provider rejected the send
        """
        raw: dict[str, Any] = {}
        if template_id:
            raw.update(template=template_id, broadcast_key=broadcast_key)

        try:
            if template_id:
                result = await self.channels.send_templated_text(
                    phone, template_id, params or [], broadcast_key or ""
                )
            else:
                result = await self.channels.send_text(phone, body)
        except ChannelError as e:
            log.warning(
                "WhatsApp send failed",
                appointment_id=str(appointment_id) if appointment_id else None,
                error_code=e.error_code,
                error=e.message,
            )
            await self.communications.log(
                appointment_id=appointment_id,
                phone=phone,
                channel=Channel.WHATSAPP.value,
                direction=Direction.OUTBOUND.value,
                message_sent=body,
                delivery_status=DeliveryStatus.FAILED.value,
                raw_response={**raw, **e.to_dict()},
            )
            raise

        raw["provider_response"] = result.raw_response
        return await self.communications.log(
            appointment_id=appointment_id,
            phone=phone,
            channel=Channel.WHATSAPP.value,
            direction=Direction.OUTBOUND.value,
            message_sent=body,
            delivery_status=result.status,
            raw_response=raw,
        )

    async def call(
        self,
        phone: str,
        opening_line: str,
        context_brief: str,
        *,
        appointment_id: UUID | None,
        description: str,
    ) -> tuple[CallHandle, CommunicationLogModel]:
        """Place a voice call and log it as ``initiated``.

        The entry is completed in place when the call-outcome webhook
        arrives.

        Raises:
            ChannelError: The provider refused the call
        """
        try:
            handle = await self.channels.place_voice_call(phone, opening_line, context_brief)
        except ChannelError as e:
            log.warning(
                "Voice call failed",
                appointment_id=str(appointment_id) if appointment_id else None,
                error_code=e.error_code,
                error=e.message,
            )
            await self.communications.log(
                appointment_id=appointment_id,
                phone=phone,
                channel=Channel.VOICE_CALL.value,
                direction=Direction.OUTBOUND.value,
                message_sent=description,
                delivery_status=DeliveryStatus.FAILED.value,
                raw_response=e.to_dict(),
            )
            raise

        entry = await self.communications.log(
            appointment_id=appointment_id,
            phone=phone,
            channel=Channel.VOICE_CALL.value,
            direction=Direction.OUTBOUND.value,
            message_sent=description,
            provider_call_id=handle.call_id,
            call_status=CallStatus.INITIATED.value,
            delivery_status=(
                DeliveryStatus.SUPPRESSED.value if handle.suppressed else DeliveryStatus.SENT.value
            ),
            raw_response=handle.raw_response,
        )
        return handle, entry
