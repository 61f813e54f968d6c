"""Channel adapter shared by every workflow.

All outbound traffic goes through ``ChannelAdapter``: it normalizes the
recipient, checks the channel is configured, and honours the global
message-suppression mode. With suppression on, nothing reaches a
provider but callers still get a result to log, so the orchestration
logic runs unchanged.
"""

from __future__ import annotations

from uuid import uuid4

from clinic_followup.core.clock import utc_now
from clinic_followup.core.exceptions import ConfigurationError, InvalidRecipient
from clinic_followup.core.logging import get_logger
from clinic_followup.core.phone import DEFAULT_COUNTRY_CODE, is_valid_phone, normalize_phone
from clinic_followup.integrations.channels.base import (
    CallHandle,
    DeliveryResult,
    TemplateParameter,
    TextGateway,
    VoiceGateway,
)

log = get_logger(__name__)

SUPPRESSED = "suppressed"


class ChannelAdapter:
    """Uniform text and voice sends over the configured gateways."""

    def __init__(
        self,
        text_gateway: TextGateway | None,
        voice_gateway: VoiceGateway | None,
        *,
        suppress_outbound: bool = False,
        country_code: str = DEFAULT_COUNTRY_CODE,
    ):
        """Initialize the adapter.

        Args:
            text_gateway: WhatsApp gateway, or None if not configured
            voice_gateway: Voice gateway, or None if not configured
            suppress_outbound: Simulate every send instead of performing it
            country_code: Prefix for bare local-format numbers
        """
        self.text_gateway = text_gateway
        self.voice_gateway = voice_gateway
        self.suppress_outbound = suppress_outbound
        self.country_code = country_code

    # ========================================================================
    # Configuration Checks
    # ========================================================================

    def require_text(self) -> None:
        """Raise unless text sends can succeed (or are suppressed).

        Raises:
            ConfigurationError: WhatsApp credentials are missing
        """
        if not self.suppress_outbound and self.text_gateway is None:
            raise ConfigurationError(
                "WhatsApp channel is not configured "
                "(set CLINIC_MESSAGING__WATI__API_URL and CLINIC_MESSAGING__WATI__API_KEY)",
                details={"channel": "whatsapp"},
            )

    def require_voice(self) -> None:
        """Raise unless calls can be placed (or are suppressed).

        Raises:
            ConfigurationError: Voice credentials are missing
        """
        if not self.suppress_outbound and self.voice_gateway is None:
            raise ConfigurationError(
                "Voice channel is not configured "
                "(set CLINIC_VOICE__VAPI__API_KEY, PHONE_NUMBER_ID and ASSISTANT_ID)",
                details={"channel": "voice_call"},
            )

    def recipient(self, phone: str) -> str:
        """Normalize and validate a recipient number.

        Raises:
            InvalidRecipient: The number cannot be an E.164 number
        """
        normalized = normalize_phone(phone or "", self.country_code)
        if not is_valid_phone(normalized):
            raise InvalidRecipient(
                f"Invalid recipient phone number: {phone!r}",
                details={"phone": phone},
            )
        return normalized

    # ========================================================================
    # Sends
    # ========================================================================

    def _suppressed_delivery(self, to: str, **fields: object) -> DeliveryResult:
        log.info("Outbound message suppressed", to=to, **fields)
        return DeliveryResult(
            status=SUPPRESSED,
            provider=SUPPRESSED,
            sent_at=utc_now(),
            raw_response={"suppressed": True, **fields},
        )

    async def send_text(self, phone: str, body: str) -> DeliveryResult:
        """Send a free-form WhatsApp message."""
        to = self.recipient(phone)
        if self.suppress_outbound:
            return self._suppressed_delivery(to)

        self.require_text()
        return await self.text_gateway.send_text(to, body)

    async def send_templated_text(
        self,
        phone: str,
        template_id: str,
        params: list[TemplateParameter],
        broadcast_key: str,
    ) -> DeliveryResult:
        """Send an approved template message.

        Args:
            phone: Recipient in any format
            template_id: Provider template name
            params: Ordered template parameters
            broadcast_key: Unique per logical send
        """
        to = self.recipient(phone)
        if self.suppress_outbound:
            return self._suppressed_delivery(
                to, template=template_id, broadcast_key=broadcast_key
            )

        self.require_text()
        return await self.text_gateway.send_template(to, template_id, params, broadcast_key)

    async def place_voice_call(
        self,
        phone: str,
        opening_line: str,
        context_brief: str,
    ) -> CallHandle:
        """Start an outbound AI voice call."""
        to = self.recipient(phone)
        if self.suppress_outbound:
            call_id = f"{SUPPRESSED}-{uuid4()}"
            log.info("Outbound call suppressed", to=to, call_id=call_id)
            return CallHandle(
                call_id=call_id,
                status=SUPPRESSED,
                provider=SUPPRESSED,
                raw_response={"suppressed": True, "id": call_id},
            )

        self.require_voice()
        return await self.voice_gateway.place_call(to, opening_line, context_brief)

    async def close(self) -> None:
        for gateway in (self.text_gateway, self.voice_gateway):
            if gateway is not None:
                await gateway.close()
