"""Vapi outbound voice agent gateway.

Vapi runs the conversational AI agent on the call itself. We only place
the call with an opening line and a context brief; the transcript and
outcome come back asynchronously through the call-outcome webhook.

API Documentation: https://docs.vapi.ai/api-reference/calls/create
"""
from __future__ import annotations

import httpx

from clinic_followup.core.exceptions import (
    ChannelUnavailable,
    InvalidRecipient,
    RateLimited,
)
from clinic_followup.core.logging import get_logger
from clinic_followup.integrations.channels.base import CallHandle, VoiceGateway

log = get_logger(__name__)


class VapiVoiceGateway(VoiceGateway):
    """Vapi implementation of the voice channel."""

    name = "vapi"

    def __init__(
        self,
        api_key: str,
        phone_number_id: str,
        assistant_id: str,
        api_url: str = "https://api.vapi.ai",
        timeout: float = 30.0,
    ):
        """Initialize Vapi gateway.

        Args:
            api_key: Vapi private API key
            phone_number_id: Vapi phone number to call from
            assistant_id: Assistant that conducts the conversation
            api_url: API base URL
            timeout: HTTP request timeout
        """
        self.phone_number_id = phone_number_id
        self.assistant_id = assistant_id
        self._client = httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
        )

    async def place_call(
        self,
        phone: str,
        opening_line: str,
        context_brief: str,
    ) -> CallHandle:
        payload = {
            "assistantId": self.assistant_id,
            "phoneNumberId": self.phone_number_id,
            "customer": {"number": phone},
            "assistantOverrides": {
                "firstMessage": opening_line,
                # Exposed to the assistant prompt as {{context}}
                "variableValues": {"context": context_brief},
            },
        }

        try:
            response = await self._client.post("/call/phone", json=payload)
        except httpx.TimeoutException as e:
            log.error("Vapi request timeout", to=phone)
            raise ChannelUnavailable("Vapi request timeout", cause=e) from e
        except httpx.HTTPError as e:
            log.error("Vapi HTTP error", error=str(e), to=phone)
            raise ChannelUnavailable(f"Vapi HTTP error: {e}", cause=e) from e

        try:
            data = response.json() if response.content else {}
        except (ValueError, TypeError):
            data = {}

        details = {"status_code": response.status_code, "to": phone, "response": data}

        if response.status_code == 429:
            log.warning("Vapi rate limited", to=phone)
            raise RateLimited("Vapi rate limit exceeded", details=details)
        if response.status_code in (400, 422):
            log.error("Vapi rejected call", **details)
            message = data.get("message") if isinstance(data, dict) else None
            if isinstance(message, list):
                message = "; ".join(str(m) for m in message)
            raise InvalidRecipient(message or f"HTTP {response.status_code}", details=details)
        if response.status_code >= 300 or not isinstance(data, dict) or not data.get("id"):
            log.error("Vapi call failed", **details)
            raise ChannelUnavailable(f"Vapi HTTP {response.status_code}", details=details)

        log.info("Call placed via Vapi", call_id=data["id"], to=phone)

        return CallHandle(
            call_id=data["id"],
            status=data.get("status", "queued"),
            provider=self.name,
            raw_response=data,
        )

    async def close(self) -> None:
        await self._client.aclose()
