"""WATI WhatsApp Business API gateway.

WATI wraps the WhatsApp Business API. Free-form "session" messages are
only delivered inside the 24h customer-service window; outside it an
approved template must be used.

API Documentation: https://docs.wati.io/reference/introduction
"""
from __future__ import annotations

from typing import Any

import httpx

from clinic_followup.core.clock import utc_now
from clinic_followup.core.exceptions import (
    ChannelUnavailable,
    InvalidRecipient,
    RateLimited,
)
from clinic_followup.core.logging import get_logger
from clinic_followup.integrations.channels.base import (
    DeliveryResult,
    TemplateParameter,
    TextGateway,
)

log = get_logger(__name__)


class WatiTextGateway(TextGateway):
    """WATI implementation of the text channel.

    Attributes:
        api_url: Tenant API base, e.g. ``https://live-server-1234.wati.io/api/v1``
        api_key: Bearer token from the WATI dashboard
    """

    name = "wati"

    def __init__(self, api_url: str, api_key: str, timeout: float = 30.0):
        self.api_url = api_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.api_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
            },
        )

    @staticmethod
    def _wa_id(phone: str) -> str:
        # WATI addresses numbers without the leading "+"
        return phone.lstrip("+")

    async def send_text(self, phone: str, body: str) -> DeliveryResult:
        wa_id = self._wa_id(phone)
        return await self._post(
            f"/sendSessionMessage/{wa_id}",
            params={"messageText": body},
            to=wa_id,
        )

    async def send_template(
        self,
        phone: str,
        template_name: str,
        params: list[TemplateParameter],
        broadcast_name: str,
    ) -> DeliveryResult:
        wa_id = self._wa_id(phone)
        return await self._post(
            "/sendTemplateMessage",
            params={"whatsappNumber": wa_id},
            json={
                "template_name": template_name,
                "broadcast_name": broadcast_name,
                "parameters": [p.to_dict() for p in params],
            },
            to=wa_id,
        )

    async def _post(
        self,
        path: str,
        *,
        params: dict[str, str],
        to: str,
        json: dict[str, Any] | None = None,
    ) -> DeliveryResult:
        try:
            response = await self._client.post(path, params=params, json=json)
        except httpx.TimeoutException as e:
            log.error("WATI request timeout", to=to, path=path)
            raise ChannelUnavailable("WATI request timeout", cause=e) from e
        except httpx.HTTPError as e:
            log.error("WATI HTTP error", error=str(e), to=to, path=path)
            raise ChannelUnavailable(f"WATI HTTP error: {e}", cause=e) from e

        try:
            data = response.json() if response.content else {}
        except (ValueError, TypeError):
            data = {}
        if not isinstance(data, dict):
            data = {"body": data}

        details = {"status_code": response.status_code, "to": to, "response": data}

        if response.status_code == 429:
            log.warning("WATI rate limited", to=to)
            raise RateLimited("WATI rate limit exceeded", details=details)

        if response.status_code in (400, 404, 422):
            log.error("WATI rejected recipient", **details)
            raise InvalidRecipient(
                data.get("info") or data.get("message") or f"HTTP {response.status_code}",
                details=details,
            )

        if response.status_code >= 300:
            log.error("WATI send failed", **details)
            raise ChannelUnavailable(f"WATI HTTP {response.status_code}", details=details)

        # WATI reports some failures as 200 with {"result": false}
        if data.get("result") is False:
            info = str(data.get("info") or data.get("message") or "rejected")
            log.error("WATI send rejected", to=to, info=info)
            if "invalid" in info.lower() or "not a valid" in info.lower():
                raise InvalidRecipient(info, details=details)
            raise ChannelUnavailable(info, details=details)

        message_id = data.get("id")
        if message_id is None and isinstance(data.get("message"), dict):
            message_id = data["message"].get("whatsappMessageId")
        log.info("WhatsApp sent via WATI", to=to, path=path, message_id=message_id)

        return DeliveryResult(
            status="sent",
            provider=self.name,
            message_id=message_id,
            sent_at=utc_now(),
            raw_response=data,
        )

    async def close(self) -> None:
        await self._client.aclose()
