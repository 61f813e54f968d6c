"""Outbound channel gateway interfaces.

Gateways are thin provider clients: they take an already normalized
``+<digits>`` number and either return a result or raise one of the
typed ``ChannelError`` subclasses. They hold no business logic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from clinic_followup.core.clock import utc_now
from clinic_followup.core.exceptions import ChannelError
from clinic_followup.core.logging import get_logger

log = get_logger(__name__)


@dataclass
class TemplateParameter:
    """One named value substituted into an approved message template."""

    name: str
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "value": self.value}


@dataclass
class DeliveryResult:
    """Result of a text send."""

    status: str  # sent, suppressed
    provider: str
    message_id: str | None = None
    sent_at: datetime | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def suppressed(self) -> bool:
        return self.status == "suppressed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "provider": self.provider,
            "message_id": self.message_id,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "raw_response": self.raw_response,
        }


@dataclass
class CallHandle:
    """Handle to an outbound call the provider accepted."""

    call_id: str
    status: str
    provider: str
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def suppressed(self) -> bool:
        return self.provider == "suppressed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "call_id": self.call_id,
            "status": self.status,
            "provider": self.provider,
            "raw_response": self.raw_response,
        }


class TextGateway(ABC):
    """Abstract text messaging provider (WhatsApp)."""

    name: str = "text"

    @abstractmethod
    async def send_text(self, phone: str, body: str) -> DeliveryResult:
        """Send a free-form session message.

        Raises:
            ChannelUnavailable, InvalidRecipient, RateLimited
        """

    @abstractmethod
    async def send_template(
        self,
        phone: str,
        template_name: str,
        params: list[TemplateParameter],
        broadcast_name: str,
    ) -> DeliveryResult:
        """Send an approved template message.

        Args:
            phone: Normalized recipient
            template_name: Provider template identifier
            params: Ordered template parameters
            broadcast_name: Unique key so the provider does not dedupe it away
        """

    async def close(self) -> None:
        """Release provider connections."""


class VoiceGateway(ABC):
    """Abstract outbound AI voice call provider."""

    name: str = "voice"

    @abstractmethod
    async def place_call(
        self,
        phone: str,
        opening_line: str,
        context_brief: str,
    ) -> CallHandle:
        """Start an outbound call; the outcome arrives later by webhook."""

    async def close(self) -> None:
        """Release provider connections."""


class MockTextGateway(TextGateway):
    """Records messages instead of sending them (development and tests).

    Set ``fail_with`` to make the next sends raise that error.
    """

    name = "mock"

    def __init__(self) -> None:
        self._sent_messages: list[dict[str, Any]] = []
        self.fail_with: ChannelError | None = None

    def _record(self, **entry: Any) -> DeliveryResult:
        if self.fail_with is not None:
            raise self.fail_with

        message_id = str(uuid4())
        entry.update(message_id=message_id, sent_at=utc_now())
        self._sent_messages.append(entry)
        log.info("Mock WhatsApp sent", message_id=message_id, to=entry["to"])

        return DeliveryResult(
            status="sent",
            provider=self.name,
            message_id=message_id,
            sent_at=entry["sent_at"],
            raw_response={"result": True, "id": message_id},
        )

    async def send_text(self, phone: str, body: str) -> DeliveryResult:
        return self._record(to=phone, body=body, template=None, broadcast_name=None)

    async def send_template(
        self,
        phone: str,
        template_name: str,
        params: list[TemplateParameter],
        broadcast_name: str,
    ) -> DeliveryResult:
        return self._record(
            to=phone,
            body=None,
            template=template_name,
            params=[p.to_dict() for p in params],
            broadcast_name=broadcast_name,
        )

    def get_sent_messages(self) -> list[dict[str, Any]]:
        """Get list of all sent messages (for testing)."""
        return self._sent_messages.copy()

    def clear_sent_messages(self) -> None:
        self._sent_messages.clear()


class MockVoiceGateway(VoiceGateway):
    """Records calls instead of placing them (development and tests)."""

    name = "mock"

    def __init__(self) -> None:
        self._placed_calls: list[dict[str, Any]] = []
        self.fail_with: ChannelError | None = None

    async def place_call(
        self,
        phone: str,
        opening_line: str,
        context_brief: str,
    ) -> CallHandle:
        if self.fail_with is not None:
            raise self.fail_with

        call_id = f"mock-call-{uuid4()}"
        self._placed_calls.append({
            "call_id": call_id,
            "to": phone,
            "opening_line": opening_line,
            "context_brief": context_brief,
        })
        log.info("Mock call placed", call_id=call_id, to=phone)

        return CallHandle(
            call_id=call_id,
            status="queued",
            provider=self.name,
            raw_response={"id": call_id, "status": "queued"},
        )

    def get_placed_calls(self) -> list[dict[str, Any]]:
        """Get list of all placed calls (for testing)."""
        return self._placed_calls.copy()

    def clear_placed_calls(self) -> None:
        self._placed_calls.clear()
