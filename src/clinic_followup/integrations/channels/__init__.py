"""Outbound channels: WhatsApp (WATI) and AI voice calls (Vapi)."""

from clinic_followup.integrations.channels.adapter import ChannelAdapter
from clinic_followup.integrations.channels.base import (
    CallHandle,
    DeliveryResult,
    MockTextGateway,
    MockVoiceGateway,
    TemplateParameter,
    TextGateway,
    VoiceGateway,
)
from clinic_followup.integrations.channels.factory import (
    build_channel_adapter,
    close_channel_adapter,
    get_channel_adapter,
)

__all__ = [
    "ChannelAdapter",
    "CallHandle",
    "DeliveryResult",
    "MockTextGateway",
    "MockVoiceGateway",
    "TemplateParameter",
    "TextGateway",
    "VoiceGateway",
    "build_channel_adapter",
    "close_channel_adapter",
    "get_channel_adapter",
]
