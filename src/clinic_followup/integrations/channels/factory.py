"""Channel adapter factory.

Builds gateways from configuration.

Supported providers:
- wati / vapi: production WhatsApp and voice providers
- mock: records sends, for development and testing
"""

from __future__ import annotations

from clinic_followup.config import Settings, get_settings
from clinic_followup.core.logging import get_logger
from clinic_followup.integrations.channels.adapter import ChannelAdapter
from clinic_followup.integrations.channels.base import (
    MockTextGateway,
    MockVoiceGateway,
    TextGateway,
    VoiceGateway,
)

log = get_logger(__name__)


# Singleton instance
_channel_adapter: ChannelAdapter | None = None


def build_text_gateway(settings: Settings) -> TextGateway | None:
    """Create the configured WhatsApp gateway, or None without credentials."""
    provider = settings.messaging.provider.lower()

    if provider == "mock":
        return MockTextGateway()

    if provider == "wati":
        wati = settings.messaging.wati
        if not wati.configured:
            log.warning("WATI credentials not configured")
            return None

        from clinic_followup.integrations.channels.wati import WatiTextGateway

        log.info("WATI gateway initialized", api_url=wati.api_url)
        return WatiTextGateway(api_url=wati.api_url, api_key=wati.api_key, timeout=wati.timeout)

    log.warning("Unknown messaging provider", provider=provider)
    return None


def build_voice_gateway(settings: Settings) -> VoiceGateway | None:
    """Create the configured voice gateway, or None without credentials."""
    provider = settings.voice.provider.lower()

    if provider == "mock":
        return MockVoiceGateway()

    if provider == "vapi":
        vapi = settings.voice.vapi
        if not vapi.configured:
            log.warning("Vapi credentials not configured")
            return None

        from clinic_followup.integrations.channels.vapi import VapiVoiceGateway

        log.info("Vapi gateway initialized", phone_number_id=vapi.phone_number_id)
        return VapiVoiceGateway(
            api_key=vapi.api_key,
            phone_number_id=vapi.phone_number_id,
            assistant_id=vapi.assistant_id,
            api_url=vapi.api_url,
            timeout=vapi.timeout,
        )

    log.warning("Unknown voice provider", provider=provider)
    return None


def build_channel_adapter(settings: Settings) -> ChannelAdapter:
    """Create a channel adapter from settings."""
    adapter = ChannelAdapter(
        build_text_gateway(settings),
        build_voice_gateway(settings),
        suppress_outbound=settings.messaging.suppress_outbound,
        country_code=settings.clinic.country_code,
    )
    if adapter.suppress_outbound:
        log.warning("Message suppression enabled; no patient will be contacted")
    return adapter


def get_channel_adapter() -> ChannelAdapter:
    """Get the process-wide channel adapter."""
    global _channel_adapter

    if _channel_adapter is None:
        _channel_adapter = build_channel_adapter(get_settings())

    return _channel_adapter


async def close_channel_adapter() -> None:
    """Close gateway connections and drop the singleton."""
    global _channel_adapter

    if _channel_adapter is not None:
        await _channel_adapter.close()
        _channel_adapter = None
