"""Tests for the WhatsApp and voice gateways and the channel adapter."""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest

from clinic_followup.config import MessagingSettings, Settings, VapiSettings, VoiceSettings, WatiSettings
from clinic_followup.core.exceptions import (
    ChannelUnavailable,
    ConfigurationError,
    InvalidRecipient,
    RateLimited,
)
from clinic_followup.integrations.channels import (
    ChannelAdapter,
    MockTextGateway,
    MockVoiceGateway,
    TemplateParameter,
    build_channel_adapter,
)
from clinic_followup.integrations.channels.vapi import VapiVoiceGateway
from clinic_followup.integrations.channels.wati import WatiTextGateway


# ============================================================================
# WATI
# ============================================================================


@pytest.fixture
def wati():
    gateway = WatiTextGateway(api_url="https://live.wati.test/api/v1/", api_key="secret")
    gateway._client.post = AsyncMock()
    return gateway


class TestWatiTextGateway:
    """Tests for WatiTextGateway."""

    @pytest.mark.asyncio
    async def test_send_text(self, wati):
        wati._client.post.return_value = httpx.Response(200, json={"result": True, "id": "wamid-1"})

        result = await wati.send_text("+971501234567", "Hello")

        wati._client.post.assert_awaited_once_with(
            "/sendSessionMessage/971501234567",
            params={"messageText": "Hello"},
            json=None,
        )
        assert result.status == "sent"
        assert result.provider == "wati"
        assert result.message_id == "wamid-1"

    @pytest.mark.asyncio
    async def test_send_template(self, wati):
        wati._client.post.return_value = httpx.Response(200, json={"result": True})

        await wati.send_template(
            "+971501234567",
            "appointment_reminder",
            [TemplateParameter("patient_name", "Aisha")],
            "reminder_24hr_abc",
        )

        args, kwargs = wati._client.post.call_args
        assert args == ("/sendTemplateMessage",)
        assert kwargs["params"] == {"whatsappNumber": "971501234567"}
        assert kwargs["json"] == {
            "template_name": "appointment_reminder",
            "broadcast_name": "reminder_24hr_abc",
            "parameters": [{"name": "patient_name", "value": "Aisha"}],
        }

    @pytest.mark.asyncio
    async def test_rate_limited(self, wati):
        wati._client.post.return_value = httpx.Response(429, json={})

        with pytest.raises(RateLimited):
            await wati.send_text("+971501234567", "Hello")

    @pytest.mark.asyncio
    async def test_invalid_recipient(self, wati):
        wati._client.post.return_value = httpx.Response(400, json={"info": "Invalid WhatsApp number"})

        with pytest.raises(InvalidRecipient):
            await wati.send_text("+971501234567", "Hello")

    @pytest.mark.asyncio
    async def test_rejected_with_200(self, wati):
        wati._client.post.return_value = httpx.Response(
            200, json={"result": False, "info": "Ticket has expired"}
        )

        with pytest.raises(ChannelUnavailable):
            await wati.send_text("+971501234567", "Hello")

    @pytest.mark.asyncio
    async def test_server_error(self, wati):
        wati._client.post.return_value = httpx.Response(503, text="down")

        with pytest.raises(ChannelUnavailable):
            await wati.send_text("+971501234567", "Hello")

    @pytest.mark.asyncio
    async def test_timeout(self, wati):
        wati._client.post.side_effect = httpx.ReadTimeout("timed out")

        with pytest.raises(ChannelUnavailable):
            await wati.send_text("+971501234567", "Hello")


# ============================================================================
# Vapi
# ============================================================================


@pytest.fixture
def vapi():
    gateway = VapiVoiceGateway(api_key="secret", phone_number_id="pn-1", assistant_id="as-1")
    gateway._client.post = AsyncMock()
    return gateway


class TestVapiVoiceGateway:
    """Tests for VapiVoiceGateway."""

    @pytest.mark.asyncio
    async def test_place_call(self, vapi):
        vapi._client.post.return_value = httpx.Response(201, json={"id": "call-1", "status": "queued"})

        handle = await vapi.place_call("+971501234567", "Hello Aisha", "Patient: Aisha")

        args, kwargs = vapi._client.post.call_args
        assert args == ("/call/phone",)
        assert kwargs["json"]["customer"] == {"number": "+971501234567"}
        assert kwargs["json"]["assistantId"] == "as-1"
        assert kwargs["json"]["phoneNumberId"] == "pn-1"
        assert kwargs["json"]["assistantOverrides"]["firstMessage"] == "Hello Aisha"
        assert handle.call_id == "call-1"
        assert handle.status == "queued"

    @pytest.mark.asyncio
    async def test_missing_call_id(self, vapi):
        vapi._client.post.return_value = httpx.Response(201, json={"status": "queued"})

        with pytest.raises(ChannelUnavailable):
            await vapi.place_call("+971501234567", "Hello", "ctx")

    @pytest.mark.asyncio
    async def test_bad_request(self, vapi):
        vapi._client.post.return_value = httpx.Response(
            400, json={"message": ["customer.number must be a valid phone number"]}
        )

        with pytest.raises(InvalidRecipient, match="valid phone number"):
            await vapi.place_call("+971501234567", "Hello", "ctx")


# ============================================================================
# Channel Adapter
# ============================================================================


class TestChannelAdapter:
    """Tests for ChannelAdapter."""

    @pytest.mark.asyncio
    async def test_normalizes_recipient(self, channels, text_gateway):
        await channels.send_text("050 123 4567", "Hi")

        assert text_gateway.get_sent_messages()[0]["to"] == "+971501234567"

    @pytest.mark.asyncio
    async def test_rejects_invalid_recipient(self, channels, text_gateway):
        with pytest.raises(InvalidRecipient):
            await channels.send_text("12", "Hi")

        assert text_gateway.get_sent_messages() == []

    @pytest.mark.asyncio
    async def test_suppression_sends_nothing(self):
        text, voice = MockTextGateway(), MockVoiceGateway()
        adapter = ChannelAdapter(text, voice, suppress_outbound=True)

        delivery = await adapter.send_templated_text(
            "+971501234567", "reminder", [], "reminder_24hr_x"
        )
        handle = await adapter.place_voice_call("+971501234567", "Hi", "ctx")

        assert delivery.suppressed
        assert delivery.raw_response["broadcast_key"] == "reminder_24hr_x"
        assert handle.suppressed
        assert handle.call_id.startswith("suppressed-")
        assert text.get_sent_messages() == []
        assert voice.get_placed_calls() == []

    def test_suppression_satisfies_requirements(self):
        adapter = ChannelAdapter(None, None, suppress_outbound=True)

        adapter.require_text()
        adapter.require_voice()

    def test_missing_gateways_raise(self):
        adapter = ChannelAdapter(None, None)

        with pytest.raises(ConfigurationError):
            adapter.require_text()
        with pytest.raises(ConfigurationError):
            adapter.require_voice()


class TestChannelFactory:
    def test_unconfigured_providers_give_no_gateway(self):
        adapter = build_channel_adapter(Settings(environment="test"))

        assert adapter.text_gateway is None
        assert adapter.voice_gateway is None

    def test_configured_providers(self):
        settings = Settings(
            environment="test",
            messaging=MessagingSettings(
                wati=WatiSettings(api_url="https://live.wati.test/api/v1", api_key="k"),
            ),
            voice=VoiceSettings(
                vapi=VapiSettings(api_key="k", phone_number_id="pn", assistant_id="as"),
            ),
        )

        adapter = build_channel_adapter(settings)

        assert isinstance(adapter.text_gateway, WatiTextGateway)
        assert isinstance(adapter.voice_gateway, VapiVoiceGateway)
