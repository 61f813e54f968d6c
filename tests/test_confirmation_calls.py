"""Tests for automatic and manual confirmation calls."""

from __future__ import annotations

from datetime import time, timedelta
from uuid import uuid4

import pytest

from conftest import NOW, TODAY

from clinic_followup.core.exceptions import (
    ChannelUnavailable,
    ConfigurationError,
    RecordNotFoundError,
    ValidationError,
)
from clinic_followup.db.models import AppointmentStatus, CallStatus, ConfirmationStatus
from clinic_followup.integrations.channels import ChannelAdapter, MockTextGateway
from clinic_followup.workflows import ConfirmationCallDispatcher


@pytest.fixture
def dispatcher(db_session, channels, settings):
    return ConfirmationCallDispatcher(db_session, channels, settings)


@pytest.fixture
def make_unanswered(make_appointment):
    async def _make(hours_ago: float = 3, **fields):
        fields.setdefault("confirmation_status", ConfirmationStatus.MESSAGE_SENT.value)
        return await make_appointment(
            reminder_24hr_sent=True,
            reminder_24hr_sent_at=NOW - timedelta(hours=hours_ago),
            **fields,
        )

    return _make


class TestConfirmationCallRun:
    """Tests for ConfirmationCallDispatcher.run."""

    @pytest.mark.asyncio
    async def test_calls_unanswered_reminder(
        self, dispatcher, make_unanswered, voice_gateway, communication_repository
    ):
        appointment = await make_unanswered()

        batch = await dispatcher.run(NOW)

        item = batch.results[0]
        assert item.action == "call_initiated"
        calls = voice_gateway.get_placed_calls()
        assert item.details == {"callId": calls[0]["call_id"]}
        assert "appointment tomorrow at 14:00" in calls[0]["opening_line"]
        assert "didn't hear back" in calls[0]["opening_line"]

        entry = (await communication_repository.for_appointment(appointment.id))[0]
        assert entry.call_status == CallStatus.INITIATED.value
        assert entry.provider_call_id == calls[0]["call_id"]
        assert entry.message_sent == f"Confirmation call initiated for {appointment.appointment_date.isoformat()} at 14:00"

    @pytest.mark.asyncio
    async def test_called_at_most_once(self, dispatcher, make_unanswered, voice_gateway):
        await make_unanswered()

        await dispatcher.run(NOW)
        batch = await dispatcher.run(NOW + timedelta(hours=1))

        assert batch.processed == 0
        assert len(voice_gateway.get_placed_calls()) == 1

    @pytest.mark.asyncio
    async def test_failed_call_is_not_retried(self, dispatcher, make_unanswered, voice_gateway):
        await make_unanswered()
        voice_gateway.fail_with = ChannelUnavailable("Vapi HTTP 500")

        first = await dispatcher.run(NOW)
        voice_gateway.fail_with = None
        second = await dispatcher.run(NOW)

        assert first.results[0].success is False
        assert second.processed == 0

    @pytest.mark.asyncio
    async def test_waits_for_delay(self, dispatcher, make_unanswered):
        await make_unanswered(hours_ago=1)

        batch = await dispatcher.run(NOW)

        assert batch.processed == 0

    @pytest.mark.asyncio
    async def test_confirmed_and_past_appointments_skipped(self, dispatcher, make_unanswered):
        await make_unanswered(confirmation_status=ConfirmationStatus.CONFIRMED_WHATSAPP.value)
        await make_unanswered(appointment_date=TODAY - timedelta(days=1))
        await make_unanswered(reminders_paused=True)

        batch = await dispatcher.run(NOW)

        assert batch.processed == 0

    @pytest.mark.asyncio
    async def test_requires_voice_channel(self, db_session, settings, make_unanswered):
        await make_unanswered()
        dispatcher = ConfirmationCallDispatcher(
            db_session, ChannelAdapter(MockTextGateway(), None), settings
        )

        with pytest.raises(ConfigurationError):
            await dispatcher.run(NOW)


class TestManualCall:
    """Tests for ConfirmationCallDispatcher.manual_call."""

    @pytest.mark.asyncio
    async def test_manual_call(self, dispatcher, make_appointment, voice_gateway, communication_repository):
        appointment = await make_appointment(appointment_date=TODAY, appointment_time=time(17, 0))

        response = await dispatcher.manual_call(str(appointment.id), NOW)

        calls = voice_gateway.get_placed_calls()
        assert response == {"success": True, "call_id": calls[0]["call_id"]}
        assert "appointment today at 17:00" in calls[0]["opening_line"]
        assert "didn't hear back" not in calls[0]["opening_line"]
        entry = (await communication_repository.for_appointment(appointment.id))[0]
        assert entry.message_sent == "Manual confirmation call initiated by staff"

    @pytest.mark.asyncio
    async def test_missing_id(self, dispatcher):
        with pytest.raises(ValidationError):
            await dispatcher.manual_call(None, NOW)

    @pytest.mark.asyncio
    async def test_unknown_appointment(self, dispatcher):
        with pytest.raises(RecordNotFoundError):
            await dispatcher.manual_call(str(uuid4()), NOW)

    @pytest.mark.asyncio
    async def test_cancelled_appointment(self, dispatcher, make_appointment, voice_gateway):
        appointment = await make_appointment(status=AppointmentStatus.CANCELLED.value)

        with pytest.raises(ValidationError):
            await dispatcher.manual_call(appointment.id, NOW)
        assert voice_gateway.get_placed_calls() == []

    @pytest.mark.asyncio
    async def test_provider_failure_is_logged_and_raised(
        self, dispatcher, make_appointment, voice_gateway, communication_repository
    ):
        appointment = await make_appointment()
        voice_gateway.fail_with = ChannelUnavailable("Vapi HTTP 500")

        with pytest.raises(ChannelUnavailable):
            await dispatcher.manual_call(appointment.id, NOW)

        entry = (await communication_repository.for_appointment(appointment.id))[0]
        assert entry.delivery_status == "failed"
