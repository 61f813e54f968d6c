"""Tests for the appointment, communication and pending request repositories."""

from __future__ import annotations

from datetime import time, timedelta
from uuid import uuid4

import pytest

from conftest import NOW, PATIENT_PHONE, TODAY, TOMORROW

from clinic_followup.core.exceptions import RecordNotFoundError, ValidationError
from clinic_followup.core.phone import phone_variants
from clinic_followup.db.models import (
    AppointmentStatus,
    CallStatus,
    Channel,
    ConfirmationStatus,
    Direction,
    FollowupStatus,
    PendingRequestModel,
    RequestStatus,
    RequestType,
)


# ============================================================================
# Appointment Repository
# ============================================================================


class TestAppointmentScans:
    """Tests for the batch job scan queries."""

    @pytest.mark.asyncio
    async def test_due_for_reminder_filters(self, make_appointment, appointment_repository):
        due = await make_appointment()
        await make_appointment(reminder_24hr_sent=True)
        await make_appointment(reminders_paused=True)
        await make_appointment(status=AppointmentStatus.CANCELLED.value)
        await make_appointment(appointment_date=TODAY)

        found = await appointment_repository.find_due_for_reminder("24hr", TOMORROW)

        assert [a.id for a in found] == [due.id]

    @pytest.mark.asyncio
    async def test_due_for_reminder_ordered_by_slot(self, make_appointment, appointment_repository):
        late = await make_appointment(appointment_time=time(16, 0))
        early = await make_appointment(appointment_time=time(9, 30))

        found = await appointment_repository.find_due_for_reminder("24hr", TOMORROW)

        assert [a.id for a in found] == [early.id, late.id]

    @pytest.mark.asyncio
    async def test_unknown_reminder_window(self, appointment_repository):
        with pytest.raises(ValueError):
            await appointment_repository.find_due_for_reminder("1hr", TOMORROW)

    @pytest.mark.asyncio
    async def test_no_show_candidates_only_upcoming(self, make_appointment, appointment_repository):
        upcoming = await make_appointment(appointment_date=TODAY)
        await make_appointment(appointment_date=TODAY, status=AppointmentStatus.COMPLETED.value)
        await make_appointment(appointment_date=TODAY, status=AppointmentStatus.NO_SHOW.value)

        found = await appointment_repository.find_no_show_candidates(TODAY)

        assert [a.id for a in found] == [upcoming.id]

    @pytest.mark.asyncio
    async def test_unanswered_reminders(self, make_appointment, appointment_repository):
        sent_at = NOW - timedelta(hours=3)
        unanswered = await make_appointment(
            reminder_24hr_sent=True,
            reminder_24hr_sent_at=sent_at,
            confirmation_status=ConfirmationStatus.MESSAGE_SENT.value,
        )
        await make_appointment(
            reminder_24hr_sent=True,
            reminder_24hr_sent_at=sent_at,
            confirmation_status=ConfirmationStatus.CONFIRMED_WHATSAPP.value,
        )
        await make_appointment(
            reminder_24hr_sent=True,
            reminder_24hr_sent_at=NOW - timedelta(minutes=30),
            confirmation_status=ConfirmationStatus.MESSAGE_SENT.value,
        )

        found = await appointment_repository.find_unanswered_reminders(
            NOW - timedelta(hours=2), TODAY
        )

        assert [a.id for a in found] == [unanswered.id]


class TestPhoneCorrelation:
    """Tests for phone-keyed lookups."""

    @pytest.mark.asyncio
    async def test_matches_any_stored_spelling(self, make_appointment, appointment_repository):
        appointment = await make_appointment(phone="0501234567")

        found = await appointment_repository.find_next_for_phone(
            phone_variants("+971 50 123 4567"), TODAY
        )

        assert found is not None
        assert found.id == appointment.id

    @pytest.mark.asyncio
    async def test_earliest_appointment_wins(self, make_appointment, appointment_repository):
        later = await make_appointment(appointment_date=TOMORROW + timedelta(days=5))
        sooner = await make_appointment(appointment_date=TOMORROW)
        await make_appointment(appointment_date=TODAY - timedelta(days=1))

        found = await appointment_repository.find_next_for_phone(
            phone_variants(PATIENT_PHONE), TODAY
        )

        assert found.id == sooner.id
        assert found.id != later.id

    @pytest.mark.asyncio
    async def test_no_variants(self, appointment_repository):
        assert await appointment_repository.find_next_for_phone([], TODAY) is None

    @pytest.mark.asyncio
    async def test_stop_followups_for_phone(self, make_appointment, appointment_repository):
        active = await make_appointment(
            appointment_date=TODAY - timedelta(days=2),
            phone="971501234567",
            status=AppointmentStatus.NO_SHOW.value,
            followup_status=FollowupStatus.ACTIVE.value,
        )
        other = await make_appointment(
            phone="+971559999999",
            status=AppointmentStatus.NO_SHOW.value,
            followup_status=FollowupStatus.ACTIVE.value,
        )

        stopped = await appointment_repository.stop_followups_for_phone(
            phone_variants(PATIENT_PHONE)
        )

        assert stopped == 1
        assert (await appointment_repository.get(active.id)).followup_status == "stopped"
        assert (await appointment_repository.get(other.id)).followup_status == "active"


class TestGuardedTransitions:
    """Tests for the conditional updates."""

    @pytest.mark.asyncio
    async def test_reminder_flag_flips_once(self, make_appointment, appointment_repository):
        appointment = await make_appointment()

        assert await appointment_repository.mark_reminder_sent(appointment.id, "24hr", NOW)
        assert not await appointment_repository.mark_reminder_sent(appointment.id, "24hr", NOW)

        reloaded = await appointment_repository.get(appointment.id)
        assert reloaded.reminder_24hr_sent is True
        assert reloaded.reminder_24hr_sent_at is not None
        assert reloaded.confirmation_status == ConfirmationStatus.MESSAGE_SENT.value

    @pytest.mark.asyncio
    async def test_24hr_reminder_keeps_existing_confirmation(
        self, make_appointment, appointment_repository
    ):
        appointment = await make_appointment(
            confirmation_status=ConfirmationStatus.CONFIRMED_CALL.value
        )

        await appointment_repository.mark_reminder_sent(appointment.id, "24hr", NOW)

        reloaded = await appointment_repository.get(appointment.id)
        assert reloaded.confirmation_status == ConfirmationStatus.CONFIRMED_CALL.value

    @pytest.mark.asyncio
    async def test_2hr_reminder_leaves_confirmation(self, make_appointment, appointment_repository):
        appointment = await make_appointment(appointment_date=TODAY)

        assert await appointment_repository.mark_reminder_sent(appointment.id, "2hr", NOW)

        reloaded = await appointment_repository.get(appointment.id)
        assert reloaded.reminder_2hr_sent is True
        assert reloaded.confirmation_status == ConfirmationStatus.UNCONFIRMED.value

    @pytest.mark.asyncio
    async def test_mark_no_show_once(self, make_appointment, appointment_repository):
        appointment = await make_appointment(appointment_date=TODAY, no_show_count=1)

        assert await appointment_repository.mark_no_show(appointment.id)
        assert not await appointment_repository.mark_no_show(appointment.id)

        reloaded = await appointment_repository.get(appointment.id)
        assert reloaded.status == AppointmentStatus.NO_SHOW.value
        assert reloaded.followup_status == FollowupStatus.ACTIVE.value
        assert reloaded.followup_step == 0
        assert reloaded.no_show_count == 2

    @pytest.mark.asyncio
    async def test_advance_followup_is_monotonic(self, make_appointment, appointment_repository):
        appointment = await make_appointment(
            status=AppointmentStatus.NO_SHOW.value,
            followup_status=FollowupStatus.ACTIVE.value,
            followup_step=2,
        )

        assert not await appointment_repository.advance_followup(appointment.id, 2)
        assert not await appointment_repository.advance_followup(appointment.id, 1)
        assert await appointment_repository.advance_followup(appointment.id, 3)

        reloaded = await appointment_repository.get(appointment.id)
        assert reloaded.followup_step == 3
        assert reloaded.followup_status == FollowupStatus.ACTIVE.value

    @pytest.mark.asyncio
    async def test_advance_followup_completes(self, make_appointment, appointment_repository):
        appointment = await make_appointment(
            status=AppointmentStatus.NO_SHOW.value,
            followup_status=FollowupStatus.ACTIVE.value,
            followup_step=1,
        )

        assert await appointment_repository.advance_followup(appointment.id, 2, complete=True)
        assert not await appointment_repository.advance_followup(appointment.id, 3)

        reloaded = await appointment_repository.get(appointment.id)
        assert reloaded.followup_status == FollowupStatus.COMPLETED.value

    @pytest.mark.asyncio
    async def test_stopped_followup_does_not_advance(self, make_appointment, appointment_repository):
        appointment = await make_appointment(
            status=AppointmentStatus.NO_SHOW.value,
            followup_status=FollowupStatus.STOPPED.value,
        )

        assert not await appointment_repository.advance_followup(appointment.id, 1)

    @pytest.mark.asyncio
    async def test_mark_cancelled(self, make_appointment, appointment_repository):
        appointment = await make_appointment()

        assert await appointment_repository.mark_cancelled(appointment.id)
        assert not await appointment_repository.mark_cancelled(appointment.id)

        reloaded = await appointment_repository.get(appointment.id)
        assert reloaded.status == AppointmentStatus.CANCELLED.value
        assert reloaded.confirmation_status == ConfirmationStatus.CANCELLED.value

    @pytest.mark.asyncio
    async def test_get_or_raise(self, appointment_repository):
        with pytest.raises(RecordNotFoundError):
            await appointment_repository.get_or_raise(uuid4())

    @pytest.mark.asyncio
    async def test_malformed_id(self, appointment_repository):
        with pytest.raises(ValidationError):
            await appointment_repository.get("not-a-uuid")


# ============================================================================
# Communication Log Repository
# ============================================================================


class TestCommunicationLogRepository:
    """Tests for CommunicationLogRepository."""

    @pytest.mark.asyncio
    async def test_call_lookup(self, make_appointment, communication_repository):
        appointment = await make_appointment()
        await communication_repository.log(
            appointment_id=appointment.id,
            phone=PATIENT_PHONE,
            channel=Channel.WHATSAPP.value,
            direction=Direction.OUTBOUND.value,
            message_sent="Reminder",
        )
        call = await communication_repository.log(
            appointment_id=appointment.id,
            phone=PATIENT_PHONE,
            channel=Channel.VOICE_CALL.value,
            direction=Direction.OUTBOUND.value,
            provider_call_id="call-1",
            call_status=CallStatus.INITIATED.value,
        )

        assert (await communication_repository.find_by_call_id("call-1")).id == call.id
        assert (await communication_repository.find_latest_initiated_call(appointment.id)).id == call.id
        assert await communication_repository.has_voice_call(appointment.id)
        assert len(await communication_repository.for_appointment(appointment.id)) == 2

    @pytest.mark.asyncio
    async def test_attach_outcome(self, make_appointment, communication_repository):
        appointment = await make_appointment()
        call = await communication_repository.log(
            appointment_id=appointment.id,
            channel=Channel.VOICE_CALL.value,
            direction=Direction.OUTBOUND.value,
            provider_call_id="call-1",
            call_status=CallStatus.INITIATED.value,
        )

        await communication_repository.attach_outcome(
            call, call_status=CallStatus.ANSWERED.value, call_duration_seconds=42
        )

        assert await communication_repository.find_latest_initiated_call(appointment.id) is None
        assert (await communication_repository.find_by_call_id("call-1")).call_duration_seconds == 42

    @pytest.mark.asyncio
    async def test_claim_outcome_only_once(self, make_appointment, communication_repository):
        appointment = await make_appointment()
        call = await communication_repository.log(
            appointment_id=appointment.id,
            channel=Channel.VOICE_CALL.value,
            direction=Direction.OUTBOUND.value,
            provider_call_id="call-1",
            call_status=CallStatus.INITIATED.value,
        )

        first = await communication_repository.claim_outcome(
            call.id, call_status=CallStatus.ANSWERED.value, ai_parsed_intent="confirm"
        )
        second = await communication_repository.claim_outcome(
            call.id, call_status=CallStatus.NO_ANSWER.value, ai_parsed_intent="unclear"
        )

        assert first is True
        assert second is False
        entry = await communication_repository.find_by_call_id("call-1")
        assert entry.call_status == CallStatus.ANSWERED.value
        assert entry.ai_parsed_intent == "confirm"

    @pytest.mark.asyncio
    async def test_no_voice_call(self, make_appointment, communication_repository):
        appointment = await make_appointment()

        assert not await communication_repository.has_voice_call(appointment.id)


# ============================================================================
# Pending Request Repository
# ============================================================================


class TestPendingRequestRepository:
    """Tests for PendingRequestRepository."""

    @pytest.mark.asyncio
    async def test_handled_exactly_once(self, pending_request_repository):
        request = await pending_request_repository.create(
            PendingRequestModel(
                phone=PATIENT_PHONE,
                request_type=RequestType.CANCELLATION.value,
            )
        )

        assert await pending_request_repository.mark_handled(
            request.id, handled_by="Sara", handled_at=NOW, staff_reply="Approved"
        )
        assert not await pending_request_repository.mark_handled(
            request.id, handled_by="Omar", handled_at=NOW
        )
        assert not await pending_request_repository.record_reply(request.id, "late")

        reloaded = await pending_request_repository.get(request.id)
        assert reloaded.status == RequestStatus.HANDLED.value
        assert reloaded.handled_by == "Sara"
        assert reloaded.staff_reply == "Approved"

    @pytest.mark.asyncio
    async def test_list_pending(self, pending_request_repository):
        open_request = await pending_request_repository.create(
            PendingRequestModel(phone=PATIENT_PHONE, request_type=RequestType.RESCHEDULE.value)
        )
        await pending_request_repository.create(
            PendingRequestModel(
                phone=PATIENT_PHONE,
                request_type=RequestType.RESCHEDULE.value,
                status=RequestStatus.HANDLED.value,
            )
        )

        pending = await pending_request_repository.list_pending()

        assert [r.id for r in pending] == [open_request.id]
