"""Appointment and communication ORM models.

The appointment row is the only shared state between the reminder jobs,
the no-show detector, the follow-up sequencer and the webhooks. All
coordination happens through conditional updates on these columns.
"""
from __future__ import annotations

from datetime import date, datetime, time
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
)
from sqlalchemy.orm import Mapped, mapped_column

from clinic_followup.db.base import Base, TimestampMixin, UTCDateTime, UUIDMixin, UUIDType
from clinic_followup.db.models.enums import (
    AppointmentStatus,
    ConfirmationStatus,
    FollowupStatus,
    RequestStatus,
)


class AppointmentModel(Base, UUIDMixin, TimestampMixin):
    """Scheduled patient visit and its confirmation / follow-up state."""

    __tablename__ = "appointments"

    # Patient (phone is the cross-channel correlation key)
    patient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    # Scheduling (clinic-local date and time)
    appointment_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    appointment_time: Mapped[time] = mapped_column(Time, nullable=False)
    service: Mapped[str | None] = mapped_column(String(255), nullable=True)
    booked_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(20),
        default=AppointmentStatus.UPCOMING.value,
        nullable=False,
        index=True,
        comment="upcoming, completed, cancelled, no_show, rescheduled",
    )
    confirmation_status: Mapped[str] = mapped_column(
        String(30),
        default=ConfirmationStatus.UNCONFIRMED.value,
        nullable=False,
        comment="unconfirmed, message_sent, confirmed_whatsapp, confirmed_call, "
        "double_confirmed, called_no_answer, called_reschedule, cancelled",
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )

    # Reminder idempotency flags
    reminder_24hr_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reminder_24hr_sent_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )
    reminder_2hr_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reminder_2hr_sent_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )
    reminders_paused: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # No-show follow-up
    is_new_patient: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    no_show_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    followup_status: Mapped[str] = mapped_column(
        String(20),
        default=FollowupStatus.NONE.value,
        nullable=False,
        comment="none, active, stopped, completed",
    )
    followup_step: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    last_reply: Mapped[str | None] = mapped_column(Text, nullable=True)

    rescheduled_from: Mapped[UUID | None] = mapped_column(
        UUIDType(),
        ForeignKey("appointments.id"),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_appointments_date_status", "appointment_date", "status"),
        Index("ix_appointments_followup", "status", "followup_status"),
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert model to dictionary for API responses."""
        return {
            "id": str(self.id),
            "patient_name": self.patient_name,
            "phone": self.phone,
            "appointment_date": self.appointment_date.isoformat() if self.appointment_date else None,
            "appointment_time": self.appointment_time.strftime("%H:%M") if self.appointment_time else None,
            "service": self.service,
            "booked_by": self.booked_by,
            "status": self.status,
            "confirmation_status": self.confirmation_status,
            "reminder_24hr_sent": self.reminder_24hr_sent,
            "reminder_2hr_sent": self.reminder_2hr_sent,
            "reminders_paused": self.reminders_paused,
            "is_new_patient": self.is_new_patient,
            "no_show_count": self.no_show_count,
            "followup_status": self.followup_status,
            "followup_step": self.followup_step,
            "rescheduled_from": str(self.rescheduled_from) if self.rescheduled_from else None,
        }


class CommunicationLogModel(Base, UUIDMixin, TimestampMixin):
    """Audit record of one outbound or inbound interaction.

    Rows are append-only, except that an ``initiated`` voice call row
    receives the call outcome when the provider webhook arrives.
    """

    __tablename__ = "appointment_communications"

    # Null when inbound traffic could not be matched to an appointment
    appointment_id: Mapped[UUID | None] = mapped_column(
        UUIDType(),
        ForeignKey("appointments.id"),
        nullable=True,
        index=True,
    )
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    channel: Mapped[str] = mapped_column(
        String(20), nullable=False, comment="whatsapp, voice_call"
    )
    direction: Mapped[str] = mapped_column(
        String(10), nullable=False, comment="outbound, inbound"
    )
    message_sent: Mapped[str | None] = mapped_column(Text, nullable=True)
    patient_reply: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_status: Mapped[str | None] = mapped_column(
        String(20), nullable=True, comment="sent, suppressed, failed, received"
    )

    # Voice calls
    provider_call_id: Mapped[str | None] = mapped_column(
        String(100), nullable=True, index=True
    )
    call_status: Mapped[str | None] = mapped_column(
        String(20), nullable=True, comment="initiated, answered, no_answer, voicemail"
    )
    call_duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    call_summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Classification
    ai_parsed_intent: Mapped[str | None] = mapped_column(String(20), nullable=True)
    ai_confidence: Mapped[str | None] = mapped_column(String(10), nullable=True)
    needs_human_review: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    raw_response: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index("ix_communications_appointment_channel", "appointment_id", "channel"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "appointment_id": str(self.appointment_id) if self.appointment_id else None,
            "phone": self.phone,
            "channel": self.channel,
            "direction": self.direction,
            "message_sent": self.message_sent,
            "patient_reply": self.patient_reply,
            "delivery_status": self.delivery_status,
            "provider_call_id": self.provider_call_id,
            "call_status": self.call_status,
            "call_duration_seconds": self.call_duration_seconds,
            "call_summary": self.call_summary,
            "ai_parsed_intent": self.ai_parsed_intent,
            "ai_confidence": self.ai_confidence,
            "needs_human_review": self.needs_human_review,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class PendingRequestModel(Base, UUIDMixin, TimestampMixin):
    """Patient intent awaiting a staff decision."""

    __tablename__ = "pending_requests"

    appointment_id: Mapped[UUID | None] = mapped_column(
        UUIDType(),
        ForeignKey("appointments.id"),
        nullable=True,
        index=True,
    )
    patient_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    request_type: Mapped[str] = mapped_column(
        String(20), nullable=False, comment="reschedule, cancellation"
    )
    original_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_parsed_details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    ai_confidence: Mapped[str | None] = mapped_column(String(10), nullable=True)
    ai_suggested_reply: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=RequestStatus.PENDING.value,
        nullable=False,
        index=True,
    )
    handled_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    handled_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )
    staff_reply: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "appointment_id": str(self.appointment_id) if self.appointment_id else None,
            "patient_name": self.patient_name,
            "phone": self.phone,
            "request_type": self.request_type,
            "original_message": self.original_message,
            "ai_parsed_details": self.ai_parsed_details or {},
            "ai_confidence": self.ai_confidence,
            "status": self.status,
            "handled_by": self.handled_by,
            "handled_at": self.handled_at.isoformat() if self.handled_at else None,
            "staff_reply": self.staff_reply,
        }
