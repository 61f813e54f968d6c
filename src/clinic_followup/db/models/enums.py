"""Status vocabularies stored as plain strings on the ORM models."""

from __future__ import annotations

from enum import Enum


class AppointmentStatus(str, Enum):
    """Appointment lifecycle status."""

    UPCOMING = "upcoming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    RESCHEDULED = "rescheduled"


class ConfirmationStatus(str, Enum):
    """How (and whether) attendance was confirmed."""

    UNCONFIRMED = "unconfirmed"
    MESSAGE_SENT = "message_sent"
    CONFIRMED_WHATSAPP = "confirmed_whatsapp"
    CONFIRMED_CALL = "confirmed_call"
    DOUBLE_CONFIRMED = "double_confirmed"
    CALLED_NO_ANSWER = "called_no_answer"
    CALLED_RESCHEDULE = "called_reschedule"
    CANCELLED = "cancelled"


CONFIRMED_STATUSES = (
    ConfirmationStatus.CONFIRMED_WHATSAPP.value,
    ConfirmationStatus.CONFIRMED_CALL.value,
    ConfirmationStatus.DOUBLE_CONFIRMED.value,
)


class FollowupStatus(str, Enum):
    """No-show follow-up ladder state."""

    NONE = "none"
    ACTIVE = "active"
    STOPPED = "stopped"
    COMPLETED = "completed"


class Channel(str, Enum):
    WHATSAPP = "whatsapp"
    VOICE_CALL = "voice_call"


class Direction(str, Enum):
    OUTBOUND = "outbound"
    INBOUND = "inbound"


class DeliveryStatus(str, Enum):
    """Outcome of a logged send attempt."""

    SENT = "sent"
    SUPPRESSED = "suppressed"
    FAILED = "failed"
    RECEIVED = "received"


class CallStatus(str, Enum):
    INITIATED = "initiated"
    ANSWERED = "answered"
    NO_ANSWER = "no_answer"
    VOICEMAIL = "voicemail"


class RequestType(str, Enum):
    RESCHEDULE = "reschedule"
    CANCELLATION = "cancellation"


class RequestStatus(str, Enum):
    PENDING = "pending"
    HANDLED = "handled"
