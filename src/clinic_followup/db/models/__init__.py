"""Database models for the follow-up engine.

- AppointmentModel: scheduled visit with confirmation and follow-up state
- CommunicationLogModel: audit trail of every message and call
- PendingRequestModel: patient intents awaiting staff review
"""
from clinic_followup.db.models.appointments import (
    AppointmentModel,
    CommunicationLogModel,
    PendingRequestModel,
)
from clinic_followup.db.models.enums import (
    AppointmentStatus,
    CallStatus,
    Channel,
    ConfirmationStatus,
    DeliveryStatus,
    Direction,
    FollowupStatus,
    RequestStatus,
    RequestType,
)

__all__ = [
    "AppointmentModel",
    "CommunicationLogModel",
    "PendingRequestModel",
    "AppointmentStatus",
    "CallStatus",
    "Channel",
    "ConfirmationStatus",
    "DeliveryStatus",
    "Direction",
    "FollowupStatus",
    "RequestStatus",
    "RequestType",
]
