"""Repository layer.

- BaseRepository: generic CRUD and atomic conditional updates
- AppointmentRepository: job scans and guarded state transitions
- CommunicationLogRepository: message and call audit trail
- PendingRequestRepository: staff-review queue
"""

from clinic_followup.db.repositories.base import BaseRepository
from clinic_followup.db.repositories.appointments import AppointmentRepository
from clinic_followup.db.repositories.communications import CommunicationLogRepository
from clinic_followup.db.repositories.pending_requests import PendingRequestRepository

__all__ = [
    "BaseRepository",
    "AppointmentRepository",
    "CommunicationLogRepository",
    "PendingRequestRepository",
]
