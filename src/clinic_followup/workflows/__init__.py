"""Appointment confirmation and follow-up workflows."""

from clinic_followup.workflows.call_outcome import CallOutcomeReconciler, CallReport
from clinic_followup.workflows.confirmation_calls import ConfirmationCallDispatcher
from clinic_followup.workflows.followup import FollowupSequencer
from clinic_followup.workflows.inbound_messages import InboundMessageHandler
from clinic_followup.workflows.jobs import JOBS, run_job
from clinic_followup.workflows.noshow import NoShowDetector
from clinic_followup.workflows.pending_requests import PendingRequestResolver
from clinic_followup.workflows.reminders import ReminderScheduler
from clinic_followup.workflows.results import BatchResult, ItemResult

__all__ = [
    "BatchResult",
    "CallOutcomeReconciler",
    "CallReport",
    "ConfirmationCallDispatcher",
    "FollowupSequencer",
    "InboundMessageHandler",
    "ItemResult",
    "JOBS",
    "NoShowDetector",
    "PendingRequestResolver",
    "ReminderScheduler",
    "run_job",
]
