"""Patient-facing message texts and call scripts.

Plain-text fallbacks are used whenever no approved WhatsApp template is
configured for a send; template sends carry the same facts as ordered
parameters.
"""

from __future__ import annotations

from clinic_followup.config import ClinicSettings
from clinic_followup.db.models import AppointmentModel
from clinic_followup.integrations.channels import TemplateParameter


def slot_time(appointment: AppointmentModel) -> str:
    return appointment.appointment_time.strftime("%H:%M")


def slot_date(appointment: AppointmentModel) -> str:
    return appointment.appointment_date.strftime("%A, %d %B %Y")


def service_name(appointment: AppointmentModel) -> str:
    return appointment.service or "your appointment"


def reminder_params(appointment: AppointmentModel) -> list[TemplateParameter]:
    """Ordered parameters shared by the reminder and no-show templates."""
    return [
        TemplateParameter("patient_name", appointment.patient_name),
        TemplateParameter("appointment_time", slot_time(appointment)),
        TemplateParameter("service", service_name(appointment)),
    ]


# ============================================================================
# Reminders
# ============================================================================


def reminder_24hr(appointment: AppointmentModel, clinic: ClinicSettings) -> str:
    return (
        f"Hi *{appointment.patient_name}*,\n\n"
        f"This is a friendly reminder about your appointment *tomorrow* at "
        f"*{clinic.name}* for *{service_name(appointment)}*.\n\n"
        f"Time: *{slot_time(appointment)}*\n\n"
        f"Reply *Yes* to confirm, or let us know if you need to change it.\n\n"
        f"{clinic.phone}"
    )


def reminder_2hr(appointment: AppointmentModel, clinic: ClinicSettings) -> str:
    return (
        f"Hi {appointment.patient_name}, see you soon! Your appointment for "
        f"{service_name(appointment)} at {clinic.name} is today at "
        f"{slot_time(appointment)}. Reply if you are running late."
    )


# ============================================================================
# No-show and follow-up ladder
# ============================================================================


def no_show_outreach(appointment: AppointmentModel, clinic: ClinicSettings) -> str:
    return (
        f"Hi {appointment.patient_name}, we noticed you missed your appointment today at "
        f"{slot_time(appointment)} for {service_name(appointment)} at {clinic.name}. "
        f"We hope everything is okay! Would you like to reschedule? Reply YES to book a "
        f"new appointment, or let us know how we can help."
    )


def followup_nudge(appointment: AppointmentModel, clinic: ClinicSettings) -> str:
    return (
        f"Hi {appointment.patient_name}, we missed you yesterday! Your "
        f"{service_name(appointment)} is still waiting for you. Reply with a day and "
        f"time that suits you and we'll book you in."
    )


def followup_social_proof(appointment: AppointmentModel, clinic: ClinicSettings) -> str:
    return (
        f"Hi {appointment.patient_name}, many of our patients tell us their first "
        f"{service_name(appointment)} at {clinic.name} was the best decision they made "
        f"this year. We'd love to welcome you. Shall we find you a new slot?"
    )


def followup_reserve_spot(appointment: AppointmentModel, clinic: ClinicSettings) -> str:
    return (
        f"Hi {appointment.patient_name}, we are holding a few spots this week for "
        f"{service_name(appointment)}. Reply YES and we'll reserve one for you before "
        f"they go."
    )


def followup_gentle_reminder(appointment: AppointmentModel, clinic: ClinicSettings) -> str:
    return (
        f"Hi {appointment.patient_name}, just a gentle reminder that you can rebook "
        f"your {service_name(appointment)} any time. Call us on {clinic.phone} or "
        f"reply here. Take care!"
    )


# ============================================================================
# Voice call scripts
# ============================================================================


def followup_call_opening(appointment: AppointmentModel, clinic: ClinicSettings) -> str:
    return (
        f"Hello {appointment.patient_name}, this is {clinic.name} calling. We noticed "
        f"you missed your recent appointment for {service_name(appointment)}. We'd love "
        f"to help you reschedule. Would you like to book a new appointment?"
    )


def followup_call_context(appointment: AppointmentModel) -> str:
    return (
        f"Patient: {appointment.patient_name}, missed appointment for "
        f"{service_name(appointment)}. This is a follow-up call. If they want to "
        f"reschedule, ask for preferred date and time. If not interested, acknowledge "
        f"politely."
    )


def confirmation_call_opening(
    appointment: AppointmentModel,
    clinic: ClinicSettings,
    day_label: str,
    *,
    after_reminder: bool = True,
) -> str:
    followup = "We sent you a WhatsApp message but didn't hear back. " if after_reminder else ""
    return (
        f"Hello {appointment.patient_name}, this is {clinic.name} calling. You have an "
        f"appointment {day_label} at {slot_time(appointment)} for "
        f"{service_name(appointment)}. {followup}Can you confirm if you will be coming?"
    )


def confirmation_call_context(appointment: AppointmentModel) -> str:
    return (
        f"Patient: {appointment.patient_name}, Appointment: "
        f"{appointment.appointment_date.isoformat()} at {slot_time(appointment)}, "
        f"Service: {service_name(appointment)}. If they confirm, say great and end the "
        f"call. If they want to reschedule, ask for preferred date and time. If they "
        f"cancel, acknowledge politely. If they speak Arabic or Hindi, switch to that "
        f"language."
    )


# ============================================================================
# Replies to patient intents
# ============================================================================


def call_confirmation_echo(appointment: AppointmentModel) -> str:
    return (
        f"Hi {appointment.patient_name}, as confirmed on our call, we'll see you "
        f"{slot_date(appointment)} at {slot_time(appointment)}. Looking forward to it!"
    )


def whatsapp_confirmation(appointment: AppointmentModel, clinic: ClinicSettings) -> str:
    return (
        f"Great! Your appointment is confirmed for {slot_date(appointment)} at "
        f"{slot_time(appointment)}. See you at {clinic.name}!"
    )


RESCHEDULE_ACK = "Thank you! Our team will confirm your new appointment shortly."
CANCELLATION_ACK = "We're sorry to hear that. Our team will process your cancellation."


# ============================================================================
# Staff decisions
# ============================================================================

DEFAULT_DECLINE_REASON = "We're unable to accommodate this request at this time."


def reschedule_approved(patient_name: str, new_date: str, new_time: str) -> str:
    return (
        f"Hi {patient_name}, your appointment has been rescheduled to {new_date} at "
        f"{new_time}. See you then!"
    )


def cancellation_approved(patient_name: str) -> str:
    return (
        f"Hi {patient_name}, your appointment has been cancelled. We hope to see you "
        f"again soon."
    )


def suggest_alternative(patient_name: str, alt_date: str, alt_time: str) -> str:
    return (
        f"Hi {patient_name}, the time you requested is not available. How about "
        f"{alt_date} at {alt_time}? Let us know if that works for you!"
    )


def decline(patient_name: str, reason: str, clinic: ClinicSettings) -> str:
    return (
        f"Hi {patient_name}, {reason} Please contact us if you need further "
        f"assistance. {clinic.name}"
    )
