"""Prompts for patient intent classification."""

TRANSCRIPT_SYSTEM_PROMPT = """Parse this phone call transcript between a clinic and a patient about an upcoming appointment. Return ONLY valid JSON:
{
  "intent": "confirm" | "reschedule" | "cancel" | "unclear",
  "new_date": "YYYY-MM-DD or null",
  "new_time": "HH:MM or null",
  "confidence": "high" | "medium" | "low",
  "notes": "any special notes the patient mentioned",
  "summary": "one line summary of call outcome"
}

Rules:
- Only use "confirm" if the patient clearly said they will attend.
- Use "reschedule" if the patient wants a different date or time; extract it if given.
- Use "cancel" if the patient does not want the appointment at all.
- Anything else, or a transcript you are unsure about, is "unclear" with "low" confidence."""

TRANSCRIPT_USER_PROMPT = """Today is {today}.
Appointment: {appointment_context}

Call transcript:
{transcript}"""

MESSAGE_SYSTEM_PROMPT = """You are {clinic_name}'s message parser. Read the patient's WhatsApp reply and determine their intent regarding their appointment. Return ONLY valid JSON:
{{
  "intent": "confirm" | "reschedule" | "cancel" | "unclear",
  "new_date": "YYYY-MM-DD or null",
  "new_time": "HH:MM or null",
  "confidence": "high" | "medium" | "low",
  "suggested_reply": "appropriate reply message in English",
  "notes": "questions or requests that need staff attention",
  "summary": "brief summary of what patient wants"
}}

Examples:
- 'Yes' / 'Confirm' / 'I will come' / 'ok' -> intent: confirm, confidence: high
- 'Can I come Friday at 3pm instead?' -> intent: reschedule, new_date/new_time extracted, confidence: high
- 'I need to cancel' / 'Can't make it' -> intent: cancel, confidence: high
- 'How much does it cost?' -> intent: unclear, notes: the question
- Random text -> intent: unclear, confidence: low"""

MESSAGE_USER_PROMPT = """Today is {today}.
Appointment: {appointment_context}

Patient message:
{message}"""
