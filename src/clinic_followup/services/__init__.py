"""Services for the follow-up engine."""

from clinic_followup.services.intent_classifier import IntentClassifier, IntentResult

__all__ = ["IntentClassifier", "IntentResult"]
