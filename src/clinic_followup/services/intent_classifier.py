"""Intent classifier service.

Turns a free-text call transcript or WhatsApp reply into a bounded,
confidence-rated intent using an LLM (Groq). Any failure along the way
(no API key, provider error, non-JSON output, values outside the allowed
sets) yields ``unclear``/``low``: an actionable intent is never guessed.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Protocol

from clinic_followup.config import ClassifierSettings
from clinic_followup.core.exceptions import ClassificationError
from clinic_followup.core.logging import get_logger
from clinic_followup.services.intent_prompts import (
    MESSAGE_SYSTEM_PROMPT,
    MESSAGE_USER_PROMPT,
    TRANSCRIPT_SYSTEM_PROMPT,
    TRANSCRIPT_USER_PROMPT,
)

log = get_logger(__name__)

INTENTS = ("confirm", "reschedule", "cancel", "unclear")
CONFIDENCES = ("high", "medium", "low")

# Transcripts longer than this are truncated before classification
MAX_INPUT_CHARS = 6000


class TextGenerator(Protocol):
    """What the classifier needs from a language model."""

    async def generate_async(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str: ...


@dataclass
class IntentResult:
    """Structured patient intent."""

    intent: str = "unclear"
    confidence: str = "low"
    new_date: str | None = None
    new_time: str | None = None
    notes: str = ""
    summary: str = ""
    suggested_reply: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def unclear(cls, summary: str = "") -> IntentResult:
        """The fail-closed default."""
        return cls(intent="unclear", confidence="low", summary=summary)

    @property
    def needs_human_review(self) -> bool:
        return self.intent == "unclear" or self.confidence == "low"

    @property
    def is_confident_confirm(self) -> bool:
        return self.intent == "confirm" and self.confidence in ("high", "medium")

    def to_dict(self) -> dict[str, Any]:
        return {
            "intent": self.intent,
            "confidence": self.confidence,
            "new_date": self.new_date,
            "new_time": self.new_time,
            "notes": self.notes,
            "summary": self.summary,
            "suggested_reply": self.suggested_reply,
        }


class IntentClassifier:
    """Classify patient intent with an LLM, failing closed."""

    def __init__(
        self,
        llm: TextGenerator | None = None,
        *,
        clinic_name: str = "the clinic",
        temperature: float = 0.1,
        max_tokens: int = 512,
    ):
        """Initialize the classifier.

        Args:
            llm: Language model; None means every input is ``unclear``
            clinic_name: Used in the message prompt
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
        """
        self._llm = llm
        self.clinic_name = clinic_name
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(cls, settings: ClassifierSettings, clinic_name: str) -> IntentClassifier:
        """Build a Groq-backed classifier, or an always-unclear one if disabled."""
        llm = None
        if settings.enabled and settings.api_key:
            from clinic_followup.ai.groq_client import GroqLanguageModel

            llm = GroqLanguageModel(
                api_key=settings.api_key,
                model=settings.model,
                temperature=settings.temperature,
                max_tokens=settings.max_tokens,
                max_retries=settings.max_retries,
            )
        else:
            log.warning("Intent classifier has no LLM; all input will be unclear")
        return cls(
            llm,
            clinic_name=clinic_name,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )

    @property
    def available(self) -> bool:
        return self._llm is not None

    async def close(self) -> None:
        close = getattr(self._llm, "close", None)
        if close is not None:
            await close()

    async def classify_transcript(
        self,
        transcript: str,
        *,
        appointment_context: str = "unknown",
        today: date | None = None,
    ) -> IntentResult:
        """Classify a phone call transcript."""
        return await self._classify(
            TRANSCRIPT_SYSTEM_PROMPT,
            TRANSCRIPT_USER_PROMPT.format(
                today=(today or date.today()).isoformat(),
                appointment_context=appointment_context,
                transcript=transcript[:MAX_INPUT_CHARS],
            ),
            source="transcript",
            text=transcript,
        )

    async def classify_message(
        self,
        message: str,
        *,
        appointment_context: str = "No upcoming appointment found",
        today: date | None = None,
    ) -> IntentResult:
        """Classify an inbound WhatsApp message."""
        return await self._classify(
            MESSAGE_SYSTEM_PROMPT.format(clinic_name=self.clinic_name),
            MESSAGE_USER_PROMPT.format(
                today=(today or date.today()).isoformat(),
                appointment_context=appointment_context,
                message=message[:MAX_INPUT_CHARS],
            ),
            source="message",
            text=message,
        )

    async def _classify(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        source: str,
        text: str,
    ) -> IntentResult:
        if not text or not text.strip():
            return IntentResult.unclear("Empty input")
        if self._llm is None:
            return IntentResult.unclear("Classifier unavailable")

        try:
            response = await self._llm.generate_async(
                prompt=user_prompt,
                system_prompt=system_prompt,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
            result = parse_intent_response(response)
        except ClassificationError as e:
            log.warning("Unusable classifier output", source=source, error=e.message)
            return IntentResult.unclear("Could not determine patient intent")
        except Exception as e:
            log.error("Intent classification failed", source=source, error=str(e))
            return IntentResult.unclear("Could not determine patient intent")

        log.info(
            "Intent classified",
            source=source,
            intent=result.intent,
            confidence=result.confidence,
        )
        return result


def parse_intent_response(response: str) -> IntentResult:
    """Parse LLM output into an IntentResult.

    Raises:
        ClassificationError: The output is not a JSON object with an
            allowed intent and confidence
    """
    json_match = re.search(r"```(?:json)?\s*(.*?)\s*```", response or "", re.DOTALL)
    if json_match:
        json_str = json_match.group(1)
    else:
        json_match = re.search(r"\{.*\}", response or "", re.DOTALL)
        json_str = json_match.group(0) if json_match else (response or "")

    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        raise ClassificationError("Response is not valid JSON", cause=e) from e

    if not isinstance(data, dict):
        raise ClassificationError("Response is not a JSON object")

    intent = str(data.get("intent") or "").strip().lower()
    confidence = str(data.get("confidence") or "").strip().lower()
    if intent not in INTENTS:
        raise ClassificationError(f"Unknown intent: {intent!r}")
    if confidence not in CONFIDENCES:
        raise ClassificationError(f"Unknown confidence: {confidence!r}")

    return IntentResult(
        intent=intent,
        confidence=confidence,
        new_date=_clean_date(data.get("new_date")),
        new_time=_clean_time(data.get("new_time")),
        notes=str(data.get("notes") or data.get("patient_notes") or ""),
        summary=str(data.get("summary") or ""),
        suggested_reply=data.get("suggested_reply") or None,
        raw_response=data,
    )


def _clean_date(value: Any) -> str | None:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date().isoformat()
    except ValueError:
        return None


def _clean_time(value: Any) -> str | None:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.strptime(value.strip(), "%H:%M").strftime("%H:%M")
    except ValueError:
        return None
