"""Follow-up engine exception hierarchy.

Every error carries an HTTP status code and a stable error code so the
API layer can render it without knowing where it was raised. Channel
errors also say whether retrying later can help; the batch jobs record
that on the failed item.
"""

from __future__ import annotations

from typing import Any


class FollowupEngineError(Exception):
    """Base exception for all engine errors."""

    status_code: int = 500
    error_code: str = "FOLLOWUP_ENGINE_ERROR"

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        """Error body returned by the API."""
        return {
            "success": False,
            "error": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }

    def __str__(self) -> str:
        text = f"{self.error_code}: {self.message}"
        if self.details:
            text += f" | details={self.details}"
        if self.cause:
            text += f" | cause={self.cause}"
        return text


class ConfigurationError(FollowupEngineError):
    """A required setting (usually channel credentials) is missing."""

    error_code = "CONFIGURATION_ERROR"


class RecordNotFoundError(FollowupEngineError):
    status_code = 404
    error_code = "RECORD_NOT_FOUND"


class ValidationError(FollowupEngineError):
    """Caller input is malformed or not allowed in the current state."""

    status_code = 400
    error_code = "VALIDATION_ERROR"


# Channels


class ChannelError(FollowupEngineError):
    """Outbound WhatsApp or voice delivery failed."""

    error_code = "CHANNEL_ERROR"
    retryable = True


class ChannelUnavailable(ChannelError):
    """Provider unreachable, timed out or returned a server error."""

    error_code = "CHANNEL_UNAVAILABLE"


class InvalidRecipient(ChannelError):
    """Phone number rejected locally or by the provider."""

    error_code = "INVALID_RECIPIENT"
    retryable = False


class RateLimited(ChannelError):
    error_code = "RATE_LIMITED"


class ClassificationError(FollowupEngineError):
    """LLM call or response parsing failed (never leaves the classifier)."""

    status_code = 503
    error_code = "CLASSIFICATION_ERROR"
