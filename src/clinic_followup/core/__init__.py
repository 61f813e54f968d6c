"""Core utilities: errors, logging, phone numbers and clinic time."""

from clinic_followup.core.exceptions import (
    FollowupEngineError,
    ConfigurationError,
    RecordNotFoundError,
    ValidationError,
    ChannelError,
    ChannelUnavailable,
    InvalidRecipient,
    RateLimited,
    ClassificationError,
)
from clinic_followup.core.logging import get_logger, setup_logging
from clinic_followup.core.phone import normalize_phone, phone_variants

__all__ = [
    # Exceptions
    "FollowupEngineError",
    "ConfigurationError",
    "RecordNotFoundError",
    "ValidationError",
    "ChannelError",
    "ChannelUnavailable",
    "InvalidRecipient",
    "RateLimited",
    "ClassificationError",
    # Logging
    "get_logger",
    "setup_logging",
    # Phone numbers
    "normalize_phone",
    "phone_variants",
]
