"""structlog configuration.

Console output in development, JSON lines in production. Every event
carries the clinic name. With ``mask_phones`` the patient numbers under
:data:`PHONE_KEYS` are reduced to their last four digits before rendering.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

PHONE_KEYS = frozenset({"phone", "to", "customer_number"})


def mask_phone(value: Any) -> Any:
    """``+971501234567`` -> ``***4567``."""
    if not isinstance(value, str) or len(value) <= 4:
        return value
    return "***" + value[-4:]


def _masker(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in PHONE_KEYS.intersection(event_dict):
        event_dict[key] = mask_phone(event_dict[key])
    return event_dict


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    clinic_name: str | None = None,
    mask_phones: bool = False,
) -> None:
    """Configure structlog for the service and the CLI.

    Args:
        level: Log level name
        json_output: Render JSON lines instead of the colored console
        clinic_name: Bound to every event as ``clinic``
        mask_phones: Mask patient phone numbers in rendered events
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    # uvicorn and SQLAlchemy log through the standard library
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if clinic_name:
        processors.append(_bind_clinic(clinic_name))
    if mask_phones:
        processors.append(_masker)

    if json_output:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(exception_formatter=structlog.dev.plain_traceback)
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _bind_clinic(clinic_name: str):
    def add_clinic(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("clinic", clinic_name)
        return event_dict

    return add_clinic


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Logger for ``name`` (usually ``__name__``)."""
    return structlog.get_logger(name)
