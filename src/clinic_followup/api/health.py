"""Health check endpoints."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from clinic_followup import __version__
from clinic_followup.db.session import get_db_context
from clinic_followup.dependencies import ChannelsDep, ClassifierDep, SettingsDep

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str
    version: str
    environment: str
    suppress_outbound: bool
    checks: dict[str, Any]


@router.get("/health")
async def health_check(
    settings: SettingsDep,
    channels: ChannelsDep,
    classifier: ClassifierDep,
) -> HealthResponse:
    """Report database connectivity and which channels are usable.

    A missing channel is ``degraded`` rather than an error: jobs that
    need it fail with a configuration error, everything else works.
    """
    checks: dict[str, Any] = {
        "api": "ok",
        "database": await _check_database(),
        "whatsapp": _channel_status(channels.text_gateway, channels.suppress_outbound),
        "voice": _channel_status(channels.voice_gateway, channels.suppress_outbound),
        "classifier": "ok" if classifier.available else "unavailable",
    }

    if checks["database"] != "ok":
        status = "unhealthy"
    elif "unconfigured" in checks.values() or checks["classifier"] != "ok":
        status = "degraded"
    else:
        status = "healthy"

    return HealthResponse(
        status=status,
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        environment=settings.environment,
        suppress_outbound=channels.suppress_outbound,
        checks=checks,
    )


def _channel_status(gateway: Any, suppressed: bool) -> str:
    if suppressed:
        return "suppressed"
    return "ok" if gateway is not None else "unconfigured"


async def _check_database() -> str:
    try:
        async with get_db_context() as db:
            await db.execute(text("SELECT 1"))
        return "ok"
    except Exception as e:
        return f"error: {e}"
