"""Manual confirmation calls."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, Field

from clinic_followup.dependencies import ChannelsDep, DatabaseDep, SettingsDep
from clinic_followup.workflows.confirmation_calls import ConfirmationCallDispatcher

router = APIRouter(prefix="/calls", tags=["Calls"])


class ConfirmationCallRequest(BaseModel):
    """Request model for a staff-triggered confirmation call."""

    appointment_id: str | None = Field(None, description="Appointment UUID")


@router.post("/confirmation")
async def place_confirmation_call(
    body: ConfirmationCallRequest,
    db: DatabaseDep,
    channels: ChannelsDep,
    settings: SettingsDep,
) -> dict[str, Any]:
    """Call a patient now to confirm their appointment.

    Returns ``{success, call_id}``; the outcome arrives later through the
    call-outcome webhook.
    """
    dispatcher = ConfirmationCallDispatcher(db, channels, settings)
    return await dispatcher.manual_call(body.appointment_id)
