"""Follow-up ladder control."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, Field

from clinic_followup.dependencies import ChannelsDep, DatabaseDep, SettingsDep
from clinic_followup.workflows.followup import FollowupSequencer

router = APIRouter(prefix="/followups", tags=["Follow-ups"])


class StopFollowupRequest(BaseModel):
    """Identify the patient by phone or by one of their appointments."""

    phone: str | None = Field(None, description="Patient phone in any format")
    appointment_id: str | None = Field(None, description="Appointment UUID")


@router.post("/stop")
async def stop_followups(
    body: StopFollowupRequest,
    db: DatabaseDep,
    channels: ChannelsDep,
    settings: SettingsDep,
) -> dict[str, Any]:
    """Stop every active no-show follow-up for the patient."""
    sequencer = FollowupSequencer(db, channels, settings)
    stopped = await sequencer.stop(phone=body.phone, appointment_id=body.appointment_id)
    return {"success": True, "stopped": stopped}
