"""Staff actions on pending requests."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query
from pydantic import BaseModel, ConfigDict, Field

from clinic_followup.db.repositories import PendingRequestRepository
from clinic_followup.dependencies import ChannelsDep, DatabaseDep, SettingsDep
from clinic_followup.workflows.pending_requests import PendingRequestResolver

router = APIRouter(prefix="/pending-requests", tags=["Pending Requests"])


class ResolveRequest(BaseModel):
    """Staff decision with action-specific fields passed through."""

    model_config = ConfigDict(extra="allow")

    action: str | None = Field(None, description="approve, suggest_alternative, reply or decline")
    request_id: str | None = Field(None, description="Pending request UUID")
    staff_name: str | None = Field(None, description="Staff member taking the action")


@router.get("")
async def list_pending_requests(
    db: DatabaseDep,
    limit: int = Query(100, ge=1, le=500),
) -> dict[str, Any]:
    """List requests still waiting for a staff decision, oldest first."""
    requests = await PendingRequestRepository(db).list_pending(limit=limit)
    return {"requests": [r.to_dict() for r in requests], "total": len(requests)}


@router.post("/resolve")
async def resolve_pending_request(
    body: ResolveRequest,
    db: DatabaseDep,
    channels: ChannelsDep,
    settings: SettingsDep,
) -> dict[str, Any]:
    """Apply a staff decision.

    Errors: 400 for missing or invalid fields and already-handled
    requests, 404 for an unknown request, 500 when the patient message
    could not be sent (the decision itself is kept).
    """
    resolver = PendingRequestResolver(db, channels, settings)
    return await resolver.resolve(
        body.request_id,
        body.action,
        body.staff_name,
        body.model_extra or {},
    )
