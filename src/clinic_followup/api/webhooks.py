"""Provider webhooks.

- Voice: end-of-call report from the AI voice provider
- WhatsApp: inbound patient message from WATI

Bodies are accepted as raw JSON because the providers' envelopes vary;
the workflows extract fields defensively.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body

from clinic_followup.core.logging import get_logger
from clinic_followup.dependencies import (
    ChannelsDep,
    ClassifierDep,
    DatabaseDep,
    SettingsDep,
)
from clinic_followup.workflows.call_outcome import CallOutcomeReconciler
from clinic_followup.workflows.inbound_messages import InboundMessageHandler

log = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/voice/call-outcome")
async def voice_call_outcome(
    db: DatabaseDep,
    channels: ChannelsDep,
    settings: SettingsDep,
    classifier: ClassifierDep,
    payload: dict[str, Any] = Body(...),
) -> dict[str, Any]:
    """Reconcile an end-of-call report.

    Returns ``{success, appointmentId, intent, callStatus}``. A call that
    matches no appointment is logged and still returns success.
    """
    reconciler = CallOutcomeReconciler(db, channels, settings, classifier)
    return await reconciler.handle(payload)


@router.post("/whatsapp/inbound")
async def whatsapp_inbound(
    db: DatabaseDep,
    channels: ChannelsDep,
    settings: SettingsDep,
    classifier: ClassifierDep,
    payload: dict[str, Any] = Body(...),
) -> dict[str, Any]:
    """Process an inbound WhatsApp reply."""
    handler = InboundMessageHandler(db, channels, settings, classifier)
    return await handler.handle(payload)
