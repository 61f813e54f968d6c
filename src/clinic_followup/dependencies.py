"""FastAPI dependencies.

Routers receive settings, a session, the channel adapter and the intent
classifier through the ``*Dep`` aliases below; tests swap any of them
with ``app.dependency_overrides``.
"""

from __future__ import annotations

import threading
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_followup.config import Settings, get_settings
from clinic_followup.db.session import get_db
from clinic_followup.integrations.channels import ChannelAdapter, get_channel_adapter
from clinic_followup.services.intent_classifier import IntentClassifier

_classifier_lock = threading.Lock()
_classifier: IntentClassifier | None = None


def get_app_settings() -> Settings:
    return get_settings()


def get_channels() -> ChannelAdapter:
    return get_channel_adapter()


def get_classifier() -> IntentClassifier:
    """Process-wide classifier, built on first use."""
    global _classifier

    if _classifier is None:
        with _classifier_lock:
            if _classifier is None:
                settings = get_settings()
                _classifier = IntentClassifier.from_settings(
                    settings.classifier, settings.clinic.name
                )

    return _classifier


async def close_classifier() -> None:
    global _classifier

    if _classifier is not None:
        await _classifier.close()
        _classifier = None


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
DatabaseDep = Annotated[AsyncSession, Depends(get_db)]
ChannelsDep = Annotated[ChannelAdapter, Depends(get_channels)]
ClassifierDep = Annotated[IntentClassifier, Depends(get_classifier)]
