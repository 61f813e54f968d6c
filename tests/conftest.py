"""Pytest configuration and fixtures for the follow-up engine tests."""

from __future__ import annotations

import os
from datetime import date, datetime, time, timezone
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio

# Set test environment
os.environ["CLINIC_ENV"] = "test"
os.environ["CLINIC_DATABASE__URL"] = "sqlite+aiosqlite:///:memory:"

# 12:00 in the clinic (Asia/Dubai is UTC+4 all year)
NOW = datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)
TODAY = date(2026, 3, 10)
TOMORROW = date(2026, 3, 11)

PATIENT_PHONE = "+971501234567"


def at_clinic_time(hour: int, minute: int = 0, day: date = TODAY) -> datetime:
    """UTC instant for a clinic-local wall clock time."""
    return datetime(day.year, day.month, day.day, hour - 4, minute, tzinfo=timezone.utc)


class FakeLLM:
    """Language model stand-in returning a canned response."""

    def __init__(self, response: str = "", error: Exception | None = None):
        self.response = response
        self.error = error
        self.prompts: list[str] = []

    async def generate_async(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.response


def intent_json(intent: str, confidence: str = "high", **extra: Any) -> str:
    import json

    return json.dumps({"intent": intent, "confidence": confidence, "summary": "test", **extra})


# ============================================================================
# Settings
# ============================================================================


@pytest.fixture
def settings():
    """Settings with live (non-suppressed) channels and no templates."""
    from clinic_followup.config import MessagingSettings, Settings

    return Settings(
        environment="test",
        debug=True,
        messaging=MessagingSettings(suppress_outbound=False, provider="mock"),
    )


# ============================================================================
# Async Database Fixtures
# ============================================================================


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Fresh in-memory database per test."""
    from clinic_followup.db.session import create_test_engine

    engine = await create_test_engine()
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator:
    """Session bound to the test engine."""
    from clinic_followup.db.session import make_session_factory

    async with make_session_factory(db_engine)() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def appointment_repository(db_session):
    from clinic_followup.db.repositories import AppointmentRepository

    return AppointmentRepository(db_session)


@pytest_asyncio.fixture
async def communication_repository(db_session):
    from clinic_followup.db.repositories import CommunicationLogRepository

    return CommunicationLogRepository(db_session)


@pytest_asyncio.fixture
async def pending_request_repository(db_session):
    from clinic_followup.db.repositories import PendingRequestRepository

    return PendingRequestRepository(db_session)


@pytest_asyncio.fixture
async def make_appointment(db_session, appointment_repository):
    """Factory creating and committing an appointment."""
    from clinic_followup.db.models import AppointmentModel

    async def _make(
        appointment_date: date = TOMORROW,
        appointment_time: time = time(14, 0),
        **fields: Any,
    ) -> AppointmentModel:
        fields.setdefault("patient_name", "Aisha Rahman")
        fields.setdefault("phone", PATIENT_PHONE)
        fields.setdefault("service", "Hydrafacial")
        appointment = await appointment_repository.create(
            AppointmentModel(
                appointment_date=appointment_date,
                appointment_time=appointment_time,
                **fields,
            )
        )
        await db_session.commit()
        return appointment

    return _make


# ============================================================================
# Channels
# ============================================================================


@pytest.fixture
def text_gateway():
    from clinic_followup.integrations.channels import MockTextGateway

    return MockTextGateway()


@pytest.fixture
def voice_gateway():
    from clinic_followup.integrations.channels import MockVoiceGateway

    return MockVoiceGateway()


@pytest.fixture
def channels(text_gateway, voice_gateway):
    """Channel adapter over recording mock gateways."""
    from clinic_followup.integrations.channels import ChannelAdapter

    return ChannelAdapter(text_gateway, voice_gateway, suppress_outbound=False)


@pytest.fixture
def make_classifier():
    """Factory for a classifier answering with a canned LLM response."""
    from clinic_followup.services.intent_classifier import IntentClassifier

    def _make(response: str = "", error: Exception | None = None) -> IntentClassifier:
        return IntentClassifier(FakeLLM(response, error), clinic_name="Test Clinic")

    return _make
