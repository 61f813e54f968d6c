"""Communication log repository."""
from __future__ import annotations

from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_followup.db.models.appointments import CommunicationLogModel
from clinic_followup.db.models.enums import CallStatus, Channel
from clinic_followup.db.repositories.base import BaseRepository, as_uuid


class CommunicationLogRepository(BaseRepository[CommunicationLogModel]):
    """Append-only audit trail of messages and calls."""

    def __init__(self, session: AsyncSession):
        super().__init__(CommunicationLogModel, session)

    async def log(self, **fields: Any) -> CommunicationLogModel:
        """Append a log entry.

        Args:
            **fields: Column values for the new entry

        Returns:
            The persisted entry
        """
        return await self.create(CommunicationLogModel(**fields))

    async def for_appointment(self, appointment_id: UUID | str) -> Sequence[CommunicationLogModel]:
        """All entries for an appointment, oldest first."""
        stmt = (
            select(self._model)
            .where(self._model.appointment_id == as_uuid(appointment_id))
            .order_by(self._model.created_at)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def find_by_call_id(self, provider_call_id: str) -> CommunicationLogModel | None:
        """Most recent voice entry carrying the provider's call id."""
        stmt = (
            select(self._model)
            .where(
                self._model.channel == Channel.VOICE_CALL.value,
                self._model.provider_call_id == provider_call_id,
            )
            .order_by(self._model.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_latest_initiated_call(
        self,
        appointment_id: UUID | str,
    ) -> CommunicationLogModel | None:
        """Most recent voice entry for the appointment still ``initiated``."""
        stmt = (
            select(self._model)
            .where(
                self._model.appointment_id == as_uuid(appointment_id),
                self._model.channel == Channel.VOICE_CALL.value,
                self._model.call_status == CallStatus.INITIATED.value,
            )
            .order_by(self._model.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def has_voice_call(self, appointment_id: UUID | str) -> bool:
        """Whether any call was ever logged for the appointment."""
        stmt = (
            select(func.count())
            .select_from(self._model)
            .where(
                self._model.appointment_id == as_uuid(appointment_id),
                self._model.channel == Channel.VOICE_CALL.value,
            )
        )
        result = await self._session.execute(stmt)
        return (result.scalar() or 0) > 0

    async def attach_outcome(
        self,
        entry: CommunicationLogModel,
        **fields: Any,
    ) -> CommunicationLogModel:
        """Attach a deferred call outcome to an existing entry in place."""
        for field, value in fields.items():
            setattr(entry, field, value)
        await self._session.flush()
        await self._session.refresh(entry)
        return entry

    async def claim_outcome(self, entry_id: UUID | str, **fields: Any) -> bool:
        """Write a call outcome only if the entry is still ``initiated``.

        Returns:
            True if this delivery claimed the call, False if another one
            already recorded its outcome
        """
        return await self.conditional_update(
            entry_id,
            [self._model.call_status == CallStatus.INITIATED.value],
            fields,
        )
