"""Pending request repository."""
from __future__ import annotations

from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_followup.db.models.appointments import PendingRequestModel
from clinic_followup.db.models.enums import RequestStatus
from clinic_followup.db.repositories.base import BaseRepository, as_uuid


class PendingRequestRepository(BaseRepository[PendingRequestModel]):
    """Staff-review queue of reschedule and cancellation requests."""

    def __init__(self, session: AsyncSession):
        super().__init__(PendingRequestModel, session)

    async def list_pending(self, *, limit: int = 100) -> Sequence[PendingRequestModel]:
        stmt = (
            select(self._model)
            .where(self._model.status == RequestStatus.PENDING.value)
            .order_by(self._model.created_at)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def for_appointment(self, appointment_id: UUID | str) -> Sequence[PendingRequestModel]:
        return await self.find_many(appointment_id=as_uuid(appointment_id))

    async def record_reply(self, id: UUID | str, staff_reply: str) -> bool:
        """Store the latest staff message without closing the request."""
        return await self.conditional_update(
            id,
            [self._model.status == RequestStatus.PENDING.value],
            {"staff_reply": staff_reply},
        )

    async def mark_handled(
        self,
        id: UUID | str,
        *,
        handled_by: str,
        handled_at: datetime,
        staff_reply: str | None = None,
    ) -> bool:
        """Close a pending request.

        Returns:
            False if the request was already handled
        """
        return await self.conditional_update(
            id,
            [self._model.status == RequestStatus.PENDING.value],
            {
                "status": RequestStatus.HANDLED.value,
                "handled_by": handled_by,
                "handled_at": handled_at,
                "staff_reply": staff_reply,
            },
        )
