"""Appointment repository.

Scan queries for the batch jobs plus the atomic conditional updates that
make every job safe to re-run or overlap with itself.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_followup.db.models.appointments import AppointmentModel
from clinic_followup.db.models.enums import (
    AppointmentStatus,
    ConfirmationStatus,
    FollowupStatus,
)
from clinic_followup.db.repositories.base import BaseRepository

# Rows that no automatic channel should ever touch
_INACTIVE_STATUSES = (
    AppointmentStatus.CANCELLED.value,
    AppointmentStatus.RESCHEDULED.value,
)

REMINDER_WINDOWS = ("24hr", "2hr")


class AppointmentRepository(BaseRepository[AppointmentModel]):
    """Repository for appointment database operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(AppointmentModel, session)

    async def _scan(self, *conditions: Any) -> Sequence[AppointmentModel]:
        stmt = (
            select(self._model)
            .where(and_(*conditions))
            .order_by(self._model.appointment_date, self._model.appointment_time)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    # ========================================================================
    # Job Scans
    # ========================================================================

    async def find_due_for_reminder(
        self,
        window: str,
        on_date: date,
    ) -> Sequence[AppointmentModel]:
        """Appointments on ``on_date`` whose ``window`` reminder is unsent.

        Args:
            window: "24hr" or "2hr"
            on_date: Clinic-local appointment date

        Returns:
            Unpaused, non-cancelled appointments ordered by slot
        """
        flag = self._reminder_flag(window)
        return await self._scan(
            self._model.appointment_date == on_date,
            flag.is_(False),
            self._model.reminders_paused.is_(False),
            self._model.status.not_in(_INACTIVE_STATUSES),
        )

    async def find_no_show_candidates(self, on_date: date) -> Sequence[AppointmentModel]:
        """Appointments on ``on_date`` still in ``upcoming`` status."""
        return await self._scan(
            self._model.appointment_date == on_date,
            self._model.status == AppointmentStatus.UPCOMING.value,
        )

    async def find_active_followups(self) -> Sequence[AppointmentModel]:
        """No-show appointments with an active, unpaused follow-up ladder."""
        return await self._scan(
            self._model.status == AppointmentStatus.NO_SHOW.value,
            self._model.followup_status == FollowupStatus.ACTIVE.value,
            self._model.reminders_paused.is_(False),
        )

    async def find_unanswered_reminders(
        self,
        sent_before: datetime,
        from_date: date,
    ) -> Sequence[AppointmentModel]:
        """Appointments whose 24h reminder got no reply by ``sent_before``."""
        return await self._scan(
            self._model.reminder_24hr_sent.is_(True),
            self._model.reminder_24hr_sent_at < sent_before,
            self._model.confirmation_status == ConfirmationStatus.MESSAGE_SENT.value,
            self._model.appointment_date >= from_date,
            self._model.reminders_paused.is_(False),
            self._model.status.not_in(_INACTIVE_STATUSES),
        )

    # ========================================================================
    # Phone Correlation
    # ========================================================================

    async def find_next_for_phone(
        self,
        variants: list[str],
        from_date: date,
    ) -> AppointmentModel | None:
        """Soonest non-cancelled appointment on or after ``from_date``.

        Patients with more than one upcoming appointment resolve to the
        earliest slot; there is no further disambiguation.
        """
        if not variants:
            return None
        stmt = (
            select(self._model)
            .where(
                self._model.phone.in_(variants),
                self._model.appointment_date >= from_date,
                self._model.status.not_in(_INACTIVE_STATUSES),
            )
            .order_by(self._model.appointment_date, self._model.appointment_time)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def stop_followups_for_phone(self, variants: list[str]) -> int:
        """Stop every active no-show follow-up for any spelling of a phone.

        Returns:
            Number of follow-up ladders stopped
        """
        if not variants:
            return 0
        stmt = (
            update(self._model)
            .where(
                self._model.phone.in_(variants),
                self._model.status == AppointmentStatus.NO_SHOW.value,
                self._model.followup_status == FollowupStatus.ACTIVE.value,
            )
            .values(followup_status=FollowupStatus.STOPPED.value)
            .execution_options(synchronize_session=False)
        )
        await self._session.flush()
        result = await self._session.execute(stmt)
        return result.rowcount

    # ========================================================================
    # Guarded Transitions
    # ========================================================================

    def _reminder_flag(self, window: str):
        if window not in REMINDER_WINDOWS:
            raise ValueError(f"Unknown reminder window: {window}")
        return getattr(self._model, f"reminder_{window}_sent")

    async def mark_reminder_sent(
        self,
        id: UUID | str,
        window: str,
        sent_at: datetime,
    ) -> bool:
        """Flip the reminder flag for ``window`` if it is still false.

        The 24h reminder also moves an unconfirmed appointment to
        ``message_sent`` in the same statement.

        Returns:
            False if another run already flagged this appointment
        """
        flag = self._reminder_flag(window)
        flipped = await self.conditional_update(
            id,
            [flag.is_(False)],
            {f"reminder_{window}_sent": True, f"reminder_{window}_sent_at": sent_at},
        )
        if flipped and window == "24hr":
            await self.conditional_update(
                id,
                [self._model.confirmation_status == ConfirmationStatus.UNCONFIRMED.value],
                {"confirmation_status": ConfirmationStatus.MESSAGE_SENT.value},
            )
        return flipped

    async def mark_no_show(self, id: UUID | str) -> bool:
        """Move ``upcoming`` to ``no_show`` and start the follow-up ladder."""
        return await self.conditional_update(
            id,
            [self._model.status == AppointmentStatus.UPCOMING.value],
            {
                "status": AppointmentStatus.NO_SHOW.value,
                "followup_status": FollowupStatus.ACTIVE.value,
                "followup_step": 0,
                "no_show_count": self._model.no_show_count + 1,
            },
        )

    async def advance_followup(
        self,
        id: UUID | str,
        new_step: int,
        *,
        complete: bool = False,
    ) -> bool:
        """Raise ``followup_step`` to ``new_step`` on an active ladder.

        Args:
            id: Appointment ID
            new_step: Step just performed; must exceed the stored step
            complete: Also mark the ladder completed

        Returns:
            False if the ladder was stopped or already at/after this step
        """
        values: dict[str, Any] = {"followup_step": new_step}
        if complete:
            values["followup_status"] = FollowupStatus.COMPLETED.value
        return await self.conditional_update(
            id,
            [
                self._model.followup_step < new_step,
                self._model.followup_status == FollowupStatus.ACTIVE.value,
            ],
            values,
        )

    async def set_confirmation(
        self,
        id: UUID | str,
        confirmation_status: ConfirmationStatus,
        *,
        confirmed_at: datetime | None = None,
        last_reply: str | None = None,
    ) -> bool:
        """Set the confirmation axis (lifecycle status is left alone)."""
        values: dict[str, Any] = {"confirmation_status": confirmation_status.value}
        if confirmed_at is not None:
            values["confirmed_at"] = confirmed_at
        if last_reply is not None:
            values["last_reply"] = last_reply
        return await self.conditional_update(id, [], values)

    async def mark_rescheduled(self, id: UUID | str) -> bool:
        return await self.conditional_update(
            id,
            [self._model.status.not_in(_INACTIVE_STATUSES)],
            {"status": AppointmentStatus.RESCHEDULED.value},
        )

    async def mark_cancelled(self, id: UUID | str) -> bool:
        return await self.conditional_update(
            id,
            [self._model.status != AppointmentStatus.CANCELLED.value],
            {
                "status": AppointmentStatus.CANCELLED.value,
                "confirmation_status": ConfirmationStatus.CANCELLED.value,
            },
        )

    async def record_reply(self, id: UUID | str, reply: str) -> bool:
        """Store the patient's latest free-text reply."""
        return await self.conditional_update(id, [], {"last_reply": reply})
