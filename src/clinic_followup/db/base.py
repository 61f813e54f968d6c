"""Declarative base and column types shared by the follow-up models.

Timestamps are stored as naive UTC and handed back timezone-aware, so
values written by the jobs compare correctly in SQL regardless of the
backend's timezone support.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, String, TypeDecorator, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from clinic_followup.core.clock import utc_now


class UUIDType(TypeDecorator):
    """UUID stored as its 36-character string form."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(value) if isinstance(value, UUID) else str(UUID(str(value)))

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, UUID):
            return value
        return UUID(value)


class UTCDateTime(TypeDecorator):
    """Datetime normalized to UTC on the way in and out."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    type_annotation_map = {
        dict[str, Any]: JSON,
        UUID: UUIDType,
        datetime: UTCDateTime,
    }


class UUIDMixin:
    """Random UUID primary key."""

    id: Mapped[UUID] = mapped_column(UUIDType(), primary_key=True, default=uuid4)


class TimestampMixin:
    """created_at / updated_at, set from the application clock.

    The application clock keeps sub-second ordering between rows written
    in the same run, which a database ``now()`` does not on SQLite.
    """

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
        nullable=False,
    )
