"""Clinic-local calendar arithmetic."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_clinic_time(moment: datetime, tz_name: str) -> datetime:
    """Convert an aware (or naive UTC) datetime to the clinic zone."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(tz_name))


def clinic_today(moment: datetime, tz_name: str) -> date:
    """Clinic-local calendar day containing ``moment``."""
    return to_clinic_time(moment, tz_name).date()


def clinic_tomorrow(moment: datetime, tz_name: str) -> date:
    return clinic_today(moment, tz_name) + timedelta(days=1)


def slot_datetime(slot_date: date, slot_time: time, tz_name: str) -> datetime:
    """Aware datetime for an appointment slot stored as local date + time."""
    return datetime.combine(slot_date, slot_time, tzinfo=ZoneInfo(tz_name))


def hours_until(slot_date: date, slot_time: time, moment: datetime, tz_name: str) -> float:
    """Hours from ``moment`` until the slot (negative once it has passed)."""
    delta = slot_datetime(slot_date, slot_time, tz_name) - to_clinic_time(moment, tz_name)
    return delta.total_seconds() / 3600
