"""Tests for phone normalization and clinic-local time helpers."""

from __future__ import annotations

from datetime import date, datetime, time, timezone

import pytest

from clinic_followup.core.clock import clinic_today, clinic_tomorrow, hours_until
from clinic_followup.core.phone import is_valid_phone, normalize_phone, phone_variants


class TestNormalizePhone:
    """Tests for normalize_phone."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("+971 50 123 4567", "+971501234567"),
            ("+971-50-123-4567", "+971501234567"),
            ("00971501234567", "+971501234567"),
            ("0501234567", "+971501234567"),
            ("971501234567", "+971501234567"),
            ("501234567", "+971501234567"),
            ("(050) 123.4567", "+971501234567"),
            ("+44 20 7946 0958", "+442079460958"),
        ],
    )
    def test_formats(self, raw, expected):
        assert normalize_phone(raw) == expected

    def test_custom_country_code(self):
        assert normalize_phone("0791234567", country_code="41") == "+41791234567"

    def test_no_digits(self):
        assert normalize_phone("") == ""
        assert normalize_phone("n/a") == ""


class TestPhoneVariants:
    """Tests for phone_variants."""

    def test_covers_stored_spellings(self):
        variants = phone_variants("971501234567")

        for spelling in (
            "+971501234567",
            "971501234567",
            "00971501234567",
            "501234567",
            "0501234567",
        ):
            assert spelling in variants

    def test_keeps_raw_input(self):
        assert "+971 50 123 4567" in phone_variants("+971 50 123 4567")

    def test_no_duplicates(self):
        variants = phone_variants("+971501234567")
        assert len(variants) == len(set(variants))

    def test_empty(self):
        assert phone_variants("") == []


class TestIsValidPhone:
    def test_valid(self):
        assert is_valid_phone("+971501234567")

    def test_too_short(self):
        assert not is_valid_phone("+1234")

    def test_requires_plus(self):
        assert not is_valid_phone("971501234567")


class TestClinicClock:
    """Clinic-local day boundaries and slot arithmetic."""

    def test_today_rolls_over_in_clinic_zone(self):
        # 21:30 UTC is already 01:30 the next day in Dubai
        moment = datetime(2026, 3, 10, 21, 30, tzinfo=timezone.utc)

        assert clinic_today(moment, "Asia/Dubai") == date(2026, 3, 11)
        assert clinic_tomorrow(moment, "Asia/Dubai") == date(2026, 3, 12)

    def test_hours_until_slot(self):
        moment = datetime(2026, 3, 10, 8, 15, tzinfo=timezone.utc)  # 12:15 local

        remaining = hours_until(date(2026, 3, 10), time(14, 0), moment, "Asia/Dubai")

        assert remaining == pytest.approx(1.75)

    def test_hours_until_negative_after_slot(self):
        moment = datetime(2026, 3, 10, 13, 0, tzinfo=timezone.utc)  # 17:00 local

        remaining = hours_until(date(2026, 3, 10), time(14, 0), moment, "Asia/Dubai")

        assert remaining == pytest.approx(-3.0)
