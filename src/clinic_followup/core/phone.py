"""Phone number normalization.

The phone number is the only key shared by the appointment book, the
WhatsApp provider and the voice provider, and each of them formats it
differently. Everything that compares or sends to a number goes through
these helpers.
"""

from __future__ import annotations

DEFAULT_COUNTRY_CODE = "971"

# Longest national significant number we treat as "bare local format"
_LOCAL_MAX_DIGITS = 10


def normalize_phone(phone: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Normalize a phone number to international ``+<digits>`` form.

    Separators (spaces, dashes, dots, parentheses) are stripped. A ``00``
    prefix is treated as international, a leading trunk ``0`` or a bare
    local number gets the clinic country code.

    Args:
        phone: Phone number in any format
        country_code: Country calling code without ``+``

    Returns:
        Normalized number (e.g. ``+971501234567``), or ``""`` if no digits
    """
    has_plus = phone.strip().startswith("+")
    digits = "".join(c for c in phone if c.isdigit())
    if not digits:
        return ""

    if has_plus:
        return "+" + digits
    if digits.startswith("00"):
        return "+" + digits[2:]
    if digits.startswith("0"):
        return "+" + country_code + digits[1:]
    if digits.startswith(country_code) and len(digits) > _LOCAL_MAX_DIGITS:
        return "+" + digits
    if len(digits) <= _LOCAL_MAX_DIGITS:
        return "+" + country_code + digits
    return "+" + digits


def phone_variants(phone: str, country_code: str = DEFAULT_COUNTRY_CODE) -> list[str]:
    """All stored spellings a number may have in the appointment book.

    Args:
        phone: Phone number in any format
        country_code: Country calling code without ``+``

    Returns:
        Distinct candidate strings to match against stored phones
    """
    normalized = normalize_phone(phone, country_code)
    if not normalized:
        return []

    digits = normalized[1:]
    variants = [phone.strip(), normalized, digits, "00" + digits]
    if digits.startswith(country_code):
        national = digits[len(country_code):]
        variants.extend([national, "0" + national])

    seen: list[str] = []
    for variant in variants:
        if variant and variant not in seen:
            seen.append(variant)
    return seen


def is_valid_phone(phone: str) -> bool:
    """Check a normalized number has a plausible E.164 length."""
    digits = phone.lstrip("+")
    return phone.startswith("+") and digits.isdigit() and 8 <= len(digits) <= 15
