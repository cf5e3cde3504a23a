"""
app/validators/fix_helpers.py

Deterministic text transformations offered for bulk-correcting a field.
"""

from __future__ import annotations

import re
from collections.abc import Callable

from app.domain.case_import import DEFAULT_PRIORITY

DEFAULT_PHONE_COUNTRY_CODE = "+91"

_WHITESPACE_RUN = re.compile(r"\s+")
_PHONE_SEPARATORS = re.compile(r"[\s()\-]")
_TEN_DIGITS = re.compile(r"^\d{10}$")
_ELEVEN_PLUS_DIGITS = re.compile(r"^\d{11,}$")


def trim_whitespace(value: str) -> str:
    return _WHITESPACE_RUN.sub(" ", value).strip()


def title_case(value: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in value.lower().split(" "))


def strip_phone_separators(value: str) -> str:
    return _PHONE_SEPARATORS.sub("", value)


def normalize_phone(value: str, *, country_code: str = DEFAULT_PHONE_COUNTRY_CODE) -> str:
    """
    Prefix bare 10-digit numbers with the default country code and
    longer bare digit strings with ``+``; anything else is returned as-is.
    """

    cleaned = strip_phone_separators(value)
    if _TEN_DIGITS.match(cleaned):
        return f"{country_code}{cleaned}"
    if _ELEVEN_PLUS_DIGITS.match(cleaned):
        return f"+{cleaned}"
    return value


def default_priority(value: str) -> str:
    return value.upper() if value else DEFAULT_PRIORITY.value


def upper_case(value: str) -> str:
    return value.upper()


FIX_HELPERS: dict[str, Callable[[str], str]] = {
    "trim_whitespace": trim_whitespace,
    "title_case": title_case,
    "normalize_phone": normalize_phone,
    "default_priority": default_priority,
    "upper_case": upper_case,
}


def get_fix_helper(name: str) -> Callable[[str], str]:
    try:
        return FIX_HELPERS[name]
    except KeyError as exc:
        allowed = ", ".join(sorted(FIX_HELPERS))
        raise ValueError(f"Unknown fix helper '{name}'. Allowed values: {allowed}.") from exc
