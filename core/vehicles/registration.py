"""
UK registration mark and driving licence number helpers.
"""
from __future__ import annotations

import re

_CURRENT = re.compile(r"^[A-Z]{2}[0-9]{2}[A-Z]{3}$")  # AB12CDE
_PREFIX = re.compile(r"^([A-Z][0-9]{1,3})([A-Z]{3})$")  # A123BCD
_SUFFIX = re.compile(r"^[A-Z]{3}[0-9]{1,3}[A-Z]$")  # ABC123D
_DATELESS = re.compile(r"^[A-Z]{1,3}[0-9]{1,4}$")  # A1, ABC1234
_DATELESS_REVERSED = re.compile(r"^[0-9]{1,4}[A-Z]{1,3}$")  # 1A, 1234ABC

_REGISTRATION_PATTERNS = (_CURRENT, _PREFIX, _SUFFIX, _DATELESS, _DATELESS_REVERSED)

_LICENCE = re.compile(r"^[A-Z]{5}[0-9]{6}[A-Z]{2}[0-9]{2}$")


def clean_registration(value: str) -> str:
    return re.sub(r"\s+", "", value or "").upper()


def is_valid_registration(value: str) -> bool:
    cleaned = clean_registration(value)
    return any(p.match(cleaned) for p in _REGISTRATION_PATTERNS)


def format_registration(value: str) -> str:
    """Display form: current and prefix marks get their conventional space, others are left alone."""
    cleaned = clean_registration(value)
    if _CURRENT.match(cleaned):
        return f"{cleaned[:4]} {cleaned[4:]}"
    match = _PREFIX.match(cleaned)
    if match:
        return f"{match.group(1)} {match.group(2)}"
    return cleaned


def clean_licence_number(value: str) -> str:
    return clean_registration(value)


def is_valid_licence_number(value: str) -> bool:
    return bool(_LICENCE.match(clean_licence_number(value)))


__all__ = [
    "clean_registration",
    "is_valid_registration",
    "format_registration",
    "clean_licence_number",
    "is_valid_licence_number",
]
