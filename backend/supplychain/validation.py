from __future__ import annotations

import re
from typing import Any


ZERO_ADDRESS = "0x" + "0" * 40

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


class ValidationError(ValueError):
    """400-level input problem."""


def normalize_address(value: Any, field: str = "address") -> str:
    """
    Validate an account address and return its canonical (lower-case) form.

    - Must be a string of the form 0x + 40 hex digits
    - The zero address is returned as-is; callers decide whether it is allowed
    """
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a hex address string")
    s = value.strip()
    if not _ADDRESS_RE.match(s):
        raise ValidationError(f"{field} must be a 0x-prefixed 20-byte hex address")
    return s.lower()


def is_zero_address(address: str) -> bool:
    return address == ZERO_ADDRESS


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for amounts and timestamps.

    Rejects bools, floats, scientific notation and decimal strings.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def coerce_optional_int(value: Any, field: str) -> int | None:
    if value is None:
        return None
    return coerce_int(value, field)


def require_positive(value: int, field: str) -> int:
    if value <= 0:
        raise ValidationError(f"{field} must be > 0")
    return value
