from __future__ import annotations

import math
from numbers import Real
from typing import Any

from ..core.exceptions import ValidationError

MAX_LATITUDE = 90.0
MAX_LONGITUDE = 180.0


def require_non_empty(value: str, field_name: str) -> str:
    if not value or not value.strip():
        raise ValidationError(f"{field_name} is required")
    return value.strip()


def require_min_length(value: str, field_name: str, min_len: int) -> str:
    if value is None or len(value.strip()) < min_len:
        raise ValidationError(f"{field_name} must be at least {min_len} characters")
    return value.strip()


def is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def optional_float(value: Any, field_name: str) -> float | None:
    """Parse an optional finite number; NaN and infinities are rejected."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number")
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number")
    if not math.isfinite(parsed):
        raise ValidationError(f"{field_name} must be a finite number")
    return parsed


def optional_latitude(value: Any, field_name: str = "latitude") -> float | None:
    parsed = optional_float(value, field_name)
    if parsed is not None and abs(parsed) > MAX_LATITUDE:
        raise ValidationError(f"{field_name} must be between -90 and 90")
    return parsed


def optional_longitude(value: Any, field_name: str = "longitude") -> float | None:
    parsed = optional_float(value, field_name)
    if parsed is not None and abs(parsed) > MAX_LONGITUDE:
        raise ValidationError(f"{field_name} must be between -180 and 180")
    return parsed


def optional_bool(value: Any, field_name: str, default: bool = False) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes", "on"}:
            return True
        if lowered in {"false", "0", "no", "off"}:
            return False
    raise ValidationError(f"{field_name} must be true or false")
