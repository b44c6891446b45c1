from __future__ import annotations

from datetime import datetime, timezone


def now_utc() -> datetime:
    """Current server time (naive UTC, matching DATETIME columns).

    Note: Wrapped so tests can patch/mock easier.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat(timespec="milliseconds") + "Z"


def parse_iso_datetime(value: str | None) -> datetime | None:
    """Parse a client ISO-8601 timestamp into naive UTC; None when blank."""
    v = (value or "").strip()
    if not v:
        return None
    if v.endswith("Z"):
        v = v[:-1] + "+00:00"
    parsed = datetime.fromisoformat(v)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
