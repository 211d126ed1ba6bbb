"""Time utility helpers."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta


def now_utc() -> datetime:
    """Return current timezone-aware UTC datetime."""
    return datetime.now(tz=UTC)


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse a stored ISO timestamp into an aware UTC datetime."""
    if isinstance(value, str):
        normalized = value.replace("Z", "+00:00")
        parsed = datetime.fromisoformat(normalized)
    else:
        parsed = value

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def days_from_now(days: int, base: datetime | None = None) -> datetime:
    """Return the instant ``days`` after ``base`` (or now)."""
    return (base or now_utc()) + timedelta(days=days)


def is_past(value: str | datetime | None, at: datetime | None = None) -> bool:
    """Return True when ``value`` lies strictly before ``at`` (or now).

    A missing value never expires.
    """
    if value is None:
        return False
    return parse_timestamp(value) < (at or now_utc())
