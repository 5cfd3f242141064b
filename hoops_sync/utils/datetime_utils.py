"""
Low-level timezone and timestamp utilities.

Helpers for timezone-aware UTC datetimes and US Eastern calendar days. Season
logic lives in date_utils.py.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

EASTERN = ZoneInfo("America/New_York")


def now_utc() -> datetime:
    """Return the current timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def today_et(now: datetime | None = None) -> date:
    """Return the current date in US Eastern Time (sports calendar day).

    A 10 PM ET game on Feb 9 is a "Feb 9 game" even though it is Feb 10 in
    UTC; the provider files scoreboards by Eastern day.
    """
    return (now or now_utc()).astimezone(EASTERN).date()


def to_utc(value: datetime) -> datetime:
    """Coerce a datetime to aware UTC, reading naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def elapsed_ms(later: datetime, earlier: datetime) -> float:
    """Milliseconds from ``earlier`` to ``later`` (negative if reversed)."""
    return (to_utc(later) - to_utc(earlier)) / timedelta(milliseconds=1)


def parse_provider_datetime(value: str | None) -> datetime | None:
    """Parse provider ISO timestamps such as "2025-01-15T00:30Z"."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return to_utc(datetime.fromisoformat(text))
    except ValueError:
        return None
