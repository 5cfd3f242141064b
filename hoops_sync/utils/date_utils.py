"""
Domain-level date and season calculation utilities.

Seasons are labelled "YYYY-YY" by their starting year. Basketball calendars
are read in US Eastern time and a new season label begins in August, which
covers the NBA and G League (Oct-Jun) and the WNBA (May-Oct) alike.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from .datetime_utils import EASTERN, now_utc

SEASON_START_MONTH = 8


def season_for_date(day: date) -> str:
    """Season label for a calendar day, e.g. 2026-01-15 → "2025-26"."""
    start_year = day.year if day.month >= SEASON_START_MONTH else day.year - 1
    return f"{start_year}-{str(start_year + 1)[-2:]}"


def season_for_datetime(moment: datetime) -> str:
    return season_for_date(moment.astimezone(EASTERN).date())


def current_season(now: datetime | None = None) -> str:
    """Season label for the current Eastern date."""
    return season_for_datetime(now or now_utc())


def core_season_year(season: str) -> int:
    """Year used by the provider's core stats API (the season's end year)."""
    try:
        return int(season.split("-")[0]) + 1
    except ValueError:
        return now_utc().year


def format_game_date(moment: datetime | date) -> str:
    """YYYYMMDD of the Eastern calendar day for a datetime or date."""
    if isinstance(moment, datetime):
        moment = moment.astimezone(EASTERN).date()
    return moment.strftime("%Y%m%d")


def date_range(start: date, end: date) -> list[date]:
    """Every calendar day from start to end, inclusive."""
    days: list[date] = []
    current = start
    while current <= end:
        days.append(current)
        current += timedelta(days=1)
    return days
