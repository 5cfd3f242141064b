"""
Generic, format-agnostic parsing utilities.

Provider stats arrive as display strings ("32", "5-10", "--", "+7").
Helpers here never raise on malformed input.
"""

from __future__ import annotations

import math


def parse_int(value: str | int | float | None) -> int | None:
    """Parse a value to an integer, handling common edge cases.

    Accepts strings, ints, floats, or None. Returns None for empty strings,
    "-", "--" and non-finite numbers ("inf", "NaN").
    """
    if value in (None, "", "-", "--"):
        return None
    try:
        parsed = float(value)
    except (ValueError, TypeError, OverflowError):
        return None
    return int(parsed) if math.isfinite(parsed) else None


def parse_float(value: str | int | float | None) -> float | None:
    """Parse a value to a float, handling common edge cases."""
    if value in (None, "", "-", "--"):
        return None
    try:
        # Handle time format like "32:45" (minutes:seconds)
        if ":" in str(value):
            parts = str(value).split(":")
            if len(parts) == 2:
                parsed = float(parts[0]) + float(parts[1]) / 60
                return parsed if math.isfinite(parsed) else None
        parsed = float(value)
    except (ValueError, TypeError, OverflowError):
        return None
    return parsed if math.isfinite(parsed) else None


def int_or_zero(value: str | int | float | None) -> int:
    parsed = parse_int(value)
    return parsed if parsed is not None else 0


def float_or_zero(value: str | int | float | None) -> float:
    parsed = parse_float(value)
    return parsed if parsed is not None else 0.0


def parse_split(value: str | None) -> tuple[int, int]:
    """Parse a "made-attempted" string like "5-10" into (5, 10).

    Anything that is not a two-part split returns (0, 0).
    """
    if not value or "-" not in str(value):
        return 0, 0
    made, _, attempted = str(value).partition("-")
    return int_or_zero(made), int_or_zero(attempted)
