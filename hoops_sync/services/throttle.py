"""Throttle gate: has enough time passed to call the provider again?"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from ..orm.sports import TERMINAL_GAME_STATUSES
from ..utils.datetime_utils import elapsed_ms


def is_terminal_status(status: str | None) -> bool:
    return status in TERMINAL_GAME_STATUSES


def should_fetch(game: Any, now: datetime, min_interval_ms: int) -> bool:
    """Decide whether a game may be fetched again.

    True when the game has never been fetched or ``min_interval_ms`` has
    elapsed since ``last_fetched_at``; always False for terminal games.
    Pure: reads ``status`` and ``last_fetched_at`` only.
    """
    if is_terminal_status(game.status):
        return False
    if game.last_fetched_at is None:
        return True
    return elapsed_ms(now, game.last_fetched_at) >= min_interval_ms
