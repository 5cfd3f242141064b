"""Re-poll policy for live games and abandonment policy for queued work.

Both functions are pure given their inputs; callers decide how they are
invoked (timer, focus event, cron tick).
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from ..config import settings
from ..orm.queue import TERMINAL_QUEUE_STATUSES
from ..orm.sports import GameStatus, IN_GAME_STATUSES
from ..utils.datetime_utils import to_utc
from .throttle import is_terminal_status

_BREAK_STATUSES = frozenset({GameStatus.halftime.value})


def next_poll_interval_ms(game: Any, now: datetime) -> int | None:
    """Milliseconds until the next poll, or None to stop polling.

    - terminal (final, postponed, cancelled): None
    - in game: live interval, halftime uses the longer break interval
    - scheduled inside the pre-game window: live interval
    - scheduled further out, or without a start time: None
    """
    config = settings.polling_config
    status = game.status

    if is_terminal_status(status):
        return None

    if status in IN_GAME_STATUSES:
        if status in _BREAK_STATUSES:
            return config.break_poll_interval_ms
        return config.live_poll_interval_ms

    if game.scheduled_start is None:
        return None

    window = timedelta(minutes=config.pregame_window_minutes)
    if to_utc(game.scheduled_start) - to_utc(now) > window:
        return None
    return config.live_poll_interval_ms


def abandon_deadline(scheduled_start: datetime) -> datetime:
    """Point after which a queued game that never reported final is given up."""
    return to_utc(scheduled_start) + timedelta(minutes=settings.polling_config.abandon_after_minutes)


def first_check_time(scheduled_start: datetime) -> datetime:
    """Earliest time the post-game queue looks at a game."""
    return to_utc(scheduled_start) + timedelta(minutes=settings.polling_config.first_check_delay_minutes)


def should_abandon(item: Any, now: datetime) -> bool:
    """True once a non-terminal queue item passes its deadline or check budget."""
    if item.status in TERMINAL_QUEUE_STATUSES:
        return False
    if item.abandon_at is not None and to_utc(now) >= to_utc(item.abandon_at):
        return True
    return item.check_count >= settings.polling_config.max_checks
