"""Post-game queue tasks: discovery, processing and cleanup.

Discovery runs once a day per league (staggered five minutes apart so the
provider sees one league at a time). Processing runs every 15 minutes and
walks whatever is ready. Cleanup drops terminal items after a week.
"""

from __future__ import annotations

from celery import shared_task

from ..config_leagues import get_enabled_leagues
from ..db import get_session
from ..live.espn import ESPNClient
from ..logging import log_context, logger
from ..services.game_queue import cleanup_old_items, discover_games, process_ready_items
from ..utils.datetime_utils import today_et
from ..utils.redis_lock import LOCK_TIMEOUT_1HOUR, LOCK_TIMEOUT_10MIN, job_lock


@shared_task(name="discover_league_games")
def discover_league_games_task(league_code: str) -> dict:
    """Queue today's (Eastern) games for one league."""
    league = league_code.upper()
    with job_lock(f"lock:discover_games:{league}", timeout=LOCK_TIMEOUT_10MIN) as acquired:
        if not acquired:
            return {"skipped": True, "reason": "locked", "league": league_code}
        day = today_et()
        with log_context(league=league), ESPNClient() as client, get_session() as session:
            counts = discover_games(session, league_code, day, client)
    return {"league": league_code, "day": str(day), **counts}


@shared_task(name="discover_all_games")
def discover_all_games_task() -> dict:
    """Queue today's games for every league, one league at a time."""
    results: dict = {}
    for league_code in get_enabled_leagues():
        try:
            results[league_code] = discover_league_games_task(league_code)
        except Exception as exc:
            logger.exception("discover_games_league_error", league=league_code, error=str(exc))
            results[league_code] = {"error": str(exc)}
    return results


@shared_task(name="process_game_queue")
def process_game_queue_task(league_code: str | None = None) -> dict:
    """Check every ready queue item."""
    with job_lock("lock:process_game_queue", timeout=LOCK_TIMEOUT_1HOUR) as acquired:
        if not acquired:
            return {"skipped": True, "reason": "locked"}
        return process_ready_items(league_code=league_code)


@shared_task(name="cleanup_game_queue")
def cleanup_game_queue_task(older_than_days: int | None = None) -> dict:
    with job_lock("lock:cleanup_game_queue", timeout=LOCK_TIMEOUT_10MIN) as acquired:
        if not acquired:
            return {"skipped": True, "reason": "locked"}
        with get_session() as session:
            deleted = cleanup_old_items(session, older_than_days=older_than_days)
        return {"deleted": deleted}
