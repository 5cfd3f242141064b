"""Live polling task: keep in-progress games fresh.

Runs every minute and syncs each game the resolver says is due. The
throttle gate inside ``sync_if_due`` decides whether a provider call is
actually made, so a game the client API just refreshed is skipped.

Rate limit safeguards:
- Redis lock per run (prevents overlap from slow execution)
- 1-2s random jitter between games
- Capped number of games per run
- 429 response → back off, skip remaining games
"""

from __future__ import annotations

import random
import time

from celery import shared_task

from ..config import settings
from ..db import get_session
from ..live.espn import ESPNClient
from ..logging import logger
from ..services.active_games import ActiveGamesResolver
from ..services.live_sync import sync_if_due
from ..utils.redis_lock import job_lock


@shared_task(name="poll_live_games")
def poll_live_games_task(league_code: str | None = None) -> dict:
    """Sync every game that is live or about to tip off."""
    polling = settings.polling_config
    pacing = settings.pacing_config

    with job_lock("lock:poll_live_games", timeout=polling.sync_lock_seconds) as acquired:
        if not acquired:
            return {"skipped": True, "reason": "locked"}

        with get_session() as session:
            games = ActiveGamesResolver().get_games_due_for_live_sync(
                session,
                league_code=league_code,
                limit=polling.max_live_games_per_cycle,
            )
            game_ids = [game.id for game in games]

        if not game_ids:
            logger.debug("poll_live_games_no_games")
            return {"games_checked": 0}

        logger.info("poll_live_games_start", games_count=len(game_ids))
        counts = {"games_checked": 0, "fetched": 0, "throttled": 0, "terminal": 0, "errors": 0}
        rate_limited = False

        with ESPNClient() as client:
            for index, game_id in enumerate(game_ids):
                if index > 0:
                    time.sleep(random.uniform(pacing.live_jitter_min_seconds, pacing.live_jitter_max_seconds))

                try:
                    outcome = sync_if_due(game_id, client=client)
                except Exception as exc:
                    logger.warning("poll_live_games_game_error", game_id=game_id, error=str(exc))
                    counts["errors"] += 1
                    continue

                counts["games_checked"] += 1
                if outcome.fetched:
                    counts["fetched"] += 1
                elif outcome.reason in ("throttled", "terminal"):
                    counts[outcome.reason] += 1
                elif outcome.error is not None:
                    counts["errors"] += 1
                    if outcome.error.is_rate_limited:
                        logger.warning("poll_live_games_rate_limited", game_id=game_id)
                        rate_limited = True
                        time.sleep(pacing.rate_limit_backoff_seconds)
                        break

        logger.info("poll_live_games_complete", rate_limited=rate_limited, **counts)
        return {**counts, "rate_limited": rate_limited}
