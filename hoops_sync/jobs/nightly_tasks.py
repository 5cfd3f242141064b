"""Nightly jobs: provider season stats and season aggregation."""

from __future__ import annotations

from celery import shared_task

from ..services.nightly import (
    backfill_core_player_stats,
    run_nightly_aggregation,
    run_nightly_player_stats,
)
from ..utils.redis_lock import LOCK_TIMEOUT_1HOUR, job_lock


@shared_task(name="run_nightly_player_stats")
def run_nightly_player_stats_task() -> dict:
    with job_lock("lock:nightly_player_stats", timeout=LOCK_TIMEOUT_1HOUR * 3) as acquired:
        if not acquired:
            return {"skipped": True, "reason": "locked"}
        return run_nightly_player_stats()


@shared_task(name="backfill_core_player_stats")
def backfill_core_player_stats_task(
    league_code: str,
    season: str | None = None,
    limit: int | None = None,
    dry_run: bool = False,
) -> dict:
    """Patch provider season stats for one league from the core feed."""
    with job_lock(f"lock:core_player_stats:{league_code.upper()}", timeout=LOCK_TIMEOUT_1HOUR) as acquired:
        if not acquired:
            return {"skipped": True, "reason": "locked"}
        return backfill_core_player_stats(league_code, season=season, limit=limit, dry_run=dry_run)


@shared_task(name="run_nightly_aggregation")
def run_nightly_aggregation_task() -> dict:
    with job_lock("lock:nightly_aggregation", timeout=LOCK_TIMEOUT_1HOUR) as acquired:
        if not acquired:
            return {"skipped": True, "reason": "locked"}
        return run_nightly_aggregation()
