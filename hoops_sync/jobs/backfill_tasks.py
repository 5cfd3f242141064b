"""On-demand historical backfill."""

from __future__ import annotations

from datetime import date

from celery import shared_task

from ..services.backfill import run_backfill
from ..utils.redis_lock import LOCK_TIMEOUT_1HOUR, job_lock


@shared_task(name="run_backfill")
def run_backfill_task(
    league_code: str,
    start_date: str,
    end_date: str,
    team_remote_id: str | None = None,
) -> dict:
    """Backfill one league between two ISO dates (inclusive).

    One backfill per league at a time; a second request while one is
    running is skipped, not queued.
    """
    with job_lock(f"lock:backfill:{league_code.upper()}", timeout=LOCK_TIMEOUT_1HOUR) as acquired:
        if not acquired:
            return {"skipped": True, "reason": "locked"}
        run_id = run_backfill(
            league_code,
            date.fromisoformat(start_date),
            date.fromisoformat(end_date),
            team_remote_id=team_remote_id,
        )
    return {"run_id": run_id}
