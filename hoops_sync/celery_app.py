"""Celery app configuration for the hoops-sync worker."""

from __future__ import annotations

from celery import Celery, signals
from celery.schedules import crontab

from .config import settings
from .db import get_session
from .logging import logger

_QUEUE = "hoops-sync"
_ROUTE = {"queue": _QUEUE, "routing_key": _QUEUE}

celery_config = {
    "task_serializer": "json",
    "accept_content": ["json"],
    "result_serializer": "json",
    "timezone": "UTC",
    "enable_utc": True,
    "task_track_started": True,
    "worker_prefetch_multiplier": 1,
    "task_time_limit": 14400,       # 4 hours hard limit
    "task_soft_time_limit": 13800,  # 3h 50m soft limit
    "task_default_queue": _QUEUE,
}

app = Celery(
    "hoops-sync",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["hoops_sync.jobs.tasks"],
)
app.conf.update(**celery_config)
app.conf.task_routes = {
    "poll_live_games": _ROUTE,
    "discover_league_games": _ROUTE,
    "discover_all_games": _ROUTE,
    "process_game_queue": _ROUTE,
    "cleanup_game_queue": _ROUTE,
    "run_backfill": _ROUTE,
    "run_nightly_player_stats": _ROUTE,
    "backfill_core_player_stats": _ROUTE,
    "run_nightly_aggregation": _ROUTE,
}
# All times UTC. Provider-heavy jobs are staggered so only one league is
# being fetched at a time:
#   15:00 / 15:05 / 15:10 - post-game queue discovery (NBA, WNBA, G League)
#   18:00 / 18:20 / 18:40 - core player stats patch (NBA, WNBA, G League)
#   07:00                 - provider season stats for every roster
#   09:00                 - season averages and rankings
app.conf.beat_schedule = {
    "live-games-poll-every-minute": {
        "task": "poll_live_games",
        "schedule": crontab(minute="*"),
        "options": _ROUTE,
    },
    "nba-game-discovery-daily": {
        "task": "discover_league_games",
        "schedule": crontab(minute=0, hour=15),
        "args": ("NBA",),
        "options": _ROUTE,
    },
    "wnba-game-discovery-daily": {
        "task": "discover_league_games",
        "schedule": crontab(minute=5, hour=15),
        "args": ("WNBA",),
        "options": _ROUTE,
    },
    "gleague-game-discovery-daily": {
        "task": "discover_league_games",
        "schedule": crontab(minute=10, hour=15),
        "args": ("GLEAGUE",),
        "options": _ROUTE,
    },
    "game-queue-process-every-15-min": {
        "task": "process_game_queue",
        "schedule": crontab(minute="*/15"),
        "options": _ROUTE,
    },
    "game-queue-cleanup-daily": {
        "task": "cleanup_game_queue",
        "schedule": crontab(minute=30, hour=8),
        "options": _ROUTE,
    },
    "nightly-player-stats": {
        "task": "run_nightly_player_stats",
        "schedule": crontab(minute=0, hour=7),
        "options": _ROUTE,
    },
    "nightly-aggregation": {
        "task": "run_nightly_aggregation",
        "schedule": crontab(minute=0, hour=9),
        "options": _ROUTE,
    },
    "nba-core-player-stats-daily": {
        "task": "backfill_core_player_stats",
        "schedule": crontab(minute=0, hour=18),
        "args": ("NBA",),
        "options": _ROUTE,
    },
    "wnba-core-player-stats-daily": {
        "task": "backfill_core_player_stats",
        "schedule": crontab(minute=20, hour=18),
        "args": ("WNBA",),
        "options": _ROUTE,
    },
    "gleague-core-player-stats-daily": {
        "task": "backfill_core_player_stats",
        "schedule": crontab(minute=40, hour=18),
        "args": ("GLEAGUE",),
        "options": _ROUTE,
    },
}


@signals.worker_ready.connect
def on_worker_ready(sender=None, **kwargs):
    """Called when the worker is ready. Mark backfill runs left running as interrupted."""
    from .services.backfill import mark_stale_runs_interrupted

    worker_name = "unknown"
    if sender is not None:
        worker_name = getattr(sender, "hostname", None) or str(sender)
    logger.info("celery_worker_ready", worker=worker_name)
    try:
        with get_session() as session:
            count = mark_stale_runs_interrupted(session)
        if count:
            logger.info("stale_backfill_runs_interrupted", count=count)
    except Exception as exc:
        logger.exception("failed_to_mark_stale_runs", error=str(exc))
