"""Celery task registry.

Re-exports every task for Celery discovery. New code should import from the
specific task modules:
- polling_tasks: live game polling
- queue_tasks: post-game queue discovery, processing and cleanup
- backfill_tasks: historical backfill
- nightly_tasks: provider season stats and aggregation
"""

from __future__ import annotations

from .backfill_tasks import run_backfill_task
from .nightly_tasks import (
    backfill_core_player_stats_task,
    run_nightly_aggregation_task,
    run_nightly_player_stats_task,
)
from .polling_tasks import poll_live_games_task
from .queue_tasks import (
    cleanup_game_queue_task,
    discover_all_games_task,
    discover_league_games_task,
    process_game_queue_task,
)

__all__ = [
    "backfill_core_player_stats_task",
    "cleanup_game_queue_task",
    "discover_all_games_task",
    "discover_league_games_task",
    "poll_live_games_task",
    "process_game_queue_task",
    "run_backfill_task",
    "run_nightly_aggregation_task",
    "run_nightly_player_stats_task",
]
