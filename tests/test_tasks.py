"""Tests for the Celery task wrappers and beat schedule."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date
from unittest.mock import MagicMock, patch

import pytest

from factories import make_snapshot, seed_game
from hoops_sync.live.espn import FetchError, FetchErrorKind
from hoops_sync.utils.datetime_utils import now_utc


@contextmanager
def _lock(acquired: bool = True):
    yield acquired


def _lock_patch(module: str, acquired: bool = True):
    return patch(f"{module}.job_lock", side_effect=lambda *args, **kwargs: _lock(acquired))


def _client_patch(module: str, client: MagicMock):
    mock_cls = patch(f"{module}.ESPNClient")
    started = mock_cls.start()
    started.return_value.__enter__.return_value = client
    return mock_cls


# ---------------------------------------------------------------------------
# Live polling
# ---------------------------------------------------------------------------
class TestPollLiveGamesTask:
    _MOD = "hoops_sync.jobs.polling_tasks"

    @pytest.fixture
    def client(self, mock_client):
        mock_client.fetch_snapshot.side_effect = lambda league, remote_id: make_snapshot(remote_id=remote_id)
        patcher = _client_patch(self._MOD, mock_client)
        yield mock_client
        patcher.stop()

    def test_skips_when_locked(self, db_engine):
        from hoops_sync.jobs.polling_tasks import poll_live_games_task

        with _lock_patch(self._MOD, acquired=False):
            assert poll_live_games_task() == {"skipped": True, "reason": "locked"}

    def test_no_games(self, db_engine, client):
        from hoops_sync.jobs.polling_tasks import poll_live_games_task

        with _lock_patch(self._MOD):
            assert poll_live_games_task() == {"games_checked": 0}
        client.fetch_snapshot.assert_not_called()

    def test_syncs_due_games_with_jitter(self, db_engine, client):
        from hoops_sync.jobs.polling_tasks import poll_live_games_task

        seed_game(remote_id="401", status="live")
        seed_game(remote_id="402", status="live")
        seed_game(remote_id="403", status="live", last_fetched_at=now_utc())

        with _lock_patch(self._MOD), patch(f"{self._MOD}.time.sleep") as mock_sleep:
            result = poll_live_games_task()

        assert result["games_checked"] == 3
        assert result["fetched"] == 2
        assert result["throttled"] == 1
        assert result["rate_limited"] is False
        assert mock_sleep.call_count == 2
        for call in mock_sleep.call_args_list:
            assert 1.0 <= call.args[0] <= 2.0

    def test_rate_limit_backs_off_and_stops(self, db_engine, client):
        from hoops_sync.jobs.polling_tasks import poll_live_games_task

        seed_game(remote_id="401", status="live")
        seed_game(remote_id="402", status="live")
        client.fetch_snapshot.side_effect = None
        client.fetch_snapshot.return_value = FetchError(FetchErrorKind.UPSTREAM_UNAVAILABLE, 429, "HTTP 429")

        with _lock_patch(self._MOD), patch(f"{self._MOD}.time.sleep") as mock_sleep:
            result = poll_live_games_task()

        assert result["rate_limited"] is True
        assert result["games_checked"] == 1
        assert client.fetch_snapshot.call_count == 1
        mock_sleep.assert_called_once_with(60)

    def test_game_error_does_not_stop_cycle(self, db_engine, client):
        from hoops_sync.jobs.polling_tasks import poll_live_games_task

        seed_game(remote_id="401", status="live")
        seed_game(remote_id="402", status="live")
        client.fetch_snapshot.side_effect = [RuntimeError("boom"), make_snapshot(remote_id="402")]

        with _lock_patch(self._MOD), patch(f"{self._MOD}.time.sleep"):
            result = poll_live_games_task()

        assert result["errors"] == 1
        assert result["fetched"] == 1


# ---------------------------------------------------------------------------
# Queue tasks
# ---------------------------------------------------------------------------
class TestQueueTasks:
    _MOD = "hoops_sync.jobs.queue_tasks"

    def test_discover_league_games(self, db_engine, mock_client):
        from hoops_sync.jobs.queue_tasks import discover_league_games_task

        patcher = _client_patch(self._MOD, mock_client)
        try:
            with _lock_patch(self._MOD) as mock_lock, patch(f"{self._MOD}.today_et", return_value=date(2025, 6, 15)):
                with patch(f"{self._MOD}.discover_games", return_value={"found": 0}) as mock_discover:
                    result = discover_league_games_task("nba")
        finally:
            patcher.stop()

        assert result == {"league": "nba", "day": "2025-06-15", "found": 0}
        assert mock_discover.call_args.args[1:] == ("nba", date(2025, 6, 15), mock_client)
        assert mock_lock.call_args.args[0] == "lock:discover_games:NBA"

    def test_discover_league_games_locked(self):
        from hoops_sync.jobs.queue_tasks import discover_league_games_task

        with _lock_patch(self._MOD, acquired=False), patch(f"{self._MOD}.discover_games") as mock_discover:
            assert discover_league_games_task("WNBA") == {"skipped": True, "reason": "locked", "league": "WNBA"}
        mock_discover.assert_not_called()

    def test_discover_all_continues_after_league_error(self):
        from hoops_sync.jobs.queue_tasks import discover_all_games_task

        def discover(league_code):
            if league_code == "WNBA":
                raise RuntimeError("provider down")
            return {"league": league_code}

        with patch(f"{self._MOD}.discover_league_games_task", side_effect=discover):
            results = discover_all_games_task()

        assert results["NBA"] == {"league": "NBA"}
        assert results["WNBA"] == {"error": "provider down"}
        assert results["GLEAGUE"] == {"league": "GLEAGUE"}

    def test_process_game_queue(self):
        from hoops_sync.jobs.queue_tasks import process_game_queue_task

        with _lock_patch(self._MOD), patch(
            f"{self._MOD}.process_ready_items", return_value={"processed": 2}
        ) as mock_process:
            assert process_game_queue_task("NBA") == {"processed": 2}
        mock_process.assert_called_once_with(league_code="NBA")

    def test_process_game_queue_locked(self):
        from hoops_sync.jobs.queue_tasks import process_game_queue_task

        with _lock_patch(self._MOD, acquired=False), patch(f"{self._MOD}.process_ready_items") as mock_process:
            assert process_game_queue_task() == {"skipped": True, "reason": "locked"}
        mock_process.assert_not_called()

    def test_cleanup_game_queue(self, db_engine):
        from hoops_sync.jobs.queue_tasks import cleanup_game_queue_task

        with _lock_patch(self._MOD):
            assert cleanup_game_queue_task() == {"deleted": 0}


# ---------------------------------------------------------------------------
# Backfill and nightly tasks
# ---------------------------------------------------------------------------
class TestBackfillTask:
    _MOD = "hoops_sync.jobs.backfill_tasks"

    def test_parses_dates(self):
        from hoops_sync.jobs.backfill_tasks import run_backfill_task

        with _lock_patch(self._MOD), patch(f"{self._MOD}.run_backfill", return_value=7) as mock_run:
            assert run_backfill_task("nba", "2025-01-01", "2025-01-31", team_remote_id="10") == {"run_id": 7}
        mock_run.assert_called_once_with("nba", date(2025, 1, 1), date(2025, 1, 31), team_remote_id="10")

    def test_one_run_per_league(self):
        from hoops_sync.jobs.backfill_tasks import run_backfill_task

        with _lock_patch(self._MOD) as mock_lock, patch(f"{self._MOD}.run_backfill", return_value=1):
            run_backfill_task("wnba", "2025-06-01", "2025-06-02")
        assert mock_lock.call_args.args[0] == "lock:backfill:WNBA"


class TestNightlyTasks:
    _MOD = "hoops_sync.jobs.nightly_tasks"

    def test_player_stats(self):
        from hoops_sync.jobs.nightly_tasks import run_nightly_player_stats_task

        with _lock_patch(self._MOD), patch(f"{self._MOD}.run_nightly_player_stats", return_value={"NBA": {}}):
            assert run_nightly_player_stats_task() == {"NBA": {}}

    def test_core_player_stats_passes_options(self):
        from hoops_sync.jobs.nightly_tasks import backfill_core_player_stats_task

        with _lock_patch(self._MOD), patch(f"{self._MOD}.backfill_core_player_stats", return_value={}) as mock_run:
            backfill_core_player_stats_task("NBA", season="2024-25", limit=5, dry_run=True)
        mock_run.assert_called_once_with("NBA", season="2024-25", limit=5, dry_run=True)

    def test_aggregation_locked(self):
        from hoops_sync.jobs.nightly_tasks import run_nightly_aggregation_task

        with _lock_patch(self._MOD, acquired=False), patch(f"{self._MOD}.run_nightly_aggregation") as mock_run:
            assert run_nightly_aggregation_task()["skipped"] is True
        mock_run.assert_not_called()


# ---------------------------------------------------------------------------
# Celery app
# ---------------------------------------------------------------------------
class TestCeleryApp:
    def test_every_scheduled_task_is_registered_and_routed(self):
        from hoops_sync.celery_app import app
        from hoops_sync.jobs import tasks

        registered = {getattr(tasks, name).name for name in tasks.__all__}
        for entry in app.conf.beat_schedule.values():
            assert entry["task"] in registered
            assert entry["task"] in app.conf.task_routes

    def test_discovery_staggered_per_league(self):
        from hoops_sync.celery_app import app

        discovery = [
            entry for entry in app.conf.beat_schedule.values() if entry["task"] == "discover_league_games"
        ]
        assert sorted(entry["args"][0] for entry in discovery) == ["GLEAGUE", "NBA", "WNBA"]
        assert len({str(entry["schedule"]) for entry in discovery}) == 3

    def test_worker_ready_marks_stale_runs(self):
        from hoops_sync.celery_app import on_worker_ready

        with patch("hoops_sync.services.backfill.mark_stale_runs_interrupted", return_value=2) as mock_mark, patch(
            "hoops_sync.celery_app.get_session"
        ):
            on_worker_ready(sender=MagicMock(hostname="worker@1"))
        mock_mark.assert_called_once()

    @pytest.mark.parametrize(
        ("sender", "expected"),
        [(None, "unknown"), (MagicMock(hostname="worker@2"), "worker@2"), ("celery@host", "celery@host")],
    )
    def test_worker_ready_names_worker(self, sender, expected):
        from hoops_sync.celery_app import on_worker_ready

        with patch("hoops_sync.services.backfill.mark_stale_runs_interrupted", return_value=0), patch(
            "hoops_sync.celery_app.get_session"
        ), patch("hoops_sync.celery_app.logger") as mock_logger:
            on_worker_ready(sender=sender)
        mock_logger.info.assert_any_call("celery_worker_ready", worker=expected)
