"""Tests for log level resolution and per-game log context."""

from __future__ import annotations

import logging

from structlog.contextvars import get_contextvars

from factories import make_snapshot, seed_game
from hoops_sync.logging import _normalize_log_level, drop_unset_context, log_context
from hoops_sync.services.live_sync import sync_if_due


class TestLogLevel:
    def test_defaults_by_environment(self):
        assert _normalize_log_level(None, "production") == logging.INFO
        assert _normalize_log_level(None, "development") == logging.DEBUG

    def test_explicit_level_wins(self):
        assert _normalize_log_level(" warning ", "development") == logging.WARNING

    def test_unknown_level_falls_back_to_info(self):
        assert _normalize_log_level("chatty", "development") == logging.INFO


class TestLogContext:
    def test_bound_only_inside_block(self):
        with log_context(league="NBA", game_id=7):
            assert get_contextvars()["league"] == "NBA"
            assert get_contextvars()["game_id"] == 7
        assert "league" not in get_contextvars()
        assert "game_id" not in get_contextvars()

    def test_nested_block_restores_outer_values(self):
        with log_context(league="NBA"):
            with log_context(league="WNBA", run_id=3):
                assert get_contextvars()["league"] == "WNBA"
            assert get_contextvars()["league"] == "NBA"
            assert "run_id" not in get_contextvars()

    def test_unset_values_dropped(self):
        event = {"event": "backfill_started", "team_remote_id": None, "league": "NBA"}
        assert drop_unset_context(None, "info", event) == {"event": "backfill_started", "league": "NBA"}

    def test_live_sync_logs_carry_game(self, db_engine, mock_client):
        game_id = seed_game(status="live")
        seen: dict = {}

        def fetch(league, remote_id):
            seen.update(get_contextvars())
            return make_snapshot(status="live")

        mock_client.fetch_snapshot.side_effect = fetch
        sync_if_due(game_id, client=mock_client)

        assert seen["league"] == "NBA"
        assert seen["game_id"] == game_id
        assert seen["remote_id"] == "401"
        assert "game_id" not in get_contextvars()
