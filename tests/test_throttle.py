"""Tests for the throttle gate."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from hoops_sync.services.throttle import is_terminal_status, should_fetch


def _utc_now() -> datetime:
    return datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


def _make_game(status: str = "live", last_fetched_at: datetime | None = None):
    return SimpleNamespace(status=status, last_fetched_at=last_fetched_at)


class TestShouldFetch:
    def test_never_fetched_is_due(self):
        assert should_fetch(_make_game(last_fetched_at=None), _utc_now(), 15_000) is True

    def test_inside_window_is_throttled(self):
        game = _make_game(last_fetched_at=_utc_now() - timedelta(seconds=5))
        assert should_fetch(game, _utc_now(), 15_000) is False

    def test_exactly_at_window_is_due(self):
        game = _make_game(last_fetched_at=_utc_now() - timedelta(milliseconds=15_000))
        assert should_fetch(game, _utc_now(), 15_000) is True

    def test_past_window_is_due(self):
        game = _make_game(last_fetched_at=_utc_now() - timedelta(seconds=30))
        assert should_fetch(game, _utc_now(), 15_000) is True

    @pytest.mark.parametrize("status", ["final", "postponed", "cancelled"])
    def test_terminal_never_fetched(self, status):
        assert should_fetch(_make_game(status=status), _utc_now(), 15_000) is False
        stale = _make_game(status=status, last_fetched_at=_utc_now() - timedelta(days=1))
        assert should_fetch(stale, _utc_now(), 15_000) is False

    def test_naive_last_fetched_read_as_utc(self):
        naive = (_utc_now() - timedelta(seconds=20)).replace(tzinfo=None)
        assert should_fetch(_make_game(last_fetched_at=naive), _utc_now(), 15_000) is True

    def test_window_opens_after_time_advances(self):
        now = _utc_now()
        game = _make_game(status="live", last_fetched_at=now - timedelta(seconds=10))
        assert should_fetch(game, now, 15_000) is False
        assert should_fetch(game, now + timedelta(seconds=6), 15_000) is True

    def test_zero_interval_always_due(self):
        game = _make_game(last_fetched_at=_utc_now())
        assert should_fetch(game, _utc_now(), 0) is True

    def test_scheduled_game_uses_same_gate(self):
        game = _make_game(status="scheduled", last_fetched_at=_utc_now() - timedelta(seconds=1))
        assert should_fetch(game, _utc_now(), 15_000) is False


class TestIsTerminalStatus:
    def test_terminal(self):
        assert is_terminal_status("final")
        assert is_terminal_status("cancelled")

    def test_not_terminal(self):
        assert not is_terminal_status("live")
        assert not is_terminal_status("halftime")
        assert not is_terminal_status(None)
