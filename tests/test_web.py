"""Tests for the client-facing HTTP endpoints."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from factories import make_snapshot, seed_game
from hoops_sync.db import db_models, get_session
from hoops_sync.live.espn import FetchError, FetchErrorKind
from hoops_sync.persistence.reconcile import reconcile
from hoops_sync.utils.datetime_utils import now_utc
from hoops_sync.web import app

_LIVE_SYNC = "hoops_sync.services.live_sync"


@pytest.fixture
def api(db_engine):
    return TestClient(app)


@pytest.fixture
def provider(mock_client):
    with patch(f"{_LIVE_SYNC}.ESPNClient", return_value=mock_client):
        yield mock_client


class TestLiveGameEndpoint:
    def test_refreshes_due_game(self, api, provider):
        game_id = seed_game(status="live")
        provider.fetch_snapshot.return_value = make_snapshot(status="live", home_score=71, away_score=68)

        response = api.get(f"/api/games/{game_id}/live")

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == game_id
        assert body["league"] == "NBA"
        assert body["status"] == "live"
        assert body["status_detail"] == "Q3 4:12"
        assert body["home_team"]["score"] == 71
        assert body["away_team"]["abbreviation"] == "T20"
        assert body["refreshed"] is True
        assert body["next_poll_interval_ms"] == 15_000
        assert body["last_fetched_at"] is not None
        provider.close.assert_called_once()

    def test_throttled_game_served_from_store(self, api, provider):
        game_id = seed_game(status="live", last_fetched_at=now_utc())

        response = api.get(f"/api/games/{game_id}/live")

        assert response.status_code == 200
        assert response.json()["refreshed"] is False
        provider.fetch_snapshot.assert_not_called()

    def test_final_game_stops_polling(self, api, provider):
        game_id = seed_game(status="final")
        response = api.get(f"/api/games/{game_id}/live")
        assert response.json()["next_poll_interval_ms"] is None
        provider.fetch_snapshot.assert_not_called()

    def test_provider_outage_still_returns_state(self, api, provider):
        game_id = seed_game(status="live")
        provider.fetch_snapshot.return_value = FetchError(FetchErrorKind.UPSTREAM_UNAVAILABLE, 503, "HTTP 503")

        response = api.get(f"/api/games/{game_id}/live")

        assert response.status_code == 200
        assert response.json()["refreshed"] is False
        assert response.json()["last_fetched_at"] is None

    def test_unknown_game(self, api, provider):
        response = api.get("/api/games/9999/live")
        assert response.status_code == 404


class TestRankingsEndpoint:
    def test_active_rankings(self, api):
        game_id = seed_game(status="live")
        with get_session() as session:
            game = session.get(db_models.Game, game_id)
            reconcile(session, game, make_snapshot(status="final", home_score=110, away_score=101))

        response = api.get("/api/leagues/nba/rankings", params={"season": "2024-25"})

        assert response.status_code == 200
        body = response.json()
        assert body["league"] == "NBA"
        assert body["season"] == "2024-25"
        assert len(body["teams"]) == 2
        assert sorted(ranks["ppg"] for ranks in body["teams"].values()) == [1, 2]

    def test_no_rankings_yet(self, api):
        seed_game(league="WNBA", home="w1", away="w2")
        response = api.get("/api/leagues/wnba/rankings", params={"season": "2024-25"})
        assert response.status_code == 200
        assert response.json()["teams"] == {}

    def test_league_without_data_is_not_created(self, api):
        response = api.get("/api/leagues/gleague/rankings")

        assert response.status_code == 404
        with get_session() as session:
            assert session.execute(select(func.count()).select_from(db_models.League)).scalar() == 0

    def test_unknown_league(self, api):
        response = api.get("/api/leagues/nfl/rankings")
        assert response.status_code == 404


def test_healthz(api):
    assert api.get("/healthz").json() == {"status": "ok"}
