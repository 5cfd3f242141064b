"""Tests for season averages and the league ranking swap."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import select

from factories import make_snapshot, player_line, seed_game
from hoops_sync.db import db_models, get_session
from hoops_sync.persistence.reconcile import reconcile
from hoops_sync.services.aggregation import (
    RANKED_STATS,
    compute_rankings,
    get_active_rankings,
    recalculate_player_averages,
    recalculate_team_averages,
    update_league_rankings,
)


def _utc_now() -> datetime:
    return datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


def _finish_game(remote_id: str, home_score: int, away_score: int, home="10", away="20", players=None) -> int:
    """Seed a live game and reconcile a final snapshot into it without aggregates."""
    game_id = seed_game(remote_id=remote_id, status="live", home=home, away=away)
    snapshot = make_snapshot(status="final", home_score=home_score, away_score=away_score, remote_id=remote_id)
    snapshot = snapshot.model_copy(update={"players": players if players is not None else snapshot.players})
    with get_session() as session:
        game = session.get(db_models.Game, game_id)
        reconcile(session, game, snapshot, now=_utc_now(), recompute_aggregates=False)
    return game_id


def _team_id(remote_id: str) -> int:
    with get_session() as session:
        return session.execute(select(db_models.Team.id).where(db_models.Team.remote_id == remote_id)).scalar_one()


def _league_id() -> int:
    with get_session() as session:
        return session.execute(select(db_models.League.id)).scalar_one()


# ---------------------------------------------------------------------------
# compute_rankings (pure)
# ---------------------------------------------------------------------------
class TestComputeRankings:
    def _averages(self, **overrides) -> dict:
        base = {stat: 10.0 for stat, _, _ in RANKED_STATS}
        base.update(overrides)
        return base

    def test_descending_and_ascending(self):
        ranks = compute_rankings(
            {
                1: self._averages(ppg=110, opp_ppg=100, tov_pg=15),
                2: self._averages(ppg=120, opp_ppg=105, tov_pg=12),
            }
        )
        assert ranks[2]["ppg"] == 1
        assert ranks[1]["ppg"] == 2
        assert ranks[1]["opp_ppg"] == 1
        assert ranks[2]["tov_pg"] == 1

    def test_teams_without_offensive_rating_are_excluded(self):
        ranks = compute_rankings({1: self._averages(ortg=0), 2: self._averages()})
        assert list(ranks) == [2]
        assert ranks[2]["ppg"] == 1

    def test_optional_stat_only_ranks_positive_values(self):
        ranks = compute_rankings({1: self._averages(bpg=0), 2: self._averages(bpg=4)})
        assert "bpg" not in ranks[1]
        assert ranks[2]["bpg"] == 1
        assert ranks[1]["ppg"] in (1, 2)

    def test_ast_to_ratio_needs_assists_and_turnovers(self):
        ranks = compute_rankings({1: self._averages(tov_pg=0), 2: self._averages()})
        assert "ast_to_ratio" not in ranks[1]
        assert ranks[2]["ast_to_ratio"] == 1

    def test_ties_broken_by_team_id(self):
        ranks = compute_rankings({7: self._averages(), 3: self._averages()})
        assert ranks[3]["ppg"] == 1
        assert ranks[7]["ppg"] == 2

    def test_empty(self):
        assert compute_rankings({}) == {}


# ---------------------------------------------------------------------------
# Team and player averages
# ---------------------------------------------------------------------------
class TestTeamAverages:
    def test_two_games(self, db_engine):
        _finish_game("401", 110, 100)
        _finish_game("402", 100, 90)
        team_id = _team_id("10")

        with get_session() as session:
            averages = recalculate_team_averages(session, team_id, "2024-25")
            row = session.execute(
                select(db_models.TeamSeasonStats).where(db_models.TeamSeasonStats.team_id == team_id)
            ).scalar_one()

        assert row.games_played == 2
        assert averages["ppg"] == 105.0
        assert averages["opp_ppg"] == pytest.approx(95.0, abs=0.2)
        assert averages["margin"] == pytest.approx(10.0, abs=0.2)
        assert averages["rpg"] == 44.0
        assert averages["apg"] == 25.0
        assert averages["ast_to_ratio"] == round(25 / 12, 2)
        assert averages["fg_pct"] == round(80 / 170 * 100, 1)
        assert averages["total_fg_attempted"] == 170
        assert averages["ortg"] > averages["drtg"]
        assert row.averages == averages

    def test_only_final_games_count(self, db_engine):
        _finish_game("401", 110, 100)
        live_id = seed_game(remote_id="402", status="live")
        with get_session() as session:
            game = session.get(db_models.Game, live_id)
            reconcile(session, game, make_snapshot(remote_id="402"), now=_utc_now())
            averages = recalculate_team_averages(session, _team_id("10"), "2024-25")
        assert averages["ppg"] == 110.0

    def test_no_games(self, db_engine):
        seed_game()
        with get_session() as session:
            assert recalculate_team_averages(session, _team_id("10"), "2024-25") is None

    def test_recompute_is_stable(self, db_engine):
        _finish_game("401", 110, 100)
        with get_session() as session:
            first = recalculate_team_averages(session, _team_id("10"), "2024-25")
            second = recalculate_team_averages(session, _team_id("10"), "2024-25")
            count = len(session.execute(select(db_models.TeamSeasonStats)).scalars().all())
        assert first == second
        assert count == 1


class TestPlayerAverages:
    def test_counts_only_games_played(self, db_engine):
        _finish_game("401", 110, 100, players=[player_line("p1", "10", points=20, starter=True)])
        _finish_game("402", 100, 90, players=[player_line("p1", "10", points=30)])
        _finish_game("403", 95, 90, players=[player_line("p1", "10", points=0, minutes=0, active=False)])

        with get_session() as session:
            player_id = session.execute(select(db_models.Player.id)).scalar_one()
            averages = recalculate_player_averages(session, player_id, "2024-25")
            row = session.execute(select(db_models.PlayerSeasonStats)).scalar_one()

        assert averages["points_per_game"] == 25.0
        assert averages["minutes_per_game"] == 24.0
        assert averages["field_goal_pct"] == round(8 / 18 * 100, 1)
        assert row.games_played == 2
        assert row.games_started == 1

    def test_keeps_provider_stats(self, db_engine):
        _finish_game("401", 110, 100, players=[player_line("p1", "10", points=20)])
        with get_session() as session:
            player_id = session.execute(select(db_models.Player.id)).scalar_one()
            session.add(
                db_models.PlayerSeasonStats(
                    player_id=player_id, season="2024-25", averages={}, provider_stats={"points_per_game": 19.5}
                )
            )
        with get_session() as session:
            recalculate_player_averages(session, player_id, "2024-25")
        with get_session() as session:
            row = session.execute(select(db_models.PlayerSeasonStats)).scalar_one()
        assert row.provider_stats == {"points_per_game": 19.5}
        assert row.averages["points_per_game"] == 20.0


# ---------------------------------------------------------------------------
# Ranking generations
# ---------------------------------------------------------------------------
class TestRankingSwap:
    def _prepare(self):
        _finish_game("401", 110, 100)
        with get_session() as session:
            for remote_id in ("10", "20"):
                recalculate_team_averages(session, _team_id(remote_id), "2024-25")

    def test_first_build_becomes_generation_one(self, db_engine):
        self._prepare()
        with get_session() as session:
            generation = update_league_rankings(session, _league_id(), "2024-25", now=_utc_now())
        assert generation == 1

        with get_session() as session:
            ranks = get_active_rankings(session, _league_id(), "2024-25")
            pointer = session.execute(select(db_models.RankingGeneration)).scalar_one()
        assert ranks[_team_id("10")]["ppg"] == 1
        assert ranks[_team_id("20")]["ppg"] == 2
        assert pointer.active_generation == 1
        assert pointer.swapped_at == _utc_now()

    def test_rebuild_swaps_and_drops_old_generation(self, db_engine):
        self._prepare()
        with get_session() as session:
            update_league_rankings(session, _league_id(), "2024-25")
        with get_session() as session:
            assert update_league_rankings(session, _league_id(), "2024-25") == 2

        with get_session() as session:
            generations = set(session.execute(select(db_models.TeamRanking.generation)).scalars().all())
        assert generations == {2}

    def test_failed_build_leaves_live_rankings(self, db_engine):
        self._prepare()
        with get_session() as session:
            update_league_rankings(session, _league_id(), "2024-25")

        with pytest.raises(RuntimeError):
            with get_session() as session:
                with patch.object(session, "add_all", side_effect=RuntimeError("crash mid-build")):
                    update_league_rankings(session, _league_id(), "2024-25")

        with get_session() as session:
            ranks = get_active_rankings(session, _league_id(), "2024-25")
            pointer = session.execute(select(db_models.RankingGeneration)).scalar_one()
        assert pointer.active_generation == 1
        assert ranks[_team_id("10")]["ppg"] == 1

    def test_no_valid_teams_keeps_current(self, db_engine):
        seed_game()
        with get_session() as session:
            assert update_league_rankings(session, _league_id(), "2024-25") is None
            assert get_active_rankings(session, _league_id(), "2024-25") == {}
