"""Tests for ESPN payload normalization."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from hoops_sync.config_leagues import get_league_adapter
from hoops_sync.normalization.espn import (
    ProviderShapeError,
    map_provider_state,
    normalize_core_stats,
    normalize_player_overview,
    normalize_roster,
    normalize_scoreboard,
    normalize_summary,
)

NBA = get_league_adapter("NBA")


def _competitor(side: str, team_id: str, score: str | None = "101") -> dict:
    return {
        "homeAway": side,
        "score": score,
        "team": {
            "id": team_id,
            "displayName": f"Team {team_id}",
            "abbreviation": f"T{team_id}",
            "color": "1d428a",
            "logos": [{"href": f"https://logo/{team_id}.png"}],
        },
    }


def _summary_payload(state: str = "in", detail: str = "Q3 4:12") -> dict:
    return {
        "header": {
            "id": "401",
            "competitions": [
                {
                    "id": "401",
                    "date": "2025-01-15T00:30Z",
                    "status": {"type": {"state": state, "detail": detail}},
                    "venue": {"fullName": "Chase Center"},
                    "competitors": [_competitor("home", "10", "88"), _competitor("away", "20", "80")],
                }
            ],
        },
        "boxscore": {
            "teams": [
                {
                    "team": {"id": "10"},
                    "statistics": [
                        {"name": "fieldGoalsMade-fieldGoalsAttempted", "displayValue": "33-70"},
                        {"name": "threePointFieldGoalsMade-threePointFieldGoalsAttempted", "displayValue": "11-30"},
                        {"name": "freeThrowsMade-freeThrowsAttempted", "displayValue": "11-14"},
                        {"name": "totalRebounds", "displayValue": "40"},
                        {"name": "offensiveRebounds", "displayValue": "9"},
                        {"name": "turnovers", "displayValue": "0"},
                        {"name": "totalTurnovers", "displayValue": "13"},
                        {"name": "assists", "displayValue": "--"},
                    ],
                },
            ],
            "players": [
                {
                    "team": {"id": "10"},
                    "statistics": [
                        {
                            "labels": ["MIN", "PTS", "FG", "3PT", "FT", "REB", "AST", "TO", "+/-"],
                            "athletes": [
                                {
                                    "athlete": {
                                        "id": "p1",
                                        "displayName": "Star Guard",
                                        "jersey": "30",
                                        "position": {"abbreviation": "G"},
                                    },
                                    "starter": True,
                                    "active": True,
                                    "stats": ["36", "31", "11-20", "5-11", "4-4", "6", "8", "2", "+12"],
                                },
                                {
                                    "athlete": {"id": "p2", "displayName": "Bench Big"},
                                    "active": True,
                                    "didNotPlay": True,
                                    "stats": [],
                                },
                                {"athlete": {}, "stats": ["10"]},
                            ],
                        }
                    ],
                }
            ],
        },
    }


# ---------------------------------------------------------------------------
# map_provider_state
# ---------------------------------------------------------------------------
class TestMapProviderState:
    @pytest.mark.parametrize(
        ("state", "detail", "expected"),
        [
            ("pre", None, "scheduled"),
            ("in", "Q2 3:00", "live"),
            ("in", "Halftime", "halftime"),
            ("in", "End of 3rd Quarter", "end_of_period"),
            ("in", "1st Overtime 2:00", "overtime"),
            ("post", "Final", "final"),
            ("postponed", None, "postponed"),
            ("canceled", None, "cancelled"),
            (None, None, "scheduled"),
            ("mystery", None, "scheduled"),
        ],
    )
    def test_mapping(self, state, detail, expected):
        assert map_provider_state(state, detail) == expected


# ---------------------------------------------------------------------------
# normalize_summary
# ---------------------------------------------------------------------------
class TestNormalizeSummary:
    def test_game_fields(self):
        snapshot = normalize_summary(_summary_payload(), NBA)
        assert snapshot.league_code == "NBA"
        assert snapshot.remote_id == "401"
        assert snapshot.status == "live"
        assert snapshot.status_detail == "Q3 4:12"
        assert snapshot.scheduled_start == datetime(2025, 1, 15, 0, 30, tzinfo=timezone.utc)
        assert snapshot.venue == "Chase Center"
        assert snapshot.home.score == 88
        assert snapshot.away.score == 80

    def test_team_identity(self):
        snapshot = normalize_summary(_summary_payload(), NBA)
        team = snapshot.home.team
        assert team.remote_id == "10"
        assert team.logo_url == "https://logo/10.png"
        assert team.color_hex == "#1d428a"

    def test_team_stats_with_fallback_and_bad_values(self):
        stats = normalize_summary(_summary_payload(), NBA).home.stats
        assert stats["fg_made"] == 33
        assert stats["fg_attempted"] == 70
        assert stats["three_made"] == 11
        assert stats["rebounds"] == 40
        assert stats["turnovers"] == 13
        assert stats["assists"] == 0
        assert stats["steals"] == 0

    def test_away_team_without_box_score(self):
        assert normalize_summary(_summary_payload(), NBA).away.stats == {}

    def test_player_lines(self):
        players = normalize_summary(_summary_payload(), NBA).players
        assert [p.player.remote_id for p in players] == ["p1", "p2"]
        star, bench = players
        assert star.team_remote_id == "10"
        assert star.starter is True
        assert star.active is True
        assert star.minutes == 36
        assert star.plus_minus == 12
        assert star.stats["points"] == 31
        assert star.stats["fg_made"] == 11
        assert star.stats["three_attempted"] == 11
        assert star.player.position == "G"
        assert bench.active is False
        assert bench.minutes == 0
        assert bench.stats["points"] == 0

    def test_final_status(self):
        snapshot = normalize_summary(_summary_payload(state="post", detail="Final"), NBA)
        assert snapshot.is_final

    def test_missing_competition_raises(self):
        with pytest.raises(ProviderShapeError):
            normalize_summary({"header": {"competitions": []}}, NBA)

    def test_missing_competitor_raises(self):
        payload = _summary_payload()
        payload["header"]["competitions"][0]["competitors"] = [_competitor("home", "10")]
        with pytest.raises(ProviderShapeError):
            normalize_summary(payload, NBA)


# ---------------------------------------------------------------------------
# normalize_scoreboard
# ---------------------------------------------------------------------------
class TestNormalizeScoreboard:
    def test_parses_events_and_skips_malformed(self):
        payload = {
            "events": [
                {
                    "id": "401",
                    "date": "2025-01-15T00:30Z",
                    "status": {"type": {"state": "post", "detail": "Final"}},
                    "competitions": [
                        {"competitors": [_competitor("home", "10"), _competitor("away", "20")]}
                    ],
                },
                {"id": "402", "competitions": [{"competitors": []}]},
                {"competitions": [{}]},
            ]
        }
        games = normalize_scoreboard(payload, NBA)
        assert len(games) == 1
        assert games[0].remote_id == "401"
        assert games[0].status == "final"
        assert games[0].involves("20")
        assert not games[0].involves("99")
        assert games[0].scheduled_start == datetime(2025, 1, 15, 0, 30, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# rosters and player season stats
# ---------------------------------------------------------------------------
class TestNormalizeRoster:
    def test_prefers_all_group(self):
        payload = {
            "positionGroups": [
                {"type": "guards", "athletes": [{"id": "g1", "displayName": "Guard"}]},
                {"type": "all", "athletes": [{"id": "a1", "displayName": "Anyone", "jersey": "7"}, {}]},
            ]
        }
        roster = normalize_roster(payload)
        assert [p.remote_id for p in roster] == ["a1"]
        assert roster[0].jersey == "7"

    def test_flat_athletes(self):
        roster = normalize_roster({"athletes": [{"id": "1", "fullName": "Flat Player"}]})
        assert roster[0].name == "Flat Player"


class TestNormalizePlayerOverview:
    def test_reads_first_split(self):
        payload = {
            "statistics": {
                "names": ["gamesPlayed", "avgPoints", "fieldGoalPct"],
                "splits": [{"stats": ["41", "22.4", "48.1"]}, {"stats": ["5", "30", "50"]}],
            }
        }
        line = normalize_player_overview(payload)
        assert line.games_played == 41
        assert line.games_started == 41
        assert line.points_per_game == 22.4
        assert line.field_goal_pct == 48.1
        assert line.rebounds_per_game == 0

    def test_no_stats(self):
        assert normalize_player_overview({"statistics": {"splits": []}}) is None
        assert normalize_player_overview({}) is None


class TestNormalizeCoreStats:
    def test_only_finite_numbers_returned(self):
        payload = {
            "splits": {
                "categories": [
                    {
                        "stats": [
                            {"name": "gamesPlayed", "value": 40},
                            {"name": "avgPoints", "value": 18.25},
                            {"name": "avgRebounds", "value": float("nan")},
                            {"name": "avgAssists", "value": "7"},
                        ]
                    },
                    {"stats": [{"name": "avgPoints", "value": 99}]},
                ]
            }
        }
        assert normalize_core_stats(payload) == {"games_played": 40.0, "points_per_game": 18.25}

    def test_empty_payload(self):
        assert normalize_core_stats({}) == {}
