"""Basketball advanced-stat formulas shared by reconcile and aggregation."""

from __future__ import annotations

from collections.abc import Mapping


def round_stat(value: float, places: int = 1) -> float:
    return round(value, places)


def possessions(stats: Mapping[str, float]) -> float:
    """Estimated possessions: FGA + 0.44 * FTA - OREB + TOV."""
    return (
        stats.get("fg_attempted", 0)
        + 0.44 * stats.get("ft_attempted", 0)
        - stats.get("offensive_rebounds", 0)
        + stats.get("turnovers", 0)
    )


def rating(points: float, poss: float) -> float:
    """Points per 100 possessions; 0 when possessions are unknown."""
    if poss <= 0:
        return 0.0
    return round_stat(points / poss * 100)


def effective_fg_pct(stats: Mapping[str, float]) -> float:
    attempts = stats.get("fg_attempted", 0)
    if attempts <= 0:
        return 0.0
    made = stats.get("fg_made", 0) + 0.5 * stats.get("three_made", 0)
    return round_stat(made / attempts * 100)


def true_shooting_pct(points: float, stats: Mapping[str, float]) -> float:
    shots = 2 * (stats.get("fg_attempted", 0) + 0.44 * stats.get("ft_attempted", 0))
    if shots <= 0:
        return 0.0
    return round_stat(points / shots * 100)


def shooting_pct(made: float, attempted: float) -> float:
    if attempted <= 0:
        return 0.0
    return round_stat(made / attempted * 100)


def game_advanced_stats(
    team_stats: Mapping[str, float],
    points: float,
    opponent_points: float,
) -> dict[str, float]:
    """Pace, ratings and shooting efficiency for one team in one game.

    Pace is the team's own possession estimate; both ratings are per 100 of
    those possessions.
    """
    poss = possessions(team_stats)
    offensive = rating(points, poss)
    defensive = rating(opponent_points, poss)
    return {
        "pace": round_stat(max(poss, 0.0)),
        "offensive_rating": offensive,
        "defensive_rating": defensive,
        "net_rating": round_stat(offensive - defensive),
        "efg_pct": effective_fg_pct(team_stats),
        "ts_pct": true_shooting_pct(points, team_stats),
    }
