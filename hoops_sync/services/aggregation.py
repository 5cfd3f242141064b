"""Season aggregates derived from stored game lines.

Averages are recomputed from every final game of a season, so running
them twice gives the same result. League rankings are built into a new
generation first and then made live by flipping one pointer row, so readers
never see a half-written ranking table.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from ..db import db_models
from ..logging import logger
from ..utils.datetime_utils import now_utc
from ..utils.db_queries import dialect_insert
from ..utils.stats_calculations import round_stat, shooting_pct

_TEAM_TOTAL_KEYS = (
    "fg_made",
    "fg_attempted",
    "three_made",
    "three_attempted",
    "ft_made",
    "ft_attempted",
    "rebounds",
    "offensive_rebounds",
    "defensive_rebounds",
    "assists",
    "turnovers",
    "steals",
    "blocks",
)

_PLAYER_TOTAL_KEYS = (
    "points",
    "rebounds",
    "offensive_rebounds",
    "defensive_rebounds",
    "assists",
    "steals",
    "blocks",
    "turnovers",
    "fg_made",
    "fg_attempted",
    "three_made",
    "three_attempted",
    "ft_made",
    "ft_attempted",
)


def _sum_stats(rows: Iterable[dict[str, Any]], keys: Iterable[str]) -> dict[str, float]:
    totals = dict.fromkeys(keys, 0.0)
    for stats in rows:
        for key in totals:
            value = stats.get(key)
            if isinstance(value, (int, float)):
                totals[key] += value
    return totals


def recalculate_team_averages(session: Session, team_id: int, season: str) -> dict[str, float] | None:
    """Recompute a team's season averages from its final games.

    Opponent points are derived from each game's defensive rating and pace.
    Returns the stored averages, or None when the team has no final games.
    """
    Game = db_models.Game
    TeamGameStat = db_models.TeamGameStat
    lines = (
        session.execute(
            select(TeamGameStat)
            .join(Game, Game.id == TeamGameStat.game_id)
            .where(
                TeamGameStat.team_id == team_id,
                Game.season == season,
                Game.status == db_models.GameStatus.final.value,
            )
        )
        .scalars()
        .all()
    )
    if not lines:
        return None

    games = len(lines)
    totals = _sum_stats((line.stats or {} for line in lines), _TEAM_TOTAL_KEYS)
    total_points = sum(line.score for line in lines)
    total_pace = sum(line.pace or 0 for line in lines)
    total_opp_points = sum(
        (line.defensive_rating / 100) * line.pace
        for line in lines
        if line.offensive_rating and line.defensive_rating and line.pace
    )

    ppg = round_stat(total_points / games)
    opp_ppg = round_stat(total_opp_points / games)
    pace = round_stat(total_pace / games)
    ortg = round_stat(ppg / pace * 100) if pace > 0 else 0.0
    drtg = round_stat(opp_ppg / pace * 100) if pace > 0 else 0.0
    true_shots = 2 * (totals["fg_attempted"] + 0.44 * totals["ft_attempted"])

    averages = {
        "ppg": ppg,
        "opp_ppg": opp_ppg,
        "margin": round_stat(ppg - opp_ppg),
        "pace": pace,
        "ortg": ortg,
        "drtg": drtg,
        "net_rtg": round_stat(ortg - drtg),
        "fg_pct": shooting_pct(totals["fg_made"], totals["fg_attempted"]),
        "three_pct": shooting_pct(totals["three_made"], totals["three_attempted"]),
        "ft_pct": shooting_pct(totals["ft_made"], totals["ft_attempted"]),
        "efg_pct": shooting_pct(totals["fg_made"] + 0.5 * totals["three_made"], totals["fg_attempted"]),
        "ts_pct": round_stat(total_points / true_shots * 100) if true_shots > 0 else 0.0,
        "rpg": round_stat(totals["rebounds"] / games),
        "orpg": round_stat(totals["offensive_rebounds"] / games),
        "drpg": round_stat(totals["defensive_rebounds"] / games),
        "apg": round_stat(totals["assists"] / games),
        "tov_pg": round_stat(totals["turnovers"] / games),
        "ast_to_ratio": round_stat(totals["assists"] / totals["turnovers"], 2) if totals["turnovers"] > 0 else 0.0,
        "spg": round_stat(totals["steals"] / games),
        "bpg": round_stat(totals["blocks"] / games),
    }
    for key in ("fg_made", "fg_attempted", "three_made", "three_attempted", "ft_made", "ft_attempted"):
        averages[f"total_{key}"] = totals[key]

    stmt = dialect_insert(session, db_models.TeamSeasonStats).values(
        team_id=team_id, season=season, games_played=games, averages=averages
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["team_id", "season"],
        set_={
            "games_played": stmt.excluded.games_played,
            "averages": stmt.excluded.averages,
            "updated_at": now_utc(),
        },
    )
    session.execute(stmt)
    logger.debug("team_averages_recalculated", team_id=team_id, season=season, games=games)
    return averages


def recalculate_player_averages(session: Session, player_id: int, season: str) -> dict[str, float] | None:
    """Recompute a player's season averages over games actually played.

    Only active appearances with minutes > 0 count. Provider season stats on
    the same row are left untouched.
    """
    Game = db_models.Game
    PlayerGameStat = db_models.PlayerGameStat
    lines = (
        session.execute(
            select(PlayerGameStat)
            .join(Game, Game.id == PlayerGameStat.game_id)
            .where(
                PlayerGameStat.player_id == player_id,
                Game.season == season,
                Game.status == db_models.GameStatus.final.value,
            )
        )
        .scalars()
        .all()
    )
    played = [line for line in lines if line.active and line.minutes > 0]
    if not played:
        return None

    games = len(played)
    started = sum(1 for line in played if line.starter)
    totals = _sum_stats((line.stats or {} for line in played), _PLAYER_TOTAL_KEYS)
    total_minutes = sum(line.minutes for line in played)

    averages = {
        "minutes_per_game": round_stat(total_minutes / games),
        "points_per_game": round_stat(totals["points"] / games),
        "rebounds_per_game": round_stat(totals["rebounds"] / games),
        "assists_per_game": round_stat(totals["assists"] / games),
        "steals_per_game": round_stat(totals["steals"] / games),
        "blocks_per_game": round_stat(totals["blocks"] / games),
        "turnovers_per_game": round_stat(totals["turnovers"] / games),
        "offensive_rebounds_per_game": round_stat(totals["offensive_rebounds"] / games),
        "defensive_rebounds_per_game": round_stat(totals["defensive_rebounds"] / games),
        "field_goal_pct": shooting_pct(totals["fg_made"], totals["fg_attempted"]),
        "three_point_pct": shooting_pct(totals["three_made"], totals["three_attempted"]),
        "free_throw_pct": shooting_pct(totals["ft_made"], totals["ft_attempted"]),
    }
    for key in ("fg_made", "fg_attempted", "three_made", "three_attempted", "ft_made", "ft_attempted"):
        averages[f"total_{key}"] = totals[key]

    stmt = dialect_insert(session, db_models.PlayerSeasonStats).values(
        player_id=player_id,
        season=season,
        games_played=games,
        games_started=started,
        averages=averages,
        provider_stats={},
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["player_id", "season"],
        set_={
            "games_played": stmt.excluded.games_played,
            "games_started": stmt.excluded.games_started,
            "averages": stmt.excluded.averages,
            "updated_at": now_utc(),
        },
    )
    session.execute(stmt)
    return averages


# (stat key, ascending, keys that must be > 0 for a team to be ranked);
# an empty tuple means every valid team is ranked on the stat.
RANKED_STATS: tuple[tuple[str, bool, tuple[str, ...]], ...] = (
    ("ppg", False, ()),
    ("opp_ppg", True, ()),
    ("margin", False, ()),
    ("pace", False, ()),
    ("ortg", False, ()),
    ("drtg", True, ()),
    ("net_rtg", False, ()),
    ("fg_pct", False, ("fg_pct",)),
    ("three_pct", False, ("three_pct",)),
    ("ft_pct", False, ("ft_pct",)),
    ("efg_pct", False, ("efg_pct",)),
    ("ts_pct", False, ("ts_pct",)),
    ("rpg", False, ("rpg",)),
    ("orpg", False, ("orpg",)),
    ("drpg", False, ("drpg",)),
    ("apg", False, ("apg",)),
    ("tov_pg", True, ("tov_pg",)),
    ("ast_to_ratio", False, ("apg", "tov_pg")),
    ("spg", False, ("spg",)),
    ("bpg", False, ("bpg",)),
)


def compute_rankings(team_averages: dict[int, dict[str, Any]]) -> dict[int, dict[str, int]]:
    """Rank teams on every ranked stat. Pure.

    Teams without a positive offensive rating are left out entirely.
    """
    valid = {
        team_id: averages
        for team_id, averages in team_averages.items()
        if (averages.get("ortg") or 0) > 0
    }
    ranks: dict[int, dict[str, int]] = {team_id: {} for team_id in valid}

    for stat, ascending, required in RANKED_STATS:
        eligible = [
            team_id
            for team_id, averages in valid.items()
            if all((averages.get(key) or 0) > 0 for key in required)
        ]

        def _sort_key(team_id: int) -> tuple[float, int]:
            value = valid[team_id].get(stat) or 0
            return (value if ascending else -value, team_id)

        eligible.sort(key=_sort_key)
        for position, team_id in enumerate(eligible, start=1):
            ranks[team_id][stat] = position
    return ranks


def _ranking_pointer(session: Session, league_id: int, season: str):
    RankingGeneration = db_models.RankingGeneration
    stmt = dialect_insert(session, RankingGeneration).values(
        league_id=league_id, season=season, active_generation=0
    )
    session.execute(stmt.on_conflict_do_nothing(index_elements=["league_id", "season"]))
    return session.execute(
        select(RankingGeneration).where(
            RankingGeneration.league_id == league_id,
            RankingGeneration.season == season,
        )
    ).scalar_one()


def update_league_rankings(
    session: Session, league_id: int, season: str, now: datetime | None = None
) -> int | None:
    """Rebuild a league season's rankings into a shadow generation and swap it in.

    Returns the new active generation, or None when no team has valid data
    (the current rankings stay live).
    """
    Team = db_models.Team
    TeamSeasonStats = db_models.TeamSeasonStats
    TeamRanking = db_models.TeamRanking

    rows = session.execute(
        select(TeamSeasonStats.team_id, TeamSeasonStats.averages)
        .join(Team, Team.id == TeamSeasonStats.team_id)
        .where(Team.league_id == league_id, TeamSeasonStats.season == season)
    ).all()
    ranks = compute_rankings({team_id: averages or {} for team_id, averages in rows})
    if not ranks:
        logger.info("league_rankings_skipped", league_id=league_id, season=season, reason="no_valid_teams")
        return None

    pointer = _ranking_pointer(session, league_id, season)
    shadow = pointer.active_generation + 1

    session.execute(
        delete(TeamRanking).where(
            TeamRanking.league_id == league_id,
            TeamRanking.season == season,
            TeamRanking.generation == shadow,
        )
    )
    session.add_all(
        TeamRanking(
            league_id=league_id,
            season=season,
            generation=shadow,
            team_id=team_id,
            stat=stat,
            rank=rank,
        )
        for team_id, team_ranks in ranks.items()
        for stat, rank in team_ranks.items()
    )
    session.flush()

    # Swap, then drop every older generation
    session.execute(
        update(db_models.RankingGeneration)
        .where(db_models.RankingGeneration.id == pointer.id)
        .values(active_generation=shadow, swapped_at=now or now_utc())
        .execution_options(synchronize_session=False)
    )
    session.execute(
        delete(TeamRanking).where(
            TeamRanking.league_id == league_id,
            TeamRanking.season == season,
            TeamRanking.generation != shadow,
        )
    )
    session.flush()
    session.expire(pointer)

    logger.info(
        "league_rankings_swapped",
        league_id=league_id,
        season=season,
        generation=shadow,
        teams=len(ranks),
    )
    return shadow


def get_active_rankings(session: Session, league_id: int, season: str) -> dict[int, dict[str, int]]:
    """Ranks from the live generation only, keyed by team id then stat."""
    RankingGeneration = db_models.RankingGeneration
    TeamRanking = db_models.TeamRanking
    rows = session.execute(
        select(TeamRanking.team_id, TeamRanking.stat, TeamRanking.rank)
        .join(
            RankingGeneration,
            (RankingGeneration.league_id == TeamRanking.league_id)
            & (RankingGeneration.season == TeamRanking.season)
            & (RankingGeneration.active_generation == TeamRanking.generation),
        )
        .where(TeamRanking.league_id == league_id, TeamRanking.season == season)
    ).all()
    result: dict[int, dict[str, int]] = {}
    for team_id, stat, rank in rows:
        result.setdefault(team_id, {})[stat] = rank
    return result
