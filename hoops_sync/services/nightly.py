"""Nightly player-stat refresh and season aggregation.

Provider calls run strictly in sequence through a ``Pacer``: players within
a team, teams within a league, then leagues. Each write opens its own short
session so a long run never holds a transaction across network calls.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select

from ..config import settings
from ..config_leagues import get_nightly_leagues
from ..db import db_models, get_session
from ..live.espn import ESPNClient, FetchError, RateLimitError
from ..logging import log_context, logger
from ..persistence.players import upsert_player
from ..persistence.teams import find_team_id
from ..utils.date_utils import current_season
from ..utils.datetime_utils import now_utc
from ..utils.db_queries import (
    dialect_insert,
    get_league_id,
    list_season_player_ids,
    list_season_team_ids,
)
from ..utils.pacer import Clock, Pacer
from .aggregation import (
    recalculate_player_averages,
    recalculate_team_averages,
    update_league_rankings,
)


def _raise_if_rate_limited(error: FetchError) -> None:
    if error.is_rate_limited:
        raise RateLimitError(error.message)


def _store_provider_stats(player_id: int, season: str, stats: dict[str, float]) -> None:
    """Write ``provider_stats`` for a player season, leaving computed averages alone."""
    with get_session() as session:
        stmt = dialect_insert(session, db_models.PlayerSeasonStats).values(
            player_id=player_id,
            season=season,
            averages={},
            provider_stats=stats,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["player_id", "season"],
            set_={"provider_stats": stmt.excluded.provider_stats, "updated_at": now_utc()},
        )
        session.execute(stmt)


def refresh_team_player_stats(
    league_code: str,
    team_remote_id: str,
    client: ESPNClient,
    pacer: Pacer | None = None,
    season: str | None = None,
) -> dict[str, int]:
    """Refresh provider season stats for every player on a team's roster.

    Players with no games played this season are skipped. Raises
    ``RateLimitError`` on a 429 so the calling job can stop.
    """
    season = season or current_season()
    pacer = pacer or Pacer(settings.pacing_config.player_delay_ms)
    counts = {"players": 0, "updated": 0, "skipped": 0, "errors": 0}

    roster = client.fetch_roster(league_code, team_remote_id)
    if isinstance(roster, FetchError):
        _raise_if_rate_limited(roster)
        logger.warning(
            "team_roster_fetch_failed",
            league=league_code,
            team_remote_id=team_remote_id,
            kind=roster.kind.value,
        )
        counts["errors"] += 1
        return counts

    with get_session() as session:
        league_id = get_league_id(session, league_code)
        team_id = find_team_id(session, league_id, team_remote_id)

    for athlete in pacer.pace_items(roster):
        counts["players"] += 1
        overview = client.fetch_player_overview(league_code, athlete.remote_id)
        if isinstance(overview, FetchError):
            _raise_if_rate_limited(overview)
            counts["errors"] += 1
            continue
        if overview is None or overview.games_played <= 0:
            counts["skipped"] += 1
            continue

        with get_session() as session:
            player_id = upsert_player(
                session,
                league_id,
                athlete.remote_id,
                athlete.name,
                position=athlete.position,
                jersey=athlete.jersey,
                team_id=team_id,
            )
        _store_provider_stats(player_id, season, overview.model_dump())
        counts["updated"] += 1

    logger.info(
        "team_player_stats_refreshed",
        league=league_code,
        team_remote_id=team_remote_id,
        **counts,
    )
    return counts


def run_nightly_player_stats(
    leagues: list[str] | None = None,
    client: ESPNClient | None = None,
    clock: Clock | None = None,
) -> dict[str, dict[str, int]]:
    """Refresh every team's players in every league, paced per player, team and league."""
    pacing = settings.pacing_config
    leagues = leagues or get_nightly_leagues()
    owns_client = client is None
    client = client or ESPNClient()
    league_pacer = Pacer(pacing.league_delay_ms, clock=clock)
    results: dict[str, dict[str, int]] = {}

    try:
        for league_code in league_pacer.pace_items(leagues):
            with log_context(league=league_code):
                season = current_season()
                with get_session() as session:
                    league_id = get_league_id(session, league_code)
                    team_ids = list_season_team_ids(session, league_id, season)
                    team_remote_ids = (
                        session.execute(
                            select(db_models.Team.remote_id)
                            .where(db_models.Team.id.in_(team_ids))
                            .order_by(db_models.Team.remote_id)
                        )
                        .scalars()
                        .all()
                    )

                totals = {"teams": 0, "players": 0, "updated": 0, "skipped": 0, "errors": 0}
                team_pacer = Pacer(pacing.team_delay_ms, clock=clock)
                player_pacer = Pacer(pacing.player_delay_ms, clock=clock)
                for team_remote_id in team_pacer.pace_items(team_remote_ids):
                    try:
                        counts = refresh_team_player_stats(
                            league_code, team_remote_id, client, pacer=player_pacer, season=season
                        )
                    except RateLimitError:
                        raise
                    except Exception as exc:
                        logger.warning(
                            "nightly_team_error",
                            team_remote_id=team_remote_id,
                            error=str(exc),
                        )
                        totals["errors"] += 1
                        continue
                    totals["teams"] += 1
                    for key, value in counts.items():
                        totals[key] += value
                results[league_code] = totals
                logger.info("nightly_player_stats_league_complete", **totals)
    except RateLimitError as exc:
        logger.warning("nightly_player_stats_rate_limited", error=str(exc))
    finally:
        if owns_client:
            client.close()
    return results


def backfill_core_player_stats(
    league_code: str,
    season: str | None = None,
    limit: int | None = None,
    dry_run: bool = False,
    client: ESPNClient | None = None,
    pacer: Pacer | None = None,
) -> dict[str, Any]:
    """Patch stored provider season stats from the core statistics feed.

    Only values that differ from what is stored are written. With
    ``dry_run`` nothing is written and the would-be changes are counted.
    """
    season = season or current_season()
    pacer = pacer or Pacer(settings.pacing_config.player_delay_ms)
    owns_client = client is None
    client = client or ESPNClient()
    summary: dict[str, Any] = {
        "league": league_code,
        "season": season,
        "dry_run": dry_run,
        "checked": 0,
        "patched": 0,
        "unchanged": 0,
        "failed": 0,
    }

    with get_session() as session:
        league_id = get_league_id(session, league_code)
        stmt = (
            select(db_models.Player.id, db_models.Player.remote_id, db_models.PlayerSeasonStats.provider_stats)
            .join(db_models.PlayerSeasonStats, db_models.PlayerSeasonStats.player_id == db_models.Player.id)
            .where(db_models.Player.league_id == league_id, db_models.PlayerSeasonStats.season == season)
            .order_by(db_models.Player.id)
        )
        if limit:
            stmt = stmt.limit(limit)
        rows = session.execute(stmt).all()

    try:
        for player_id, remote_id, stored in pacer.pace_items(rows):
            summary["checked"] += 1
            core = client.fetch_core_player_stats(league_code, season, remote_id)
            if isinstance(core, FetchError):
                _raise_if_rate_limited(core)
                summary["failed"] += 1
                continue

            stored = stored or {}
            changes = {key: value for key, value in core.items() if stored.get(key) != value}
            if not changes:
                summary["unchanged"] += 1
                continue
            summary["patched"] += 1
            if not dry_run:
                _store_provider_stats(player_id, season, {**stored, **changes})
    except RateLimitError as exc:
        logger.warning("core_player_stats_rate_limited", league=league_code, error=str(exc))
        summary["rate_limited"] = True
    finally:
        if owns_client:
            client.close()

    logger.info("core_player_stats_backfilled", **summary)
    return summary


def run_nightly_aggregation(
    leagues: list[str] | None = None,
    now: datetime | None = None,
) -> dict[str, dict[str, Any]]:
    """Recompute season averages and rankings for every league's current season.

    One league failing does not stop the others.
    """
    leagues = leagues or get_nightly_leagues()
    season = current_season(now)
    results: dict[str, dict[str, Any]] = {}

    for league_code in leagues:
        try:
            with get_session() as session:
                league_id = get_league_id(session, league_code)
                team_ids = list_season_team_ids(session, league_id, season)
                player_ids = list_season_player_ids(session, league_id, season)
                for team_id in team_ids:
                    recalculate_team_averages(session, team_id, season)
                for player_id in player_ids:
                    recalculate_player_averages(session, player_id, season)
                generation = update_league_rankings(session, league_id, season, now=now)
        except Exception as exc:
            logger.error(
                "nightly_aggregation_league_failed",
                league=league_code,
                season=season,
                error=str(exc),
                exc_info=True,
            )
            results[league_code] = {"error": str(exc)}
            continue

        results[league_code] = {
            "season": season,
            "teams": len(team_ids),
            "players": len(player_ids),
            "ranking_generation": generation,
        }
        logger.info("nightly_aggregation_league_complete", league=league_code, **results[league_code])
    return results
