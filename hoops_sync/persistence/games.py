"""Game persistence helpers."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from ..db import db_models
from ..logging import logger
from ..models import ScoreboardGame
from ..orm.sports import IN_GAME_STATUSES, TERMINAL_GAME_STATUSES
from ..utils.date_utils import current_season, season_for_datetime
from ..utils.datetime_utils import now_utc
from ..utils.db_queries import dialect_insert
from .teams import upsert_team


def resolve_status_transition(current_status: str | None, incoming_status: str | None) -> str:
    """Resolve a safe status transition without regressing games.

    Rules:
    - final, postponed and cancelled are terminal (never change again)
    - a game that has started never goes back to scheduled
    - in-game states (live, halftime, end_of_period, overtime) move freely
      between each other
    """
    current = current_status or db_models.GameStatus.scheduled.value
    if current in TERMINAL_GAME_STATUSES:
        return current
    if not incoming_status:
        return current

    # Don't regress a started game
    if incoming_status == db_models.GameStatus.scheduled.value and current in IN_GAME_STATUSES:
        return current
    return incoming_status


def upsert_game_from_scoreboard(
    session: Session, league_id: int, listing: ScoreboardGame
) -> tuple[int, bool]:
    """Create a game the first time a scoreboard lists it.

    Existing games only get their schedule fields refreshed; status and
    scores belong to reconciliation. Returns ``(game_id, created)``.
    """
    home_team_id = upsert_team(session, league_id, listing.home.team)
    away_team_id = upsert_team(session, league_id, listing.away.team)
    Game = db_models.Game

    existing = session.execute(
        select(Game).where(Game.league_id == league_id, Game.remote_id == listing.remote_id)
    ).scalar_one_or_none()

    if existing is not None:
        if listing.scheduled_start and listing.scheduled_start != existing.scheduled_start:
            existing.scheduled_start = listing.scheduled_start
        if listing.venue and listing.venue != existing.venue:
            existing.venue = listing.venue
        session.flush()
        return existing.id, False

    season = (
        season_for_datetime(listing.scheduled_start)
        if listing.scheduled_start
        else current_season()
    )
    stmt = dialect_insert(session, Game).values(
        league_id=league_id,
        remote_id=listing.remote_id,
        season=season,
        status=db_models.GameStatus.scheduled.value,
        status_detail=listing.status_detail,
        scheduled_start=listing.scheduled_start,
        home_team_id=home_team_id,
        away_team_id=away_team_id,
        venue=listing.venue,
    )
    # A concurrent discovery may have created it between the read and here
    session.execute(stmt.on_conflict_do_nothing(index_elements=["league_id", "remote_id"]))
    session.flush()

    game_id = session.execute(
        select(Game.id).where(Game.league_id == league_id, Game.remote_id == listing.remote_id)
    ).scalar_one()
    logger.info(
        "game_created",
        game_id=game_id,
        league_id=league_id,
        remote_id=listing.remote_id,
        season=season,
    )
    return game_id, True


def advance_last_fetched_at(session: Session, game_id: int, fetched_at: datetime | None = None) -> bool:
    """Move ``last_fetched_at`` forward, never backward.

    A single conditional UPDATE, so concurrent writers can only ever leave
    the latest timestamp in place. Returns True if the row changed.
    """
    fetched_at = fetched_at or now_utc()
    Game = db_models.Game
    stmt = (
        update(Game)
        .where(
            Game.id == game_id,
            or_(Game.last_fetched_at.is_(None), Game.last_fetched_at < fetched_at),
        )
        .values(last_fetched_at=fetched_at)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    return bool(result.rowcount)
