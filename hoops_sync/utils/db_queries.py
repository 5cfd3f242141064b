"""Shared database query utilities."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from ..config_leagues import get_league_adapter
from ..db import db_models


def dialect_insert(session: Session, model: Any):
    """Return an INSERT construct that supports ``on_conflict_do_update``.

    Postgres in production; SQLite shares the same ON CONFLICT syntax and is
    used by the test suite.
    """
    if session.get_bind().dialect.name == "sqlite":
        return sqlite.insert(model)
    return postgresql.insert(model)


def find_league_id(session: Session, league_code: str) -> int | None:
    """Get league ID by code without creating it; None if no row exists yet.

    Raises:
        ValueError: If league_code is not a configured league
    """
    adapter = get_league_adapter(league_code)
    stmt = select(db_models.League.id).where(db_models.League.code == adapter.code)
    return session.execute(stmt).scalar()


def get_league_id(session: Session, league_code: str) -> int:
    """Get league ID by code, creating the league row on first use.

    Raises:
        ValueError: If league_code is not a configured league
    """
    league_id = find_league_id(session, league_code)
    if league_id is not None:
        return league_id

    adapter = get_league_adapter(league_code)
    insert_stmt = dialect_insert(session, db_models.League).values(
        code=adapter.code, name=adapter.display_name
    )
    session.execute(insert_stmt.on_conflict_do_nothing(index_elements=["code"]))
    session.flush()
    return find_league_id(session, adapter.code)


def get_league_code(session: Session, league_id: int) -> str:
    """Return the league code for a league id."""
    stmt = select(db_models.League.code).where(db_models.League.id == league_id)
    return session.execute(stmt).scalar_one()


def list_season_team_ids(session: Session, league_id: int, season: str) -> list[int]:
    """Teams that appear in any game of the given league season."""
    Game = db_models.Game
    home = select(Game.home_team_id).where(Game.league_id == league_id, Game.season == season)
    away = select(Game.away_team_id).where(Game.league_id == league_id, Game.season == season)
    rows = session.execute(home.union(away)).scalars().all()
    return sorted(rows)


def list_season_player_ids(session: Session, league_id: int, season: str) -> list[int]:
    """Players with at least one game line in the given league season."""
    Game = db_models.Game
    PlayerGameStat = db_models.PlayerGameStat
    stmt = (
        select(PlayerGameStat.player_id)
        .join(Game, Game.id == PlayerGameStat.game_id)
        .where(Game.league_id == league_id, Game.season == season)
        .distinct()
    )
    return sorted(session.execute(stmt).scalars().all())

