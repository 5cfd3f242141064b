"""Player persistence helpers."""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..db import db_models
from ..utils.datetime_utils import now_utc
from ..utils.db_queries import dialect_insert


def upsert_player(
    session: Session,
    league_id: int,
    remote_id: str,
    name: str,
    position: str | None = None,
    jersey: str | None = None,
    team_id: int | None = None,
) -> int:
    """Insert or patch a player keyed on ``(league_id, remote_id)``.

    Returns the player's internal ID.
    """
    Player = db_models.Player
    stmt = dialect_insert(session, Player).values(
        league_id=league_id,
        remote_id=remote_id,
        name=name,
        position=position,
        jersey=jersey,
        team_id=team_id,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["league_id", "remote_id"],
        set_={
            "name": stmt.excluded.name,
            "position": func.coalesce(stmt.excluded.position, Player.position),
            "jersey": func.coalesce(stmt.excluded.jersey, Player.jersey),
            "team_id": func.coalesce(stmt.excluded.team_id, Player.team_id),
            "updated_at": now_utc(),
        },
    )
    session.execute(stmt)
    session.flush()

    return session.execute(
        select(Player.id).where(Player.league_id == league_id, Player.remote_id == remote_id)
    ).scalar_one()
