"""Team persistence helpers."""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..db import db_models
from ..models import TeamIdentity
from ..utils.datetime_utils import now_utc
from ..utils.db_queries import dialect_insert


def upsert_team(session: Session, league_id: int, identity: TeamIdentity) -> int:
    """Insert or patch a team keyed on ``(league_id, remote_id)``.

    Optional fields that the provider omitted keep their stored value.
    Returns the team's internal ID.
    """
    stmt = dialect_insert(session, db_models.Team).values(
        league_id=league_id,
        remote_id=identity.remote_id,
        name=identity.name,
        abbreviation=identity.abbreviation,
        location=identity.location,
        logo_url=identity.logo_url,
        color_hex=identity.color_hex,
    )
    Team = db_models.Team
    stmt = stmt.on_conflict_do_update(
        index_elements=["league_id", "remote_id"],
        set_={
            "name": stmt.excluded.name,
            "abbreviation": func.coalesce(stmt.excluded.abbreviation, Team.abbreviation),
            "location": func.coalesce(stmt.excluded.location, Team.location),
            "logo_url": func.coalesce(stmt.excluded.logo_url, Team.logo_url),
            "color_hex": func.coalesce(stmt.excluded.color_hex, Team.color_hex),
            "updated_at": now_utc(),
        },
    )
    session.execute(stmt)
    session.flush()

    return session.execute(
        select(Team.id).where(Team.league_id == league_id, Team.remote_id == identity.remote_id)
    ).scalar_one()


def find_team_id(session: Session, league_id: int, remote_id: str) -> int | None:
    Team = db_models.Team
    return session.execute(
        select(Team.id).where(Team.league_id == league_id, Team.remote_id == remote_id)
    ).scalar()
