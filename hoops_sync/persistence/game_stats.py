"""Per-game team and player stat lines.

Each write is a keyed upsert (one row per participant per game), so
re-applying a snapshot patches rows instead of appending them.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from ..db import db_models
from ..models import PlayerLine, TeamLine
from ..utils.datetime_utils import now_utc
from ..utils.db_queries import dialect_insert
from ..utils.stats_calculations import game_advanced_stats


def _team_stats_payload(line: TeamLine) -> dict[str, float]:
    stats = dict(line.stats)
    if line.score is not None:
        stats["points"] = line.score
    return stats


def upsert_team_game_stat(
    session: Session,
    game_id: int,
    team_id: int,
    line: TeamLine,
    opponent_score: int | None,
) -> None:
    """Upsert a team's box score line keyed on ``(game_id, team_id)``."""
    score = line.score or 0
    advanced = game_advanced_stats(line.stats, score, opponent_score or 0)
    stmt = dialect_insert(session, db_models.TeamGameStat).values(
        game_id=game_id,
        team_id=team_id,
        is_home=line.is_home,
        score=score,
        stats=_team_stats_payload(line),
        **advanced,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["game_id", "team_id"],
        set_={
            "is_home": stmt.excluded.is_home,
            "score": stmt.excluded.score,
            "stats": stmt.excluded.stats,
            "pace": stmt.excluded.pace,
            "offensive_rating": stmt.excluded.offensive_rating,
            "defensive_rating": stmt.excluded.defensive_rating,
            "net_rating": stmt.excluded.net_rating,
            "efg_pct": stmt.excluded.efg_pct,
            "ts_pct": stmt.excluded.ts_pct,
            "updated_at": now_utc(),
        },
    )
    session.execute(stmt)


def upsert_player_game_stat(
    session: Session,
    game_id: int,
    player_id: int,
    team_id: int,
    line: PlayerLine,
) -> None:
    """Upsert a player's box score line keyed on ``(game_id, player_id)``."""
    stats = dict(line.stats)
    if line.plus_minus is not None:
        stats["plus_minus"] = line.plus_minus
    stmt = dialect_insert(session, db_models.PlayerGameStat).values(
        game_id=game_id,
        player_id=player_id,
        team_id=team_id,
        starter=line.starter,
        active=line.active,
        minutes=line.minutes,
        stats=stats,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["game_id", "player_id"],
        set_={
            "team_id": stmt.excluded.team_id,
            "starter": stmt.excluded.starter,
            "active": stmt.excluded.active,
            "minutes": stmt.excluded.minutes,
            "stats": stmt.excluded.stats,
            "updated_at": now_utc(),
        },
    )
    session.execute(stmt)
