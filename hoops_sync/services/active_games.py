"""ActiveGamesResolver: which games the live poller should look at right now.

A game is active when it is in progress, or scheduled to start within the
pre-game window. Scheduled games whose start passed more than the abandon
window ago are ignored; the post-game queue owns them.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from ..config import settings
from ..config_leagues import get_live_sync_leagues
from ..db import db_models
from ..orm.sports import IN_GAME_STATUSES
from ..utils.datetime_utils import now_utc


class ActiveGamesResolver:
    """Resolves games due for live sync, computed at query time."""

    def __init__(
        self,
        pregame_minutes: int | None = None,
        stale_after_minutes: int | None = None,
    ) -> None:
        polling = settings.polling_config
        self.pregame_minutes = pregame_minutes if pregame_minutes is not None else polling.pregame_window_minutes
        self.stale_after_minutes = (
            stale_after_minutes if stale_after_minutes is not None else polling.abandon_after_minutes
        )

    def get_games_due_for_live_sync(
        self,
        session: Session,
        league_code: str | None = None,
        now: datetime | None = None,
        limit: int | None = None,
    ) -> list:
        """Return in-progress games and games about to start, oldest fetch first."""
        now = now or now_utc()
        Game = db_models.Game
        League = db_models.League

        leagues = [league_code.upper()] if league_code else get_live_sync_leagues()
        scheduled_window = and_(
            Game.status == db_models.GameStatus.scheduled.value,
            Game.scheduled_start.isnot(None),
            Game.scheduled_start <= now + timedelta(minutes=self.pregame_minutes),
            Game.scheduled_start >= now - timedelta(minutes=self.stale_after_minutes),
        )
        stmt = (
            select(Game)
            .join(League, League.id == Game.league_id)
            .where(League.code.in_(leagues))
            .where(or_(Game.status.in_(sorted(IN_GAME_STATUSES)), scheduled_window))
            .order_by(Game.last_fetched_at.is_not(None), Game.last_fetched_at, Game.id)
        )
        if limit:
            stmt = stmt.limit(limit)
        return list(session.execute(stmt).scalars().all())
