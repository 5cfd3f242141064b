"""HTTP surface for clients watching a live game.

``GET /api/games/{game_id}/live`` is the client-driven path into the sync
engine: it calls ``sync_if_due`` (which refreshes the game only if the
throttle window has passed) and returns the stored state plus how long the
client should wait before asking again.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterator

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .config_leagues import get_league_adapter
from .db import db_models, get_session
from .services.aggregation import get_active_rankings
from .services.live_sync import sync_if_due
from .services.poll_policy import next_poll_interval_ms
from .utils.date_utils import current_season
from .utils.datetime_utils import now_utc
from .utils.db_queries import find_league_id


class TeamState(BaseModel):
    id: int
    name: str
    abbreviation: str | None
    score: int | None


class LiveGameResponse(BaseModel):
    """Stored state of one game after an opportunistic refresh."""

    id: int
    league: str
    status: str
    status_detail: str | None
    scheduled_start: datetime | None
    home_team: TeamState
    away_team: TeamState
    last_fetched_at: datetime | None
    refreshed: bool
    next_poll_interval_ms: int | None


class RankingsResponse(BaseModel):
    league: str
    season: str
    teams: dict[int, dict[str, int]]


def get_db() -> Iterator[Session]:
    with get_session() as session:
        yield session


router = APIRouter(prefix="/api", tags=["live"])


def _team_state(team, score: int | None) -> TeamState:
    return TeamState(id=team.id, name=team.name, abbreviation=team.abbreviation, score=score)


@router.get("/games/{game_id}/live", response_model=LiveGameResponse)
def get_live_game(game_id: int, session: Session = Depends(get_db)) -> LiveGameResponse:
    """
    Refresh a game if it is due, then return its stored state.

    Example request:
        GET /api/games/123/live
    Example response:
        {
          "id": 123,
          "league": "NBA",
          "status": "live",
          "status_detail": "Q3 4:12",
          "home_team": {"id": 1, "name": "Warriors", "abbreviation": "GSW", "score": 71},
          "away_team": {"id": 2, "name": "Lakers", "abbreviation": "LAL", "score": 68},
          "refreshed": true,
          "next_poll_interval_ms": 15000
        }
    """
    outcome = sync_if_due(game_id)
    if outcome.reason == "missing":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Game not found")

    game = session.get(db_models.Game, game_id)
    if game is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Game not found")

    return LiveGameResponse(
        id=game.id,
        league=game.league.code,
        status=game.status,
        status_detail=game.status_detail,
        scheduled_start=game.scheduled_start,
        home_team=_team_state(game.home_team, game.home_score),
        away_team=_team_state(game.away_team, game.away_score),
        last_fetched_at=game.last_fetched_at,
        refreshed=outcome.fetched,
        next_poll_interval_ms=next_poll_interval_ms(game, now_utc()),
    )


@router.get("/leagues/{league_code}/rankings", response_model=RankingsResponse)
def get_league_rankings(
    league_code: str,
    season: str | None = Query(None),
    session: Session = Depends(get_db),
) -> RankingsResponse:
    """Team ranks from the live ranking generation."""
    try:
        adapter = get_league_adapter(league_code)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    league_id = find_league_id(session, adapter.code)
    if league_id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No data for league {adapter.code}")

    season = season or current_season()
    return RankingsResponse(
        league=adapter.code,
        season=season,
        teams=get_active_rankings(session, league_id, season),
    )


app = FastAPI(title="hoops-sync", version="0.1.0")
app.include_router(router)


@app.get("/healthz")
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}
