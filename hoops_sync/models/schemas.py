"""Pydantic models for normalized provider data."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, ValidationInfo, field_validator

LeagueCode = Literal["NBA", "WNBA", "GLEAGUE"]
SnapshotStatus = Literal[
    "scheduled",
    "live",
    "halftime",
    "end_of_period",
    "overtime",
    "final",
    "postponed",
    "cancelled",
]


class TeamIdentity(BaseModel):
    league_code: LeagueCode
    remote_id: str
    name: str
    abbreviation: str | None = None
    location: str | None = None
    logo_url: str | None = None
    color_hex: str | None = None


class PlayerIdentity(BaseModel):
    league_code: LeagueCode
    remote_id: str
    name: str
    position: str | None = None
    jersey: str | None = None


class TeamLine(BaseModel):
    """One team's side of a game snapshot."""

    team: TeamIdentity
    is_home: bool
    score: int | None = None
    stats: dict[str, float] = Field(default_factory=dict)


class PlayerLine(BaseModel):
    """One player's box score line in a game snapshot."""

    player: PlayerIdentity
    team_remote_id: str
    starter: bool = False
    active: bool = False
    minutes: float = 0.0
    plus_minus: int | None = None
    stats: dict[str, float] = Field(default_factory=dict)


class GameSnapshot(BaseModel):
    """Provider-agnostic state of one game as returned by a single fetch."""

    league_code: LeagueCode
    remote_id: str
    status: SnapshotStatus = "scheduled"
    status_detail: str | None = None
    scheduled_start: datetime | None = None
    venue: str | None = None
    home: TeamLine
    away: TeamLine
    players: list[PlayerLine] = Field(default_factory=list)

    @field_validator("players")
    @classmethod
    def ensure_players_belong_to_teams(
        cls, value: list[PlayerLine], info: ValidationInfo
    ) -> list[PlayerLine]:
        teams = {
            info.data[key].team.remote_id for key in ("home", "away") if key in info.data
        }
        if teams:
            stray = [p.player.remote_id for p in value if p.team_remote_id not in teams]
            if stray:
                msg = f"players reference unknown teams: {', '.join(stray)}"
                raise ValueError(msg)
        return value

    @property
    def is_final(self) -> bool:
        return self.status == "final"

    def line_for(self, team_remote_id: str) -> TeamLine | None:
        for line in (self.home, self.away):
            if line.team.remote_id == team_remote_id:
                return line
        return None


class ScoreboardGame(BaseModel):
    """A game as listed on a scoreboard: identity, status and score only."""

    league_code: LeagueCode
    remote_id: str
    status: SnapshotStatus = "scheduled"
    status_detail: str | None = None
    scheduled_start: datetime | None = None
    venue: str | None = None
    home: TeamLine
    away: TeamLine

    def involves(self, team_remote_id: str) -> bool:
        return team_remote_id in (self.home.team.remote_id, self.away.team.remote_id)


class RosterPlayer(BaseModel):
    remote_id: str
    name: str
    position: str | None = None
    jersey: str | None = None


class PlayerSeasonLine(BaseModel):
    """Season averages as published by the provider for one player."""

    games_played: float = 0
    games_started: float = 0
    minutes_per_game: float = 0
    points_per_game: float = 0
    rebounds_per_game: float = 0
    assists_per_game: float = 0
    steals_per_game: float = 0
    blocks_per_game: float = 0
    turnovers_per_game: float = 0
    field_goal_pct: float = 0
    three_point_pct: float = 0
    free_throw_pct: float = 0
