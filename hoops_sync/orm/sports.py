"""Core sports models: leagues, teams, players, games and per-game stat lines."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import (
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, JSONType, UTCDateTime


class GameStatus(str, Enum):
    """Canonical game status set.

    Happy path: scheduled → live ⇄ (halftime | end_of_period | overtime) → final
    """

    scheduled = "scheduled"
    live = "live"
    halftime = "halftime"
    end_of_period = "end_of_period"
    overtime = "overtime"
    final = "final"
    postponed = "postponed"
    cancelled = "cancelled"


TERMINAL_GAME_STATUSES = frozenset(
    {GameStatus.final.value, GameStatus.postponed.value, GameStatus.cancelled.value}
)
IN_GAME_STATUSES = frozenset(
    {
        GameStatus.live.value,
        GameStatus.halftime.value,
        GameStatus.end_of_period.value,
        GameStatus.overtime.value,
    }
)


class League(Base):
    """Leagues tracked by the sync engine (NBA, WNBA, GLEAGUE)."""

    __tablename__ = "leagues"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), nullable=False
    )

    teams: Mapped[list["Team"]] = relationship("Team", back_populates="league")


class Team(Base):
    """Teams keyed by provider id within a league."""

    __tablename__ = "teams"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    league_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("leagues.id", ondelete="CASCADE"), nullable=False, index=True
    )
    remote_id: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    abbreviation: Mapped[str | None] = mapped_column(String(20), nullable=True)
    location: Mapped[str | None] = mapped_column(String(100), nullable=True)
    logo_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    color_hex: Mapped[str | None] = mapped_column(String(7), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    league: Mapped[League] = relationship("League", back_populates="teams")

    __table_args__ = (
        UniqueConstraint("league_id", "remote_id", name="uq_team_identity"),
    )


class Player(Base):
    """Players keyed by provider id within a league."""

    __tablename__ = "players"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    league_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("leagues.id", ondelete="CASCADE"), nullable=False, index=True
    )
    remote_id: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    position: Mapped[str | None] = mapped_column(String(10), nullable=True)
    jersey: Mapped[str | None] = mapped_column(String(10), nullable=True)
    team_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("teams.id"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("league_id", "remote_id", name="uq_player_identity"),
    )


class Game(Base):
    """A tracked game. Created from scoreboards, mutated only by reconciliation."""

    __tablename__ = "games"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    league_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("leagues.id", ondelete="CASCADE"), nullable=False, index=True
    )
    remote_id: Mapped[str] = mapped_column(String(50), nullable=False)
    season: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=GameStatus.scheduled.value, index=True
    )
    status_detail: Mapped[str | None] = mapped_column(String(100), nullable=True)
    scheduled_start: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, index=True)
    home_team_id: Mapped[int] = mapped_column(Integer, ForeignKey("teams.id"), nullable=False)
    away_team_id: Mapped[int] = mapped_column(Integer, ForeignKey("teams.id"), nullable=False)
    home_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    away_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    venue: Mapped[str | None] = mapped_column(String(200), nullable=True)
    last_fetched_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    league: Mapped[League] = relationship("League")
    home_team: Mapped[Team] = relationship("Team", foreign_keys=[home_team_id])
    away_team: Mapped[Team] = relationship("Team", foreign_keys=[away_team_id])

    __table_args__ = (
        UniqueConstraint("league_id", "remote_id", name="uq_game_identity"),
        Index("idx_games_league_season", "league_id", "season"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_GAME_STATUSES


class TeamGameStat(Base):
    """One team's box score line for one game."""

    __tablename__ = "team_game_stats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    game_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True
    )
    team_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    is_home: Mapped[bool] = mapped_column(Boolean, nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stats: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    pace: Mapped[float | None] = mapped_column(Float, nullable=True)
    offensive_rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    defensive_rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    net_rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    efg_pct: Mapped[float | None] = mapped_column(Float, nullable=True)
    ts_pct: Mapped[float | None] = mapped_column(Float, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("game_id", "team_id", name="uq_team_game_stat"),
    )


class PlayerGameStat(Base):
    """One player's box score line for one game."""

    __tablename__ = "player_game_stats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    game_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True
    )
    player_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False, index=True
    )
    team_id: Mapped[int] = mapped_column(Integer, ForeignKey("teams.id"), nullable=False)
    starter: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    minutes: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    stats: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("game_id", "player_id", name="uq_player_game_stat"),
    )


class TeamSeasonStats(Base):
    """Season averages for a team, recomputed from its game lines."""

    __tablename__ = "team_season_stats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    team_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    season: Mapped[str] = mapped_column(String(10), nullable=False)
    games_played: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    averages: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("team_id", "season", name="uq_team_season_stats"),
    )


class PlayerSeasonStats(Base):
    """Season stats for a player.

    ``averages`` is computed from stored game lines; ``provider_stats`` is the
    provider's own season feed, refreshed by the nightly job.
    """

    __tablename__ = "player_season_stats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    player_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False, index=True
    )
    season: Mapped[str] = mapped_column(String(10), nullable=False)
    games_played: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    games_started: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    averages: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    provider_stats: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("player_id", "season", name="uq_player_season_stats"),
    )


class TeamRanking(Base):
    """League rank of a team on one stat, within one ranking generation."""

    __tablename__ = "team_rankings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    league_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("leagues.id", ondelete="CASCADE"), nullable=False
    )
    season: Mapped[str] = mapped_column(String(10), nullable=False)
    generation: Mapped[int] = mapped_column(Integer, nullable=False)
    team_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False
    )
    stat: Mapped[str] = mapped_column(String(50), nullable=False)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "league_id", "season", "generation", "team_id", "stat", name="uq_team_ranking"
        ),
        Index("idx_team_rankings_lookup", "league_id", "season", "generation"),
    )


class RankingGeneration(Base):
    """Pointer to the live ranking generation for a league season."""

    __tablename__ = "ranking_generations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    league_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("leagues.id", ondelete="CASCADE"), nullable=False
    )
    season: Mapped[str] = mapped_column(String(10), nullable=False)
    active_generation: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    swapped_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("league_id", "season", name="uq_ranking_generation"),
    )
