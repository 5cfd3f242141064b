"""Common typed models shared across the fetcher, reconciler and jobs."""

from .schemas import (
    GameSnapshot,
    PlayerIdentity,
    PlayerLine,
    PlayerSeasonLine,
    RosterPlayer,
    ScoreboardGame,
    TeamIdentity,
    TeamLine,
)

__all__ = [
    "GameSnapshot",
    "PlayerIdentity",
    "PlayerLine",
    "PlayerSeasonLine",
    "RosterPlayer",
    "ScoreboardGame",
    "TeamIdentity",
    "TeamLine",
]
