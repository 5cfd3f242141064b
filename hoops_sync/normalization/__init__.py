"""Provider payload normalization into canonical snapshot models."""

from .espn import (
    ProviderShapeError,
    map_provider_state,
    normalize_core_stats,
    normalize_player_overview,
    normalize_roster,
    normalize_scoreboard,
    normalize_summary,
)

__all__ = [
    "ProviderShapeError",
    "map_provider_state",
    "normalize_core_stats",
    "normalize_player_overview",
    "normalize_roster",
    "normalize_scoreboard",
    "normalize_summary",
]
