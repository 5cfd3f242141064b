"""
Single source of truth for the leagues the sync engine knows about.

Each league is one ``LeagueAdapter`` row: where its provider endpoints live,
how a provider payload becomes a ``GameSnapshot``, and how provider stat
names map to our stat keys. The engine itself never branches on league.

To add a league: add an entry to LEAGUE_ADAPTERS. No other code changes
are needed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from .config import settings
from .normalization.espn import normalize_summary

if TYPE_CHECKING:
    from .models import GameSnapshot


@dataclass(frozen=True)
class StatFieldMap:
    """Provider stat name → canonical stat key(s).

    Split fields carry "made-attempted" strings and map to two keys.
    """

    team_splits: dict[str, tuple[str, str]]
    team_values: dict[str, str]
    player_splits: dict[str, tuple[str, str]]
    player_values: dict[str, str]
    # Provider alternates tried when the primary team stat is missing or zero
    team_fallbacks: dict[str, str] = field(default_factory=dict)


BASKETBALL_STAT_FIELDS = StatFieldMap(
    team_splits={
        "fieldGoalsMade-fieldGoalsAttempted": ("fg_made", "fg_attempted"),
        "threePointFieldGoalsMade-threePointFieldGoalsAttempted": ("three_made", "three_attempted"),
        "freeThrowsMade-freeThrowsAttempted": ("ft_made", "ft_attempted"),
    },
    team_values={
        "fieldGoalPct": "fg_pct",
        "threePointFieldGoalPct": "three_pct",
        "freeThrowPct": "ft_pct",
        "totalRebounds": "rebounds",
        "offensiveRebounds": "offensive_rebounds",
        "defensiveRebounds": "defensive_rebounds",
        "assists": "assists",
        "steals": "steals",
        "blocks": "blocks",
        "turnovers": "turnovers",
        "fouls": "fouls",
        "pointsInPaint": "points_in_paint",
        "fastBreakPoints": "fast_break_points",
        "largestLead": "largest_lead",
    },
    team_fallbacks={"turnovers": "totalTurnovers"},
    player_splits={
        "FG": ("fg_made", "fg_attempted"),
        "3PT": ("three_made", "three_attempted"),
        "FT": ("ft_made", "ft_attempted"),
    },
    player_values={
        "PTS": "points",
        "REB": "rebounds",
        "OREB": "offensive_rebounds",
        "DREB": "defensive_rebounds",
        "AST": "assists",
        "STL": "steals",
        "BLK": "blocks",
        "TO": "turnovers",
        "PF": "fouls",
    },
)


@dataclass(frozen=True)
class LeagueAdapter:
    """Provider capabilities for a single league."""

    code: str                       # "NBA", "WNBA", "GLEAGUE"
    display_name: str
    slug: str                       # provider path segment
    statistic_field_map: StatFieldMap = BASKETBALL_STAT_FIELDS
    normalize_snapshot: Callable[[dict[str, Any], "LeagueAdapter"], "GameSnapshot"] = normalize_summary

    # Scheduling
    live_sync_enabled: bool = True
    nightly_enabled: bool = True

    def endpoint_template(self, kind: str = "site") -> str:
        """Base URL for one of the provider APIs (site, common, core)."""
        override = settings.api_base_override(self.code, kind)
        if override:
            return override.rstrip("/")
        template = getattr(settings.provider_config, f"{kind}_api_template")
        return template.format(slug=self.slug)

    def summary_url(self, remote_id: str) -> str:
        return f"{self.endpoint_template('site')}/summary?event={remote_id}"

    def scoreboard_url(self, dates: str) -> str:
        return f"{self.endpoint_template('site')}/scoreboard?dates={dates}"

    def roster_url(self, team_remote_id: str) -> str:
        return f"{self.endpoint_template('common')}/teams/{team_remote_id}/roster"

    def player_overview_url(self, player_remote_id: str) -> str:
        return f"{self.endpoint_template('common')}/athletes/{player_remote_id}/overview"

    def core_player_stats_url(self, season_year: int, player_remote_id: str) -> str:
        return (
            f"{self.endpoint_template('core')}/seasons/{season_year}/types/2"
            f"/athletes/{player_remote_id}/statistics/0?lang=en&region=us"
        )


LEAGUE_ADAPTERS: dict[str, LeagueAdapter] = {
    "NBA": LeagueAdapter(code="NBA", display_name="NBA", slug="nba"),
    "WNBA": LeagueAdapter(code="WNBA", display_name="WNBA", slug="wnba"),
    "GLEAGUE": LeagueAdapter(
        code="GLEAGUE",
        display_name="NBA G League",
        slug="nba-development",
    ),
}


def get_league_adapter(league_code: str) -> LeagueAdapter:
    """
    Get the adapter for a league code (case-insensitive).

    Raises:
        ValueError: If league_code is not in LEAGUE_ADAPTERS
    """
    code = (league_code or "").upper()
    if code not in LEAGUE_ADAPTERS:
        valid = ", ".join(LEAGUE_ADAPTERS.keys())
        raise ValueError(f"Unknown league '{league_code}'. Valid leagues: {valid}")
    return LEAGUE_ADAPTERS[code]


def get_enabled_leagues() -> list[str]:
    """All configured league codes."""
    return list(LEAGUE_ADAPTERS.keys())


def get_live_sync_leagues() -> list[str]:
    return [code for code, adapter in LEAGUE_ADAPTERS.items() if adapter.live_sync_enabled]


def get_nightly_leagues() -> list[str]:
    return [code for code, adapter in LEAGUE_ADAPTERS.items() if adapter.nightly_enabled]
