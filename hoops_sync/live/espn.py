"""ESPN basketball feed client (summary, scoreboard, roster, player stats).

One network call per method. Failures never raise: every method returns
either parsed data or a ``FetchError`` so that polling loops can treat a
missed fetch as "try again later". There are no retries here; spacing and
backoff belong to the job drivers.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, TypeVar

import httpx

from ..config import settings
from ..config_leagues import get_league_adapter
from ..logging import logger
from ..models import GameSnapshot, PlayerSeasonLine, RosterPlayer, ScoreboardGame
from ..normalization.espn import (
    normalize_core_stats,
    normalize_player_overview,
    normalize_roster,
    normalize_scoreboard,
)
from ..utils.date_utils import core_season_year, format_game_date

T = TypeVar("T")

# Shape errors from normalizers; pydantic ValidationError is a ValueError
_MALFORMED_PAYLOAD_ERRORS = (ValueError, TypeError, AttributeError, KeyError, IndexError, OverflowError)


class FetchErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"


@dataclass(frozen=True)
class FetchError:
    """A soft provider failure. Callers retry on their next interval."""

    kind: FetchErrorKind
    status_code: int | None = None
    message: str = ""

    @property
    def is_not_found(self) -> bool:
        return self.kind is FetchErrorKind.NOT_FOUND

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429


class RateLimitError(Exception):
    """Raised by job drivers to stop a bulk run after the provider answers 429."""


class ESPNClient:
    """Synchronous client for the ESPN site, common and core APIs."""

    def __init__(self, client: httpx.Client | None = None) -> None:
        config = settings.provider_config
        headers = {
            "User-Agent": config.user_agent,
            "Accept": "application/json, text/plain, */*",
        }
        self.client = client or httpx.Client(
            timeout=config.request_timeout_seconds,
            headers=headers,
            follow_redirects=True,
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> ESPNClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _get_json(self, url: str, *, event: str, **log_context: Any) -> dict[str, Any] | FetchError:
        """GET a URL and decode JSON, mapping every failure to a FetchError."""
        try:
            response = self.client.get(url)
        except httpx.TimeoutException as exc:
            logger.warning(f"{event}_timeout", url=url, error=str(exc), **log_context)
            return FetchError(FetchErrorKind.UPSTREAM_UNAVAILABLE, message="timeout")
        except httpx.HTTPError as exc:
            logger.warning(f"{event}_error", url=url, error=str(exc), **log_context)
            return FetchError(FetchErrorKind.UPSTREAM_UNAVAILABLE, message=str(exc))

        if response.status_code == 404:
            logger.debug(f"{event}_not_found", url=url, **log_context)
            return FetchError(FetchErrorKind.NOT_FOUND, status_code=404, message="not found")

        if not 200 <= response.status_code < 300:
            logger.warning(f"{event}_failed", url=url, status=response.status_code, **log_context)
            return FetchError(
                FetchErrorKind.UPSTREAM_UNAVAILABLE,
                status_code=response.status_code,
                message=f"HTTP {response.status_code}",
            )

        try:
            payload = response.json()
        except ValueError as exc:
            logger.warning(f"{event}_invalid_json", url=url, error=str(exc), **log_context)
            return FetchError(
                FetchErrorKind.UPSTREAM_UNAVAILABLE,
                status_code=response.status_code,
                message="invalid json",
            )

        if not isinstance(payload, dict):
            logger.warning(f"{event}_unexpected_body", url=url, **log_context)
            return FetchError(
                FetchErrorKind.UPSTREAM_UNAVAILABLE,
                status_code=response.status_code,
                message="unexpected body",
            )
        return payload

    def fetch_snapshot(self, league: str, remote_id: str) -> GameSnapshot | FetchError:
        """Fetch and normalize one game's summary."""
        adapter = get_league_adapter(league)
        payload = self._get_json(
            adapter.summary_url(remote_id), event="espn_summary", league=adapter.code, remote_id=remote_id
        )
        if isinstance(payload, FetchError):
            return payload
        snapshot = self._parse(
            "espn_summary",
            lambda: adapter.normalize_snapshot(payload, adapter),
            league=adapter.code,
            remote_id=remote_id,
        )
        if isinstance(snapshot, FetchError):
            return snapshot
        logger.debug(
            "espn_summary_parsed",
            league=adapter.code,
            remote_id=remote_id,
            status=snapshot.status,
            players=len(snapshot.players),
        )
        return snapshot

    @staticmethod
    def _parse(event: str, normalize: Callable[[], T], **log_context: Any) -> T | FetchError:
        """Run a normalizer, reporting a payload of the wrong shape as an upstream failure."""
        try:
            return normalize()
        except _MALFORMED_PAYLOAD_ERRORS as exc:
            logger.warning(f"{event}_malformed", error=str(exc), error_type=type(exc).__name__, **log_context)
            return FetchError(FetchErrorKind.UPSTREAM_UNAVAILABLE, message=f"malformed: {exc}")

    def fetch_scoreboard(self, league: str, day: date) -> list[ScoreboardGame] | FetchError:
        """Fetch all games listed for one Eastern calendar day."""
        adapter = get_league_adapter(league)
        dates = format_game_date(day)
        payload = self._get_json(
            adapter.scoreboard_url(dates), event="espn_scoreboard", league=adapter.code, date=dates
        )
        if isinstance(payload, FetchError):
            return payload
        games = self._parse(
            "espn_scoreboard", lambda: normalize_scoreboard(payload, adapter), league=adapter.code, date=dates
        )
        if not isinstance(games, FetchError):
            logger.info("espn_scoreboard_parsed", league=adapter.code, date=dates, count=len(games))
        return games

    def fetch_roster(self, league: str, team_remote_id: str) -> list[RosterPlayer] | FetchError:
        adapter = get_league_adapter(league)
        payload = self._get_json(
            adapter.roster_url(team_remote_id),
            event="espn_roster",
            league=adapter.code,
            team_remote_id=team_remote_id,
        )
        if isinstance(payload, FetchError):
            return payload
        return self._parse(
            "espn_roster", lambda: normalize_roster(payload), league=adapter.code, team_remote_id=team_remote_id
        )

    def fetch_player_overview(
        self, league: str, player_remote_id: str
    ) -> PlayerSeasonLine | None | FetchError:
        """Season averages from the athlete overview; None when it has no stats."""
        adapter = get_league_adapter(league)
        payload = self._get_json(
            adapter.player_overview_url(player_remote_id),
            event="espn_player_overview",
            league=adapter.code,
            player_remote_id=player_remote_id,
        )
        if isinstance(payload, FetchError):
            return payload
        return self._parse(
            "espn_player_overview",
            lambda: normalize_player_overview(payload),
            league=adapter.code,
            player_remote_id=player_remote_id,
        )

    def fetch_core_player_stats(
        self, league: str, season: str, player_remote_id: str
    ) -> dict[str, float] | FetchError:
        adapter = get_league_adapter(league)
        url = adapter.core_player_stats_url(core_season_year(season), player_remote_id)
        payload = self._get_json(
            url,
            event="espn_core_stats",
            league=adapter.code,
            player_remote_id=player_remote_id,
        )
        if isinstance(payload, FetchError):
            return payload
        return self._parse(
            "espn_core_stats",
            lambda: normalize_core_stats(payload),
            league=adapter.code,
            player_remote_id=player_remote_id,
        )
