"""Normalization of ESPN basketball payloads into canonical snapshot models.

Every numeric field is coerced: unparsable stat strings become 0 and never
raise. List entries that are not objects are skipped. Only structurally
missing data (no competition, no competitors) raises ``ProviderShapeError``,
which the client reports as an upstream failure.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

from ..models import (
    GameSnapshot,
    PlayerIdentity,
    PlayerLine,
    PlayerSeasonLine,
    RosterPlayer,
    ScoreboardGame,
    TeamIdentity,
    TeamLine,
)
from ..utils.datetime_utils import parse_provider_datetime
from ..utils.parsing import float_or_zero, int_or_zero, parse_int, parse_split

if TYPE_CHECKING:
    from ..config_leagues import LeagueAdapter, StatFieldMap


class ProviderShapeError(ValueError):
    """Raised when a provider payload lacks fields required for a snapshot."""


def _obj(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _objs(value: Any) -> list[dict[str, Any]]:
    """Dict entries of a list; anything else in the payload is ignored."""
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, dict)]


def map_provider_state(state: str | None, detail: str | None = None) -> str:
    """Map the provider's (state, detail) pair onto our game status set."""
    if not state:
        return "scheduled"
    if state == "pre":
        return "scheduled"
    if state == "in":
        detail_lower = (detail or "").lower()
        if "halftime" in detail_lower:
            return "halftime"
        if "end of" in detail_lower:
            return "end_of_period"
        if "overtime" in detail_lower or " ot" in detail_lower:
            return "overtime"
        return "live"
    if state == "post":
        return "final"
    if state == "postponed":
        return "postponed"
    if state in ("cancelled", "canceled"):
        return "cancelled"
    return "scheduled"


def _status_fields(node: dict[str, Any] | None) -> tuple[str | None, str | None]:
    status_type = _obj(_obj(_obj(node).get("status")).get("type"))
    return status_type.get("state"), status_type.get("detail") or status_type.get("shortDetail")


def _team_identity(team: dict[str, Any], league_code: str) -> TeamIdentity:
    team_id = team.get("id")
    if team_id in (None, ""):
        raise ProviderShapeError("competitor team is missing an id")
    logo = team.get("logo")
    logos = _objs(team.get("logos"))
    if not logo and logos:
        logo = logos[0].get("href")
    color = team.get("color")
    return TeamIdentity(
        league_code=league_code,
        remote_id=str(team_id),
        name=team.get("displayName") or team.get("name") or str(team_id),
        abbreviation=team.get("abbreviation"),
        location=team.get("location"),
        logo_url=logo,
        color_hex=f"#{color}"[:7] if color else None,
    )


def _split_competitors(
    competitors: Any, league_code: str
) -> tuple[TeamLine, TeamLine]:
    competitors = _objs(competitors)
    if not competitors:
        raise ProviderShapeError("competition has no competitors")
    lines: dict[str, TeamLine] = {}
    for competitor in competitors:
        side = competitor.get("homeAway")
        if side not in ("home", "away"):
            continue
        lines[side] = TeamLine(
            team=_team_identity(_obj(competitor.get("team")), league_code),
            is_home=side == "home",
            score=parse_int(competitor.get("score")),
        )
    if "home" not in lines or "away" not in lines:
        raise ProviderShapeError("competition is missing a home or away competitor")
    return lines["home"], lines["away"]


def parse_team_stats(stats: list[dict[str, Any]] | None, field_map: StatFieldMap) -> dict[str, float]:
    """Parse ``boxscore.teams[].statistics`` into canonical stat keys."""
    by_name = {s.get("name"): s.get("displayValue") for s in _objs(stats) if s.get("name")}
    parsed: dict[str, float] = {}

    for provider_name, (made_key, attempted_key) in field_map.team_splits.items():
        made, attempted = parse_split(by_name.get(provider_name))
        parsed[made_key] = made
        parsed[attempted_key] = attempted

    for provider_name, key in field_map.team_values.items():
        raw = by_name.get(provider_name)
        if raw is not None and "-" in str(raw).strip("-"):
            # Some feeds report a split where a single value is expected
            value = float(parse_split(raw)[0])
        else:
            value = float_or_zero(raw)
        if not value and key in field_map.team_fallbacks:
            value = float_or_zero(by_name.get(field_map.team_fallbacks[key]))
        parsed[key] = value

    return parsed


def parse_player_lines(
    block: dict[str, Any], field_map: StatFieldMap, league_code: str
) -> list[PlayerLine]:
    """Parse one ``boxscore.players[]`` entry (a team's players).

    Stat positions are looked up by label, so column order changes in the
    feed do not shift values.
    """
    categories = _objs(block.get("statistics"))
    if not categories:
        return []
    category = categories[0]
    labels = category.get("labels") or category.get("names") or []
    if not isinstance(labels, list):
        labels = []
    team_remote_id = str(_obj(block.get("team")).get("id", ""))

    def _raw(row: list[Any], label: str) -> Any:
        try:
            idx = labels.index(label)
        except ValueError:
            return None
        return row[idx] if idx < len(row) else None

    lines: list[PlayerLine] = []
    for entry in _objs(category.get("athletes")):
        athlete = _obj(entry.get("athlete"))
        if not athlete.get("id"):
            continue
        row = entry.get("stats")
        if not isinstance(row, list):
            row = []
        stats: dict[str, float] = {}
        for label, (made_key, attempted_key) in field_map.player_splits.items():
            made, attempted = parse_split(_raw(row, label))
            stats[made_key] = made
            stats[attempted_key] = attempted
        for label, key in field_map.player_values.items():
            stats[key] = int_or_zero(_raw(row, label))

        plus_minus_raw = _raw(row, "+/-")
        plus_minus = None
        if plus_minus_raw not in (None, "", "0"):
            plus_minus = parse_int(str(plus_minus_raw).lstrip("+"))

        lines.append(
            PlayerLine(
                player=PlayerIdentity(
                    league_code=league_code,
                    remote_id=str(athlete["id"]),
                    name=athlete.get("displayName") or "Unknown",
                    position=_obj(athlete.get("position")).get("abbreviation"),
                    jersey=athlete.get("jersey"),
                ),
                team_remote_id=team_remote_id,
                starter=bool(entry.get("starter", False)),
                active=bool(entry.get("active", False)) and not entry.get("didNotPlay", False),
                minutes=float_or_zero(_raw(row, "MIN")),
                plus_minus=plus_minus,
                stats=stats,
            )
        )
    return lines


def normalize_summary(payload: dict[str, Any], adapter: LeagueAdapter) -> GameSnapshot:
    """Build a ``GameSnapshot`` from a game summary payload."""
    header = _obj(payload.get("header"))
    competitions = _objs(header.get("competitions"))
    if not competitions:
        raise ProviderShapeError("summary has no header competition")
    competition = competitions[0]

    home, away = _split_competitors(competition.get("competitors"), adapter.code)
    field_map = adapter.statistic_field_map

    boxscore = _obj(payload.get("boxscore"))
    for team_block in _objs(boxscore.get("teams")):
        team_id = str(_obj(team_block.get("team")).get("id", ""))
        line = home if team_id == home.team.remote_id else away if team_id == away.team.remote_id else None
        if line is not None:
            line.stats = parse_team_stats(team_block.get("statistics"), field_map)

    players: list[PlayerLine] = []
    for player_block in _objs(boxscore.get("players")):
        players.extend(parse_player_lines(player_block, field_map, adapter.code))

    state, detail = _status_fields(competition)
    remote_id = header.get("id") or competition.get("id")
    if not remote_id:
        raise ProviderShapeError("summary is missing the event id")

    return GameSnapshot(
        league_code=adapter.code,
        remote_id=str(remote_id),
        status=map_provider_state(state, detail),
        status_detail=detail,
        scheduled_start=parse_provider_datetime(competition.get("date")),
        venue=_obj(competition.get("venue")).get("fullName"),
        home=home,
        away=away,
        players=players,
    )


def normalize_scoreboard(payload: dict[str, Any], adapter: LeagueAdapter) -> list[ScoreboardGame]:
    """Parse a scoreboard payload; malformed events are skipped."""
    games: list[ScoreboardGame] = []
    for event in _objs(payload.get("events")):
        competitions = _objs(event.get("competitions"))
        if not event.get("id") or not competitions:
            continue
        competition = competitions[0]
        try:
            home, away = _split_competitors(competition.get("competitors"), adapter.code)
        except ProviderShapeError:
            continue
        state, detail = _status_fields(event if event.get("status") else competition)
        games.append(
            ScoreboardGame(
                league_code=adapter.code,
                remote_id=str(event["id"]),
                status=map_provider_state(state, detail),
                status_detail=detail,
                scheduled_start=parse_provider_datetime(
                    competition.get("startDate") or competition.get("date") or event.get("date")
                ),
                venue=_obj(competition.get("venue")).get("fullName"),
                home=home,
                away=away,
            )
        )
    return games


def normalize_roster(payload: dict[str, Any]) -> list[RosterPlayer]:
    """Parse a team roster; prefers the "all" position group."""
    groups = _objs(payload.get("positionGroups"))
    all_group = next((g for g in groups if g.get("type") == "all"), None)
    if all_group is not None:
        athletes = _objs(all_group.get("athletes"))
    elif groups:
        athletes = _objs(groups[0].get("athletes"))
    else:
        athletes = _objs(payload.get("athletes"))

    roster: list[RosterPlayer] = []
    for athlete in athletes:
        if not athlete.get("id"):
            continue
        roster.append(
            RosterPlayer(
                remote_id=str(athlete["id"]),
                name=athlete.get("displayName") or athlete.get("fullName") or str(athlete["id"]),
                position=_obj(athlete.get("position")).get("abbreviation"),
                jersey=athlete.get("jersey"),
            )
        )
    return roster


_OVERVIEW_FIELDS = {
    "games_played": "gamesPlayed",
    "games_started": "gamesStarted",
    "minutes_per_game": "avgMinutes",
    "points_per_game": "avgPoints",
    "rebounds_per_game": "avgRebounds",
    "assists_per_game": "avgAssists",
    "steals_per_game": "avgSteals",
    "blocks_per_game": "avgBlocks",
    "turnovers_per_game": "avgTurnovers",
    "field_goal_pct": "fieldGoalPct",
    "three_point_pct": "threePointPct",
    "free_throw_pct": "freeThrowPct",
}


def normalize_player_overview(payload: dict[str, Any]) -> PlayerSeasonLine | None:
    """Parse the first (regular season) split of an athlete overview."""
    statistics = _obj(payload.get("statistics"))
    splits = _objs(statistics.get("splits"))
    values = splits[0].get("stats") if splits else None
    if not values or not isinstance(values, list):
        return None
    names = statistics.get("names")
    if not isinstance(names, list):
        names = []

    def _value(name: str) -> float:
        if name not in names:
            return 0.0
        idx = names.index(name)
        return float_or_zero(values[idx]) if idx < len(values) else 0.0

    parsed = {field: _value(name) for field, name in _OVERVIEW_FIELDS.items()}
    if not parsed["games_started"]:
        parsed["games_started"] = parsed["games_played"]
    return PlayerSeasonLine(**parsed)


_CORE_FIELDS = {
    "games_played": "gamesPlayed",
    "games_started": "gamesStarted",
    "minutes_per_game": "avgMinutes",
    "points_per_game": "avgPoints",
    "rebounds_per_game": "avgRebounds",
    "assists_per_game": "avgAssists",
    "steals_per_game": "avgSteals",
    "blocks_per_game": "avgBlocks",
    "turnovers_per_game": "avgTurnovers",
    "field_goal_pct": "fieldGoalPct",
    "three_point_pct": "threePointFieldGoalPct",
    "free_throw_pct": "freeThrowPct",
    "offensive_rebounds_per_game": "avgOffensiveRebounds",
    "defensive_rebounds_per_game": "avgDefensiveRebounds",
}


def normalize_core_stats(payload: dict[str, Any]) -> dict[str, float]:
    """Extract finite numeric season stats from a core statistics payload.

    Only stats present in the payload are returned, so callers can patch
    without overwriting known values with zeros.
    """
    found: dict[str, float] = {}
    categories = _objs(_obj(payload.get("splits")).get("categories"))
    by_name: dict[str, Any] = {}
    for category in categories:
        for stat in _objs(category.get("stats")):
            if stat.get("name") and stat["name"] not in by_name:
                by_name[stat["name"]] = stat.get("value")
    for field, name in _CORE_FIELDS.items():
        value = by_name.get(name)
        if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
            found[field] = float(value)
    return found
