"""Merge a fetched game snapshot into the store.

Reconciliation is idempotent: participants and per-game stat lines are keyed
upserts, scalar game fields are last-write-wins, and ``last_fetched_at`` only
moves forward. Two callers applying the same snapshot converge on the state
one call would have produced.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from ..db import db_models
from ..logging import logger
from ..models import GameSnapshot
from ..orm.sports import TERMINAL_GAME_STATUSES
from ..services.aggregation import (
    recalculate_player_averages,
    recalculate_team_averages,
    update_league_rankings,
)
from ..utils.datetime_utils import now_utc
from .game_stats import upsert_player_game_stat, upsert_team_game_stat
from .games import advance_last_fetched_at, resolve_status_transition
from .players import upsert_player
from .teams import upsert_team

# A final where one side scored nothing and the other a full game's worth
# is a provider glitch, not a result.
SUSPICIOUS_WINNING_SCORE = 80


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one reconcile call."""

    game_id: int
    status: str
    previous_status: str
    reached_terminal: bool
    transitioned: bool
    teams_upserted: int = 0
    players_upserted: int = 0
    failed_writes: int = 0
    score_anomaly: bool = False

    @property
    def partial_write(self) -> bool:
        """True when at least one sub-record write failed; retry the whole game later."""
        return self.failed_writes > 0


def is_suspicious_final(snapshot: GameSnapshot) -> bool:
    if not snapshot.is_final:
        return False
    home, away = snapshot.home.score, snapshot.away.score
    if home is None or away is None:
        return True
    return (home == 0 and away >= SUSPICIOUS_WINNING_SCORE) or (
        away == 0 and home >= SUSPICIOUS_WINNING_SCORE
    )


def _guarded_write(session: Session, event: str, write: Callable[[], object], **context) -> bool:
    """Run one sub-record write in a SAVEPOINT; log and report failure instead of raising."""
    try:
        with session.begin_nested():
            write()
    except Exception as exc:
        logger.error(event, error=str(exc), exc_info=True, **context)
        return False
    return True


def reconcile(
    session: Session,
    game,
    snapshot: GameSnapshot,
    now: datetime | None = None,
    recompute_aggregates: bool = True,
) -> ReconcileResult:
    """Apply ``snapshot`` to ``game`` inside the caller's transaction.

    Sub-record failures are counted, not raised. ``last_fetched_at`` is
    advanced even on partial writes. Season aggregates are recomputed only
    when this call moves the game into final, unless ``recompute_aggregates``
    is False (bulk callers recompute once at the end).
    """
    now = now or now_utc()
    previous_status = game.status
    league_id = game.league_id
    failed = 0

    team_ids: dict[str, int] = {}
    for line in (snapshot.home, snapshot.away):
        def _write_team(line=line) -> None:
            team_ids[line.team.remote_id] = upsert_team(session, league_id, line.team)

        if not _guarded_write(
            session, "reconcile_team_failed", _write_team, game_id=game.id, team_remote_id=line.team.remote_id
        ):
            failed += 1

    for line, opponent in ((snapshot.home, snapshot.away), (snapshot.away, snapshot.home)):
        team_id = team_ids.get(line.team.remote_id)
        if team_id is None or not line.stats:
            continue
        if not _guarded_write(
            session,
            "reconcile_team_stat_failed",
            lambda line=line, opponent=opponent, team_id=team_id: upsert_team_game_stat(
                session, game.id, team_id, line, opponent.score
            ),
            game_id=game.id,
            team_id=team_id,
        ):
            failed += 1

    player_ids: list[int] = []
    for player_line in snapshot.players:
        team_id = team_ids.get(player_line.team_remote_id)
        if team_id is None:
            failed += 1
            continue

        def _write_player(player_line=player_line, team_id=team_id) -> None:
            identity = player_line.player
            player_id = upsert_player(
                session,
                league_id,
                identity.remote_id,
                identity.name,
                position=identity.position,
                jersey=identity.jersey,
                team_id=team_id,
            )
            upsert_player_game_stat(session, game.id, player_id, team_id, player_line)
            player_ids.append(player_id)

        if not _guarded_write(
            session,
            "reconcile_player_failed",
            _write_player,
            game_id=game.id,
            player_remote_id=player_line.player.remote_id,
        ):
            failed += 1

    anomaly = is_suspicious_final(snapshot)
    if anomaly:
        logger.warning(
            "reconcile_suspicious_final",
            game_id=game.id,
            home_score=snapshot.home.score,
            away_score=snapshot.away.score,
        )
    new_status = resolve_status_transition(previous_status, previous_status if anomaly else snapshot.status)

    if previous_status not in TERMINAL_GAME_STATUSES and not anomaly:
        if snapshot.home.score is not None:
            game.home_score = snapshot.home.score
        if snapshot.away.score is not None:
            game.away_score = snapshot.away.score
        if snapshot.status_detail:
            game.status_detail = snapshot.status_detail
        if snapshot.scheduled_start is not None:
            game.scheduled_start = snapshot.scheduled_start
        if snapshot.venue:
            game.venue = snapshot.venue
    if new_status != previous_status:
        game.status = new_status
        if new_status in TERMINAL_GAME_STATUSES:
            game.end_time = now
    session.flush()

    advance_last_fetched_at(session, game.id, now)
    session.refresh(game, attribute_names=["last_fetched_at"])

    transitioned_to_final = (
        new_status == db_models.GameStatus.final.value
        and previous_status != db_models.GameStatus.final.value
    )
    if transitioned_to_final and recompute_aggregates:
        failed += _recompute_aggregates(session, game, list(team_ids.values()), player_ids)

    result = ReconcileResult(
        game_id=game.id,
        status=new_status,
        previous_status=previous_status,
        reached_terminal=new_status in TERMINAL_GAME_STATUSES,
        transitioned=new_status != previous_status,
        teams_upserted=len(team_ids),
        players_upserted=len(player_ids),
        failed_writes=failed,
        score_anomaly=anomaly,
    )
    log = logger.warning if result.partial_write else logger.info
    log(
        "game_reconciled",
        game_id=game.id,
        status=new_status,
        previous_status=previous_status,
        players=len(player_ids),
        failed_writes=failed,
    )
    return result


def _recompute_aggregates(session: Session, game, team_ids: list[int], player_ids: list[int]) -> int:
    """Refresh season averages and rankings after a game goes final. Returns failures."""
    failed = 0
    for team_id in team_ids:
        if not _guarded_write(
            session,
            "team_averages_failed",
            lambda team_id=team_id: recalculate_team_averages(session, team_id, game.season),
            game_id=game.id,
            team_id=team_id,
        ):
            failed += 1
    for player_id in player_ids:
        if not _guarded_write(
            session,
            "player_averages_failed",
            lambda player_id=player_id: recalculate_player_averages(session, player_id, game.season),
            game_id=game.id,
            player_id=player_id,
        ):
            failed += 1
    if not _guarded_write(
        session,
        "league_rankings_failed",
        lambda: update_league_rankings(session, game.league_id, game.season),
        game_id=game.id,
    ):
        failed += 1
    return failed
