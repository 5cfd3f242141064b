"""Delayed post-game stat collection.

Discovery lists a day's scoreboard and queues every game for a first check
2h15m after tip. Processing walks ready items one at a time: games that are
not final yet are checked again on the next run, final games are reconciled
and their rosters' season stats refreshed, and games that never finish are
abandoned once past their deadline or check budget.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.orm import Session

from ..config import settings
from ..db import db_models, get_session
from ..live.espn import ESPNClient, FetchError, RateLimitError
from ..logging import logger
from ..models import GameSnapshot
from ..orm.queue import TERMINAL_QUEUE_STATUSES, can_transition
from ..orm.sports import TERMINAL_GAME_STATUSES
from ..persistence.games import upsert_game_from_scoreboard
from ..persistence.reconcile import reconcile
from ..utils.datetime_utils import now_utc
from ..utils.db_queries import dialect_insert, get_league_code, get_league_id
from ..utils.pacer import Pacer
from .nightly import refresh_team_player_stats
from .poll_policy import abandon_deadline, first_check_time, should_abandon


def enqueue_item(
    session: Session,
    *,
    league_id: int,
    remote_id: str,
    purpose: str,
    game_id: int | None,
    first_eligible_at: datetime,
    abandon_at: datetime | None = None,
    backfill_run_id: int | None = None,
) -> bool:
    """Queue a game for a job. Returns False if it is already queued for that purpose.

    Existing items are never touched, so re-running discovery cannot reopen
    a terminal item.
    """
    stmt = dialect_insert(session, db_models.PollQueueItem).values(
        league_id=league_id,
        remote_id=remote_id,
        purpose=purpose,
        game_id=game_id,
        status=db_models.QueueStatus.pending.value,
        check_count=0,
        first_eligible_at=first_eligible_at,
        abandon_at=abandon_at,
        backfill_run_id=backfill_run_id,
    )
    stmt = stmt.on_conflict_do_nothing(index_elements=["league_id", "remote_id", "purpose"])
    return bool(session.execute(stmt).rowcount)


def set_item_status(item, status: str) -> bool:
    """Move an item forward; refuses (and logs) any backward or post-terminal move."""
    if not can_transition(item.status, status):
        logger.warning(
            "queue_item_transition_rejected",
            item_id=item.id,
            current=item.status,
            incoming=status,
        )
        return False
    item.status = status
    return True


def discover_games(
    session: Session,
    league_code: str,
    day: date,
    client: ESPNClient,
) -> dict[str, int]:
    """Queue every game on a league's scoreboard for post-game collection."""
    counts = {"found": 0, "added": 0, "skipped": 0}
    listings = client.fetch_scoreboard(league_code, day)
    if isinstance(listings, FetchError):
        logger.warning(
            "game_queue_discovery_failed",
            league=league_code,
            day=str(day),
            kind=listings.kind.value,
            status_code=listings.status_code,
        )
        counts["errors"] = 1
        return counts

    league_id = get_league_id(session, league_code)
    for listing in listings:
        counts["found"] += 1
        if listing.scheduled_start is None:
            logger.info("game_queue_skip_no_start", league=league_code, remote_id=listing.remote_id)
            counts["skipped"] += 1
            continue
        game_id, _ = upsert_game_from_scoreboard(session, league_id, listing)
        added = enqueue_item(
            session,
            league_id=league_id,
            remote_id=listing.remote_id,
            purpose=db_models.QueuePurpose.post_game_stats.value,
            game_id=game_id,
            first_eligible_at=first_check_time(listing.scheduled_start),
            abandon_at=abandon_deadline(listing.scheduled_start),
        )
        counts["added" if added else "skipped"] += 1

    logger.info("game_queue_discovered", league=league_code, day=str(day), **counts)
    return counts


def _ready_item_ids(league_code: str | None, now: datetime) -> list[int]:
    PollQueueItem = db_models.PollQueueItem
    with get_session() as session:
        stmt = select(PollQueueItem.id).where(
            PollQueueItem.purpose == db_models.QueuePurpose.post_game_stats.value,
            or_(
                PollQueueItem.status == db_models.QueueStatus.checking.value,
                and_(
                    PollQueueItem.status == db_models.QueueStatus.pending.value,
                    PollQueueItem.first_eligible_at <= now,
                ),
            ),
        )
        if league_code:
            stmt = stmt.where(PollQueueItem.league_id == get_league_id(session, league_code))
        stmt = stmt.order_by(PollQueueItem.first_eligible_at, PollQueueItem.id)
        return list(session.execute(stmt).scalars().all())


def _abandon(item, now: datetime) -> None:
    reason = "deadline_passed" if item.abandon_at and now >= item.abandon_at else "max_checks"
    if set_item_status(item, db_models.QueueStatus.abandoned.value):
        item.last_checked_at = now
        item.last_error = f"abandoned: {reason}"
        logger.warning(
            "game_queue_item_abandoned",
            item_id=item.id,
            remote_id=item.remote_id,
            check_count=item.check_count,
            reason=reason,
        )


def _record_check(item, now: datetime, error: str | None = None) -> str:
    """Count one unsuccessful look at an item; abandon it when its budget runs out."""
    item.check_count += 1
    item.last_checked_at = now
    item.last_error = error
    if should_abandon(item, now):
        _abandon(item, now)
        return "abandoned"
    set_item_status(item, db_models.QueueStatus.checking.value)
    return "checking"


def _find_game(session: Session, item):
    if item.game_id is not None:
        game = session.get(db_models.Game, item.game_id)
        if game is not None:
            return game
    Game = db_models.Game
    return session.execute(
        select(Game).where(Game.league_id == item.league_id, Game.remote_id == item.remote_id)
    ).scalar_one_or_none()


def process_item(item_id: int, client: ESPNClient, now: datetime | None = None) -> str:
    """Check one queue item. Returns processed, checking, abandoned or skipped.

    Raises ``RateLimitError`` when the provider answers 429.
    """
    now = now or now_utc()
    with get_session() as session:
        item = session.get(db_models.PollQueueItem, item_id)
        if item is None or item.status in TERMINAL_QUEUE_STATUSES:
            return "skipped"
        if should_abandon(item, now):
            _abandon(item, now)
            return "abandoned"
        league_code = get_league_code(session, item.league_id)
        remote_id = item.remote_id

    snapshot = client.fetch_snapshot(league_code, remote_id)
    if isinstance(snapshot, FetchError) and snapshot.is_rate_limited:
        raise RateLimitError(snapshot.message)

    with get_session() as session:
        item = session.get(db_models.PollQueueItem, item_id)
        if isinstance(snapshot, FetchError):
            return _record_check(item, now, error=f"{snapshot.kind.value}: {snapshot.message}")
        if snapshot.status not in TERMINAL_GAME_STATUSES:
            return _record_check(item, now)

        game = _find_game(session, item)
        if game is None:
            return _record_check(item, now, error="game not in store")
        result = reconcile(session, game, snapshot, now=now)
        if not result.reached_terminal:
            return _record_check(item, now, error="provider final rejected")
        item.game_id = game.id

    if snapshot.is_final:
        _refresh_rosters(league_code, snapshot, client)

    with get_session() as session:
        item = session.get(db_models.PollQueueItem, item_id)
        item.last_checked_at = now
        item.last_error = None
        set_item_status(item, db_models.QueueStatus.processed.value)
    logger.info("game_queue_item_processed", item_id=item_id, remote_id=remote_id, status=snapshot.status)
    return "processed"


def _refresh_rosters(league_code: str, snapshot: GameSnapshot, client: ESPNClient) -> None:
    pacing = settings.pacing_config
    pacer = Pacer(pacing.queue_team_delay_ms)
    for line in (snapshot.home, snapshot.away):
        refresh_team_player_stats(league_code, line.team.remote_id, client, pacer=pacer)


def process_ready_items(
    league_code: str | None = None,
    client: ESPNClient | None = None,
    pacer: Pacer | None = None,
    now: datetime | None = None,
) -> dict[str, int]:
    """Process every ready item strictly in sequence.

    A failure on one item is logged and the run continues; a 429 stops the
    run and leaves the remaining items for the next one.
    """
    now = now or now_utc()
    pacer = pacer or Pacer(settings.pacing_config.queue_game_delay_ms)
    owns_client = client is None
    client = client or ESPNClient()
    counts = {"processed": 0, "checking": 0, "abandoned": 0, "skipped": 0, "errors": 0}

    try:
        for item_id in pacer.pace_items(_ready_item_ids(league_code, now)):
            try:
                outcome = process_item(item_id, client, now=now)
            except RateLimitError as exc:
                logger.warning("game_queue_rate_limited", item_id=item_id, error=str(exc))
                counts["rate_limited"] = 1
                break
            except Exception as exc:
                logger.warning("game_queue_item_error", item_id=item_id, error=str(exc))
                counts["errors"] += 1
                continue
            counts[outcome] += 1
    finally:
        if owns_client:
            client.close()

    logger.info("game_queue_processed", league=league_code, **counts)
    return counts


def cleanup_old_items(
    session: Session,
    older_than_days: int | None = None,
    now: datetime | None = None,
) -> int:
    """Delete terminal items whose first check was more than ``older_than_days`` ago."""
    days = older_than_days if older_than_days is not None else settings.polling_config.cleanup_after_days
    cutoff = (now or now_utc()) - timedelta(days=days)
    PollQueueItem = db_models.PollQueueItem
    result = session.execute(
        delete(PollQueueItem)
        .where(
            PollQueueItem.status.in_(sorted(TERMINAL_QUEUE_STATUSES)),
            PollQueueItem.first_eligible_at < cutoff,
        )
        .execution_options(synchronize_session=False)
    )
    deleted = result.rowcount or 0
    logger.info("game_queue_cleanup", deleted=deleted, days=days)
    return deleted
