"""Historical box score backfill over a date range.

A run moves through three phases, recorded on its ``BackfillRun`` row:

- collecting: scan the scoreboard of every day in the range and queue each
  final game (optionally only one team's games)
- fetching: fetch and reconcile queued games one at a time, in chunks
- processing: recompute season averages and rankings once for everything
  that was touched

A 429 from the provider stops the run with status ``error``; items left
pending are picked up by the next run over the same range. So are items
whose fetch hit a transient provider failure, until their attempts run out.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from sqlalchemy import select, update

from ..config import settings
from ..db import db_models, get_session
from ..live.espn import ESPNClient, FetchError, RateLimitError
from ..logging import log_context, logger
from ..persistence.games import upsert_game_from_scoreboard
from ..persistence.reconcile import reconcile
from ..utils.date_utils import date_range, format_game_date
from ..utils.datetime_utils import now_utc
from ..utils.db_queries import get_league_id
from ..utils.pacer import Clock, Pacer, chunked
from .aggregation import (
    recalculate_player_averages,
    recalculate_team_averages,
    update_league_rankings,
)
from .game_queue import enqueue_item, set_item_status

RUN_RUNNING = "running"
RUN_COMPLETED = "completed"
RUN_ERROR = "error"
RUN_INTERRUPTED = "interrupted"


def _update_run(run_id: int, **fields) -> None:
    with get_session() as session:
        run = session.get(db_models.BackfillRun, run_id)
        for key, value in fields.items():
            setattr(run, key, value)


def _collect(
    run_id: int,
    league_code: str,
    days: list[date],
    team_remote_id: str | None,
    client: ESPNClient,
    pacer: Pacer,
) -> int:
    """Queue every final game in the range. Returns the number of games found."""
    found = 0
    for day in pacer.pace_items(days):
        listings = client.fetch_scoreboard(league_code, day)
        if isinstance(listings, FetchError):
            if listings.is_rate_limited:
                raise RateLimitError(listings.message)
            logger.warning("backfill_scoreboard_failed", day=str(day), kind=listings.kind.value)
            continue

        with get_session() as session:
            league_id = get_league_id(session, league_code)
            for listing in listings:
                if listing.status != db_models.GameStatus.final.value:
                    continue
                if team_remote_id and not listing.involves(team_remote_id):
                    continue
                game_id, _ = upsert_game_from_scoreboard(session, league_id, listing)
                queued = enqueue_item(
                    session,
                    league_id=league_id,
                    remote_id=listing.remote_id,
                    purpose=db_models.QueuePurpose.backfill.value,
                    game_id=game_id,
                    first_eligible_at=now_utc(),
                    backfill_run_id=run_id,
                )
                if queued or _adopt_pending(session, run_id, league_id, listing.remote_id):
                    found += 1
    return found


def _adopt_pending(session, run_id: int, league_id: int, remote_id: str) -> bool:
    """Hand an item a previous run left pending over to this run."""
    PollQueueItem = db_models.PollQueueItem
    result = session.execute(
        update(PollQueueItem)
        .where(
            PollQueueItem.league_id == league_id,
            PollQueueItem.remote_id == remote_id,
            PollQueueItem.purpose == db_models.QueuePurpose.backfill.value,
            PollQueueItem.status == db_models.QueueStatus.pending.value,
        )
        .values(backfill_run_id=run_id)
        .execution_options(synchronize_session=False)
    )
    return bool(result.rowcount)


def _pending_items(run_id: int) -> list[tuple[int, int | None, str]]:
    PollQueueItem = db_models.PollQueueItem
    with get_session() as session:
        rows = session.execute(
            select(PollQueueItem.id, PollQueueItem.game_id, PollQueueItem.remote_id)
            .where(
                PollQueueItem.backfill_run_id == run_id,
                PollQueueItem.status == db_models.QueueStatus.pending.value,
            )
            .order_by(PollQueueItem.id)
        ).all()
    return [tuple(row) for row in rows]


def _fetch_one(item_id: int, game_id: int, remote_id: str, league_code: str, client: ESPNClient) -> bool:
    """Fetch and reconcile one backfill game. Returns True when stored as final."""
    snapshot = client.fetch_snapshot(league_code, remote_id)
    if isinstance(snapshot, FetchError) and snapshot.is_rate_limited:
        raise RateLimitError(snapshot.message)

    with get_session() as session:
        item = session.get(db_models.PollQueueItem, item_id)
        item.check_count += 1
        item.last_checked_at = now_utc()
        if isinstance(snapshot, FetchError):
            item.last_error = f"{snapshot.kind.value}: {snapshot.message}"
            if snapshot.is_not_found or item.check_count >= settings.polling_config.backfill_max_attempts:
                set_item_status(item, db_models.QueueStatus.failed.value)
            else:
                # Still pending: the next run over this range adopts it
                logger.info(
                    "backfill_item_deferred",
                    item_id=item_id,
                    remote_id=remote_id,
                    attempts=item.check_count,
                    error=item.last_error,
                )
            return False

        game = session.get(db_models.Game, game_id)
        result = reconcile(session, game, snapshot, recompute_aggregates=False)
        if result.status != db_models.GameStatus.final.value:
            item.last_error = f"not final: {result.status}"
            set_item_status(item, db_models.QueueStatus.failed.value)
            return False
        if result.partial_write:
            item.last_error = f"partial write: {result.failed_writes} failed"
        set_item_status(item, db_models.QueueStatus.processed.value)
        return True


def _recompute(league_code: str, game_ids: list[int]) -> None:
    """Recompute averages for every team and player in the given games, then rankings."""
    Game = db_models.Game
    PlayerGameStat = db_models.PlayerGameStat
    with get_session() as session:
        games = session.execute(select(Game).where(Game.id.in_(game_ids))).scalars().all()
        team_seasons = {(g.home_team_id, g.season) for g in games} | {(g.away_team_id, g.season) for g in games}
        player_seasons = set(
            session.execute(
                select(PlayerGameStat.player_id, Game.season)
                .join(Game, Game.id == PlayerGameStat.game_id)
                .where(Game.id.in_(game_ids))
            ).all()
        )
        for team_id, season in sorted(team_seasons):
            recalculate_team_averages(session, team_id, season)
        for player_id, season in sorted(player_seasons):
            recalculate_player_averages(session, player_id, season)
        league_id = get_league_id(session, league_code)
        for season in sorted({g.season for g in games}):
            update_league_rankings(session, league_id, season)


def run_backfill(
    league_code: str,
    start_date: date,
    end_date: date,
    team_remote_id: str | None = None,
    client: ESPNClient | None = None,
    clock: Clock | None = None,
) -> int:
    """Backfill final games between two Eastern dates (inclusive). Returns the run id."""
    owns_client = client is None
    client = client or ESPNClient()

    with get_session() as session:
        run = db_models.BackfillRun(
            league_code=league_code.upper(),
            start_date=format_game_date(start_date),
            end_date=format_game_date(end_date),
            team_remote_id=team_remote_id,
            phase=db_models.BackfillPhase.collecting.value,
            status=RUN_RUNNING,
            started_at=now_utc(),
        )
        session.add(run)
        session.flush()
        run_id = run.id
    logger.info(
        "backfill_started",
        run_id=run_id,
        league=league_code,
        start_date=str(start_date),
        end_date=str(end_date),
        team_remote_id=team_remote_id,
    )

    with log_context(league=league_code.upper(), run_id=run_id):
        return _execute(run_id, league_code, start_date, end_date, team_remote_id, client, owns_client, clock)


def _execute(
    run_id: int,
    league_code: str,
    start_date: date,
    end_date: date,
    team_remote_id: str | None,
    client: ESPNClient,
    owns_client: bool,
    clock: Clock | None,
) -> int:
    pacing = settings.pacing_config
    processed_game_ids: list[int] = []
    failed = 0
    try:
        found = _collect(
            run_id,
            league_code,
            date_range(start_date, end_date),
            team_remote_id,
            client,
            Pacer(pacing.backfill_game_delay_ms, clock=clock),
        )
        _update_run(run_id, games_found=found, phase=db_models.BackfillPhase.fetching.value)

        pacer = Pacer(pacing.backfill_game_delay_ms, pacing.backfill_chunk_delay_ms, clock=clock)
        chunks = chunked(_pending_items(run_id), pacing.backfill_chunk_size)
        for _, (item_id, game_id, remote_id) in pacer.pace(chunks):
            try:
                stored = _fetch_one(item_id, game_id, remote_id, league_code, client)
            except RateLimitError:
                raise
            except Exception as exc:
                logger.warning("backfill_game_error", remote_id=remote_id, error=str(exc))
                stored = False
            if stored:
                processed_game_ids.append(game_id)
            else:
                failed += 1
            _update_run(run_id, games_processed=len(processed_game_ids), games_failed=failed)

        _update_run(run_id, phase=db_models.BackfillPhase.processing.value)
        if processed_game_ids:
            _recompute(league_code, processed_game_ids)
    except RateLimitError as exc:
        logger.warning("backfill_rate_limited", error=str(exc))
        _finish(run_id, RUN_ERROR, f"rate limited: {exc}")
        return run_id
    except Exception as exc:
        logger.error("backfill_failed", error=str(exc), exc_info=True)
        _finish(run_id, RUN_ERROR, str(exc))
        raise
    finally:
        if owns_client:
            client.close()

    _finish(run_id, RUN_COMPLETED, f"{failed} games failed" if failed else None)
    return run_id


def _finish(run_id: int, status: str, error_summary: str | None) -> None:
    _update_run(run_id, status=status, error_summary=error_summary, finished_at=now_utc())
    logger.info("backfill_finished", status=status, error_summary=error_summary)


def mark_stale_runs_interrupted(
    session,
    stale_after: timedelta = timedelta(hours=1),
    now: datetime | None = None,
) -> int:
    """Mark runs stuck in ``running`` past ``stale_after`` as interrupted.

    A worker killed mid-run leaves its row running forever; this is called
    when a worker starts.
    """
    now = now or now_utc()
    BackfillRun = db_models.BackfillRun
    stale_runs = session.execute(
        select(BackfillRun).where(
            BackfillRun.status == RUN_RUNNING,
            BackfillRun.started_at < now - stale_after,
        )
    ).scalars().all()
    for run in stale_runs:
        run.status = RUN_INTERRUPTED
        run.finished_at = now
        run.error_summary = "Run was interrupted (worker shutdown or container killed)"
        logger.warning("backfill_run_marked_interrupted", run_id=run.id, started_at=str(run.started_at))
    return len(stale_runs)
