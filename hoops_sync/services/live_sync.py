"""Single-game sync entry point shared by the live poller and the client API.

``sync_if_due`` is the whole engine for one game: gate check, fetch,
reconcile, next interval. Concurrent callers may both pass the gate inside
one throttle window; reconciliation is idempotent, so the duplicate fetch is
wasted work rather than a conflicting write.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..config import settings
from ..db import db_models, get_session
from ..live.espn import ESPNClient, FetchError
from ..logging import log_context, logger
from ..persistence.reconcile import ReconcileResult, reconcile
from ..utils.datetime_utils import now_utc
from ..utils.db_queries import get_league_code
from .poll_policy import next_poll_interval_ms
from .throttle import should_fetch


@dataclass(frozen=True)
class SyncOutcome:
    """What one ``sync_if_due`` call did.

    ``reason`` is one of: reconciled, throttled, terminal, fetch_error, missing.
    """

    game_id: int
    fetched: bool
    reason: str
    result: ReconcileResult | None = None
    error: FetchError | None = None
    next_poll_interval_ms: int | None = None


def sync_if_due(
    game_id: int,
    *,
    min_interval_ms: int | None = None,
    client: ESPNClient | None = None,
    now: datetime | None = None,
) -> SyncOutcome:
    """Fetch and reconcile a game if its throttle window has passed.

    Never raises for provider failures: a NotFound or UpstreamUnavailable
    result leaves ``last_fetched_at`` unchanged and the caller retries on its
    next interval.
    """
    interval = min_interval_ms if min_interval_ms is not None else settings.polling_config.live_min_interval_ms
    checked_at = now or now_utc()

    with get_session() as session:
        game = session.get(db_models.Game, game_id)
        if game is None:
            return SyncOutcome(game_id=game_id, fetched=False, reason="missing")
        if game.is_terminal:
            return SyncOutcome(game_id=game_id, fetched=False, reason="terminal")
        if not should_fetch(game, checked_at, interval):
            return SyncOutcome(
                game_id=game_id,
                fetched=False,
                reason="throttled",
                next_poll_interval_ms=next_poll_interval_ms(game, checked_at),
            )
        league_code = get_league_code(session, game.league_id)
        remote_id = game.remote_id

    with log_context(league=league_code, game_id=game_id, remote_id=remote_id):
        return _fetch_and_reconcile(game, league_code, remote_id, client, checked_at, now)


def _fetch_and_reconcile(
    game,
    league_code: str,
    remote_id: str,
    client: ESPNClient | None,
    checked_at: datetime,
    now: datetime | None,
) -> SyncOutcome:
    game_id = game.id
    owns_client = client is None
    client = client or ESPNClient()
    try:
        snapshot = client.fetch_snapshot(league_code, remote_id)
    finally:
        if owns_client:
            client.close()

    if isinstance(snapshot, FetchError):
        logger.info(
            "live_sync_fetch_failed",
            kind=snapshot.kind.value,
            status_code=snapshot.status_code,
        )
        return SyncOutcome(
            game_id=game_id,
            fetched=False,
            reason="fetch_error",
            error=snapshot,
            next_poll_interval_ms=next_poll_interval_ms(game, checked_at),
        )

    with get_session() as session:
        game = session.get(db_models.Game, game_id)
        result = reconcile(session, game, snapshot, now=now or now_utc())
        interval_after = next_poll_interval_ms(game, checked_at)

    logger.info(
        "live_sync_reconciled",
        status=result.status,
        reached_terminal=result.reached_terminal,
        partial_write=result.partial_write,
    )
    return SyncOutcome(
        game_id=game_id,
        fetched=True,
        reason="reconciled",
        result=result,
        next_poll_interval_ms=interval_after,
    )
