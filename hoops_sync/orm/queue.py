"""Work-queue models for the post-game and backfill jobs."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UTCDateTime


class QueueStatus(str, Enum):
    """Forward-only queue item lifecycle: pending → checking → terminal."""

    pending = "pending"
    checking = "checking"
    processed = "processed"
    abandoned = "abandoned"
    failed = "failed"


TERMINAL_QUEUE_STATUSES = frozenset(
    {QueueStatus.processed.value, QueueStatus.abandoned.value, QueueStatus.failed.value}
)

_QUEUE_STATUS_ORDER: dict[str, int] = {
    QueueStatus.pending.value: 0,
    QueueStatus.checking.value: 1,
    QueueStatus.processed.value: 2,
    QueueStatus.abandoned.value: 2,
    QueueStatus.failed.value: 2,
}


def can_transition(current: str, incoming: str) -> bool:
    """Return True if a queue item may move from ``current`` to ``incoming``."""
    if current in TERMINAL_QUEUE_STATUSES:
        return False
    return _QUEUE_STATUS_ORDER[incoming] >= _QUEUE_STATUS_ORDER[current]


class QueuePurpose(str, Enum):
    post_game_stats = "post_game_stats"
    backfill = "backfill"


class PollQueueItem(Base):
    """One game tracked through a multi-phase background job."""

    __tablename__ = "poll_queue_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    league_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("leagues.id", ondelete="CASCADE"), nullable=False
    )
    remote_id: Mapped[str] = mapped_column(String(50), nullable=False)
    purpose: Mapped[str] = mapped_column(String(30), nullable=False)
    game_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("games.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=QueueStatus.pending.value
    )
    check_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    first_eligible_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    abandon_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_checked_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    backfill_run_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("backfill_runs.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("league_id", "remote_id", "purpose", name="uq_poll_queue_item"),
        Index("idx_poll_queue_status", "purpose", "status", "first_eligible_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_QUEUE_STATUSES


class BackfillPhase(str, Enum):
    collecting = "collecting"
    fetching = "fetching"
    processing = "processing"


class BackfillRun(Base):
    """A single historical backfill run over a date range."""

    __tablename__ = "backfill_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    league_code: Mapped[str] = mapped_column(String(20), nullable=False)
    start_date: Mapped[str] = mapped_column(String(8), nullable=False)
    end_date: Mapped[str] = mapped_column(String(8), nullable=False)
    team_remote_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    phase: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BackfillPhase.collecting.value
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="running")
    games_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    games_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    games_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    finished_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
