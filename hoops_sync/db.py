"""
Database helpers for the hoops-sync service.

Synchronous session management for Celery tasks and the polling API,
plus a single namespace exposing every ORM model.
"""

from __future__ import annotations

from contextlib import contextmanager
from types import SimpleNamespace
from typing import Iterator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from .config import settings
from .logging import logger
from .orm.base import Base
from .orm.queue import (
    BackfillPhase,
    BackfillRun,
    PollQueueItem,
    QueuePurpose,
    QueueStatus,
)
from .orm.sports import (
    Game,
    GameStatus,
    League,
    Player,
    PlayerGameStat,
    PlayerSeasonStats,
    RankingGeneration,
    Team,
    TeamGameStat,
    TeamRanking,
    TeamSeasonStats,
)

db_models = SimpleNamespace(
    # Enums
    GameStatus=GameStatus,
    QueueStatus=QueueStatus,
    QueuePurpose=QueuePurpose,
    BackfillPhase=BackfillPhase,
    # Sports models
    League=League,
    Team=Team,
    Player=Player,
    Game=Game,
    TeamGameStat=TeamGameStat,
    PlayerGameStat=PlayerGameStat,
    TeamSeasonStats=TeamSeasonStats,
    PlayerSeasonStats=PlayerSeasonStats,
    TeamRanking=TeamRanking,
    RankingGeneration=RankingGeneration,
    # Queue models
    PollQueueItem=PollQueueItem,
    BackfillRun=BackfillRun,
)

# Engine and session factory are created on first use so importing this
# module never opens a connection.
_engine: Engine | None = None
_SessionLocal: sessionmaker[Session] | None = None


def get_engine() -> Engine:
    """Get or create the database engine."""
    global _engine
    if _engine is None:
        _engine = create_engine(
            settings.database_url,
            echo=settings.sql_echo,
            future=True,
            pool_pre_ping=True,
        )
    return _engine


def _get_session_factory() -> sessionmaker[Session]:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            bind=get_engine(),
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
            class_=Session,
        )
    return _SessionLocal


@contextmanager
def get_session() -> Iterator[Session]:
    """
    Provide a transactional database session context manager.

    Commits on clean exit, rolls back and re-raises on error.

    Usage:
        with get_session() as session:
            session.add(object)
    """
    session = _get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception as exc:
        session.rollback()
        logger.exception("db_session_rollback", error=str(exc))
        raise
    finally:
        session.close()


def create_all() -> None:
    """Create every table that does not exist yet."""
    Base.metadata.create_all(get_engine())


__all__ = ["Base", "create_all", "db_models", "get_engine", "get_session"]
