"""Shared pytest fixtures and configuration."""

from __future__ import annotations

import os
from unittest.mock import MagicMock

import pytest

# Set required environment variables before any imports
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from hoops_sync import db  # noqa: E402
from hoops_sync.orm.base import Base  # noqa: E402


@pytest.fixture
def db_engine(tmp_path, monkeypatch):
    """File-backed SQLite engine wired into ``hoops_sync.db``.

    pysqlite's own transaction handling breaks SAVEPOINT, so BEGIN is
    emitted by SQLAlchemy instead of the driver.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'hoops.db'}",
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    factory = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        class_=Session,
    )
    monkeypatch.setattr(db, "_engine", engine)
    monkeypatch.setattr(db, "_SessionLocal", factory)
    yield engine
    engine.dispose()


@pytest.fixture
def session(db_engine):
    """A session on the test database; committed by the test when needed."""
    with db.get_session() as s:
        yield s


@pytest.fixture
def mock_client():
    """ESPNClient stand-in; tests set return values per method."""
    client = MagicMock()
    client.fetch_roster.return_value = []
    return client
