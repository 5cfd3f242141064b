"""
Centralized structlog configuration for the hoops-sync service.

Logs are JSON lines on stdout. Every line carries the service and
environment; lines emitted inside ``log_context`` also carry the league,
game or run being worked on, so one game's history can be filtered out of
an interleaved polling cycle.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.contextvars import bound_contextvars, merge_contextvars

from .config import settings


def _normalize_log_level(level: str | None, environment: str) -> int:
    if level:
        normalized = level.strip().upper()
    else:
        normalized = "INFO" if environment.lower() == "production" else "DEBUG"
    return logging.getLevelNamesMapping().get(normalized, logging.INFO)


def drop_unset_context(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Remove None-valued keys so optional context (team filter, season) stays out of the line."""
    return {key: value for key, value in event_dict.items() if value is not None}


@contextmanager
def log_context(**context: Any) -> Iterator[None]:
    """Attach ``league``/``game_id``/``run_id`` style keys to every log line in the block."""
    with bound_contextvars(**context):
        yield


def configure_logging() -> None:
    resolved_level = _normalize_log_level(settings.log_level, settings.environment)
    logging.basicConfig(level=resolved_level)
    structlog.configure(
        processors=[
            merge_contextvars,
            drop_unset_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.EventRenamer("message"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(resolved_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
    )


configure_logging()

logger = structlog.get_logger("hoops-sync").bind(
    service="hoops-sync",
    environment=settings.environment,
)
