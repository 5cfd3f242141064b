"""Redis locks that keep scheduled jobs from overlapping.

Jobs proceed when Redis is unreachable: a duplicate run only repeats keyed
upserts, while a skipped run loses a cycle.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import redis

from ..config import settings
from ..logging import logger

LOCK_TIMEOUT_90S = 90
LOCK_TIMEOUT_10MIN = 600
LOCK_TIMEOUT_1HOUR = 3600


def _client() -> redis.Redis:
    return redis.from_url(settings.redis_url)


def acquire_redis_lock(lock_name: str, timeout: int = LOCK_TIMEOUT_10MIN) -> bool:
    """Try to take ``lock_name`` for ``timeout`` seconds. Returns True if acquired."""
    try:
        return bool(_client().set(lock_name, "1", nx=True, ex=timeout))
    except redis.RedisError as exc:
        logger.warning("redis_lock_failed", lock=lock_name, error=str(exc))
        return True


def release_redis_lock(lock_name: str) -> None:
    try:
        _client().delete(lock_name)
    except redis.RedisError as exc:
        logger.warning("redis_unlock_failed", lock=lock_name, error=str(exc))


@contextmanager
def job_lock(lock_name: str, timeout: int = LOCK_TIMEOUT_10MIN) -> Iterator[bool]:
    """Hold ``lock_name`` for the duration of the block.

    Yields False when another run holds the lock; the caller skips its work.
    """
    acquired = acquire_redis_lock(lock_name, timeout)
    if not acquired:
        logger.info("job_lock_busy", lock=lock_name)
        yield False
        return
    try:
        yield True
    finally:
        release_redis_lock(lock_name)
