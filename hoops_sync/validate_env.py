"""Fail-fast environment checks, run once before settings are loaded.

Every problem is collected first and reported in a single RuntimeError so a
broken deployment shows all of its misconfiguration at once.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from functools import lru_cache
from urllib.parse import urlparse

ENVIRONMENTS = ("development", "staging", "production")
ROLES = ("worker", "beat", "api")
LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})

_API_OVERRIDE_SUFFIXES = ("_SITE_API", "_COMMON_API", "_CORE_API")


def _value(env: Mapping[str, str], name: str) -> str | None:
    value = env.get(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def url_problems(name: str, value: str, production: bool) -> list[str]:
    """Problems with a service URL; localhost is only allowed outside production."""
    host = urlparse(value).hostname
    if not host:
        return [f"{name} must be a valid URL (missing hostname)."]
    if production and host in LOCAL_HOSTS:
        return [f"{name} must not point to localhost in production."]
    return []


def database_url_problems(value: str, production: bool) -> list[str]:
    problems = url_problems("DATABASE_URL", value, production)
    parsed = urlparse(value)
    if production and parsed.username == "postgres" and parsed.password == "postgres":
        problems.append("DATABASE_URL must not use default postgres credentials in production.")
    return problems


def api_override_problems(env: Mapping[str, str]) -> list[str]:
    """Per-league provider overrides (NBA_SITE_API, ...) must be http(s) URLs."""
    problems = []
    for name in sorted(env):
        if not name.endswith(_API_OVERRIDE_SUFFIXES):
            continue
        value = _value(env, name)
        if value and urlparse(value).scheme not in ("http", "https"):
            problems.append(f"{name} must be an http(s) URL.")
    return problems


def environment_problems(env: Mapping[str, str]) -> list[str]:
    """Everything wrong with ``env`` for the role in HOOPS_SYNC_ROLE (default worker)."""
    problems: list[str] = []

    environment = _value(env, "ENVIRONMENT")
    if environment is None:
        problems.append("ENVIRONMENT is required and must be set before startup.")
    elif environment not in ENVIRONMENTS:
        problems.append(f"ENVIRONMENT must be one of: {', '.join(ENVIRONMENTS)}.")
    production = environment == "production"

    role = _value(env, "HOOPS_SYNC_ROLE") or "worker"
    if role not in ROLES:
        problems.append(f"HOOPS_SYNC_ROLE must be one of: {', '.join(ROLES)}.")

    database_url = _value(env, "DATABASE_URL")
    if database_url is None:
        problems.append("DATABASE_URL is required and must be set before startup.")
    elif not database_url.startswith("sqlite"):
        problems.extend(database_url_problems(database_url, production))

    # Only the Celery processes talk to Redis
    if role in ("worker", "beat"):
        redis_url = _value(env, "REDIS_URL")
        if redis_url is None:
            problems.append("REDIS_URL is required and must be set before startup.")
        else:
            problems.extend(url_problems("REDIS_URL", redis_url, production))

    problems.extend(api_override_problems(env))
    return problems


@lru_cache(maxsize=1)
def validate_env() -> None:
    """Raise RuntimeError listing every problem with the process environment."""
    problems = environment_problems(os.environ)
    if problems:
        raise RuntimeError("Invalid environment:\n- " + "\n- ".join(problems))
