"""
Typed settings for the hoops-sync worker service.

Uses Pydantic Settings to load configuration from environment variables
with validation and type safety. Local development reads a root .env file;
containers pass environment variables directly.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .validate_env import validate_env


class ProviderConfig(BaseModel):
    request_timeout_seconds: float = 20.0
    # The provider rejects requests without a browser-ish user agent
    user_agent: str = "Mozilla/5.0"
    site_api_template: str = "https://site.api.espn.com/apis/site/v2/sports/basketball/{slug}"
    common_api_template: str = "https://site.web.api.espn.com/apis/common/v3/sports/basketball/{slug}"
    core_api_template: str = "https://sports.core.api.espn.com/v2/sports/basketball/leagues/{slug}"


class PollingConfig(BaseModel):
    # Throttle gate for the live-sync path
    live_min_interval_ms: int = 15_000
    # Client/job re-poll cadence while a game is in progress
    live_poll_interval_ms: int = 15_000
    break_poll_interval_ms: int = 30_000
    # Start polling this long before scheduled tip-off
    pregame_window_minutes: int = 90
    # Post-game queue: first check 2h15m after tip, give up 5h after tip
    first_check_delay_minutes: int = 135
    abandon_after_minutes: int = 300
    max_checks: int = 12
    # Backfill: transient fetch failures leave the item pending for the next run
    backfill_max_attempts: int = 3
    cleanup_after_days: int = 7
    # Redis lock TTL for a single live sync
    sync_lock_seconds: int = 90
    max_live_games_per_cycle: int = 30


class PacingConfig(BaseModel):
    player_delay_ms: int = 500
    team_delay_ms: int = 2_000
    league_delay_ms: int = 300_000
    queue_game_delay_ms: int = 1_000
    queue_team_delay_ms: int = 500
    backfill_game_delay_ms: int = 3_000
    backfill_chunk_delay_ms: int = 2_000
    backfill_chunk_size: int = 10
    live_jitter_min_seconds: float = 1.0
    live_jitter_max_seconds: float = 2.0
    rate_limit_backoff_seconds: int = 60


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Nested config blocks carry tuning constants; the per-league API base
    overrides (NBA_SITE_API, WNBA_COMMON_API, ...) replace the templated
    provider URLs for a single league.
    """
    model_config = SettingsConfigDict(
        env_file=Path(__file__).resolve().parents[1] / ".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="allow",
    )

    database_url: str = Field(..., alias="DATABASE_URL")

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_async_to_sync(cls, v: str) -> str:
        """Rewrite asyncpg URLs to psycopg; the worker uses synchronous SQLAlchemy."""
        if isinstance(v, str) and "asyncpg" in v:
            return v.replace("asyncpg", "psycopg")
        return v

    redis_url: str = Field("redis://localhost:6379/2", alias="REDIS_URL")
    redis_host: str = Field("localhost", alias="REDIS_HOST")
    redis_password: str | None = Field(None, alias="REDIS_PASSWORD")
    redis_db: int = Field(2, alias="REDIS_DB")

    @model_validator(mode="after")
    def _build_redis_url(self) -> Settings:
        """Build the Redis URL from components when REDIS_HOST points off-box."""
        if self.redis_host != "localhost":
            if self.redis_password:
                self.redis_url = f"redis://:{self.redis_password}@{self.redis_host}:6379/{self.redis_db}"
            else:
                self.redis_url = f"redis://{self.redis_host}:6379/{self.redis_db}"
        return self

    environment: str = Field("development", alias="ENVIRONMENT")
    log_level: str | None = Field(None, alias="LOG_LEVEL")
    sql_echo: bool = Field(False, alias="SQL_ECHO")
    provider_config: ProviderConfig = Field(default_factory=ProviderConfig)
    polling_config: PollingConfig = Field(default_factory=PollingConfig)
    pacing_config: PacingConfig = Field(default_factory=PacingConfig)

    nba_site_api: str | None = Field(None, alias="NBA_SITE_API")
    nba_common_api: str | None = Field(None, alias="NBA_COMMON_API")
    nba_core_api: str | None = Field(None, alias="NBA_CORE_API")
    wnba_site_api: str | None = Field(None, alias="WNBA_SITE_API")
    wnba_common_api: str | None = Field(None, alias="WNBA_COMMON_API")
    wnba_core_api: str | None = Field(None, alias="WNBA_CORE_API")
    gleague_site_api: str | None = Field(None, alias="GLEAGUE_SITE_API")
    gleague_common_api: str | None = Field(None, alias="GLEAGUE_COMMON_API")
    gleague_core_api: str | None = Field(None, alias="GLEAGUE_CORE_API")

    def api_base_override(self, league_code: str, kind: str) -> str | None:
        """Return the env override for a league's site/common/core API, if any."""
        return getattr(self, f"{league_code.lower()}_{kind}_api", None)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return cached settings instance.

    Environment variables don't change during runtime, so parsing once is safe.
    """
    validate_env()
    return Settings()


# Global settings instance - import this in other modules
settings = get_settings()
