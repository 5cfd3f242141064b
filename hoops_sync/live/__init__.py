"""Provider feed integrations for game snapshots, scoreboards and rosters."""

from .espn import ESPNClient, FetchError, FetchErrorKind, RateLimitError

__all__ = ["ESPNClient", "FetchError", "FetchErrorKind", "RateLimitError"]
