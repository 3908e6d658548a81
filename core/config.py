# =============================================================================
# core/config.py  -  Settings read once from the environment
# =============================================================================
#
# ENVIRONMENT VARIABLES:
#   ACTIVE_NETWORK_API_KEY    (required)  static key sent on every request
#   ACTIVE_NETWORK_BASE_URL   default https://api.amp.active.com/v2
#   CACHE_TTL_SECONDS         default 300
#   MAX_CACHE_SIZE            default 100 (bulk-expiry sweep threshold)
#   DEFAULT_LOCATION          default "Vancouver,BC,CA"
#   DEFAULT_RADIUS            default 25 (miles)
#   RATE_LIMIT_DELAY_MS       default 500 (minimum gap between requests)
#   REQUEST_TIMEOUT_SECONDS   default 15
#
# The server entry point (tools/mcp_server.py main) calls load_dotenv() first,
# so a local .env file works the same as exported variables.
# =============================================================================

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from core.errors import InvalidParameters
from core.models import Preferences

DEFAULT_BASE_URL = "https://api.amp.active.com/v2"
API_KEY_VAR = "ACTIVE_NETWORK_API_KEY"


@dataclass
class Settings:
    api_key: str
    base_url: str = DEFAULT_BASE_URL
    cache_ttl_seconds: float = 300.0
    max_cache_size: int = 100
    default_location: str = "Vancouver,BC,CA"
    default_radius: float = 25
    rate_limit_delay_ms: int = 500
    request_timeout_seconds: float = 15.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from os.environ (or the given mapping).

        Raises:
            InvalidParameters: missing API key or a non-numeric override.
        """
        env = os.environ if environ is None else environ

        api_key = env.get(API_KEY_VAR, "").strip()
        if not api_key:
            raise InvalidParameters(f"{API_KEY_VAR} environment variable is required")

        return cls(
            api_key=api_key,
            base_url=env.get("ACTIVE_NETWORK_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
            cache_ttl_seconds=_number(env, "CACHE_TTL_SECONDS", 300.0, float),
            max_cache_size=_number(env, "MAX_CACHE_SIZE", 100, int),
            default_location=env.get("DEFAULT_LOCATION") or "Vancouver,BC,CA",
            default_radius=_number(env, "DEFAULT_RADIUS", 25, float),
            rate_limit_delay_ms=_number(env, "RATE_LIMIT_DELAY_MS", 500, int),
            request_timeout_seconds=_number(env, "REQUEST_TIMEOUT_SECONDS", 15.0, float),
        )

    def startup_preferences(self) -> Preferences:
        """The preferences a fresh session (or a reset) starts from."""
        return Preferences(
            default_location=self.default_location,
            default_radius=self.default_radius,
            favorite_categories=[],
            exclude_children=True,
        )


def _number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise InvalidParameters(f"{name} must be a number (got {raw!r})") from None
    if value < 0:
        raise InvalidParameters(f"{name} must not be negative (got {raw!r})")
    return value
