# =============================================================================
# core/context.py  -  The Application Context
# =============================================================================
#
# Everything the operations in core/search.py need, bundled into one
# explicit object instead of module-level globals:
#
#   settings     -> Settings read from the environment
#   client       -> ActiveNetworkClient (owns the rate limiter)
#   preferences  -> PreferenceStore
#   cache        -> ResultCache
#   history      -> SearchHistory
#   tasks        -> TaskRegistry
#
# The MCP server builds exactly one of these per process.  Tests build
# their own with fakes swapped in.
# =============================================================================

from dataclasses import dataclass, field
from datetime import datetime, timezone

from core.cache import ResultCache
from core.client import ActiveNetworkClient
from core.config import Settings
from core.history import SearchHistory
from core.preferences import PreferenceStore
from core.tasks import TaskRegistry

SERVER_VERSION = "1.0.0"
API_VERSION = "v2"


@dataclass
class AppContext:
    settings: Settings
    client: ActiveNetworkClient
    preferences: PreferenceStore
    cache: ResultCache
    history: SearchHistory
    tasks: TaskRegistry
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def build_context(settings: Settings) -> AppContext:
    """Wire up a fresh context from settings."""
    client = ActiveNetworkClient(
        api_key=settings.api_key,
        base_url=settings.base_url,
        timeout=settings.request_timeout_seconds,
        min_interval=settings.rate_limit_delay_ms / 1000,
    )
    return AppContext(
        settings=settings,
        client=client,
        preferences=PreferenceStore(settings.startup_preferences()),
        cache=ResultCache(
            default_ttl=settings.cache_ttl_seconds,
            cleanup_threshold=settings.max_cache_size,
        ),
        history=SearchHistory(),
        tasks=TaskRegistry(),
    )
