# =============================================================================
# core/cache.py  -  In-process TTL Cache for Search Results
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Keeps recent upstream payloads keyed by the effective search parameters
#   so repeated searches within the TTL window don't hit the rate-limited
#   upstream API again.
#
# FRESHNESS RULE (used by get() AND stats()):
#   An entry is valid iff  now - stored_at <= ttl.
#   Stale entries are never returned.  They are removed lazily when get()
#   trips over one, and in bulk once the entry count passes the cleanup
#   threshold on put().
#
# KEYS:
#   make_cache_key() is canonical JSON with sorted keys, so the order in
#   which fields were supplied never changes the key.  Numbers that compare
#   equal (10 and 10.0) produce the same key.
# =============================================================================

import json
import time
from typing import Any, Callable, Mapping, Optional, Union

from core.models import CacheEntry, SearchParameters

DEFAULT_TTL_SECONDS = 300.0       # 5 minutes
DEFAULT_CLEANUP_THRESHOLD = 100


def make_cache_key(params: Union[SearchParameters, Mapping[str, Any]]) -> str:
    """Deterministic, order-independent key for a set of search parameters.

    Integral floats are keyed as ints, so radius=10 and radius=10.0 (which
    compare equal) share an entry.
    """
    if isinstance(params, SearchParameters):
        params = params.to_dict()
    canonical = {k: _canonical(v) for k, v in params.items() if v is not None}
    return json.dumps(canonical, sort_keys=True, separators=(",", ":"), default=str)


def _canonical(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


class ResultCache:
    """Maps cache keys to (payload, stored_at, ttl) with lazy + bulk expiry.

    Args:
        default_ttl: Seconds an entry stays valid when put() gets no ttl.
        cleanup_threshold: When the entry count exceeds this after a put(),
            every expired entry is swept.
        clock: Returns "now" in seconds.  Injected by tests.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        cleanup_threshold: int = DEFAULT_CLEANUP_THRESHOLD,
        clock: Callable[[], float] = time.time,
    ):
        self.default_ttl = default_ttl
        self.cleanup_threshold = cleanup_threshold
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[Any]:
        """Return the cached payload, or None on a miss (absent or stale)."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        if not entry.is_fresh(self._clock()):
            del self._entries[key]
            self._misses += 1
            return None

        self._hits += 1
        return entry.payload

    def put(self, key: str, payload: Any, ttl: Optional[float] = None) -> None:
        self._entries[key] = CacheEntry(
            key=key,
            payload=payload,
            stored_at=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
        )
        if len(self._entries) > self.cleanup_threshold:
            self.cleanup_expired()

    def delete(self, key: str) -> bool:
        """Remove one entry.  Returns False if the key wasn't cached."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        """Remove everything.  Returns how many entries were dropped."""
        count = len(self._entries)
        self._entries.clear()
        return count

    def cleanup_expired(self) -> int:
        """Sweep ALL expired entries.  Returns how many were removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if not e.is_fresh(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def keys(self) -> list[str]:
        return list(self._entries)

    @property
    def hit_rate(self) -> float:
        lookups = self._hits + self._misses
        return self._hits / lookups if lookups else 0.0

    def stats(self) -> dict[str, Any]:
        """Entry counts by freshness, approximate payload size, hit/miss counters."""
        now = self._clock()
        valid = sum(1 for e in self._entries.values() if e.is_fresh(now))
        approximate_bytes = sum(
            len(json.dumps(e.payload, default=str)) for e in self._entries.values()
        )
        return {
            "total_entries": len(self._entries),
            "valid_entries": valid,
            "expired_entries": len(self._entries) - valid,
            "approximate_bytes": approximate_bytes,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self.hit_rate, 4),
        }
