# =============================================================================
# core/history.py  -  Search History Log & Analytics
# =============================================================================
#
# A FIFO-bounded log of completed searches.  Appends go at the tail; once
# the log holds max_records entries, each new append drops the oldest.
#
# Only the search-completion path writes here (core/search.py).  The
# get_search_history tool and the active://search-history resource read it.
#
# recent(limit) returns records MOST-RECENT-LAST (same as insertion order).
# =============================================================================

from collections import Counter, deque
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Optional

from core.models import SearchHistoryRecord

MAX_HISTORY_RECORDS = 100
TOP_N = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SearchHistory:
    def __init__(
        self,
        max_records: int = MAX_HISTORY_RECORDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._records: deque[SearchHistoryRecord] = deque(maxlen=max_records)
        self._clock = clock

    def __len__(self) -> int:
        return len(self._records)

    def record(self, query: Mapping[str, Any], result_count: int) -> SearchHistoryRecord:
        """Append a completed search.  Negative counts are stored as 0."""
        entry = SearchHistoryRecord(
            query=dict(query),
            timestamp=self._clock(),
            result_count=max(0, int(result_count)),
        )
        self._records.append(entry)
        return entry

    def recent(self, limit: int) -> list[SearchHistoryRecord]:
        """The last `limit` records, oldest first."""
        if limit <= 0:
            return []
        return list(self._records)[-limit:]

    def analytics(self, default_location: Optional[str] = None) -> dict[str, Any]:
        """Counts over trailing windows plus the most frequent categories/locations.

        Args:
            default_location: Used for records whose query has no `near`
                (e.g. lat/lon searches).  Pass the CURRENT preference.
        """
        records = list(self._records)
        now = self._clock()

        last_24h = sum(1 for r in records if now - r.timestamp < timedelta(hours=24))
        last_7d = sum(1 for r in records if now - r.timestamp < timedelta(days=7))

        average = (
            sum(r.result_count for r in records) / len(records) if records else 0
        )

        categories = Counter(r.query.get("category") or "unknown" for r in records)
        locations = Counter(
            r.query.get("near") or default_location or "unknown" for r in records
        )

        return {
            "total_searches": len(records),
            "searches_last_24h": last_24h,
            "searches_last_7d": last_7d,
            "average_result_count": average,
            # Counter keeps first-seen order and most_common() sorts stably,
            # so ties stay in first-seen order.
            "top_categories": categories.most_common(TOP_N),
            "top_locations": locations.most_common(TOP_N),
        }
