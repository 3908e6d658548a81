# =============================================================================
# core/models.py  -  Data Models (the "nouns" of the system)
# =============================================================================
#
# These dataclasses define the shape of everything that flows between the
# tool layer, the in-memory stores and the upstream API client.
#
#   SearchParameters     -> what a caller asks for (sparse, all optional)
#   Preferences          -> session defaults merged into every search
#   CacheEntry           -> one cached upstream payload with its TTL
#   SearchHistoryRecord  -> one completed search, for analytics
#   TaskRecord           -> a background-task record (reported, never run)
#   ScheduledTask        -> a scheduled-task record (reported, never run)
#
# Field names follow the upstream query-parameter names (snake_case), so a
# SearchParameters.to_dict() is almost exactly the upstream query string.
# =============================================================================

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, Mapping, Optional

from core.errors import InvalidParameters


# -----------------------------------------------------------------------------
# Location modes, in precedence order.  Only one is sent upstream.
# -----------------------------------------------------------------------------
LOCATION_FIELDS = ("lat_lon", "near", "bbox", "geo_points")

SORT_ORDERS = ("date_asc", "date_desc", "distance", "relevance")


# -----------------------------------------------------------------------------
# SearchParameters - a sparse record of optional search fields
# -----------------------------------------------------------------------------
# After normalization (core/normalizer.py) the same type holds the
# "effective" parameters: defaults filled in, page size clamped.  That
# effective record is what gets cached, logged and sent upstream.
# -----------------------------------------------------------------------------
@dataclass
class SearchParameters:
    """Search filters accepted by the upstream /search endpoint."""

    # --- Free text ---
    query: Optional[str] = None

    # --- Location (use one of these) ---
    near: Optional[str] = None             # "San Diego,CA,US"
    lat_lon: Optional[str] = None          # "45.49428,-122.86705"
    bbox: Optional[str] = None             # "nw_lat,nw_lon;se_lat,se_lon"
    geo_points: Optional[str] = None       # polygon, ";"-separated lat,lon pairs

    # --- Geographic filters ---
    radius: Optional[float] = None         # miles
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None
    show_distance: Optional[bool] = None

    # --- Category and topic filters ---
    category: Optional[str] = None
    category_name: Optional[str] = None
    topic: Optional[str] = None
    topic_name: Optional[str] = None
    meta_interest: Optional[str] = None
    meta_interest_name: Optional[str] = None

    # --- Dates: "YYYY-MM-DD" or ranges like "2024-01-01.." ---
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    # --- Flags ---
    kids: Optional[bool] = None
    exclude_children: Optional[bool] = None
    registerable_only: Optional[bool] = None

    # --- Advanced filters ---
    attributes: Optional[str] = None
    tags: Optional[str] = None
    exists: Optional[str] = None
    not_exists: Optional[str] = None
    reg_req_min_age: Optional[str] = None  # "8..12", derived by advanced search

    # --- Asset-specific ---
    asset_name: Optional[str] = None
    org_id: Optional[str] = None
    place_id: Optional[str] = None
    source_system_id: Optional[str] = None
    source_system_name: Optional[str] = None

    # --- Pagination and sorting ---
    current_page: Optional[int] = None
    per_page: Optional[int] = None
    sort: Optional[str] = None

    # --- Facets and response customization ---
    facets: Optional[str] = None
    facet_values: Optional[str] = None
    fields: Optional[str] = None
    show_suggest: Optional[bool] = None
    search_again: Optional[bool] = None

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "SearchParameters":
        """Build from a plain dict, rejecting keys that are not search fields.

        None values are treated as "not provided".
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise InvalidParameters(f"Unknown search parameters: {', '.join(unknown)}")
        return cls(**{k: v for k, v in values.items() if v is not None})

    def to_dict(self) -> dict[str, Any]:
        """Only the fields that are set, in declaration order."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def location_mode(self) -> Optional[str]:
        """Name of the winning location field, or None if none is set."""
        for name in LOCATION_FIELDS:
            if getattr(self, name):
                return name
        return None


# -----------------------------------------------------------------------------
# Preferences - session defaults
# -----------------------------------------------------------------------------
@dataclass
class Preferences:
    """Defaults applied to every search that doesn't say otherwise."""

    default_location: Optional[str] = "Vancouver,BC,CA"
    default_radius: Optional[float] = 25
    favorite_categories: list[str] = field(default_factory=list)
    exclude_children: bool = True


@dataclass
class CacheEntry:
    """One cached payload.  Fresh while now - stored_at <= ttl (seconds)."""

    key: str
    payload: Any
    stored_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.stored_at <= self.ttl


@dataclass
class SearchHistoryRecord:
    query: dict[str, Any]                  # snapshot of the effective parameters
    timestamp: datetime
    result_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": dict(self.query),
            "timestamp": self.timestamp.isoformat(),
            "result_count": self.result_count,
        }


# -----------------------------------------------------------------------------
# Task records
# -----------------------------------------------------------------------------
# Stored and reported only.  Nothing in this process moves a task from
# "running" to "completed"/"failed".
# -----------------------------------------------------------------------------
@dataclass
class TaskRecord:
    id: str
    type: str
    status: str = "running"                # running | completed | failed
    progress: int = 0                      # 0-100
    result: Any = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat() if self.started_at else None
        data["ended_at"] = self.ended_at.isoformat() if self.ended_at else None
        return data


@dataclass
class ScheduledTask:
    id: str
    type: str
    schedule: str                          # e.g. "daily", "1h"
    next_run: datetime
    params: dict[str, Any] = field(default_factory=dict)
    last_run: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "schedule": self.schedule,
            "params": dict(self.params),
            "next_run": self.next_run.isoformat(),
            "last_run": self.last_run.isoformat() if self.last_run else None,
        }
