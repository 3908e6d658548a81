# =============================================================================
# core/normalizer.py  -  Request Normalization (caller input -> effective)
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Merges what the caller asked for with the session Preferences into ONE
#   effective SearchParameters record.  The effective record (not the raw
#   caller input) is what gets cached, logged and sent upstream, so two
#   differently-worded requests that mean the same thing share a cache entry.
#
# MERGE RULES (field by field, never a blanket spread):
#   - location:          default_location -> near, only if the caller gave
#                        none of lat_lon / near / bbox / geo_points
#   - radius:            default_radius, only if absent
#   - exclude_children:  preference value, only if absent (explicit False
#                        from the caller is kept)
#   - per_page:          default 25, clamped into [1, 50]
#   - current_page:      default 1, must be >= 1
#
# Facet listings (per_page=0) do NOT come through here; the client sends
# them directly.  See core/client.py.
# =============================================================================

from dataclasses import replace
from typing import Any, Mapping, Optional, Union

from core.errors import InvalidParameters
from core.models import LOCATION_FIELDS, SORT_ORDERS, Preferences, SearchParameters

DEFAULT_PER_PAGE = 25
MAX_PER_PAGE = 50
MIN_PER_PAGE = 1

REGISTRATION_STATUSES = ("open", "closed", "full")


def normalize(
    caller: Union[SearchParameters, Mapping[str, Any]],
    prefs: Preferences,
) -> SearchParameters:
    """Produce the effective search parameters.

    Pure function: neither `caller` nor `prefs` is modified.

    Args:
        caller: What the caller supplied (dataclass or plain dict).
        prefs: The current session preferences.

    Returns:
        A new SearchParameters with defaults filled in.

    Raises:
        InvalidParameters: unknown keys, current_page < 1, negative radius,
            or an unsupported sort order.
    """
    if not isinstance(caller, SearchParameters):
        caller = SearchParameters.from_mapping(caller)

    effective = replace(caller)

    # --- Location: keep the single winning mode, or fall back to default ---
    mode = caller.location_mode()
    for name in LOCATION_FIELDS:
        if name != mode:
            setattr(effective, name, None)
    if mode is None and prefs.default_location:
        effective.near = prefs.default_location

    # --- Radius ---
    if effective.radius is None:
        effective.radius = prefs.default_radius
    elif effective.radius < 0:
        raise InvalidParameters(f"radius must not be negative (got {effective.radius})")

    # --- Child exclusion: only fill when the caller said nothing ---
    if effective.exclude_children is None:
        effective.exclude_children = prefs.exclude_children

    # --- Pagination ---
    effective.per_page = clamp_per_page(caller.per_page)
    if caller.current_page is None:
        effective.current_page = 1
    elif caller.current_page < 1:
        raise InvalidParameters(
            f"current_page must be 1 or greater (got {caller.current_page})"
        )

    if effective.sort is not None and effective.sort not in SORT_ORDERS:
        raise InvalidParameters(
            f"Unsupported sort '{effective.sort}'. Use one of: {', '.join(SORT_ORDERS)}"
        )

    return effective


def clamp_per_page(per_page: Optional[int]) -> int:
    """Default to 25 and clamp into [1, 50]."""
    if per_page is None:
        return DEFAULT_PER_PAGE
    return max(MIN_PER_PAGE, min(int(per_page), MAX_PER_PAGE))


def build_advanced_parameters(
    filters: Optional[Mapping[str, Any]] = None,
    geo_search: Optional[Mapping[str, Any]] = None,
    query: Optional[str] = None,
) -> SearchParameters:
    """Translate advanced-search filters into plain search parameters.

    Derived fields:
      - age_range {min, max}      -> reg_req_min_age "min..max"
      - registration_status       -> registerable_only (True when "open")
      - has_registration True     -> registerable_only True
      - geo_search bbox/geo_points copied through

    price_range has no upstream filter; callers echo it back unchanged.
    The result still has to go through normalize().
    """
    filters = filters or {}
    geo_search = geo_search or {}

    unknown_geo = sorted(set(geo_search) - {"bbox", "geo_points"})
    if unknown_geo:
        raise InvalidParameters(f"Unknown geo_search keys: {', '.join(unknown_geo)}")

    params = SearchParameters(
        query=query,
        bbox=geo_search.get("bbox") or None,
        geo_points=geo_search.get("geo_points") or None,
    )

    age_range = filters.get("age_range") or {}
    age_min, age_max = age_range.get("min"), age_range.get("max")
    if age_min is not None or age_max is not None:
        low = "" if age_min is None else str(age_min)
        high = "" if age_max is None else str(age_max)
        params.reg_req_min_age = f"{low}..{high}"

    status = filters.get("registration_status")
    if status is not None:
        if status not in REGISTRATION_STATUSES:
            raise InvalidParameters(
                f"Unsupported registration_status '{status}'. "
                f"Use one of: {', '.join(REGISTRATION_STATUSES)}"
            )
        params.registerable_only = status == "open"

    if filters.get("has_registration") is True:
        params.registerable_only = True

    return params
