# =============================================================================
# core/search.py  -  Operations behind every MCP tool and resource
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Composes the stores and the client into the operations the tool layer
#   exposes.  Each function takes the AppContext explicitly and returns a
#   plain dict ready for JSON.
#
# THE SEARCH PIPELINE:
#   caller params
#     -> normalize() with current preferences   (effective params)
#     -> make_cache_key(effective)
#     -> cache hit?   return payload + _cached: true
#     -> cache miss:  client.search(effective)
#          success -> cache.put, history.record, return annotated payload
#          failure -> re-raise with "Search failed: ..." (same kind);
#                     nothing cached, nothing recorded
#
# There is NO stale-cache fallback when upstream fails.
# =============================================================================

from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Union

from core.cache import make_cache_key
from core.context import API_VERSION, SERVER_VERSION, AppContext
from core.errors import ActivityApiError, InvalidParameters
from core.models import SearchParameters
from core.normalizer import build_advanced_parameters, normalize

HISTORY_LIMIT_DEFAULT = 10
HISTORY_LIMIT_MAX = 50


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _result_count(result: Mapping[str, Any]) -> int:
    total = result.get("total_results")
    if isinstance(total, int) and not isinstance(total, bool):
        return max(0, total)
    return len(result.get("results") or [])


# =============================================================================
# Search
# =============================================================================
async def search_activities(
    ctx: AppContext,
    params: Union[SearchParameters, Mapping[str, Any]],
    use_cache: bool = True,
    error_prefix: str = "Search failed",
) -> dict[str, Any]:
    """Run one search through normalizer -> cache -> client -> cache/history.

    Args:
        ctx: Application context.
        params: Caller-supplied parameters (dataclass or dict).
        use_cache: False skips both the lookup and the store.  History is
            still recorded for the upstream call.
        error_prefix: Context prepended to upstream errors.

    Returns:
        The upstream (or cached) envelope plus `_search_params`,
        `_cache_key` and `_timestamp`.  Cache hits also carry
        `_cached: true` and `_cache_time`.
    """
    effective = normalize(params, ctx.preferences.get())
    key = make_cache_key(effective)

    if use_cache:
        cached = ctx.cache.get(key)
        if cached is not None:
            now = _now_iso()
            return {
                **cached,
                "_search_params": effective.to_dict(),
                "_cache_key": key,
                "_timestamp": now,
                "_cached": True,
                "_cache_time": now,
            }

    try:
        result = await ctx.client.search(effective)
    except ActivityApiError as exc:
        raise exc.with_context(error_prefix) from exc

    if use_cache:
        ctx.cache.put(key, result, ttl=ctx.settings.cache_ttl_seconds)
    ctx.history.record(effective.to_dict(), _result_count(result))

    return {
        **result,
        "_search_params": effective.to_dict(),
        "_cache_key": key,
        "_timestamp": _now_iso(),
    }


async def advanced_search(
    ctx: AppContext,
    filters: Optional[Mapping[str, Any]] = None,
    geo_search: Optional[Mapping[str, Any]] = None,
    query: Optional[str] = None,
    use_cache: bool = True,
) -> dict[str, Any]:
    """Search with derived filters (age range, registration, polygon/bbox)."""
    params = build_advanced_parameters(filters, geo_search, query)
    result = await search_activities(
        ctx, params, use_cache=use_cache, error_prefix="Advanced search failed"
    )
    result["_advanced_filters"] = dict(filters or {})
    result["_geo_search"] = dict(geo_search or {})
    return result


# =============================================================================
# Details
# =============================================================================
async def get_activity_details(
    ctx: AppContext,
    activity_id: str,
    include_pricing: bool = True,
    include_components: bool = False,
) -> dict[str, Any]:
    if not activity_id or not activity_id.strip():
        raise InvalidParameters("Activity ID is required")

    try:
        details = await ctx.client.get_activity_details(activity_id.strip())
    except ActivityApiError as exc:
        raise exc.with_context("Failed to get activity details") from exc

    details = dict(details)
    if not include_pricing:
        details.pop("assetPrices", None)
    if not include_components:
        details.pop("assetComponents", None)

    details["_include_pricing"] = include_pricing
    details["_include_components"] = include_components
    details["_timestamp"] = _now_iso()
    return details


# =============================================================================
# Facet listings
# =============================================================================
def _facet_listing(
    label: str,
    values: list[dict[str, Any]],
    include_counts: bool,
    filters: dict[str, Any],
) -> dict[str, Any]:
    names = [str(v.get("value")) for v in values if v.get("value") is not None]
    listing: dict[str, Any] = {label: names, "count": len(names)}
    if include_counts:
        listing["counts"] = {
            str(v["value"]): v.get("count", 0) for v in values if v.get("value") is not None
        }
    listing["filters"] = {k: v for k, v in filters.items() if v is not None}
    listing["_timestamp"] = _now_iso()
    return listing


async def list_categories(
    ctx: AppContext,
    location: Optional[str] = None,
    include_counts: bool = True,
) -> dict[str, Any]:
    filters = {"near": location}
    try:
        values = await ctx.client.get_categories(**_set_only(filters))
    except ActivityApiError as exc:
        raise exc.with_context("Failed to get categories") from exc
    return _facet_listing("categories", values, include_counts, filters)


async def list_locations(
    ctx: AppContext,
    state: Optional[str] = None,
    country: Optional[str] = "US",
    include_counts: bool = True,
) -> dict[str, Any]:
    filters = {"state": state, "country": country}
    try:
        values = await ctx.client.get_locations(**_set_only(filters))
    except ActivityApiError as exc:
        raise exc.with_context("Failed to get locations") from exc
    return _facet_listing("locations", values, include_counts, filters)


async def list_topics(
    ctx: AppContext,
    category: Optional[str] = None,
    include_counts: bool = True,
) -> dict[str, Any]:
    filters = {"category": category}
    try:
        values = await ctx.client.get_topics(**_set_only(filters))
    except ActivityApiError as exc:
        raise exc.with_context("Failed to get topics") from exc
    return _facet_listing("topics", values, include_counts, filters)


def _set_only(filters: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in filters.items() if v is not None}


# =============================================================================
# History, cache, stats
# =============================================================================
def search_history(
    ctx: AppContext,
    limit: int = HISTORY_LIMIT_DEFAULT,
    include_analytics: bool = True,
) -> dict[str, Any]:
    limit = max(1, min(int(limit), HISTORY_LIMIT_MAX))
    recent = [r.to_dict() for r in ctx.history.recent(limit)]
    analytics = (
        ctx.history.analytics(ctx.preferences.get().default_location)
        if include_analytics
        else None
    )
    return {
        "recent_searches": recent,
        "analytics": analytics,
        "_limit": limit,
        "_timestamp": _now_iso(),
    }


def clear_cache(ctx: AppContext, cache_key: Optional[str] = None) -> dict[str, Any]:
    if cache_key:
        removed = ctx.cache.delete(cache_key)
        message = (
            f"Cache entry '{cache_key}' cleared"
            if removed
            else f"Cache entry '{cache_key}' was not cached"
        )
        return {"message": message, "removed": int(removed)}

    removed = ctx.cache.clear()
    return {"message": "All cache entries cleared", "removed": removed}


def format_uptime(seconds: float) -> str:
    """1d 2h 3m / 2h 3m 4s / 3m 4s / 4s."""
    seconds = int(seconds)
    minutes, hours, days = seconds // 60, seconds // 3600, seconds // 86400

    if days > 0:
        return f"{days}d {hours % 24}h {minutes % 60}m"
    if hours > 0:
        return f"{hours}h {minutes % 60}m {seconds % 60}s"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def server_stats(ctx: AppContext) -> dict[str, Any]:
    uptime = (datetime.now(timezone.utc) - ctx.started_at).total_seconds()
    return {
        "uptime_seconds": round(uptime, 3),
        "uptime_formatted": format_uptime(uptime),
        "server_version": SERVER_VERSION,
        "api_version": API_VERSION,
        "total_searches": len(ctx.history),
        "cache_hit_rate": round(ctx.cache.hit_rate, 4),
        "api_usage": ctx.client.usage_stats(),
    }
