# =============================================================================
# tools/mcp_server.py  -  FastMCP Server (tools, resources and prompts)
# =============================================================================
#
# WHAT THIS FILE DOES:
#   Exposes the Active Network activity search as MCP capabilities.  Every
#   tool is a thin wrapper around an operation in core/search.py.
#
# HOW IT WORKS (the flow):
#   1. An MCP client (usually an LLM application) calls a tool by name
#   2. FastMCP routes the call to the decorated function below
#   3. The function calls core/ with the process-wide AppContext
#   4. The result (or a structured error) is logged and returned as a dict
#
# TOOL NAMING CONVENTIONS:
#   - search_* / get_*  -> read-only upstream queries (safe to retry)
#   - manage_* / clear_* -> change in-memory session state
#
# ERRORS:
#   Tools never raise for expected failures.  An ActivityApiError becomes
#   {"error": "...", "kind": "...", "retryable": bool} so the caller can
#   tell "try again later" (rate_limited, upstream_unavailable) from
#   "fix your input" (invalid_parameters) or "fix the key" (unauthorized).
#
# RUNNING THIS SERVER:
#   a) python -m tools.mcp_server
#   b) active-network-mcp   (console script; stdio transport)
# =============================================================================

import json
import logging
import sys
from dataclasses import asdict
from typing import Any, Literal, Optional

from dotenv import load_dotenv
from fastmcp import FastMCP

from core import search as operations
from core.config import Settings
from core.context import AppContext, build_context
from core.errors import ActivityApiError, InvalidParameters
from core.models import SearchParameters

# =============================================================================
# Logging Setup
# =============================================================================
# STDOUT carries the MCP stdio protocol, so every log line goes to STDERR.
#   - CYAN for incoming requests (tool name + parameters)
#   - GREEN for response JSON
#   - YELLOW for intermediate status messages
#   - RED for errors returned to the caller
# =============================================================================
_CYAN = "\033[36m"
_GREEN = "\033[32m"
_YELLOW = "\033[33m"
_RED = "\033[31m"
_RESET = "\033[0m"

# Responses can carry 50 activities; keep log lines readable
_MAX_LOGGED_RESPONSE = 800

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [MCP] %(message)s",
    datefmt="%H:%M:%S",
    stream=sys.stderr,
)
logger = logging.getLogger("tools.mcp_server")


def _log_request(tool_name: str, **params) -> None:
    """Log an incoming tool call with the parameters that were actually set."""
    param_str = ", ".join(f"{k}={v!r}" for k, v in params.items() if v is not None)
    logger.info(f"{_CYAN}{tool_name} called with: {param_str}{_RESET}")


def _log_status(message: str) -> None:
    logger.info(f"{_YELLOW}  → {message}{_RESET}")


def _log_response(tool_name: str, result: dict) -> dict:
    """Log the tool response as compact JSON in GREEN, then return it."""
    text = json.dumps(result, separators=(",", ":"), default=str)
    if len(text) > _MAX_LOGGED_RESPONSE:
        text = text[:_MAX_LOGGED_RESPONSE] + "…"
    logger.info(f"{_GREEN}  ← {tool_name} response: {text}{_RESET}")
    return result


def _error_response(tool_name: str, exc: ActivityApiError) -> dict:
    logger.warning(f"{_RED}  ✗ {tool_name} failed [{exc.kind}]: {exc.message}{_RESET}")
    return exc.to_dict()


# =============================================================================
# Application context
# =============================================================================
# One AppContext per process, built on first use so that importing this
# module (tests, schema inspection) doesn't require ACTIVE_NETWORK_API_KEY.
# =============================================================================
_context: Optional[AppContext] = None


def get_context() -> AppContext:
    global _context
    if _context is None:
        _context = build_context(Settings.from_env())
        _log_status(
            f"Context ready (base_url={_context.settings.base_url}, "
            f"cache_ttl={_context.settings.cache_ttl_seconds}s)"
        )
    return _context


def set_context(context: Optional[AppContext]) -> None:
    """Install (or clear, with None) the process-wide context."""
    global _context
    _context = context


# =============================================================================
# Create the FastMCP server instance
# =============================================================================
mcp = FastMCP("active-network-activities")


# =============================================================================
# TOOL 1: search_activities
# =============================================================================
@mcp.tool()
async def search_activities(
    query: Optional[str] = None,
    near: Optional[str] = None,
    lat_lon: Optional[str] = None,
    bbox: Optional[str] = None,
    geo_points: Optional[str] = None,
    radius: Optional[float] = None,
    city: Optional[str] = None,
    state: Optional[str] = None,
    zip: Optional[str] = None,
    country: Optional[str] = None,
    category: Optional[str] = None,
    topic: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    kids: Optional[bool] = None,
    exclude_children: Optional[bool] = None,
    registerable_only: Optional[bool] = None,
    attributes: Optional[str] = None,
    tags: Optional[str] = None,
    facets: Optional[str] = None,
    per_page: Optional[int] = None,
    current_page: Optional[int] = None,
    sort: Optional[Literal["date_asc", "date_desc", "distance", "relevance"]] = None,
    use_cache: bool = True,
) -> dict:
    """Search for recreational activities (races, classes, camps, events).

    Anything you leave out is filled from the session preferences: the
    default location (when no near / lat_lon / bbox / geo_points is given),
    the default radius and the exclude-children flag.

    Args:
        query: Free text, e.g. "yoga" or "half marathon".
        near: Location string, e.g. "San Diego,CA,US".
        lat_lon: "lat,lon", e.g. "45.49428,-122.86705".
        bbox: Bounding box "nw_lat,nw_lon;se_lat,se_lon".
        geo_points: Polygon as ";"-separated "lat,lon" pairs.
        radius: Search radius in miles.
        city, state, zip, country: Extra geographic filters.
        category: Activity category, e.g. "event" or "articles".
        topic: Activity topic, e.g. "running", "cycling".
        start_date: "YYYY-MM-DD" or a range like "2024-01-01..".
        end_date: "YYYY-MM-DD" or a range.
        kids: Only activities for kids.
        exclude_children: Exclude child assets (default from preferences).
        registerable_only: Only activities open for registration.
        attributes, tags: Advanced upstream filters.
        facets: Comma-separated facet names to aggregate.
        per_page: Results per page (default 25, max 50).
        current_page: Page number, starting at 1.
        sort: date_asc, date_desc, distance or relevance.
        use_cache: Reuse a result from the last 5 minutes (default True).

    Returns:
        {total_results, items_per_page, start_index, results, facets, ...}
        plus _search_params and _timestamp; _cached: true when served from
        the cache.
    """
    params = {k: v for k, v in locals().items() if k != "use_cache" and v is not None}
    _log_request("search_activities", use_cache=use_cache, **params)

    try:
        result = await operations.search_activities(
            get_context(), SearchParameters.from_mapping(params), use_cache=use_cache
        )
    except ActivityApiError as exc:
        return _error_response("search_activities", exc)

    _log_status(
        f"{'Cache hit' if result.get('_cached') else 'Upstream'}: "
        f"{result.get('total_results', 0)} total results"
    )
    return _log_response("search_activities", result)


# =============================================================================
# TOOL 2: get_activity_details
# =============================================================================
@mcp.tool()
async def get_activity_details(
    activityId: str,
    include_pricing: bool = True,
    include_components: bool = False,
) -> dict:
    """Get the full record for one activity.

    Args:
        activityId: The assetGuid from a search result.
        include_pricing: Keep assetPrices in the response (default True).
        include_components: Keep assetComponents (child assets) (default False).
    """
    _log_request(
        "get_activity_details",
        activityId=activityId,
        include_pricing=include_pricing,
        include_components=include_components,
    )
    try:
        result = await operations.get_activity_details(
            get_context(), activityId, include_pricing, include_components
        )
    except ActivityApiError as exc:
        return _error_response("get_activity_details", exc)
    return _log_response("get_activity_details", result)


# =============================================================================
# TOOLS 3-5: facet listings
# =============================================================================
@mcp.tool()
async def get_categories(location: Optional[str] = None, include_counts: bool = True) -> dict:
    """List activity categories available upstream, optionally near a location.

    Args:
        location: Location string to filter by, e.g. "Austin,TX,US".
        include_counts: Include activity counts per category.
    """
    _log_request("get_categories", location=location, include_counts=include_counts)
    try:
        result = await operations.list_categories(get_context(), location, include_counts)
    except ActivityApiError as exc:
        return _error_response("get_categories", exc)
    return _log_response("get_categories", result)


@mcp.tool()
async def get_locations(
    state: Optional[str] = None,
    country: str = "US",
    include_counts: bool = True,
) -> dict:
    """List cities that have activities.

    Args:
        state: State/province code to filter by, e.g. "CA".
        country: Country code (default "US").
        include_counts: Include activity counts per city.
    """
    _log_request("get_locations", state=state, country=country, include_counts=include_counts)
    try:
        result = await operations.list_locations(get_context(), state, country, include_counts)
    except ActivityApiError as exc:
        return _error_response("get_locations", exc)
    return _log_response("get_locations", result)


@mcp.tool()
async def get_topics(category: Optional[str] = None, include_counts: bool = True) -> dict:
    """List activity topics (running, cycling, swimming, ...).

    Args:
        category: Restrict to topics within this category.
        include_counts: Include activity counts per topic.
    """
    _log_request("get_topics", category=category, include_counts=include_counts)
    try:
        result = await operations.list_topics(get_context(), category, include_counts)
    except ActivityApiError as exc:
        return _error_response("get_topics", exc)
    return _log_response("get_topics", result)


# =============================================================================
# TOOL 6: advanced_search
# =============================================================================
@mcp.tool()
async def advanced_search(
    filters: Optional[dict[str, Any]] = None,
    geo_search: Optional[dict[str, str]] = None,
    query: Optional[str] = None,
) -> dict:
    """Search with derived filters that the plain search doesn't expose.

    Args:
        filters: Any of
            - age_range: {"min": 8, "max": 12} -> participant age range
            - registration_status: "open" | "closed" | "full"
            - has_registration: true -> only registerable activities
            - price_range: {"min", "max"} (echoed back; no upstream filter)
        geo_search: {"bbox": "nw_lat,nw_lon;se_lat,se_lon"} or
            {"geo_points": "lat,lon;lat,lon;..."}.
        query: Optional free text.
    """
    _log_request("advanced_search", filters=filters, geo_search=geo_search, query=query)
    try:
        result = await operations.advanced_search(get_context(), filters, geo_search, query)
    except ActivityApiError as exc:
        return _error_response("advanced_search", exc)
    return _log_response("advanced_search", result)


# =============================================================================
# TOOL 7: manage_preferences
# =============================================================================
@mcp.tool()
def manage_preferences(
    action: Literal["get", "set", "reset"],
    preferences: Optional[dict[str, Any]] = None,
) -> dict:
    """Read or change the session search preferences.

    Args:
        action: "get", "set" (merge the given fields) or "reset" (defaults).
        preferences: For "set": any of default_location (str),
            default_radius (number), favorite_categories (list of str),
            exclude_children (bool).  Lists replace the old value.
    """
    _log_request("manage_preferences", action=action, preferences=preferences)
    store = get_context().preferences

    try:
        if action == "get":
            return _log_response("manage_preferences", asdict(store.get()))
        if action == "set":
            if not preferences:
                raise InvalidParameters("preferences are required for action 'set'")
            updated = store.set(preferences)
            return _log_response("manage_preferences", {
                "message": "Preferences updated successfully",
                "preferences": asdict(updated),
            })
        if action == "reset":
            return _log_response("manage_preferences", {
                "message": "Preferences reset to defaults",
                "preferences": asdict(store.reset()),
            })
        raise InvalidParameters(f"Unknown action: {action}")
    except ActivityApiError as exc:
        return _error_response("manage_preferences", exc)


# =============================================================================
# TOOL 8: manage_tasks
# =============================================================================
@mcp.tool()
def manage_tasks(action: Literal["list", "status"], task_id: Optional[str] = None) -> dict:
    """List background/scheduled task records, or show one task's status.

    Args:
        action: "list" or "status".
        task_id: Required for "status".
    """
    _log_request("manage_tasks", action=action, task_id=task_id)
    tasks = get_context().tasks

    try:
        if action == "list":
            return _log_response("manage_tasks", tasks.snapshot())
        if action == "status":
            return _log_response("manage_tasks", tasks.get(task_id or "").to_dict())
        raise InvalidParameters(f"Unknown action: {action}")
    except ActivityApiError as exc:
        return _error_response("manage_tasks", exc)


# =============================================================================
# TOOLS 9-10: history and cache
# =============================================================================
@mcp.tool()
def get_search_history(limit: int = 10, include_analytics: bool = True) -> dict:
    """Recent searches (oldest first) with usage analytics.

    Args:
        limit: How many recent searches to return (1-50, default 10).
        include_analytics: Add totals, 24h/7d counts, average results and
            the top 5 categories/locations.
    """
    _log_request("get_search_history", limit=limit, include_analytics=include_analytics)
    result = operations.search_history(get_context(), limit, include_analytics)
    return _log_response("get_search_history", result)


@mcp.tool()
def clear_cache(cache_key: Optional[str] = None) -> dict:
    """Clear the search cache, or one entry by its key.

    Args:
        cache_key: The _cache_key from a search response.  Omit to clear all.
    """
    _log_request("clear_cache", cache_key=cache_key)
    return _log_response("clear_cache", operations.clear_cache(get_context(), cache_key))


# =============================================================================
# RESOURCES
# =============================================================================
def _json(data: Any) -> str:
    return json.dumps(data, indent=2, default=str)


@mcp.resource(
    "active://search-history",
    name="Search History",
    description="Recent activity searches and analytics",
    mime_type="application/json",
)
def search_history_resource() -> str:
    return _json(operations.search_history(get_context(), limit=20))


@mcp.resource(
    "active://preferences",
    name="User Preferences",
    description="User search preferences and settings",
    mime_type="application/json",
)
def preferences_resource() -> str:
    return _json(asdict(get_context().preferences.get()))


@mcp.resource(
    "active://cache-stats",
    name="Cache Statistics",
    description="Cache entry counts, size and hit rate",
    mime_type="application/json",
)
def cache_stats_resource() -> str:
    return _json(get_context().cache.stats())


@mcp.resource(
    "active://task-status",
    name="Task Status",
    description="Background task records",
    mime_type="application/json",
)
def task_status_resource() -> str:
    return _json(get_context().tasks.snapshot())


@mcp.resource(
    "active://api-stats",
    name="API Statistics",
    description="Uptime, versions and API usage",
    mime_type="application/json",
)
def api_stats_resource() -> str:
    return _json(operations.server_stats(get_context()))


@mcp.resource(
    "active://categories",
    name="Activity Categories",
    description="All available activity categories",
    mime_type="application/json",
)
async def categories_resource() -> str:
    result = await operations.list_categories(get_context())
    return _json(result)


@mcp.resource(
    "active://topics",
    name="Activity Topics",
    description="All available activity topics",
    mime_type="application/json",
)
async def topics_resource() -> str:
    result = await operations.list_topics(get_context())
    return _json(result)


# =============================================================================
# PROMPTS
# =============================================================================
@mcp.prompt(name="find_activities", description="Find activities from a natural language description")
def find_activities(description: str, location: Optional[str] = None) -> str:
    where = f" in or around {location}" if location else ""
    return (
        f'I want to find activities that match this description: "{description}"{where}.\n\n'
        "Please search for relevant activities and provide me with:\n"
        "1. A list of matching activities with key details\n"
        "2. Location information and distance if applicable\n"
        "3. Pricing and registration information\n"
        "4. Recommendations based on the search results\n\n"
        "Use the search_activities tool with appropriate parameters based on my description."
    )


@mcp.prompt(name="plan_activities", description="Plan a series of activities for a timeframe")
def plan_activities(
    timeframe: str,
    interests: str,
    location: Optional[str] = None,
    budget: Optional[str] = None,
) -> str:
    text = f"Help me plan activities for {timeframe}. I'm interested in: {interests}"
    if location:
        text += f". I'm located in or want activities in: {location}"
    if budget:
        text += f". My budget consideration: {budget}"
    return text + (
        ".\n\nPlease:\n"
        "1. Search for relevant activities in the specified timeframe\n"
        "2. Create a suggested schedule or list of activities\n"
        "3. Consider timing, location, and logistics\n"
        "4. Provide backup options if available\n"
        "5. Include pricing and registration details\n\n"
        "Use multiple search_activities calls with different parameters to find diverse options."
    )


@mcp.prompt(name="recommend_activities", description="Personalized activity recommendations")
def recommend_activities(preferences: Optional[str] = None, context: Optional[str] = None) -> str:
    text = "Please provide personalized activity recommendations"
    if preferences:
        text += f" based on these preferences: {preferences}"
    if context:
        text += f". Current context: {context}"
    return text + (
        ".\n\nUse my search history and preferences to:\n"
        "1. Analyze my past activity searches and interests\n"
        "2. Find new activities that match my preferences\n"
        "3. Consider seasonal and contextual factors\n"
        "4. Provide diverse options across different categories\n"
        "5. Explain why each recommendation fits my interests\n\n"
        "Use get_search_history and manage_preferences to understand my preferences, "
        "then use search_activities to find suitable recommendations."
    )


@mcp.prompt(name="compare_activities", description="Compare activities across criteria")
def compare_activities(activity_ids: str, criteria: Optional[str] = None) -> str:
    ids = [i.strip() for i in activity_ids.split(",") if i.strip()]
    if not ids:
        raise ValueError("Activity IDs are required")
    focus = f" focusing on: {criteria}" if criteria else ""
    return (
        f"Please compare these activities: {', '.join(ids)}{focus}.\n\n"
        "For each activity:\n"
        "1. Get detailed information using get_activity_details\n"
        "2. Compare key aspects like price, location, date, requirements\n"
        "3. Highlight similarities and differences\n"
        "4. Provide a recommendation on which might be best for different scenarios\n"
        "5. Create a comparison table or summary\n\n"
        f"Activity IDs to compare: {', '.join(ids)}"
    )


# =============================================================================
# Server entry point
# =============================================================================
def main() -> None:
    load_dotenv()
    # Fail at startup, not on the first tool call, when the key is missing
    get_context()
    mcp.run()


if __name__ == "__main__":
    main()
