# =============================================================================
# core/client.py  -  Active Network API Client (the only network code)
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Translates SearchParameters into GET requests against the upstream
#   /search endpoint and turns the responses (or failures) into plain dicts
#   (or ActivityApiError subclasses).
#
# HOW IT WORKS (the flow for every operation):
#   1. RateLimiter.wait() - suspends the calling task until at least
#      min_interval has passed since the previous request (shared by ALL
#      operations on this client instance)
#   2. Build the query string: api_key + only the fields that are set
#   3. urllib.request in a worker thread (asyncio.to_thread), 15s timeout
#   4. Non-2xx -> error_for_status() -> raise
#   5. Bare-list payloads get wrapped into the standard envelope
#
# FACET LISTINGS:
#   Categories / locations / topics are a zero-page-size faceted search.
#   They send per_page=0 directly and never go through the normalizer
#   (which would clamp 0 to 1).
#
# No retries, no backoff.  The rate-limit delay is the only resilience.
# =============================================================================

import asyncio
import json
import logging
import time
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Awaitable, Callable, Iterable, Optional

from core.config import DEFAULT_BASE_URL
from core.errors import (
    ActivityApiError,
    InternalError,
    InvalidParameters,
    NotFound,
    UpstreamUnavailable,
    error_for_status,
)
from core.models import SearchParameters
from core.normalizer import DEFAULT_PER_PAGE

logger = logging.getLogger(__name__)

USER_AGENT = "Active-Network-MCP-Server/1.0.0"

# Facet names used by the listing operations
CATEGORY_FACET = "categoryName"
LOCATION_FACET = "place.cityName"
TOPIC_FACET = "topicName"

# SearchParameters fields whose upstream name differs
_UPSTREAM_NAMES = {"reg_req_min_age": "regReqMinAge"}


class RateLimiter:
    """Leaky bucket of one: enforces a minimum gap between requests.

    It only delays; it never queues by priority or drops calls.  The lock
    makes concurrent callers take turns, so each waits for its own slot
    while other (non-upstream) work on the event loop keeps running.

    Args:
        min_interval: Seconds required between two dispatched requests.
        clock: Monotonic "now" in seconds (injected by tests).
        sleep: Coroutine used to wait (injected by tests).
    """

    def __init__(
        self,
        min_interval: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self.last_request: Optional[float] = None

    async def wait(self) -> None:
        async with self._lock:
            if self.last_request is not None:
                elapsed = self._clock() - self.last_request
                if elapsed < self.min_interval:
                    await self._sleep(self.min_interval - elapsed)
            self.last_request = self._clock()


def serialize_params(params: dict[str, Any]) -> dict[str, str]:
    """Upstream query parameters: unset fields dropped, bools as true/false."""
    query: dict[str, str] = {}
    for name, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        elif isinstance(value, float) and value.is_integer():
            value = int(value)
        query[_UPSTREAM_NAMES.get(name, name)] = str(value)
    return query


def wrap_envelope(data: list, per_page: int, current_page: int) -> dict[str, Any]:
    """Wrap a bare result list into {total_results, items_per_page, ...}."""
    return {
        "total_results": len(data),
        "items_per_page": per_page,
        "start_index": (current_page - 1) * per_page,
        "results": data,
        "facets": {},
        "suggestions": [],
    }


class ActiveNetworkClient:
    """Async client for the Active Network activity search API.

    Args:
        api_key: Static API key, sent as the api_key query parameter.
        base_url: API root; requests go to <base_url>/search.
        timeout: Connect/response timeout in seconds.
        min_interval: Minimum seconds between requests (0.5 = 2 calls/sec).
        rate_limiter: Pre-built limiter (tests inject one with a fake clock).
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 15.0,
        min_interval: float = 0.5,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        if not api_key:
            raise InvalidParameters("API key is required")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.rate_limiter = rate_limiter or RateLimiter(min_interval)
        self.request_count = 0
        self.last_request_at: Optional[float] = None

    # =========================================================================
    # Public operations
    # =========================================================================
    async def search(self, params: SearchParameters) -> dict[str, Any]:
        """Run a search with already-normalized parameters.

        Returns:
            The upstream envelope {total_results, items_per_page,
            start_index, results, facets, ...}.
        """
        query = params.to_dict()
        data = await self._get(query, operation="search")

        if isinstance(data, list):
            per_page = params.per_page if params.per_page is not None else DEFAULT_PER_PAGE
            current_page = params.current_page or 1
            return wrap_envelope(data, per_page, current_page)
        if not isinstance(data, dict):
            raise InternalError("Unexpected response shape from Active Network API")
        return data

    async def get_activity_details(self, activity_id: str) -> dict[str, Any]:
        """Look up one activity by its asset GUID (children included)."""
        if not activity_id:
            raise InvalidParameters("Activity ID is required")

        data = await self._get(
            {"asset.assetGuid": activity_id, "exclude_children": False},
            operation="get_activity_details",
            detail_lookup=True,
        )
        results = data.get("results") if isinstance(data, dict) else data
        if not results:
            raise NotFound("Activity not found")
        return results[0]

    async def get_facets(
        self,
        facet_types: Iterable[str],
        **filters: Any,
    ) -> dict[str, list[dict[str, Any]]]:
        """Facet values ({value, count}) for each requested facet.

        Extra keyword arguments become upstream filters (e.g. near, state).
        """
        facet_types = list(facet_types)
        if not facet_types:
            raise InvalidParameters("At least one facet type is required")

        data = await self._get(
            {"facets": ",".join(facet_types), "per_page": 0, **filters},
            operation="get_facets",
        )
        facets = (data.get("facets") or {}) if isinstance(data, dict) else {}
        return {
            name: sorted(
                (facets.get(name) or {}).get("values") or [],
                key=lambda v: str(v.get("value", "")),
            )
            for name in facet_types
        }

    async def get_categories(self, **filters: Any) -> list[dict[str, Any]]:
        return (await self.get_facets([CATEGORY_FACET], **filters))[CATEGORY_FACET]

    async def get_locations(self, **filters: Any) -> list[dict[str, Any]]:
        return (await self.get_facets([LOCATION_FACET], **filters))[LOCATION_FACET]

    async def get_topics(self, **filters: Any) -> list[dict[str, Any]]:
        return (await self.get_facets([TOPIC_FACET], **filters))[TOPIC_FACET]

    def usage_stats(self) -> dict[str, Any]:
        return {
            "request_count": self.request_count,
            "rate_limit_delay_ms": int(self.rate_limiter.min_interval * 1000),
            "last_request_at": self.last_request_at,
            "base_url": self.base_url,
        }

    # =========================================================================
    # Transport
    # =========================================================================
    async def _get(
        self,
        params: dict[str, Any],
        operation: str,
        detail_lookup: bool = False,
    ) -> Any:
        await self.rate_limiter.wait()
        self.request_count += 1
        self.last_request_at = time.time()

        query = {"api_key": self.api_key, **serialize_params(params)}
        url = f"{self.base_url}/search?{urllib.parse.urlencode(query)}"

        # Never log the key
        logger.info("%s request: %s", operation, serialize_params(params))
        try:
            data = await asyncio.to_thread(self._fetch_json, url, detail_lookup)
        except ActivityApiError as exc:
            logger.warning("%s failed (%s): %s", operation, exc.kind, exc.message)
            raise
        logger.info("%s response received", operation)
        return data

    def _fetch_json(self, url: str, detail_lookup: bool) -> Any:
        request = urllib.request.Request(
            url,
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
        )
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                body = response.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            message = _error_message(exc)
            raise error_for_status(exc.code, message, detail_lookup) from exc
        except urllib.error.URLError as exc:
            raise UpstreamUnavailable(
                f"Could not reach Active Network API: {exc.reason}"
            ) from exc
        except TimeoutError as exc:
            raise UpstreamUnavailable("Active Network API request timed out") from exc

        if not body.strip():
            raise InternalError("Empty response from Active Network API")
        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            raise InternalError("Invalid JSON from Active Network API") from exc


def _error_message(exc: urllib.error.HTTPError) -> str:
    """The upstream `message` field when the body is JSON, else the reason."""
    try:
        raw = exc.read().decode("utf-8", errors="replace")
    except OSError:
        raw = ""
    if raw:
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            return raw.strip() or str(exc.reason)
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
    return str(exc.reason)
