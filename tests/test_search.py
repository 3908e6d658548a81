"""
End-to-end tests for the search pipeline with a mocked upstream client:
normalize -> cache lookup -> client -> cache store + history record.
"""

import pytest

from core import search as operations
from core.cache import make_cache_key
from core.errors import InvalidParameters, NotFound, RateLimited
from core.models import SearchParameters

ENVELOPE = {
    "total_results": 2,
    "items_per_page": 25,
    "start_index": 0,
    "results": [{"assetGuid": "a1"}, {"assetGuid": "a2"}],
    "facets": {},
}


class TestSearchActivities:
    @pytest.mark.asyncio
    async def test_second_identical_search_is_served_from_cache(self, ctx, mock_client):
        mock_client.search.return_value = ENVELOPE

        first = await operations.search_activities(ctx, {"query": "yoga"})
        second = await operations.search_activities(ctx, {"query": "yoga"})

        assert mock_client.search.await_count == 1
        assert "_cached" not in first
        assert second["_cached"] is True
        assert second["results"] == ENVELOPE["results"]
        assert second["_cache_key"] == first["_cache_key"]

    @pytest.mark.asyncio
    async def test_cache_hit_has_same_annotations_as_miss(self, ctx, mock_client):
        mock_client.search.return_value = ENVELOPE

        first = await operations.search_activities(ctx, {"query": "yoga"})
        second = await operations.search_activities(ctx, {"query": "yoga"})

        assert second["_search_params"] == first["_search_params"]
        assert "_timestamp" in second
        assert "_cache_time" in second

    @pytest.mark.asyncio
    async def test_explicit_default_radius_as_float_hits_cache(self, ctx, mock_client):
        mock_client.search.return_value = ENVELOPE

        await operations.search_activities(ctx, {"query": "yoga"})
        second = await operations.search_activities(ctx, {"query": "yoga", "radius": 10.0})

        assert mock_client.search.await_count == 1
        assert second["_cached"] is True

    @pytest.mark.asyncio
    async def test_client_receives_effective_parameters(self, ctx, mock_client):
        mock_client.search.return_value = ENVELOPE

        result = await operations.search_activities(ctx, {"query": "yoga", "per_page": 500})

        effective = mock_client.search.await_args[0][0]
        assert isinstance(effective, SearchParameters)
        assert effective.near == "Austin,TX,US"
        assert effective.radius == 10
        assert effective.per_page == 50
        assert result["_search_params"] == effective.to_dict()
        assert result["_cache_key"] == make_cache_key(effective)

    @pytest.mark.asyncio
    async def test_success_records_history(self, ctx, mock_client):
        mock_client.search.return_value = ENVELOPE

        await operations.search_activities(ctx, {"query": "yoga", "category": "event"})

        assert len(ctx.history) == 1
        record = ctx.history.recent(1)[0]
        assert record.result_count == 2
        assert record.query["category"] == "event"
        assert record.query["near"] == "Austin,TX,US"

    @pytest.mark.asyncio
    async def test_cache_hit_does_not_record_history(self, ctx, mock_client):
        mock_client.search.return_value = ENVELOPE

        await operations.search_activities(ctx, {"query": "yoga"})
        await operations.search_activities(ctx, {"query": "yoga"})

        assert len(ctx.history) == 1

    @pytest.mark.asyncio
    async def test_failure_caches_nothing_and_records_nothing(self, ctx, mock_client):
        mock_client.search.side_effect = RateLimited(
            "API rate limit exceeded. Please try again later."
        )

        with pytest.raises(RateLimited, match="^Search failed: API rate limit") as exc_info:
            await operations.search_activities(ctx, {"query": "yoga"})

        assert exc_info.value.kind == "rate_limited"
        assert len(ctx.cache) == 0
        assert len(ctx.history) == 0

    @pytest.mark.asyncio
    async def test_use_cache_false_always_calls_upstream(self, ctx, mock_client):
        mock_client.search.return_value = ENVELOPE

        await operations.search_activities(ctx, {"query": "yoga"}, use_cache=False)
        await operations.search_activities(ctx, {"query": "yoga"}, use_cache=False)

        assert mock_client.search.await_count == 2
        assert len(ctx.cache) == 0
        assert len(ctx.history) == 2

    @pytest.mark.asyncio
    async def test_expired_entry_goes_upstream_again(self, ctx, mock_client, clock):
        mock_client.search.return_value = ENVELOPE

        await operations.search_activities(ctx, {"query": "yoga"})
        clock.advance(301)
        result = await operations.search_activities(ctx, {"query": "yoga"})

        assert mock_client.search.await_count == 2
        assert "_cached" not in result

    @pytest.mark.asyncio
    async def test_preference_change_changes_cache_key(self, ctx, mock_client):
        mock_client.search.return_value = ENVELOPE

        await operations.search_activities(ctx, {"query": "yoga"})
        ctx.preferences.set({"default_location": "Denver,CO,US"})
        await operations.search_activities(ctx, {"query": "yoga"})

        assert mock_client.search.await_count == 2

    @pytest.mark.asyncio
    async def test_history_uses_total_results_over_page_length(self, ctx, mock_client):
        mock_client.search.return_value = {**ENVELOPE, "total_results": 120}

        await operations.search_activities(ctx, {"query": "run"})

        assert ctx.history.recent(1)[0].result_count == 120

    @pytest.mark.asyncio
    async def test_invalid_input_never_reaches_client(self, ctx, mock_client):
        with pytest.raises(InvalidParameters):
            await operations.search_activities(ctx, {"current_page": 0})
        mock_client.search.assert_not_awaited()


class TestAdvancedSearch:
    @pytest.mark.asyncio
    async def test_derived_filters_and_echo(self, ctx, mock_client):
        mock_client.search.return_value = ENVELOPE
        filters = {"age_range": {"min": 8, "max": 12}, "price_range": {"max": 50}}

        result = await operations.advanced_search(
            ctx, filters, {"bbox": "49.3,-123.2;49.2,-123.0"}, "swim"
        )

        effective = mock_client.search.await_args[0][0]
        assert effective.reg_req_min_age == "8..12"
        assert effective.bbox == "49.3,-123.2;49.2,-123.0"
        assert effective.near is None
        assert result["_advanced_filters"] == filters
        assert result["_geo_search"] == {"bbox": "49.3,-123.2;49.2,-123.0"}

    @pytest.mark.asyncio
    async def test_error_prefix(self, ctx, mock_client):
        mock_client.search.side_effect = RateLimited("slow down")

        with pytest.raises(RateLimited, match="^Advanced search failed"):
            await operations.advanced_search(ctx, {"has_registration": True})


class TestActivityDetails:
    DETAILS = {
        "assetGuid": "abc",
        "assetName": "Sunrise 5K",
        "assetPrices": [{"priceAmt": "25"}],
        "assetComponents": [{"assetGuid": "child"}],
    }

    @pytest.mark.asyncio
    async def test_default_keeps_pricing_drops_components(self, ctx, mock_client):
        mock_client.get_activity_details.return_value = dict(self.DETAILS)

        details = await operations.get_activity_details(ctx, "abc")

        assert "assetPrices" in details
        assert "assetComponents" not in details
        assert details["_include_pricing"] is True
        assert details["_include_components"] is False

    @pytest.mark.asyncio
    async def test_strip_pricing_keep_components(self, ctx, mock_client):
        mock_client.get_activity_details.return_value = dict(self.DETAILS)

        details = await operations.get_activity_details(
            ctx, "abc", include_pricing=False, include_components=True
        )

        assert "assetPrices" not in details
        assert details["assetComponents"] == [{"assetGuid": "child"}]

    @pytest.mark.asyncio
    async def test_not_found_keeps_kind(self, ctx, mock_client):
        mock_client.get_activity_details.side_effect = NotFound("Activity not found")

        with pytest.raises(NotFound, match="Failed to get activity details"):
            await operations.get_activity_details(ctx, "nope")

    @pytest.mark.asyncio
    async def test_blank_id(self, ctx, mock_client):
        with pytest.raises(InvalidParameters):
            await operations.get_activity_details(ctx, "   ")
        mock_client.get_activity_details.assert_not_awaited()


class TestFacetListings:
    @pytest.mark.asyncio
    async def test_categories_with_counts(self, ctx, mock_client):
        mock_client.get_categories.return_value = [
            {"value": "cycling", "count": 4},
            {"value": "running", "count": 9},
        ]

        listing = await operations.list_categories(ctx, location="Austin,TX,US")

        mock_client.get_categories.assert_awaited_once_with(near="Austin,TX,US")
        assert listing["categories"] == ["cycling", "running"]
        assert listing["count"] == 2
        assert listing["counts"] == {"cycling": 4, "running": 9}
        assert listing["filters"] == {"near": "Austin,TX,US"}

    @pytest.mark.asyncio
    async def test_locations_without_counts(self, ctx, mock_client):
        mock_client.get_locations.return_value = [{"value": "Austin", "count": 3}]

        listing = await operations.list_locations(ctx, state="TX", include_counts=False)

        mock_client.get_locations.assert_awaited_once_with(state="TX", country="US")
        assert listing["locations"] == ["Austin"]
        assert "counts" not in listing

    @pytest.mark.asyncio
    async def test_topics_error_prefix(self, ctx, mock_client):
        mock_client.get_topics.side_effect = RateLimited("slow down")

        with pytest.raises(RateLimited, match="^Failed to get topics"):
            await operations.list_topics(ctx)


class TestHistoryAndCacheOperations:
    @pytest.mark.asyncio
    async def test_search_history_limit_clamped(self, ctx, mock_client):
        mock_client.search.return_value = ENVELOPE
        for i in range(3):
            await operations.search_activities(ctx, {"query": f"q{i}"})

        result = operations.search_history(ctx, limit=500)

        assert result["_limit"] == 50
        assert [r["query"]["query"] for r in result["recent_searches"]] == ["q0", "q1", "q2"]
        assert result["analytics"]["total_searches"] == 3

    def test_search_history_without_analytics(self, ctx):
        result = operations.search_history(ctx, limit=0, include_analytics=False)

        assert result["_limit"] == 1
        assert result["analytics"] is None

    def test_clear_single_key(self, ctx):
        ctx.cache.put("k1", {"results": []})
        ctx.cache.put("k2", {"results": []})

        assert operations.clear_cache(ctx, "k1")["removed"] == 1
        assert operations.clear_cache(ctx, "k1")["removed"] == 0
        assert ctx.cache.keys() == ["k2"]

    def test_clear_all(self, ctx):
        ctx.cache.put("k1", {})
        ctx.cache.put("k2", {})

        result = operations.clear_cache(ctx)

        assert result == {"message": "All cache entries cleared", "removed": 2}


class TestServerStats:
    @pytest.mark.parametrize(
        "seconds, expected",
        [
            (4, "4s"),
            (184, "3m 4s"),
            (7384, "2h 3m 4s"),
            (93780, "1d 2h 3m"),
        ],
    )
    def test_format_uptime(self, seconds, expected):
        assert operations.format_uptime(seconds) == expected

    def test_stats_shape(self, ctx):
        stats = operations.server_stats(ctx)

        assert stats["server_version"] == "1.0.0"
        assert stats["api_version"] == "v2"
        assert stats["total_searches"] == 0
        assert stats["api_usage"]["request_count"] == 0
