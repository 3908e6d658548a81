"""
Tests for request normalization (caller params + preferences -> effective params).
"""

import pytest

from core.errors import InvalidParameters
from core.models import Preferences, SearchParameters
from core.normalizer import build_advanced_parameters, clamp_per_page, normalize


@pytest.fixture
def prefs():
    return Preferences(
        default_location="Austin,TX,US",
        default_radius=10,
        favorite_categories=["running"],
        exclude_children=True,
    )


class TestNormalize:
    def test_defaults_are_substituted(self, prefs):
        effective = normalize({"query": "yoga"}, prefs)

        assert effective.to_dict() == {
            "query": "yoga",
            "near": "Austin,TX,US",
            "radius": 10,
            "exclude_children": True,
            "per_page": 25,
            "current_page": 1,
        }

    def test_explicit_false_exclude_children_is_preserved(self, prefs):
        effective = normalize({"exclude_children": False}, prefs)
        assert effective.exclude_children is False

    def test_per_page_is_clamped(self, prefs):
        assert normalize({"per_page": 500}, prefs).per_page == 50
        assert normalize({"per_page": 0}, prefs).per_page == 1
        assert normalize({"per_page": 30}, prefs).per_page == 30

    def test_caller_location_wins_over_default(self, prefs):
        effective = normalize({"lat_lon": "45.49,-122.86"}, prefs)

        assert effective.lat_lon == "45.49,-122.86"
        assert effective.near is None

    def test_only_one_location_mode_survives(self, prefs):
        effective = normalize({"near": "Denver,CO,US", "bbox": "1,2;3,4"}, prefs)

        assert effective.near == "Denver,CO,US"
        assert effective.bbox is None

    def test_explicit_radius_kept(self, prefs):
        assert normalize({"radius": 50}, prefs).radius == 50

    def test_inputs_are_not_mutated(self, prefs):
        caller = SearchParameters(query="swim")
        normalize(caller, prefs)

        assert caller.near is None
        assert caller.per_page is None
        assert prefs.default_location == "Austin,TX,US"

    def test_field_order_does_not_matter(self, prefs):
        a = normalize({"query": "yoga", "radius": 5, "kids": True}, prefs)
        b = normalize({"kids": True, "radius": 5, "query": "yoga"}, prefs)
        assert a == b

    def test_invalid_page_rejected(self, prefs):
        with pytest.raises(InvalidParameters):
            normalize({"current_page": 0}, prefs)

    def test_invalid_sort_rejected(self, prefs):
        with pytest.raises(InvalidParameters):
            normalize({"sort": "price"}, prefs)

    def test_negative_radius_rejected(self, prefs):
        with pytest.raises(InvalidParameters):
            normalize({"radius": -1}, prefs)

    def test_unknown_field_rejected(self, prefs):
        with pytest.raises(InvalidParameters, match="bogus"):
            normalize({"bogus": 1}, prefs)

    def test_no_default_location(self):
        effective = normalize({}, Preferences(default_location=None))
        assert effective.near is None


class TestClampPerPage:
    def test_default(self):
        assert clamp_per_page(None) == 25


class TestBuildAdvancedParameters:
    def test_age_range_and_registration(self):
        params = build_advanced_parameters(
            {"age_range": {"min": 8, "max": 12}, "registration_status": "open"}
        )
        assert params.reg_req_min_age == "8..12"
        assert params.registerable_only is True

    def test_open_ended_age_range(self):
        params = build_advanced_parameters({"age_range": {"min": 18}})
        assert params.reg_req_min_age == "18.."

    def test_closed_registration(self):
        params = build_advanced_parameters({"registration_status": "full"})
        assert params.registerable_only is False

    def test_has_registration(self):
        params = build_advanced_parameters({"has_registration": True})
        assert params.registerable_only is True

    def test_geo_search_copied(self):
        params = build_advanced_parameters(geo_search={"bbox": "49.3,-123.2;49.2,-123.0"})
        assert params.bbox == "49.3,-123.2;49.2,-123.0"

    def test_bad_registration_status(self):
        with pytest.raises(InvalidParameters):
            build_advanced_parameters({"registration_status": "maybe"})

    def test_unknown_geo_key(self):
        with pytest.raises(InvalidParameters):
            build_advanced_parameters(geo_search={"circle": "x"})
