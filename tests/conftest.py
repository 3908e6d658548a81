"""
Shared fixtures for the Active Network MCP server tests.

The upstream client is always mocked (an AsyncMock shaped like ActiveNetworkClient)
so no test makes a network call.  Clocks are injected where time matters.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from core.cache import ResultCache
from core.client import ActiveNetworkClient
from core.config import Settings
from core.context import AppContext
from core.history import SearchHistory
from core.models import Preferences
from core.preferences import PreferenceStore
from core.tasks import TaskRegistry


class FakeClock:
    """Manually-advanced clock returning float seconds."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDateClock:
    """Manually-advanced clock returning aware datetimes."""

    def __init__(self, start: datetime = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def date_clock():
    return FakeDateClock()


@pytest.fixture
def settings():
    return Settings(api_key="test-key")


@pytest.fixture
def mock_client():
    client = AsyncMock(spec=ActiveNetworkClient)
    client.usage_stats.return_value = {
        "request_count": 0,
        "rate_limit_delay_ms": 500,
        "last_request_at": None,
        "base_url": "https://api.amp.active.com/v2",
    }
    return client


@pytest.fixture
def ctx(settings, mock_client, clock, date_clock):
    """An AppContext with a mocked client and controllable clocks."""
    return AppContext(
        settings=settings,
        client=mock_client,
        preferences=PreferenceStore(
            Preferences(
                default_location="Austin,TX,US",
                default_radius=10,
                favorite_categories=[],
                exclude_children=True,
            )
        ),
        cache=ResultCache(default_ttl=300, cleanup_threshold=100, clock=clock),
        history=SearchHistory(clock=date_clock),
        tasks=TaskRegistry(),
    )
