"""Shared fixtures for roomstats tests."""

from collections.abc import AsyncIterator, Callable, Generator
from datetime import datetime, timezone
from typing import Any, Optional

import pytest

from roomstats.config_manager import AnalyticsSettings
from roomstats.http_client import close_all_clients
from roomstats.models import CalendarEvent, RoomConfig
from roomstats.rooms import RoomRegistry

FEED_A = "https://feeds.example.test/ConfA.ics"
FEED_B = "https://feeds.example.test/Seminar.ics"

# Wednesday; the 7-day window is Thursday 2025-01-09 .. Wednesday 2025-01-15
FIXED_NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def pytest_configure(config: Any) -> None:
    """Register roomstats test markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Tests that drive the aiohttp app end to end")


@pytest.fixture
def settings() -> AnalyticsSettings:
    """Default settings: UTC reference timezone, 12 bookable hours per day."""
    return AnalyticsSettings()


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def registry() -> RoomRegistry:
    """Three rooms, two of which share one feed."""
    return RoomRegistry(
        [
            RoomConfig(id="confa", name="Conference Room A", building="Garrett Hall", feed_url=FEED_A),
            RoomConfig(id="lounge", name="Student Lounge", building="Garrett Hall", feed_url=FEED_A),
            RoomConfig(id="seminar", name="Seminar Room", building="Garrett Hall", feed_url=FEED_B),
        ]
    )


@pytest.fixture
def make_event() -> Callable[..., CalendarEvent]:
    """Factory for UTC events: ``make_event("2025-01-14T10:00", "2025-01-14T12:00")``."""

    def _make(
        start: str,
        end: str,
        summary: str = "Booking",
        uid: Optional[str] = None,
        location: Optional[str] = None,
    ) -> CalendarEvent:
        return CalendarEvent(
            summary=summary,
            start_time=datetime.fromisoformat(start).replace(tzinfo=timezone.utc),
            end_time=datetime.fromisoformat(end).replace(tzinfo=timezone.utc),
            uid=uid,
            location=location,
        )

    return _make


@pytest.fixture
def make_ics() -> Callable[..., str]:
    """Wrap VEVENT bodies (lists of property lines) into a VCALENDAR document."""

    def _make(*events: list[str]) -> str:
        lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//roomstats test//EN"]
        for properties in events:
            lines.append("BEGIN:VEVENT")
            lines.extend(properties)
            lines.append("END:VEVENT")
        lines.append("END:VCALENDAR")
        return "\r\n".join(lines) + "\r\n"

    return _make


@pytest.fixture
def sample_ics_simple(make_ics: Callable[..., str]) -> str:
    """One 2-hour booking on Tuesday 2025-01-14 10:00-12:00 UTC."""
    return make_ics(
        [
            "UID:single-001@roomres.test",
            "DTSTART:20250114T100000Z",
            "DTEND:20250114T120000Z",
            "SUMMARY:Board Meeting",
            "LOCATION:Conference Room A L014",
        ]
    )


@pytest.fixture
def sample_ics_weekly(make_ics: Callable[..., str]) -> str:
    """Weekly Monday 10:00-11:00 UTC booking from 2025-01-06 through 2025-01-20."""
    return make_ics(
        [
            "UID:weekly-001@roomres.test",
            "DTSTART:20250106T100000Z",
            "DTEND:20250106T110000Z",
            "SUMMARY:Weekly Standup",
            "RRULE:FREQ=WEEKLY;BYDAY=MO;UNTIL=20250120T235959Z",
        ]
    )


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Keep clock overrides and logging switches from leaking between tests."""
    for name in ("ROOMSTATS_TEST_TIME", "ROOMSTATS_DEBUG", "ROOMSTATS_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture(autouse=True)
async def cleanup_shared_http_clients() -> AsyncIterator[None]:
    """Close pooled httpx clients after every test."""
    yield
    await close_all_clients()
