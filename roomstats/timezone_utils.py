"""Timezone resolution and clock utilities for roomstats."""

from __future__ import annotations

import datetime
import logging
import os
import zoneinfo

logger = logging.getLogger(__name__)

DEFAULT_REFERENCE_TIMEZONE = "UTC"

# Windows timezone names as written by Outlook/Exchange calendar exports
WINDOWS_TZ_MAP: dict[str, str] = {
    "Pacific Standard Time": "America/Los_Angeles",
    "Mountain Standard Time": "America/Denver",
    "Central Standard Time": "America/Chicago",
    "Eastern Standard Time": "America/New_York",
    "US Eastern Standard Time": "America/Indianapolis",
    "Alaskan Standard Time": "America/Anchorage",
    "Hawaiian Standard Time": "Pacific/Honolulu",
    "Arizona Standard Time": "America/Phoenix",
    "GMT Standard Time": "Europe/London",
    "Central European Standard Time": "Europe/Paris",
    "W. Europe Standard Time": "Europe/Berlin",
    "China Standard Time": "Asia/Shanghai",
    "Tokyo Standard Time": "Asia/Tokyo",
    "India Standard Time": "Asia/Kolkata",
    "AUS Eastern Standard Time": "Australia/Sydney",
    "UTC": "UTC",
}


def windows_tz_to_iana(windows_tz: str) -> str | None:
    """Convert Windows timezone name to IANA timezone identifier.

    Args:
        windows_tz: Windows timezone name (e.g., "Eastern Standard Time")

    Returns:
        IANA timezone identifier (e.g., "America/New_York") or None if not found
    """
    return WINDOWS_TZ_MAP.get(windows_tz.strip())


def resolve_timezone(name: str | None, fallback: str = DEFAULT_REFERENCE_TIMEZONE) -> zoneinfo.ZoneInfo:
    """Resolve an IANA or Windows timezone name to a ZoneInfo.

    Unknown or missing names resolve to ``fallback``.
    """
    if name:
        candidate = windows_tz_to_iana(name) or name.strip().strip('"')
        try:
            return zoneinfo.ZoneInfo(candidate)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError):
            logger.debug("Unknown timezone %r, using %s", name, fallback)
    return zoneinfo.ZoneInfo(fallback)


def is_valid_timezone(name: str) -> bool:
    """Return True when ``name`` is a loadable IANA timezone."""
    try:
        zoneinfo.ZoneInfo(name)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError):
        return False
    return True


def now_utc() -> datetime.datetime:
    """Return current UTC time with tzinfo.

    Can be overridden for testing via the ROOMSTATS_TEST_TIME environment variable
    (ISO 8601, e.g. "2025-01-15T10:00:00Z"). Naive values are taken as UTC.
    """
    test_time = os.environ.get("ROOMSTATS_TEST_TIME")
    if test_time:
        try:
            from dateutil import parser as date_parser

            dt = date_parser.isoparse(test_time)
            if dt.tzinfo is not None:
                return dt.astimezone(datetime.timezone.utc)
            return dt.replace(tzinfo=datetime.timezone.utc)
        except ValueError as e:
            logger.warning("Failed to parse ROOMSTATS_TEST_TIME=%r: %s", test_time, e)

    return datetime.datetime.now(datetime.timezone.utc)
