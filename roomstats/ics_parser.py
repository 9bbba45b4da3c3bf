"""Line-oriented parser for room calendar feeds.

Reads VEVENT blocks out of ICS text and normalizes their times to the
reference timezone. Malformed input never raises: unusable lines are skipped
and events without a resolvable start and end are dropped.
"""

from datetime import datetime, tzinfo
import logging
from typing import Any, Optional, Union

from icalendar.parser import Contentline, Contentlines

from .exceptions import RecurrenceParseError
from .models import CalendarEvent, RecurrenceRule
from .rrule_expander import parse_recurrence_rule, parse_rule_datetime
from .timezone_utils import resolve_timezone

logger = logging.getLogger(__name__)

RECOGNIZED_PROPERTIES = frozenset({"SUMMARY", "DTSTART", "DTEND", "RRULE", "UID", "LOCATION"})

DEFAULT_SUMMARY = "Untitled"


def unfold_lines(text: Union[str, bytes]) -> list[str]:
    """Split feed text into content lines with continuation lines unfolded."""
    try:
        return [line for line in Contentlines.from_ical(text) if line]
    except ValueError:
        logger.warning("Feed text could not be split into content lines")
        return []


def _split_line(line: str) -> Optional[tuple[str, Any, str]]:
    try:
        name, params, value = Contentline(line).parts()
    except ValueError:
        logger.debug("Skipping malformed content line: %.80s", line)
        return None
    return name.upper(), params, value


class ICSParser:
    """Parses feed text into CalendarEvent records."""

    def __init__(self, settings: Any):
        self.settings = settings
        self.tz: tzinfo = getattr(settings, "tzinfo", resolve_timezone(None))
        self.honor_tzid = bool(getattr(settings, "honor_tzid", False))

    def parse(self, text: Union[str, bytes, None]) -> list[CalendarEvent]:
        """Parse ICS text into events in feed order, not deduplicated or expanded."""
        if not text:
            return []

        events: list[CalendarEvent] = []
        properties: Optional[dict[str, tuple[str, Any]]] = None
        nested_depth = 0

        for raw_line in unfold_lines(text):
            line = raw_line.strip()
            if not line:
                continue
            upper = line.upper()

            if upper == "BEGIN:VEVENT":
                properties = {}
                nested_depth = 0
                continue
            if upper == "END:VEVENT":
                if properties is not None:
                    event = self._build_event(properties)
                    if event is not None:
                        events.append(event)
                properties = None
                continue
            if properties is None:
                continue

            # Properties of VALARM and other sub-components belong to them, not the event
            if upper.startswith("BEGIN:"):
                nested_depth += 1
                continue
            if upper.startswith("END:"):
                nested_depth = max(0, nested_depth - 1)
                continue
            if nested_depth:
                continue

            split = _split_line(line)
            if split is None:
                continue
            name, params, value = split
            if name in RECOGNIZED_PROPERTIES:
                properties[name] = (value, params)

        logger.debug("Parsed %d events", len(events))
        return events

    def _parse_time(self, value: str, params: Any) -> Optional[tuple[datetime, bool]]:
        """Resolve a DTSTART/DTEND value to (aware datetime, is_date_only)."""
        value = value.strip()
        zone = self.tz
        if self.honor_tzid and not value.endswith("Z"):
            tzid = params.get("TZID") if params else None
            if tzid:
                zone = resolve_timezone(tzid, fallback=str(self.tz))

        parsed = parse_rule_datetime(value, zone)
        if parsed is None:
            return None
        try:
            return parsed.astimezone(self.tz), len(value) == 8
        except OverflowError:
            return None

    def _parse_rule(self, value: str) -> RecurrenceRule:
        try:
            return parse_recurrence_rule(value, self.tz)
        except RecurrenceParseError as e:
            logger.debug("Unparseable RRULE %r: %s", value, e)
            # Kept as a rule without frequency so the expander reports it as unsupported
            return RecurrenceRule(raw=value.strip())

    def _build_event(self, properties: dict[str, tuple[str, Any]]) -> Optional[CalendarEvent]:
        if "DTSTART" not in properties or "DTEND" not in properties:
            logger.debug("Skipping event without DTSTART/DTEND")
            return None

        start = self._parse_time(*properties["DTSTART"])
        end = self._parse_time(*properties["DTEND"])
        if start is None or end is None:
            logger.debug("Skipping event with unparseable dates")
            return None

        start_time, is_all_day = start
        end_time, _ = end
        if end_time <= start_time:
            logger.debug("Skipping event ending at or before its start (%s)", start_time)
            return None

        summary = properties.get("SUMMARY", ("", None))[0].strip() or DEFAULT_SUMMARY
        uid = properties.get("UID", ("", None))[0].strip() or None
        location = properties.get("LOCATION", ("", None))[0].strip() or None
        rule = self._parse_rule(properties["RRULE"][0]) if "RRULE" in properties else None

        return CalendarEvent(
            summary=summary,
            start_time=start_time,
            end_time=end_time,
            uid=uid,
            location=location,
            recurrence_rule=rule,
            is_all_day=is_all_day,
        )


def parse_ics(text: Union[str, bytes, None], settings: Any) -> list[CalendarEvent]:
    """Parse feed text with ``settings`` (reference timezone, TZID handling)."""
    return ICSParser(settings).parse(text)
