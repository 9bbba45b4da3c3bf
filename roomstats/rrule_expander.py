"""Weekly recurrence expansion for room calendar events."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from itertools import islice
import logging
from typing import Any, Optional, Union

from dateutil.rrule import FR, MO, SA, SU, TH, TU, WE, WEEKLY, rrule

from .exceptions import RecurrenceParseError
from .models import CalendarEvent, ExpandedEventInstance, RecurrenceRule, UnsupportedRecurrence

logger = logging.getLogger(__name__)

WEEKDAY_CODES = {"MO": MO, "TU": TU, "WE": WE, "TH": TH, "FR": FR, "SA": SA, "SU": SU}

# Rule parts that do not change the occurrence set of a single-day weekly rule
_IGNORED_PARTS = {"WKST"}
_KNOWN_PARTS = {"FREQ", "BYDAY", "UNTIL", "COUNT", "INTERVAL"}


@dataclass
class RRuleExpanderConfig:
    """Expansion settings with explicit defaults."""

    expansion_days: int = 365

    @classmethod
    def from_settings(cls, settings: Any) -> "RRuleExpanderConfig":
        return cls(expansion_days=int(getattr(settings, "expansion_days", 365)))


def parse_rule_datetime(value: str, tz: tzinfo) -> Optional[datetime]:
    """Parse an RRULE/DTSTART style date value.

    ``YYYYMMDD`` is midnight in ``tz``; ``YYYYMMDDTHHMMSS`` is wall time in ``tz``;
    a trailing ``Z`` marks UTC. Returns None for anything else.
    """
    value = value.strip()
    try:
        if len(value) == 8 and value.isdigit():
            return datetime.strptime(value, "%Y%m%d").replace(tzinfo=tz)
        if len(value) == 16 and value.endswith("Z"):
            parsed = datetime.strptime(value[:-1], "%Y%m%dT%H%M%S")
            return parsed.replace(tzinfo=timezone.utc).astimezone(tz)
        if len(value) == 15:
            return datetime.strptime(value, "%Y%m%dT%H%M%S").replace(tzinfo=tz)
    except (ValueError, OverflowError):
        return None
    return None


def parse_recurrence_rule(rule_string: str, tz: tzinfo) -> RecurrenceRule:
    """Parse an RRULE value (e.g. "FREQ=WEEKLY;BYDAY=MO;UNTIL=20250120T140000Z").

    A malformed UNTIL is treated as absent.

    Raises:
        RecurrenceParseError: If the rule is empty or COUNT/INTERVAL are not integers
    """
    if not rule_string or not rule_string.strip():
        raise RecurrenceParseError("Empty RRULE string")

    parts: dict[str, str] = {}
    for part in rule_string.strip().split(";"):
        if "=" not in part:
            continue
        key, value = part.split("=", 1)
        parts[key.strip().upper()] = value.strip()

    try:
        count = int(parts["COUNT"]) if "COUNT" in parts else None
        interval = int(parts["INTERVAL"]) if "INTERVAL" in parts else 1
    except ValueError as e:
        raise RecurrenceParseError(f"Invalid RRULE format: {rule_string}") from e

    until = None
    if "UNTIL" in parts:
        until = parse_rule_datetime(parts["UNTIL"], tz)
        if until is None:
            logger.debug("Ignoring malformed UNTIL %r", parts["UNTIL"])

    by_day = tuple(day.strip().upper() for day in parts.get("BYDAY", "").split(",") if day.strip())
    extra = tuple(
        sorted(key for key in parts if key not in _KNOWN_PARTS and key not in _IGNORED_PARTS)
    )

    return RecurrenceRule(
        frequency=parts.get("FREQ", "").upper() or None,
        by_day=by_day,
        until=until,
        count=count,
        interval=interval,
        extra_parts=extra,
        raw=rule_string.strip(),
    )


def unsupported_reason(rule: RecurrenceRule) -> Optional[str]:
    """Explain why ``rule`` cannot be expanded, or None when it can."""
    if rule.frequency != "WEEKLY":
        return f"frequency {rule.frequency or 'missing'} is not supported"
    if len(rule.by_day) != 1:
        return f"BYDAY must name exactly one weekday, got {len(rule.by_day)}"
    if rule.by_day[0] not in WEEKDAY_CODES:
        return f"BYDAY value {rule.by_day[0]!r} is not a plain weekday"
    if rule.interval != 1:
        return f"INTERVAL={rule.interval} is not supported"
    if rule.count is not None and rule.count < 1:
        return f"COUNT={rule.count} is not positive"
    if rule.extra_parts:
        return f"rule parts {', '.join(rule.extra_parts)} are not supported"
    return None


def instance_uid(parent_uid: Optional[str], start: datetime) -> Optional[str]:
    """Synthesize ``<parent uid>_<epoch ms>``; uid-less parents yield uid-less instances."""
    if not parent_uid:
        return None
    return f"{parent_uid}_{round(start.timestamp() * 1000)}"


class RRuleExpander:
    """Expands weekly single-weekday rules into concrete instances."""

    def __init__(self, settings: Any):
        self.settings = settings
        self.config = RRuleExpanderConfig.from_settings(settings)
        self.tz: tzinfo = getattr(settings, "tzinfo", timezone.utc)

    def expand_event(
        self, event: CalendarEvent
    ) -> Union[list[ExpandedEventInstance], UnsupportedRecurrence]:
        """Expand a recurring event into instances.

        Occurrences start at the first date on or after the parent's start that
        falls on the rule's weekday and repeat every 7 days while they are not
        later than UNTIL (or start + expansion_days when UNTIL is absent).

        Returns:
            Instances in chronological order, or UnsupportedRecurrence for
            rule shapes other than weekly with one weekday

        Raises:
            ValueError: If the event has no recurrence rule
        """
        rule = event.recurrence_rule
        if rule is None:
            raise ValueError("event has no recurrence rule")

        reason = unsupported_reason(rule)
        if reason is not None:
            return UnsupportedRecurrence(
                uid=event.uid, summary=event.summary, rule=rule.raw, reason=reason
            )

        start = event.start_time.astimezone(self.tz)
        try:
            limit = rule.until or start + timedelta(days=self.config.expansion_days)
        except OverflowError:
            limit = datetime.max.replace(tzinfo=self.tz)
        duration = event.duration

        occurrences = rrule(
            WEEKLY, dtstart=start, byweekday=WEEKDAY_CODES[rule.by_day[0]], until=limit
        )
        if rule.count is not None:
            occurrences = islice(occurrences, rule.count)

        instances = [
            ExpandedEventInstance(
                summary=event.summary,
                start_time=occurrence,
                end_time=occurrence + duration,
                uid=instance_uid(event.uid, occurrence),
                location=event.location,
                is_all_day=event.is_all_day,
                parent_uid=event.uid,
            )
            for occurrence in occurrences
        ]
        logger.debug(
            "Expanded %r (%s) into %d instances", event.summary, rule.raw, len(instances)
        )
        return instances
