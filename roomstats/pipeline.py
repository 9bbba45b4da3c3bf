"""Feed processing pipeline: parse -> dedupe -> expand -> dedupe."""

from dataclasses import dataclass, field
import logging
from typing import Any, Union

from .deduplicator import Deduplicator
from .ics_parser import ICSParser
from .models import CalendarEvent, UnsupportedRecurrence
from .rrule_expander import RRuleExpander

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Events ready for aggregation plus what was dropped along the way."""

    events: list[CalendarEvent] = field(default_factory=list)
    parsed_count: int = 0
    duplicate_count: int = 0
    expanded_count: int = 0
    unsupported: list[UnsupportedRecurrence] = field(default_factory=list)


def process_events(events: list[CalendarEvent], settings: Any) -> PipelineResult:
    """Deduplicate parsed events, expand recurring parents and deduplicate instances.

    Recurring parents are replaced by their instances. A parent whose rule is
    unsupported contributes nothing and is reported in ``unsupported``.
    """
    deduplicator = Deduplicator()
    expander = RRuleExpander(settings)
    result = PipelineResult(parsed_count=len(events))

    for event in deduplicator.filter(events):
        if not event.is_recurring:
            result.events.append(event)
            continue

        expanded: Union[list, UnsupportedRecurrence] = expander.expand_event(event)
        if isinstance(expanded, UnsupportedRecurrence):
            logger.warning(
                "Skipping unsupported recurrence for %r (uid=%s): %s",
                expanded.summary,
                expanded.uid,
                expanded.reason,
            )
            result.unsupported.append(expanded)
            continue

        instances = deduplicator.filter(expanded)
        result.expanded_count += len(instances)
        result.events.extend(instances)

    result.duplicate_count = deduplicator.duplicate_count
    logger.debug(
        "Pipeline: %d parsed, %d duplicates, %d instances, %d unsupported -> %d events",
        result.parsed_count,
        result.duplicate_count,
        result.expanded_count,
        len(result.unsupported),
        len(result.events),
    )
    return result


def process_feed(text: Union[str, bytes, None], settings: Any) -> PipelineResult:
    """Run the full pipeline over raw feed text."""
    return process_events(ICSParser(settings).parse(text), settings)
