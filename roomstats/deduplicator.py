"""Identifier-based event deduplication."""

import logging
from collections.abc import Iterable
from typing import TypeVar

from .models import CalendarEvent

logger = logging.getLogger(__name__)

EventT = TypeVar("EventT", bound=CalendarEvent)


class Deduplicator:
    """Tracks identifiers seen during one pipeline run.

    The first event carrying an identifier wins; later ones are dropped.
    Events without an identifier are always kept.
    """

    def __init__(self) -> None:
        self._seen: set[str] = set()
        self.duplicate_count = 0

    def admit(self, event: CalendarEvent) -> bool:
        """Record ``event`` and report whether it should be kept."""
        if event.uid is None:
            return True
        if event.uid in self._seen:
            self.duplicate_count += 1
            logger.debug("Dropping duplicate event uid=%s", event.uid)
            return False
        self._seen.add(event.uid)
        return True

    def filter(self, events: Iterable[EventT]) -> list[EventT]:
        """Keep the events ``admit`` accepts, preserving order."""
        return [event for event in events if self.admit(event)]
