"""Room analytics service: fetches room feeds and builds the dashboard views."""

import asyncio
from collections.abc import Callable, Sequence
from datetime import datetime
import logging
from typing import Any, Optional

from . import aggregator
from .ics_fetcher import ICSFetcher
from .models import (
    CalendarEvent,
    FeedResponse,
    HeatmapGrid,
    RoomAllTime,
    RoomCapacity,
    RoomConfig,
    RoomFeed,
    RoomOccupancy,
    RoomReport,
    RoomTrend,
    TimeRange,
    TrendReport,
    UsageReport,
)
from .pipeline import PipelineResult, process_feed
from .rooms import ALL_ROOMS, RoomRegistry
from .timezone_utils import now_utc

logger = logging.getLogger(__name__)


def apply_location_filter(events: Sequence[CalendarEvent], location_filter: Optional[str]) -> list[CalendarEvent]:
    """Keep events whose LOCATION contains ``location_filter`` (case-insensitive)."""
    if not location_filter:
        return list(events)
    needle = location_filter.lower()
    return [event for event in events if event.location and needle in event.location.lower()]


class RoomAnalyticsService:
    """Loads processed room feeds and turns them into usage views.

    Distinct feed URLs are downloaded concurrently (bounded by
    ``fetch_concurrency``) and joined before any aggregation runs. A room whose
    feed fails is flagged ``error`` with no events and never affects its
    siblings.
    """

    def __init__(
        self,
        settings: Any,
        registry: RoomRegistry,
        fetcher: Optional[ICSFetcher] = None,
        time_provider: Callable[[], datetime] = now_utc,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.time_provider = time_provider
        self._fetcher = fetcher or ICSFetcher(settings)
        self._owns_fetcher = fetcher is None

    async def __aenter__(self) -> "RoomAnalyticsService":
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_fetcher:
            await self._fetcher.close()

    async def fetch_raw(self, room_id: str) -> FeedResponse:
        """Download one room's feed text unprocessed.

        Raises:
            UnknownRoomError: If the room is not in the registry
        """
        room = self.registry.get(room_id)
        return await self._fetcher.fetch_feed(room.feed_url)

    async def load_rooms(self, selector: Optional[str] = ALL_ROOMS) -> list[RoomFeed]:
        """Fetch and process the rooms named by ``selector`` ("all" or a room id).

        Raises:
            UnknownRoomError: If the selector names no configured room
        """
        return await self.load_room_list(self.registry.select(selector))

    async def load_room_list(self, rooms: Sequence[RoomConfig]) -> list[RoomFeed]:
        """Fetch each distinct feed once and build one RoomFeed per room, in order."""
        groups = self.registry.group_by_feed(rooms)
        urls = list(groups)
        semaphore = asyncio.Semaphore(int(getattr(self.settings, "fetch_concurrency", 4)))

        async def _bounded_fetch(url: str) -> FeedResponse:
            async with semaphore:
                return await self._fetcher.fetch_feed(url)

        logger.debug("Fetching %d feeds for %d rooms", len(urls), len(rooms))
        results = await asyncio.gather(*(_bounded_fetch(url) for url in urls), return_exceptions=True)
        fetched_at = self.time_provider()

        processed: dict[str, tuple[FeedResponse, Optional[PipelineResult]]] = {}
        for url, result in zip(urls, results):
            if isinstance(result, BaseException):
                logger.error("Feed fetch for %s raised: %s", url, result)
                result = FeedResponse(success=False, error_message=str(result) or type(result).__name__)
            pipeline = process_feed(result.content, self.settings) if result.success else None
            processed[url] = (result, pipeline)

        return [self._build_room_feed(room, *processed[room.feed_url], fetched_at) for room in rooms]

    def _build_room_feed(
        self,
        room: RoomConfig,
        response: FeedResponse,
        pipeline: Optional[PipelineResult],
        fetched_at: datetime,
    ) -> RoomFeed:
        if pipeline is None:
            logger.warning("Room %s marked as error: %s", room.id, response.error_message)
            return RoomFeed(
                room=room, error=True, error_message=response.error_message, fetched_at=fetched_at
            )
        return RoomFeed(
            room=room,
            events=apply_location_filter(pipeline.events, room.location_filter),
            unsupported_recurrences=pipeline.unsupported,
            duplicate_count=pipeline.duplicate_count,
            fetched_at=fetched_at,
        )

    def usage_report(
        self, feeds: Sequence[RoomFeed], time_range: TimeRange, selector: str = ALL_ROOMS
    ) -> UsageReport:
        """Per-room usage summaries plus the cross-room overview.

        Rooms with a failed feed contribute zeros to the overview averages.
        """
        now = self.time_provider()
        rooms = [
            RoomReport(
                room_id=feed.room.id,
                room_name=feed.room.name,
                building=feed.room.building,
                error=feed.error,
                error_message=feed.error_message,
                usage=aggregator.summarize_usage(feed.events, time_range.days, now, self.settings),
            )
            for feed in feeds
        ]
        average_across = (
            sum(report.usage.average_hours_per_day for report in rooms) / len(rooms) if rooms else 0.0
        )
        return UsageReport(
            selector=selector,
            time_range=time_range,
            generated_at=now,
            rooms=rooms,
            total_rooms=len(rooms),
            average_hours_across_rooms=aggregator.round_half_up(average_across),
            total_today_events=sum(report.usage.today_events for report in rooms),
        )

    def trends(self, feeds: Sequence[RoomFeed], time_range: TimeRange) -> TrendReport:
        now = self.time_provider()
        rooms = [
            RoomTrend(
                room_id=feed.room.id,
                room_name=feed.room.name,
                error=feed.error,
                series=aggregator.daily_usage(feed.events, time_range.days, now, self.settings),
            )
            for feed in feeds
        ]
        return TrendReport(
            time_range=time_range,
            rooms=rooms,
            combined=aggregator.combine_daily_usage(room.series for room in rooms),
        )

    def heatmap(self, feeds: Sequence[RoomFeed], time_range: Optional[TimeRange] = None) -> HeatmapGrid:
        """Sum of the rooms' heatmaps; all events unless a range is given."""
        window = None
        if time_range is not None:
            window = aggregator.window_for(
                time_range.days, self.time_provider(), aggregator.reference_tz(self.settings)
            )
        return HeatmapGrid.combine(
            [aggregator.build_heatmap(feed.events, self.settings, window) for feed in feeds]
        )

    def capacity(self, feeds: Sequence[RoomFeed], time_range: TimeRange) -> list[RoomCapacity]:
        now = self.time_provider()
        return [
            RoomCapacity(
                room_id=feed.room.id,
                room_name=feed.room.name,
                error=feed.error,
                metrics=aggregator.capacity_metrics(feed.events, time_range.days, now, self.settings),
            )
            for feed in feeds
        ]

    def all_time(self, feeds: Sequence[RoomFeed]) -> list[RoomAllTime]:
        return [
            RoomAllTime(
                room_id=feed.room.id,
                room_name=feed.room.name,
                error=feed.error,
                summary=aggregator.all_time_summary(feed.events, self.settings),
            )
            for feed in feeds
        ]

    def statuses(self, feeds: Sequence[RoomFeed]) -> list[RoomOccupancy]:
        now = self.time_provider()
        return [
            RoomOccupancy(
                room_id=feed.room.id,
                room_name=feed.room.name,
                building=feed.room.building,
                error=feed.error,
                status=aggregator.room_status(feed.events, now),
            )
            for feed in feeds
        ]
