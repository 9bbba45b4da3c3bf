"""JSON API routes for roomstats."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, Optional

from aiohttp import web

from ..exceptions import UnknownRoomError
from ..exporter import EXPORT_FORMATS, export_filename, render_report
from ..models import RoomFeed, TimeRange
from ..rooms import ALL_ROOMS

logger = logging.getLogger(__name__)

FeedProvider = Callable[[Optional[str]], Awaitable[list[RoomFeed]]]

CALENDAR_CACHE_CONTROL = "public, max-age=30"


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


def _http_error(exc_class: type[web.HTTPError], message: str) -> web.HTTPError:
    return exc_class(text=json.dumps({"error": message}), content_type="application/json")


def _parse_range(request: web.Request) -> TimeRange:
    """Read ``range`` (default week); raises HTTPBadRequest for unknown values."""
    try:
        return TimeRange.parse(request.query.get("range"), default=TimeRange.WEEK)
    except ValueError as e:
        raise _http_error(web.HTTPBadRequest, str(e)) from e


def register_api_routes(
    app: web.Application,
    settings: Any,
    registry: Any,
    service: Any,
    feed_provider: FeedProvider,
    time_provider: Callable[[], datetime],
) -> None:
    """Register the analytics API routes.

    Args:
        app: aiohttp web application
        settings: AnalyticsSettings
        registry: RoomRegistry used to resolve selectors
        service: RoomAnalyticsService building the views
        feed_provider: Async callable returning the latest RoomFeeds for a selector
        time_provider: Clock used for the health timestamp and export filenames
    """

    async def _feeds(request: web.Request) -> list[RoomFeed]:
        selector = request.query.get("room", ALL_ROOMS)
        try:
            return await feed_provider(selector)
        except UnknownRoomError as e:
            raise _http_error(web.HTTPNotFound, f"Unknown room: {e.room_id}") from e

    async def health_check(_request: web.Request) -> web.Response:
        return web.json_response(
            {
                "status": "ok",
                "server_time_iso": time_provider().isoformat(),
                "rooms": len(registry),
                "reference_timezone": settings.reference_timezone,
            }
        )

    async def list_rooms(_request: web.Request) -> web.Response:
        return web.json_response(
            {"rooms": [room.model_dump(exclude={"location_filter"}) for room in registry]}
        )

    async def calendar_proxy(request: web.Request) -> web.Response:
        """Pass a room's feed through unchanged."""
        room_id = request.query.get("room")
        if not room_id:
            return _error("Room parameter is required", 400)
        if room_id not in registry:
            return _error("Room not found", 404)

        response = await service.fetch_raw(room_id)
        if not response.success:
            logger.warning("Calendar proxy fetch failed for %s: %s", room_id, response.error_message)
            return _error("Failed to fetch calendar data", 500)

        return web.Response(
            text=response.content,
            content_type="text/calendar",
            charset="utf-8",
            headers={"Cache-Control": CALENDAR_CACHE_CONTROL},
        )

    async def stats(request: web.Request) -> web.Response:
        time_range = _parse_range(request)
        feeds = await _feeds(request)
        report = service.usage_report(feeds, time_range, request.query.get("room", ALL_ROOMS))
        return web.json_response(report.model_dump(mode="json"))

    async def trends(request: web.Request) -> web.Response:
        time_range = _parse_range(request)
        feeds = await _feeds(request)
        return web.json_response(service.trends(feeds, time_range).model_dump(mode="json"))

    async def heatmap(request: web.Request) -> web.Response:
        time_range = _parse_range(request) if "range" in request.query else None
        feeds = await _feeds(request)
        grid = service.heatmap(feeds, time_range)
        first_hour, last_hour = settings.heatmap_first_hour, settings.heatmap_last_hour
        return web.json_response(
            {
                "room": request.query.get("room", ALL_ROOMS),
                "counts": grid.counts,
                "max_count": grid.max_count,
                "first_hour": first_hour,
                "last_hour": last_hour,
                "display": grid.display_rows(first_hour, last_hour),
            }
        )

    async def capacity(request: web.Request) -> web.Response:
        time_range = _parse_range(request)
        feeds = await _feeds(request)
        rooms = service.capacity(feeds, time_range)
        return web.json_response(
            {
                "time_range": time_range.value,
                "rooms": [room.model_dump(mode="json") for room in rooms],
            }
        )

    async def all_time(request: web.Request) -> web.Response:
        feeds = await _feeds(request)
        return web.json_response(
            {"rooms": [room.model_dump(mode="json") for room in service.all_time(feeds)]}
        )

    async def status(request: web.Request) -> web.Response:
        feeds = await _feeds(request)
        return web.json_response(
            {
                "server_time_iso": time_provider().isoformat(),
                "rooms": [room.model_dump(mode="json") for room in service.statuses(feeds)],
            }
        )

    async def export(request: web.Request) -> web.Response:
        fmt = request.query.get("format", "csv").lower()
        if fmt not in EXPORT_FORMATS:
            return _error(f"Unsupported export format: {fmt}", 400)
        time_range = _parse_range(request)
        selector = request.query.get("room", ALL_ROOMS)
        feeds = await _feeds(request)

        report = service.usage_report(feeds, time_range, selector)
        filename = export_filename(
            selector, time_range.value, fmt, time_provider().astimezone(settings.tzinfo).date()
        )
        return web.Response(
            text=render_report(report, fmt),
            content_type=EXPORT_FORMATS[fmt],
            charset="utf-8",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    app.router.add_get("/api/health", health_check)
    app.router.add_get("/api/rooms", list_rooms)
    app.router.add_get("/api/calendar", calendar_proxy)
    app.router.add_get("/api/stats", stats)
    app.router.add_get("/api/trends", trends)
    app.router.add_get("/api/heatmap", heatmap)
    app.router.add_get("/api/capacity", capacity)
    app.router.add_get("/api/all-time", all_time)
    app.router.add_get("/api/status", status)
    app.router.add_get("/api/export", export)
