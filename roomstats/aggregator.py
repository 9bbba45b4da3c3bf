"""Pure usage aggregation over processed room events.

Every function takes the events, the current instant and the settings
explicitly; nothing here reads the clock or holds state, so aggregating the
same input twice yields identical results.

Windows cover whole calendar days in the reference timezone and are
half-open: an event belongs to the window when its start falls in
``[first day 00:00, day after today 00:00)`` and to the day containing its
start.
"""

from calendar import monthrange
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import Any, Optional

from .models import (
    AllTimeSummary,
    CalendarEvent,
    CapacityMetrics,
    DailyUsage,
    HeatmapGrid,
    MonthlyUsage,
    Recommendation,
    RoomStatus,
    RoomUsageSummary,
)

logger = logging.getLogger(__name__)


def round_half_up(value: float, places: int = 1) -> float:
    """Round with halves away from zero (0.25 -> 0.3), unlike the built-in round()."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def whole_percent(part: float, whole: float) -> int:
    """``part / whole`` as a whole-number percentage, 0 when ``whole`` is not positive."""
    if whole <= 0:
        return 0
    return int(Decimal(str(part / whole * 100)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def reference_tz(settings: Any) -> tzinfo:
    return getattr(settings, "tzinfo", timezone.utc)


def _available_hours(settings: Any) -> float:
    return float(getattr(settings, "available_hours_per_day", 12))


def local_date(moment: datetime, tz: tzinfo) -> date:
    return moment.astimezone(tz).date()


@dataclass(frozen=True)
class Window:
    """N whole calendar days ending today."""

    first_day: date
    last_day: date
    start: datetime
    end: datetime
    end_exclusive: datetime

    @property
    def days(self) -> int:
        return (self.last_day - self.first_day).days + 1

    def dates(self) -> list[date]:
        return [self.first_day + timedelta(days=offset) for offset in range(self.days)]

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end_exclusive


def window_for(days: int, now: datetime, tz: tzinfo) -> Window:
    """Build the window of ``days`` calendar days whose last day contains ``now``."""
    if days < 1:
        raise ValueError(f"window must span at least one day, got {days}")
    today = local_date(now, tz)
    first_day = today - timedelta(days=days - 1)
    return Window(
        first_day=first_day,
        last_day=today,
        start=datetime.combine(first_day, time.min, tzinfo=tz),
        end=datetime.combine(today, time.max, tzinfo=tz),
        end_exclusive=datetime.combine(today + timedelta(days=1), time.min, tzinfo=tz),
    )


def _minutes_by_day(
    events: Iterable[CalendarEvent], tz: tzinfo, days: Optional[Iterable[date]] = None
) -> dict[date, float]:
    per_day: dict[date, float] = {day: 0.0 for day in days} if days is not None else {}
    for event in events:
        day = local_date(event.start_time, tz)
        per_day[day] = per_day.get(day, 0.0) + event.duration_minutes
    return per_day


def busiest_day(minutes_by_day: dict[date, float]) -> Optional[DailyUsage]:
    """Return the day with the most booked time.

    Days are scanned chronologically and only a strictly greater total replaces
    the current best, so ties resolve to the earliest day. Returns None when no
    time is booked at all.
    """
    best_day: Optional[date] = None
    best_minutes = 0.0
    for day in sorted(minutes_by_day):
        if minutes_by_day[day] > best_minutes:
            best_day = day
            best_minutes = minutes_by_day[day]
    if best_day is None:
        return None
    return DailyUsage(day=best_day, hours=round_half_up(best_minutes / 60))


def _events_in_window(events: Iterable[CalendarEvent], window: Window) -> list[CalendarEvent]:
    return [event for event in events if window.contains(event.start_time)]


def summarize_usage(
    events: Sequence[CalendarEvent], days: int, now: datetime, settings: Any
) -> RoomUsageSummary:
    """Usage summary of one room over the ``days``-day window ending today."""
    tz = reference_tz(settings)
    window = window_for(days, now, tz)
    in_window = _events_in_window(events, window)
    per_day = _minutes_by_day(in_window, tz, window.dates())

    total_hours = sum(event.duration_minutes for event in in_window) / 60
    today_events = sum(1 for event in in_window if local_date(event.start_time, tz) == window.last_day)

    return RoomUsageSummary(
        total_hours=round_half_up(total_hours),
        average_hours_per_day=round_half_up(total_hours / days),
        booking_count=len(in_window),
        busiest_day=busiest_day(per_day),
        utilization_rate=whole_percent(total_hours, days * _available_hours(settings)),
        today_events=today_events,
        days=days,
        window_start=window.start,
        window_end=window.end,
    )


def daily_usage(
    events: Sequence[CalendarEvent], days: int, now: datetime, settings: Any
) -> list[DailyUsage]:
    """Zero-filled chronological series of booked hours per day of the window."""
    tz = reference_tz(settings)
    window = window_for(days, now, tz)
    per_day = _minutes_by_day(_events_in_window(events, window), tz, window.dates())
    return [DailyUsage(day=day, hours=round_half_up(per_day[day] / 60)) for day in window.dates()]


def combine_daily_usage(series: Iterable[Sequence[DailyUsage]]) -> list[DailyUsage]:
    """Sum several rooms' daily series day by day."""
    totals: dict[date, float] = {}
    for room_series in series:
        for usage in room_series:
            totals[usage.day] = totals.get(usage.day, 0.0) + usage.hours
    return [DailyUsage(day=day, hours=round_half_up(totals[day])) for day in sorted(totals)]


def build_heatmap(
    events: Iterable[CalendarEvent], settings: Any, window: Optional[Window] = None
) -> HeatmapGrid:
    """Count bookings per (weekday, hour) slot.

    Each hour slot an event's ``[start, end)`` span touches is incremented once,
    regardless of how much of the hour it covers. With a window only events
    starting inside it are counted.
    """
    tz = reference_tz(settings)
    counts = [[0] * 24 for _ in range(7)]
    for event in events:
        if window is not None and not window.contains(event.start_time):
            continue
        end = event.end_time.astimezone(timezone.utc)
        # Slots advance in UTC; local hours skipped by DST never appear
        slot = (
            event.start_time.astimezone(tz)
            .replace(minute=0, second=0, microsecond=0)
            .astimezone(timezone.utc)
        )
        while slot < end:
            local = slot.astimezone(tz)
            counts[local.weekday()][local.hour] += 1
            slot += timedelta(hours=1)
    return HeatmapGrid(counts=counts)


def recommend(utilization_rate: int, settings: Any) -> Recommendation:
    if utilization_rate < int(getattr(settings, "underutilized_threshold", 30)):
        return Recommendation.UNDERUTILIZED
    if utilization_rate > int(getattr(settings, "overbooked_threshold", 80)):
        return Recommendation.OVERBOOKED
    return Recommendation.OPTIMAL


def capacity_metrics(
    events: Sequence[CalendarEvent], days: int, now: datetime, settings: Any
) -> CapacityMetrics:
    """Utilization, busiest-day peak and a capacity recommendation for one room."""
    tz = reference_tz(settings)
    available = _available_hours(settings)
    window = window_for(days, now, tz)
    in_window = _events_in_window(events, window)
    per_day = _minutes_by_day(in_window, tz, window.dates())

    total_hours = sum(event.duration_minutes for event in in_window) / 60
    peak_hours = max(per_day.values(), default=0.0) / 60
    utilization = whole_percent(total_hours, days * available)

    return CapacityMetrics(
        utilization_rate=utilization,
        total_hours=round_half_up(total_hours),
        available_hours=round_half_up(days * available),
        peak_utilization=whole_percent(peak_hours, available),
        recommendation=recommend(utilization, settings),
    )


def all_time_summary(events: Sequence[CalendarEvent], settings: Any) -> AllTimeSummary:
    """Totals over every event plus a per-month breakdown, most recent month first."""
    if not events:
        return AllTimeSummary()

    tz = reference_tz(settings)
    per_day = _minutes_by_day(events, tz)

    months: dict[str, dict[date, float]] = {}
    bookings: dict[str, int] = {}
    for event in events:
        key = local_date(event.start_time, tz).strftime("%Y-%m")
        bookings[key] = bookings.get(key, 0) + 1
        months.setdefault(key, {})
    for day, minutes in per_day.items():
        months[day.strftime("%Y-%m")][day] = minutes

    breakdown = []
    for key in sorted(months, reverse=True):
        year, month = (int(part) for part in key.split("-"))
        month_hours = sum(months[key].values()) / 60
        breakdown.append(
            MonthlyUsage(
                month=key,
                total_hours=round_half_up(month_hours),
                average_hours_per_day=round_half_up(month_hours / monthrange(year, month)[1]),
                booking_count=bookings[key],
                busiest_day=busiest_day(months[key]),
            )
        )

    starts = [event.start_time for event in events]
    return AllTimeSummary(
        total_hours=round_half_up(sum(event.duration_minutes for event in events) / 60),
        total_bookings=len(events),
        first_event_start=min(starts),
        last_event_start=max(starts),
        busiest_day=busiest_day(per_day),
        monthly_breakdown=breakdown,
    )


def room_status(events: Iterable[CalendarEvent], now: datetime) -> RoomStatus:
    """Occupancy at ``now``: the event in progress, the next one and when that changes."""
    ordered = sorted(events, key=lambda event: event.start_time)
    current = next((event for event in ordered if event.overlaps(now)), None)
    upcoming = next((event for event in ordered if event.start_time > now), None)

    if current is not None:
        available_until = current.end_time
    elif upcoming is not None:
        available_until = upcoming.start_time
    else:
        available_until = None

    return RoomStatus(
        is_occupied=current is not None,
        current_event=current,
        next_event=upcoming,
        available_until=available_until,
    )
