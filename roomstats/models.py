"""Data models for room calendar analytics."""

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from .timezone_utils import now_utc as _now_utc

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


class TimeRange(str, Enum):
    """Aggregation windows selectable by the presentation layer."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    @property
    def days(self) -> int:
        """Number of calendar days in the window, today included."""
        return {"day": 1, "week": 7, "month": 30}[self.value]

    @property
    def label(self) -> str:
        return {"day": "Today", "week": "This Week", "month": "This Month"}[self.value]

    @classmethod
    def parse(cls, value: Optional[str], default: "TimeRange | None" = None) -> "TimeRange":
        """Parse a range name, returning ``default`` for empty input.

        Raises:
            ValueError: If the value is not a known range
        """
        if not value:
            if default is None:
                raise ValueError("time range is required")
            return default
        try:
            return cls(value.strip().lower())
        except ValueError as e:
            raise ValueError(f"Invalid time range: {value!r}") from e


class Recommendation(str, Enum):
    UNDERUTILIZED = "underutilized"
    OPTIMAL = "optimal"
    OVERBOOKED = "overbooked"


class RoomConfig(BaseModel):
    """A bookable room and the calendar feed that describes it."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Stable room identifier used in selectors")
    name: str = Field(..., description="Display name")
    building: str = Field(default="", description="Building the room belongs to")
    feed_url: str = Field(..., description="ICS feed URL; several rooms may share one")
    location_filter: Optional[str] = Field(
        default=None, description="Keep only events whose LOCATION contains this text"
    )


class RecurrenceRule(BaseModel):
    """Structured RRULE value of a recurring parent event."""

    model_config = ConfigDict(frozen=True)

    frequency: Optional[str] = None
    by_day: tuple[str, ...] = ()
    until: Optional[datetime] = None
    count: Optional[int] = None
    interval: int = 1
    extra_parts: tuple[str, ...] = Field(
        default=(), description="Rule part names outside FREQ/BYDAY/UNTIL/COUNT/INTERVAL/WKST"
    )
    raw: str = ""


class CalendarEvent(BaseModel):
    """A booking as read from a room's feed, normalized to the reference timezone."""

    model_config = ConfigDict(frozen=True)

    summary: str = Field(default="Untitled", description="Event title")
    start_time: datetime
    end_time: datetime
    uid: Optional[str] = Field(default=None, description="Feed-supplied identifier")
    location: Optional[str] = None
    recurrence_rule: Optional[RecurrenceRule] = None
    is_all_day: bool = False

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @property
    def duration_minutes(self) -> float:
        return self.duration.total_seconds() / 60

    @property
    def duration_hours(self) -> float:
        return self.duration.total_seconds() / 3600

    @property
    def is_recurring(self) -> bool:
        return self.recurrence_rule is not None

    def overlaps(self, moment: datetime) -> bool:
        """Check whether ``moment`` falls inside [start_time, end_time)."""
        return self.start_time <= moment < self.end_time

    @field_serializer("start_time", "end_time")
    def _serialize_datetime(self, dt: datetime) -> str:
        return dt.isoformat()


class ExpandedEventInstance(CalendarEvent):
    """Concrete occurrence generated from a recurring parent event."""

    parent_uid: Optional[str] = None


class UnsupportedRecurrence(BaseModel):
    """Recurring event whose rule shape the expander does not handle."""

    model_config = ConfigDict(frozen=True)

    uid: Optional[str] = None
    summary: str = "Untitled"
    rule: str = ""
    reason: str


class DailyUsage(BaseModel):
    """Booked hours for one room on one calendar day."""

    model_config = ConfigDict(frozen=True)

    day: date
    hours: float = 0.0

    @field_serializer("day")
    def _serialize_day(self, value: date) -> str:
        return value.isoformat()


class RoomUsageSummary(BaseModel):
    """Usage statistics for one room over one query window."""

    model_config = ConfigDict(frozen=True)

    total_hours: float = 0.0
    average_hours_per_day: float = 0.0
    booking_count: int = 0
    busiest_day: Optional[DailyUsage] = None
    utilization_rate: int = Field(default=0, description="Whole-number percent of available hours")
    today_events: int = 0
    days: int = 1
    window_start: datetime
    window_end: datetime

    @field_serializer("window_start", "window_end")
    def _serialize_datetime(self, dt: datetime) -> str:
        return dt.isoformat()


class CapacityMetrics(BaseModel):
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    utilization_rate: int = 0
    total_hours: float = 0.0
    available_hours: float = 0.0
    peak_utilization: int = 0
    recommendation: Recommendation = Recommendation.UNDERUTILIZED


class MonthlyUsage(BaseModel):
    model_config = ConfigDict(frozen=True)

    month: str = Field(..., description="YYYY-MM")
    total_hours: float = 0.0
    average_hours_per_day: float = 0.0
    booking_count: int = 0
    busiest_day: Optional[DailyUsage] = None


class AllTimeSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_hours: float = 0.0
    total_bookings: int = 0
    first_event_start: Optional[datetime] = None
    last_event_start: Optional[datetime] = None
    busiest_day: Optional[DailyUsage] = None
    monthly_breakdown: list[MonthlyUsage] = Field(default_factory=list)

    @field_serializer("first_event_start", "last_event_start")
    def _serialize_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        return dt.isoformat() if dt else None


class HeatmapGrid(BaseModel):
    """Booking counts indexed ``[weekday][hour]`` with Monday as 0."""

    model_config = ConfigDict(frozen=True)

    counts: list[list[int]] = Field(default_factory=lambda: [[0] * 24 for _ in range(7)])

    def count(self, weekday: int, hour: int) -> int:
        return self.counts[weekday][hour]

    @property
    def max_count(self) -> int:
        return max((max(row) for row in self.counts), default=0)

    def display_rows(self, first_hour: int = 8, last_hour: int = 20) -> dict[str, dict[int, int]]:
        """Return weekday name -> {hour: count} restricted to the displayed hours."""
        return {
            WEEKDAY_NAMES[weekday]: {
                hour: self.counts[weekday][hour] for hour in range(first_hour, last_hour + 1)
            }
            for weekday in range(7)
        }

    @classmethod
    def combine(cls, grids: "list[HeatmapGrid]") -> "HeatmapGrid":
        """Sum several grids cell by cell."""
        counts = [[0] * 24 for _ in range(7)]
        for grid in grids:
            for weekday in range(7):
                for hour in range(24):
                    counts[weekday][hour] += grid.counts[weekday][hour]
        return cls(counts=counts)


class RoomStatus(BaseModel):
    """Occupancy of a room at one instant."""

    model_config = ConfigDict(frozen=True)

    is_occupied: bool = False
    current_event: Optional[CalendarEvent] = None
    next_event: Optional[CalendarEvent] = None
    available_until: Optional[datetime] = None

    @field_serializer("available_until")
    def _serialize_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        return dt.isoformat() if dt else None


class FeedResponse(BaseModel):
    """Response from a feed fetch operation."""

    success: bool
    content: Optional[str] = None
    status_code: Optional[int] = None
    headers: dict[str, str] = Field(default_factory=dict)
    error_message: Optional[str] = None
    fetch_time: datetime = Field(default_factory=_now_utc)

    etag: Optional[str] = None
    last_modified: Optional[str] = None
    cache_control: Optional[str] = None

    @property
    def content_length(self) -> Optional[int]:
        if self.content:
            return len(self.content.encode("utf-8"))
        return None


class RoomFeed(BaseModel):
    """One room's processed feed: the event list aggregation runs over."""

    model_config = ConfigDict(frozen=True)

    room: RoomConfig
    events: list[CalendarEvent] = Field(default_factory=list)
    error: bool = False
    error_message: Optional[str] = None
    unsupported_recurrences: list[UnsupportedRecurrence] = Field(default_factory=list)
    duplicate_count: int = 0
    fetched_at: datetime = Field(default_factory=_now_utc)

    @field_serializer("fetched_at")
    def _serialize_datetime(self, dt: datetime) -> str:
        return dt.isoformat()


class RoomReport(BaseModel):
    """Usage summary of one room as shown in the per-room statistics view."""

    model_config = ConfigDict(frozen=True)

    room_id: str
    room_name: str
    building: str = ""
    error: bool = False
    error_message: Optional[str] = None
    usage: RoomUsageSummary


class UsageReport(BaseModel):
    """Usage summaries of a room selection plus the cross-room overview."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    selector: str
    time_range: TimeRange
    generated_at: datetime = Field(default_factory=_now_utc)
    rooms: list[RoomReport] = Field(default_factory=list)
    total_rooms: int = 0
    average_hours_across_rooms: float = 0.0
    total_today_events: int = 0

    @field_serializer("generated_at")
    def _serialize_datetime(self, dt: datetime) -> str:
        return dt.isoformat()


class RoomTrend(BaseModel):
    model_config = ConfigDict(frozen=True)

    room_id: str
    room_name: str
    error: bool = False
    series: list[DailyUsage] = Field(default_factory=list)


class TrendReport(BaseModel):
    """Daily booked-hours series per room plus their day-by-day sum."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    time_range: TimeRange
    rooms: list[RoomTrend] = Field(default_factory=list)
    combined: list[DailyUsage] = Field(default_factory=list)


class RoomCapacity(BaseModel):
    model_config = ConfigDict(frozen=True)

    room_id: str
    room_name: str
    error: bool = False
    metrics: CapacityMetrics


class RoomAllTime(BaseModel):
    model_config = ConfigDict(frozen=True)

    room_id: str
    room_name: str
    error: bool = False
    summary: AllTimeSummary


class RoomOccupancy(BaseModel):
    model_config = ConfigDict(frozen=True)

    room_id: str
    room_name: str
    building: str = ""
    error: bool = False
    status: RoomStatus
