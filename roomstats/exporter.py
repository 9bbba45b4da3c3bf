"""CSV and JSON rendering of usage reports."""

import csv
from datetime import date
import io
import logging

from .models import UsageReport

logger = logging.getLogger(__name__)

EXPORT_FORMATS = {
    "csv": "text/csv",
    "json": "application/json",
}

CSV_COLUMNS = (
    "Room ID",
    "Room",
    "Building",
    "Window Start",
    "Window End",
    "Total Hours",
    "Average Hours/Day",
    "Bookings",
    "Utilization %",
    "Busiest Day",
    "Busiest Day Hours",
    "Today Events",
    "Status",
)


def export_filename(selector: str, range_name: str, fmt: str, today: date) -> str:
    """``room-analytics-<room>-<range>-<YYYY-MM-DD>.<fmt>``"""
    return f"room-analytics-{selector}-{range_name}-{today.isoformat()}.{fmt}"


def report_to_csv(report: UsageReport) -> str:
    """One row per room followed by an overall summary row."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for room in report.rooms:
        usage = room.usage
        writer.writerow(
            (
                room.room_id,
                room.room_name,
                room.building,
                usage.window_start.date().isoformat(),
                usage.window_end.date().isoformat(),
                usage.total_hours,
                usage.average_hours_per_day,
                usage.booking_count,
                usage.utilization_rate,
                usage.busiest_day.day.isoformat() if usage.busiest_day else "",
                usage.busiest_day.hours if usage.busiest_day else "",
                usage.today_events,
                "error" if room.error else "ok",
            )
        )
    writer.writerow(())
    writer.writerow(("Total Rooms", report.total_rooms))
    writer.writerow(("Average Hours Across Rooms", report.average_hours_across_rooms))
    writer.writerow(("Total Today Events", report.total_today_events))
    return buffer.getvalue()


def report_to_json(report: UsageReport) -> str:
    return report.model_dump_json(indent=2)


def render_report(report: UsageReport, fmt: str) -> str:
    """Render ``report`` as ``fmt`` ("csv" or "json").

    Raises:
        ValueError: If the format is not supported
    """
    fmt = fmt.lower()
    if fmt == "csv":
        return report_to_csv(report)
    if fmt == "json":
        return report_to_json(report)
    raise ValueError(f"Unsupported export format: {fmt!r}")
