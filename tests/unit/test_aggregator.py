"""Unit tests for roomstats.aggregator."""

from datetime import date, datetime, timezone

import pytest

from roomstats import aggregator
from roomstats.config_manager import AnalyticsSettings
from roomstats.models import AllTimeSummary, DailyUsage, Recommendation

pytestmark = pytest.mark.unit

UTC = timezone.utc


class TestRounding:
    @pytest.mark.parametrize(
        "value, expected", [(0.25, 0.3), (0.35, 0.4), (2 / 7, 0.3), (1.04, 1.0), (0.0, 0.0)]
    )
    def test_round_half_up(self, value, expected) -> None:
        assert aggregator.round_half_up(value) == expected

    def test_whole_percent_rounds_half_up(self) -> None:
        assert aggregator.whole_percent(1, 8) == 13
        assert aggregator.whole_percent(6, 12) == 50

    def test_whole_percent_when_whole_not_positive_then_zero(self) -> None:
        assert aggregator.whole_percent(5, 0) == 0


class TestWindow:
    def test_week_window_covers_seven_whole_days_ending_today(self, fixed_now) -> None:
        window = aggregator.window_for(7, fixed_now, UTC)

        assert window.first_day == date(2025, 1, 9)
        assert window.last_day == date(2025, 1, 15)
        assert window.start == datetime(2025, 1, 9, tzinfo=UTC)
        assert window.end_exclusive == datetime(2025, 1, 16, tzinfo=UTC)
        assert len(window.dates()) == 7

    def test_window_is_half_open(self, fixed_now) -> None:
        window = aggregator.window_for(7, fixed_now, UTC)

        assert window.contains(datetime(2025, 1, 9, 0, 0, tzinfo=UTC))
        assert window.contains(datetime(2025, 1, 15, 23, 59, 59, tzinfo=UTC))
        assert not window.contains(datetime(2025, 1, 16, 0, 0, tzinfo=UTC))
        assert not window.contains(datetime(2025, 1, 8, 23, 59, tzinfo=UTC))

    def test_window_when_days_not_positive_then_value_error(self, fixed_now) -> None:
        with pytest.raises(ValueError):
            aggregator.window_for(0, fixed_now, UTC)


class TestSummarizeUsage:
    def test_single_two_hour_booking_over_week(self, make_event, fixed_now, settings) -> None:
        """2 hours over 7 days averages 0.3 hours/day."""
        events = [make_event("2025-01-14T10:00", "2025-01-14T12:00")]

        summary = aggregator.summarize_usage(events, 7, fixed_now, settings)

        assert summary.total_hours == 2.0
        assert summary.average_hours_per_day == 0.3
        assert summary.booking_count == 1
        assert summary.busiest_day == DailyUsage(day=date(2025, 1, 14), hours=2.0)
        assert summary.utilization_rate == 2
        assert summary.today_events == 0
        assert summary.days == 7

    def test_six_of_twelve_hours_today_is_fifty_percent(self, make_event, fixed_now, settings) -> None:
        events = [
            make_event("2025-01-15T08:00", "2025-01-15T11:00"),
            make_event("2025-01-15T12:00", "2025-01-15T15:00"),
        ]

        summary = aggregator.summarize_usage(events, 1, fixed_now, settings)

        assert summary.total_hours == 6.0
        assert summary.utilization_rate == 50
        assert summary.today_events == 2

    def test_busiest_day_tie_goes_to_earliest_day(self, make_event, fixed_now, settings) -> None:
        events = [
            make_event("2025-01-12T10:00", "2025-01-12T12:00"),
            make_event("2025-01-10T10:00", "2025-01-10T12:00"),
        ]

        summary = aggregator.summarize_usage(events, 7, fixed_now, settings)

        assert summary.busiest_day.day == date(2025, 1, 10)

    def test_events_are_attributed_by_start(self, make_event, fixed_now, settings) -> None:
        """An event starting before the window is excluded even if it ends inside it."""
        events = [
            make_event("2025-01-08T23:00", "2025-01-09T01:00"),
            make_event("2025-01-15T23:00", "2025-01-16T01:00"),
            make_event("2025-01-16T00:00", "2025-01-16T01:00"),
        ]

        summary = aggregator.summarize_usage(events, 7, fixed_now, settings)

        assert summary.booking_count == 1
        assert summary.total_hours == 2.0
        assert summary.busiest_day.day == date(2025, 1, 15)

    def test_no_events_yields_zeros(self, fixed_now, settings) -> None:
        summary = aggregator.summarize_usage([], 30, fixed_now, settings)

        assert summary.total_hours == 0.0
        assert summary.average_hours_per_day == 0.0
        assert summary.booking_count == 0
        assert summary.busiest_day is None
        assert summary.utilization_rate == 0
        assert summary.today_events == 0

    def test_reference_timezone_decides_the_day(self, make_event, fixed_now) -> None:
        """03:00 UTC on the 15th is still the 14th in New York."""
        events = [make_event("2025-01-15T03:00", "2025-01-15T04:00")]

        utc_summary = aggregator.summarize_usage(events, 1, fixed_now, AnalyticsSettings())
        ny_summary = aggregator.summarize_usage(
            events, 1, fixed_now, AnalyticsSettings(reference_timezone="America/New_York")
        )

        assert utc_summary.booking_count == 1
        assert ny_summary.booking_count == 0

    def test_same_input_twice_gives_identical_summary(self, make_event, fixed_now, settings) -> None:
        events = [make_event("2025-01-14T10:00", "2025-01-14T12:00")]

        assert aggregator.summarize_usage(events, 7, fixed_now, settings) == aggregator.summarize_usage(
            events, 7, fixed_now, settings
        )

    def test_available_hours_setting_changes_utilization(self, make_event, fixed_now) -> None:
        events = [make_event("2025-01-15T08:00", "2025-01-15T12:00")]

        summary = aggregator.summarize_usage(events, 1, fixed_now, AnalyticsSettings(available_hours_per_day=8))

        assert summary.utilization_rate == 50


class TestDailyUsage:
    def test_series_is_zero_filled_and_chronological(self, make_event, fixed_now, settings) -> None:
        events = [
            make_event("2025-01-14T10:00", "2025-01-14T11:30"),
            make_event("2025-01-10T10:00", "2025-01-10T11:00"),
        ]

        series = aggregator.daily_usage(events, 7, fixed_now, settings)

        assert [usage.day for usage in series] == [date(2025, 1, d) for d in range(9, 16)]
        assert [usage.hours for usage in series] == [0.0, 1.0, 0.0, 0.0, 0.0, 1.5, 0.0]

    def test_combine_sums_day_by_day(self) -> None:
        first = [DailyUsage(day=date(2025, 1, 14), hours=1.5), DailyUsage(day=date(2025, 1, 15), hours=0.0)]
        second = [DailyUsage(day=date(2025, 1, 14), hours=2.0), DailyUsage(day=date(2025, 1, 15), hours=1.0)]

        combined = aggregator.combine_daily_usage([first, second])

        assert combined == [
            DailyUsage(day=date(2025, 1, 14), hours=3.5),
            DailyUsage(day=date(2025, 1, 15), hours=1.0),
        ]


class TestHeatmap:
    def test_each_touched_hour_counted_once(self, make_event, settings) -> None:
        """Monday 09:30-11:00 touches the 09 and 10 slots."""
        events = [make_event("2025-01-13T09:30", "2025-01-13T11:00")]

        grid = aggregator.build_heatmap(events, settings)

        assert grid.count(0, 9) == 1
        assert grid.count(0, 10) == 1
        assert grid.count(0, 11) == 0
        assert grid.max_count == 1

    def test_event_ending_on_the_hour_does_not_touch_next_slot(self, make_event, settings) -> None:
        events = [
            make_event("2025-01-14T10:00", "2025-01-14T11:00"),
            make_event("2025-01-21T10:00", "2025-01-21T11:00"),
        ]

        grid = aggregator.build_heatmap(events, settings)

        assert grid.count(1, 10) == 2
        assert grid.count(1, 11) == 0
        assert grid.max_count == 2

    def test_spring_forward_skipped_hour_is_not_counted(self, make_event) -> None:
        """01:30 EST to 03:30 EDT on Sunday 2025-03-09 is one real hour."""
        events = [make_event("2025-03-09T06:30", "2025-03-09T07:30")]

        grid = aggregator.build_heatmap(events, AnalyticsSettings(reference_timezone="America/New_York"))

        assert grid.count(6, 1) == 1
        assert grid.count(6, 2) == 0
        assert grid.count(6, 3) == 1

    def test_window_limits_counted_events(self, make_event, fixed_now, settings) -> None:
        events = [
            make_event("2025-01-14T10:00", "2025-01-14T11:00"),
            make_event("2025-01-07T10:00", "2025-01-07T11:00"),
        ]
        window = aggregator.window_for(7, fixed_now, aggregator.reference_tz(settings))

        grid = aggregator.build_heatmap(events, settings, window)

        assert grid.count(1, 10) == 1

    def test_display_rows_cover_configured_hours(self, make_event, settings) -> None:
        grid = aggregator.build_heatmap([make_event("2025-01-13T09:00", "2025-01-13T10:00")], settings)

        rows = grid.display_rows(8, 20)

        assert list(rows) == ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
        assert list(rows["Monday"]) == list(range(8, 21))
        assert rows["Monday"][9] == 1


class TestCapacity:
    @pytest.mark.parametrize(
        "rate, expected",
        [
            (0, Recommendation.UNDERUTILIZED),
            (29, Recommendation.UNDERUTILIZED),
            (30, Recommendation.OPTIMAL),
            (80, Recommendation.OPTIMAL),
            (81, Recommendation.OVERBOOKED),
        ],
    )
    def test_recommendation_thresholds(self, settings, rate, expected) -> None:
        assert aggregator.recommend(rate, settings) == expected

    def test_capacity_metrics_for_half_booked_day(self, make_event, fixed_now, settings) -> None:
        events = [make_event("2025-01-15T08:00", "2025-01-15T14:00")]

        metrics = aggregator.capacity_metrics(events, 1, fixed_now, settings)

        assert metrics.utilization_rate == 50
        assert metrics.total_hours == 6.0
        assert metrics.available_hours == 12.0
        assert metrics.peak_utilization == 50
        assert metrics.recommendation == "optimal"

    def test_peak_uses_busiest_day_of_window(self, make_event, fixed_now, settings) -> None:
        events = [
            make_event("2025-01-13T08:00", "2025-01-13T18:00"),
            make_event("2025-01-14T08:00", "2025-01-14T09:00"),
        ]

        metrics = aggregator.capacity_metrics(events, 7, fixed_now, settings)

        assert metrics.utilization_rate == 13
        assert metrics.peak_utilization == 83
        assert metrics.recommendation == "underutilized"


class TestAllTime:
    def test_monthly_breakdown_most_recent_first(self, make_event, settings) -> None:
        events = [
            make_event("2025-01-14T10:00", "2025-01-14T12:00"),
            make_event("2025-01-10T10:00", "2025-01-10T11:00"),
            make_event("2024-12-20T09:00", "2024-12-20T12:00"),
        ]

        summary = aggregator.all_time_summary(events, settings)

        assert summary.total_hours == 6.0
        assert summary.total_bookings == 3
        assert summary.first_event_start == datetime(2024, 12, 20, 9, 0, tzinfo=UTC)
        assert summary.last_event_start == datetime(2025, 1, 14, 10, 0, tzinfo=UTC)
        assert summary.busiest_day == DailyUsage(day=date(2024, 12, 20), hours=3.0)
        assert [month.month for month in summary.monthly_breakdown] == ["2025-01", "2024-12"]
        january = summary.monthly_breakdown[0]
        assert january.total_hours == 3.0
        assert january.booking_count == 2
        assert january.average_hours_per_day == 0.1
        assert january.busiest_day.day == date(2025, 1, 14)

    def test_no_events_gives_empty_summary(self, settings) -> None:
        assert aggregator.all_time_summary([], settings) == AllTimeSummary()


class TestRoomStatus:
    def test_now_inside_event_then_occupied_until_its_end(self, make_event, fixed_now) -> None:
        current = make_event("2025-01-15T11:00", "2025-01-15T13:00", summary="Lunch Talk")
        upcoming = make_event("2025-01-15T14:00", "2025-01-15T15:00", summary="Review")

        status = aggregator.room_status([upcoming, current], fixed_now)

        assert status.is_occupied
        assert status.current_event == current
        assert status.next_event == upcoming
        assert status.available_until == current.end_time

    def test_now_between_events_then_free_until_next_start(self, make_event, fixed_now) -> None:
        upcoming = make_event("2025-01-15T14:00", "2025-01-15T15:00")

        status = aggregator.room_status([upcoming], fixed_now)

        assert not status.is_occupied
        assert status.available_until == upcoming.start_time

    def test_event_ending_now_is_not_current(self, make_event, fixed_now) -> None:
        status = aggregator.room_status([make_event("2025-01-15T11:00", "2025-01-15T12:00")], fixed_now)

        assert not status.is_occupied
        assert status.next_event is None
        assert status.available_until is None


def test_busiest_day_when_later_days_tie_then_first_of_them_wins() -> None:
    minutes = {date(2025, 1, 3): 300.0, date(2025, 1, 1): 180.0, date(2025, 1, 2): 300.0}

    assert aggregator.busiest_day(minutes) == DailyUsage(day=date(2025, 1, 2), hours=5.0)


def test_busiest_day_when_nothing_booked_then_none() -> None:
    assert aggregator.busiest_day({date(2025, 1, 1): 0.0}) is None
