"""Exception hierarchy for roomstats."""

from typing import Optional


class RoomStatsError(Exception):
    """Base exception for roomstats errors."""


class ConfigurationError(RoomStatsError):
    """Invalid settings or room registry definition."""


class UnknownRoomError(RoomStatsError):
    """Room selector does not name a configured room."""

    def __init__(self, room_id: str):
        super().__init__(f"Unknown room: {room_id}")
        self.room_id = room_id


class FeedFetchError(RoomStatsError):
    """Calendar feed could not be downloaded."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RecurrenceParseError(RoomStatsError):
    """RRULE value could not be parsed into its parts."""
