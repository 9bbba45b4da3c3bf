"""Room registry: the immutable room id -> feed mapping passed into the pipeline."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator
from pathlib import Path
from types import MappingProxyType
from typing import Any

from pydantic import TypeAdapter, ValidationError

from .config_manager import get_config_value
from .exceptions import ConfigurationError, UnknownRoomError
from .models import RoomConfig

logger = logging.getLogger(__name__)

ALL_ROOMS = "all"

_FEED_BASE = "https://roomres.thebattenspace.org/ics"

# The five rooms without a dedicated feed are published through ConfA.ics.
DEFAULT_ROOMS: tuple[RoomConfig, ...] = (
    RoomConfig(id="confa", name="Conference Room A L014", building="Garrett Hall",
               feed_url=f"{_FEED_BASE}/ConfA.ics"),
    RoomConfig(id="greathall", name="Great Hall 100", building="Garrett Hall",
               feed_url=f"{_FEED_BASE}/GreatHall.ics"),
    RoomConfig(id="seminar", name="Seminar Room L039", building="Garrett Hall",
               feed_url=f"{_FEED_BASE}/SeminarRoom.ics"),
    RoomConfig(id="studentlounge206", name="Student Lounge 206", building="Garrett Hall",
               feed_url=f"{_FEED_BASE}/ConfA.ics"),
    RoomConfig(id="pavx-upper", name="Pavilion X Upper Garden", building="Pavilion X",
               feed_url=f"{_FEED_BASE}/ConfA.ics"),
    RoomConfig(id="pavx-b1", name="Pavilion X Basement Room 1", building="Pavilion X",
               feed_url=f"{_FEED_BASE}/ConfA.ics"),
    RoomConfig(id="pavx-b2", name="Pavilion X Basement Room 2", building="Pavilion X",
               feed_url=f"{_FEED_BASE}/ConfA.ics"),
    RoomConfig(id="pavx-exhibit", name="Pavilion X Basement Exhibit", building="Pavilion X",
               feed_url=f"{_FEED_BASE}/ConfA.ics"),
)

_rooms_adapter = TypeAdapter(list[RoomConfig])


class RoomRegistry:
    """Immutable, ordered mapping of room id to RoomConfig."""

    def __init__(self, rooms: Iterable[RoomConfig]):
        ordered: dict[str, RoomConfig] = {}
        for room in rooms:
            if room.id == ALL_ROOMS:
                raise ConfigurationError(f"Room id {ALL_ROOMS!r} is reserved")
            if room.id in ordered:
                raise ConfigurationError(f"Duplicate room id: {room.id}")
            ordered[room.id] = room
        self._rooms = MappingProxyType(ordered)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def __iter__(self) -> Iterator[RoomConfig]:
        return iter(self._rooms.values())

    def __len__(self) -> int:
        return len(self._rooms)

    def ids(self) -> list[str]:
        return list(self._rooms)

    def get(self, room_id: str) -> RoomConfig:
        """Look up a room by id.

        Raises:
            UnknownRoomError: If no room has this id
        """
        try:
            return self._rooms[room_id]
        except KeyError:
            raise UnknownRoomError(room_id) from None

    def select(self, selector: str | None) -> list[RoomConfig]:
        """Resolve a selector (a room id or "all") to rooms in registry order."""
        if not selector or selector == ALL_ROOMS:
            return list(self._rooms.values())
        return [self.get(selector)]

    def group_by_feed(self, rooms: Iterable[RoomConfig]) -> dict[str, list[RoomConfig]]:
        """Group rooms by feed URL so each distinct feed is fetched once."""
        groups: dict[str, list[RoomConfig]] = {}
        for room in rooms:
            groups.setdefault(room.feed_url, []).append(room)
        return groups

    @classmethod
    def default(cls) -> RoomRegistry:
        return cls(DEFAULT_ROOMS)

    @classmethod
    def from_file(cls, path: str | Path) -> RoomRegistry:
        """Load a registry from a JSON list of room objects.

        Raises:
            ConfigurationError: If the file is unreadable or not a valid room list
        """
        file_path = Path(path)
        try:
            data = json.loads(file_path.read_text(encoding="utf-8"))
            rooms = _rooms_adapter.validate_python(data)
        except OSError as e:
            raise ConfigurationError(f"Cannot read rooms file {file_path}: {e}") from e
        except (json.JSONDecodeError, ValidationError) as e:
            raise ConfigurationError(f"Invalid rooms file {file_path}: {e}") from e

        logger.info("Loaded %d rooms from %s", len(rooms), file_path)
        return cls(rooms)


def load_registry(config: Any) -> RoomRegistry:
    """Build the registry named by ``rooms_file`` in config, or the built-in one."""
    rooms_file = get_config_value(config, "rooms_file")
    if rooms_file:
        return RoomRegistry.from_file(rooms_file)
    return RoomRegistry.default()
