"""Periodic per-room feed refresh.

Each room gets a RoomRefreshTask that refreshes immediately and then every
``refresh_interval_seconds``. Stopping or restarting a task never cancels an
in-flight fetch: the old loop just schedules no further ticks, and a late
result from an older tick cannot overwrite a newer snapshot.
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
import logging
import time
from typing import Any, Optional

from .models import RoomConfig, RoomFeed
from .rooms import RoomRegistry

logger = logging.getLogger(__name__)

RefreshFn = Callable[[RoomConfig], Awaitable[RoomFeed]]


class RoomRefreshTask:
    """Restartable, non-cancelable periodic refresh of one room."""

    def __init__(
        self,
        room: RoomConfig,
        refresh_fn: RefreshFn,
        interval_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.room = room
        self.interval_seconds = interval_seconds
        self._refresh_fn = refresh_fn
        self._clock = clock
        self._snapshot: Optional[RoomFeed] = None
        self._snapshot_started: Optional[float] = None
        self._stop_event: Optional[asyncio.Event] = None
        # Loops replaced by restart() keep running until their in-flight tick ends
        self._tasks: set[asyncio.Task] = set()

    @property
    def snapshot(self) -> Optional[RoomFeed]:
        """Latest refreshed feed, or None before the first tick completes."""
        return self._snapshot

    @property
    def is_running(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    def start(self) -> None:
        """Start the loop; a running loop is left untouched."""
        if self.is_running:
            return
        stop_event = asyncio.Event()
        self._stop_event = stop_event
        task = asyncio.create_task(self._run(stop_event), name=f"refresh-{self.room.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug("Started refresh loop for %s every %ss", self.room.id, self.interval_seconds)

    def stop(self) -> None:
        """Ask the loop to stop after its current tick."""
        if self._stop_event is not None:
            self._stop_event.set()

    def restart(self) -> None:
        """Replace the loop with a fresh one that refreshes immediately."""
        self.stop()
        self._stop_event = None
        self.start()

    async def wait_stopped(self, timeout: Optional[float] = None) -> None:
        """Wait for stopped loops to finish their in-flight tick and exit."""
        if not self._tasks:
            return
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning("Refresh loop for %s still running after %ss", self.room.id, timeout)

    async def refresh_once(self) -> Optional[RoomFeed]:
        """Run one refresh and store its result if no newer tick has been stored."""
        started = self._clock()
        try:
            feed = await self._refresh_fn(self.room)
        except Exception:
            logger.exception("Refresh of room %s failed", self.room.id)
            return None
        self._store(feed, started)
        return feed

    def _store(self, feed: RoomFeed, started: float) -> None:
        if self._snapshot_started is not None and started < self._snapshot_started:
            logger.debug("Discarding stale snapshot for %s", self.room.id)
            return
        # Single assignment so readers see either the old or the new snapshot
        self._snapshot, self._snapshot_started = feed, started

    async def _run(self, stop_event: asyncio.Event) -> None:
        await self.refresh_once()
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                await self.refresh_once()
        logger.debug("Refresh loop for %s stopped", self.room.id)


class RefreshCoordinator:
    """Owns one RoomRefreshTask per room and serves their latest snapshots."""

    def __init__(self, service: Any, registry: RoomRegistry, interval_seconds: float) -> None:
        self.service = service
        self.registry = registry
        self.tasks: dict[str, RoomRefreshTask] = {
            room.id: RoomRefreshTask(room, self._refresh_room, interval_seconds)
            for room in registry
        }

    async def _refresh_room(self, room: RoomConfig) -> RoomFeed:
        feeds = await self.service.load_room_list([room])
        return feeds[0]

    def start(self) -> None:
        for task in self.tasks.values():
            task.start()
        logger.info("Started %d room refresh tasks", len(self.tasks))

    def stop(self) -> None:
        for task in self.tasks.values():
            task.stop()

    async def wait_stopped(self, timeout: Optional[float] = None) -> None:
        await asyncio.gather(*(task.wait_stopped(timeout) for task in self.tasks.values()))

    def restart(self, room_id: str) -> None:
        """Restart one room's loop.

        Raises:
            UnknownRoomError: If the room is not in the registry
        """
        room = self.registry.get(room_id)
        self.tasks[room.id].restart()

    def snapshot(self, room_id: str) -> Optional[RoomFeed]:
        task = self.tasks.get(room_id)
        return task.snapshot if task is not None else None

    async def feeds(self, selector: Optional[str]) -> list[RoomFeed]:
        """Latest feeds for the selected rooms, loading rooms with no snapshot yet.

        Raises:
            UnknownRoomError: If the selector names no configured room
        """
        rooms: Sequence[RoomConfig] = self.registry.select(selector)
        missing = [room for room in rooms if self.snapshot(room.id) is None]
        loaded = {}
        if missing:
            loaded = {feed.room.id: feed for feed in await self.service.load_room_list(missing)}
        return [self.snapshot(room.id) or loaded[room.id] for room in rooms]
