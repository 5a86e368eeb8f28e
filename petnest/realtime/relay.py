"""In-process room relay for live chat delivery.

Rooms are keyed ``"{listing_type}_{listing_id}"``. A room exists only while
it has members. Nothing passing through the relay is persisted.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, Optional, Set
from petnest import config

logger = logging.getLogger(__name__)


class RoomRelay:
    """Room membership and fan-out for connected clients.

    A connection is any object with an awaitable ``send_json(payload)``
    (a Starlette ``WebSocket`` in production).
    """

    def __init__(self, send_timeout: Optional[float] = None):
        self.send_timeout = send_timeout if send_timeout is not None else config.RELAY_SEND_TIMEOUT_SECONDS
        self._rooms: Dict[str, Set[Any]] = defaultdict(set)
        self._locks: Dict[str, asyncio.Lock] = {}
        # Broadcasts holding or waiting on each room's lock
        self._pending: Dict[str, int] = defaultdict(int)
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    def join(self, room: str, connection) -> None:
        if self._closed:
            raise RuntimeError("Relay is closed")
        self._rooms[room].add(connection)
        self._locks.setdefault(room, asyncio.Lock())

    def leave(self, room: str, connection) -> None:
        members = self._rooms.get(room)
        if not members:
            return
        members.discard(connection)
        if not members:
            del self._rooms[room]
            self._drop_idle_lock(room)

    def _drop_idle_lock(self, room: str) -> None:
        # A lock outlives its room while broadcasts still use it
        if room not in self._rooms and not self._pending.get(room):
            self._locks.pop(room, None)
            self._pending.pop(room, None)

    def leave_all(self, connection) -> list:
        rooms = [room for room, members in self._rooms.items() if connection in members]
        for room in rooms:
            self.leave(room, connection)
        return rooms

    def is_member(self, room: str, connection) -> bool:
        return connection in self._rooms.get(room, ())

    def room_size(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    def stats(self) -> dict:
        connections = set()
        for members in self._rooms.values():
            connections.update(members)
        return {"rooms": len(self._rooms), "connections": len(connections)}

    async def broadcast(self, room: str, payload: dict) -> int:
        """Send ``payload`` to every member of ``room``; returns deliveries made."""
        lock = self._locks.get(room)
        if lock is None:
            return 0

        delivered = 0
        dead = []
        self._pending[room] += 1
        try:
            # Serialized per room so members see the room's emission order
            async with lock:
                for connection in list(self._rooms.get(room, ())):
                    try:
                        await asyncio.wait_for(connection.send_json(payload), timeout=self.send_timeout)
                        delivered += 1
                    except asyncio.TimeoutError:
                        logger.warning("Dropping connection from %s after send timed out", room)
                        dead.append(connection)
                    except Exception as e:
                        logger.warning("Dropping connection from %s after failed send: %s", room, e)
                        dead.append(connection)
        finally:
            self._pending[room] -= 1

        for connection in dead:
            self.leave_all(connection)
        self._drop_idle_lock(room)
        return delivered

    def publish(self, room: str, payload: dict) -> asyncio.Task:
        """Schedule a broadcast without waiting for delivery."""
        task = asyncio.get_running_loop().create_task(self.broadcast(room, payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def close(self) -> None:
        self._closed = True
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        stats = self.stats()
        self._rooms.clear()
        self._locks.clear()
        self._pending.clear()
        logger.info("Relay closed (%d rooms, %d connections released)", stats["rooms"], stats["connections"])
