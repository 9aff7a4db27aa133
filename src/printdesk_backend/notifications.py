"""
Room-scoped publish/subscribe for live print job updates.

Shop dashboards join ``shop_<shop_id>`` and customers tracking a single job
join ``printjob_<job_id>``. The lifecycle engine only ever publishes; the
WebSocket endpoint in ``main`` manages subscriptions.

Delivery is fire-and-forget: publish() schedules the broadcast on the
application's event loop and returns immediately. A subscriber whose socket
fails is dropped from its rooms; nobody listening is not an error.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from threading import Lock
from typing import Any, Dict, Optional, Protocol, Set

from fastapi import WebSocket

from .errors import NotInitialized

logger = logging.getLogger(__name__)

NEW_PRINT_JOB_EVENT = "newPrintJob"
STATUS_UPDATE_EVENT = "printJobStatusUpdate"


def shop_room(shop_id: str) -> str:
    return f"shop_{shop_id}"


def print_job_room(job_id: str) -> str:
    return f"printjob_{job_id}"


class Broadcaster(Protocol):
    def publish(self, room: str, event: str, payload: Dict[str, Any]) -> None: ...


class WebSocketRoomHub:
    """
    Broadcaster over FastAPI WebSocket connections grouped by room key.

    The hub must be bound to the running event loop at application startup
    before anything can publish through it.

    Thread Safety:
        Room membership is guarded by a lock; publish() may be called from
        request worker threads.
    """

    def __init__(self) -> None:
        self._rooms: Dict[str, Set[WebSocket]] = defaultdict(set)
        self._lock = Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pending: Set[Any] = set()

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        logger.info("Notification hub bound to event loop")

    def unbind(self) -> None:
        self._loop = None

    @property
    def is_ready(self) -> bool:
        return self._loop is not None

    def require_ready(self) -> "WebSocketRoomHub":
        if self._loop is None:
            raise NotInitialized("Notification broadcaster")
        return self

    def join(self, room: str, websocket: WebSocket) -> None:
        with self._lock:
            self._rooms[room].add(websocket)

    def leave(self, room: str, websocket: WebSocket) -> None:
        with self._lock:
            members = self._rooms.get(room)
            if members is None:
                return
            members.discard(websocket)
            if not members:
                del self._rooms[room]

    def leave_all(self, websocket: WebSocket) -> None:
        with self._lock:
            for room in [room for room, members in self._rooms.items() if websocket in members]:
                self._rooms[room].discard(websocket)
                if not self._rooms[room]:
                    del self._rooms[room]

    def subscriber_count(self, room: str) -> int:
        with self._lock:
            return len(self._rooms.get(room, ()))

    def publish(self, room: str, event: str, payload: Dict[str, Any]) -> None:
        """
        Schedule delivery of an event to every socket in a room.

        Args:
            room: Room key, e.g. ``shop_<id>``
            event: Event name sent to clients
            payload: JSON-serializable event body

        Raises:
            NotInitialized: If the hub has not been bound to an event loop
        """
        loop = self._loop
        if loop is None:
            raise NotInitialized("Notification broadcaster")

        message = {"event": event, "data": payload}
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            pending: Any = loop.create_task(self.broadcast(room, message))
        else:
            pending = asyncio.run_coroutine_threadsafe(self.broadcast(room, message), loop)
        # Keep a reference until the broadcast finishes.
        self._pending.add(pending)
        pending.add_done_callback(self._pending.discard)

    async def broadcast(self, room: str, message: Dict[str, Any]) -> int:
        """Send a message to every socket in a room; returns the delivered count."""
        with self._lock:
            sockets = list(self._rooms.get(room, ()))

        delivered = 0
        for websocket in sockets:
            try:
                await websocket.send_json(message)
                delivered += 1
            except Exception as exc:  # noqa: BLE001
                logger.warning(f"Dropping subscriber from {room} after send failure: {exc}")
                self.leave_all(websocket)

        logger.debug(f"Delivered {message.get('event')} to {delivered}/{len(sockets)} subscribers of {room}")
        return delivered
