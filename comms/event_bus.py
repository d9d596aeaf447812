"""EventBus — in-process pub/sub carrying server-pushed exercise events.

The engine publishes ``state:snapshot``, ``scenario:update`` and
``player:left`` here, each tagged with the session it belongs to.  Every
websocket connection holds its own subscription and forwards only the
events of the session its track is in.

Everything runs on one event loop, so subscriptions are plain
``asyncio.Queue`` objects fed with ``put_nowait``; publishing never awaits.
"""

from __future__ import annotations

import asyncio


class EventBus:
    """Fan-out of session events to bounded subscriber queues."""

    def __init__(self, maxsize: int = 100) -> None:
        self._maxsize = maxsize
        self._subscribers: list[asyncio.Queue] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue:
        """Subscribe to events. Returns a Queue that receives all events."""
        q: asyncio.Queue = asyncio.Queue(maxsize=self._maxsize)
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        try:
            self._subscribers.remove(q)
        except ValueError:
            pass

    def publish(self, event_type: str, data: dict | None = None, session_id: str | None = None) -> None:
        msg: dict = {"type": event_type, "session_id": session_id}
        if data is not None:
            msg["data"] = data
        for q in self._subscribers:
            try:
                q.put_nowait(msg)
            except asyncio.QueueFull:
                # Drop oldest message to make room; a slow client skips a
                # stale snapshot instead of losing the newest one.
                try:
                    q.get_nowait()
                except asyncio.QueueEmpty:
                    pass
                try:
                    q.put_nowait(msg)
                except asyncio.QueueFull:
                    pass
