"""Event broadcaster - in-process pub/sub publish capability.

Hosts pass ``broadcaster.publish`` to the agent as its publish
capability; subscribers (SSE clients, tests) receive every event.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Coroutine
from typing import Any

from .protocol import EventMessage

logger = logging.getLogger(__name__)

EventCallback = Callable[[EventMessage], Coroutine[Any, Any, None]]


class EventBroadcaster:
    """Fan-out of published events to subscribers.

    Subscriber failures are logged and do not fail the publish; the agent
    only learns about failures of the delivery itself.
    """

    def __init__(self) -> None:
        self._subscribers: list[EventCallback] = []
        self._lock: asyncio.Lock | None = None
        self.published: list[EventMessage] = []
        self.history_size = 100

    def _get_lock(self) -> asyncio.Lock:
        """Get or create the lock (lazy init for event loop safety)."""
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def publish(self, event: EventMessage) -> None:
        """Publish an event to all subscribers."""
        async with self._get_lock():
            subscribers = list(self._subscribers)
            self.published.append(event)
            del self.published[: -self.history_size]

        for callback in subscribers:
            try:
                await callback(event)
            except Exception:
                logger.exception(f"Error in subscriber for {event.name}")

    async def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        """Subscribe to all events.

        Returns:
            Unsubscribe function
        """
        async with self._get_lock():
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def stream(self) -> AsyncIterator[EventMessage]:
        """Yield events as they are published.

        Usage:
            async for event in broadcaster.stream():
                yield f"data: {event.model_dump_json()}\\n\\n"
        """
        queue: asyncio.Queue[EventMessage] = asyncio.Queue()

        async def on_event(event: EventMessage) -> None:
            await queue.put(event)

        unsubscribe = await self.subscribe(on_event)

        try:
            while True:
                yield await queue.get()
        finally:
            unsubscribe()
