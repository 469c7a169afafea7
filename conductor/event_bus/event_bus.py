"""EventBus implementation for pub/sub notifications."""

import asyncio
from typing import Awaitable, Callable, Protocol

from ..logging_config import get_logger
from ..models import BusEvent, Topic

logger = get_logger(__name__)


EventHandler = Callable[[BusEvent], Awaitable[None]]


class IEventBus(Protocol):
    """Fire-and-forget pub/sub channel carrying events out of the core."""

    def subscribe(self, topic: Topic, handler: EventHandler) -> None:
        """Subscribe a handler to a topic."""
        ...

    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe a handler to every topic."""
        ...

    def unsubscribe(self, topic: Topic, handler: EventHandler) -> None:
        """Remove a handler from a topic."""
        ...

    def publish(self, event: BusEvent) -> None:
        """Queue an event for delivery. Never blocks the publisher."""
        ...


class EventBus:
    """In-memory event bus with a single dispatcher task.

    Publishers only enqueue; one dispatcher drains the queue and calls the
    subscribers, so handlers never run inside the publisher's call stack.
    """

    def __init__(self):
        self._subscribers: dict[Topic, list[EventHandler]] = {
            topic: [] for topic in Topic
        }
        self._queue: asyncio.Queue[BusEvent] = asyncio.Queue()
        self._dispatcher: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._dispatcher is not None and not self._dispatcher.done()

    def subscribe(self, topic: Topic, handler: EventHandler) -> None:
        """Subscribe a handler to a topic."""
        self._subscribers[topic].append(handler)

    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe a handler to every topic."""
        for topic in Topic:
            self._subscribers[topic].append(handler)

    def unsubscribe(self, topic: Topic, handler: EventHandler) -> None:
        """Remove a handler from a topic."""
        handlers = self._subscribers[topic]
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: BusEvent) -> None:
        """Queue an event for delivery."""
        self._queue.put_nowait(event)

    async def start(self) -> None:
        """Start the dispatcher task."""
        if self.is_running:
            return
        self._dispatcher = asyncio.create_task(self._dispatch_loop())
        logger.info("EventBus started")

    async def stop(self) -> None:
        """Deliver what is queued, then stop the dispatcher."""
        if not self.is_running:
            return
        await self._queue.join()
        self._dispatcher.cancel()
        try:
            await self._dispatcher
        except asyncio.CancelledError:
            pass
        self._dispatcher = None
        logger.info("EventBus stopped")

    async def drain(self) -> None:
        """Wait until every queued event has been delivered."""
        if self.is_running:
            await self._queue.join()
            return

        # No dispatcher: deliver inline
        while not self._queue.empty():
            event = self._queue.get_nowait()
            try:
                await self._deliver(event)
            finally:
                self._queue.task_done()

    async def _dispatch_loop(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._deliver(event)
            finally:
                self._queue.task_done()

    async def _deliver(self, event: BusEvent) -> None:
        handlers = list(self._subscribers.get(event.topic, []))
        if not handlers:
            return

        results = await asyncio.gather(
            *[handler(event) for handler in handlers],
            return_exceptions=True,
        )

        for i, result in enumerate(results):
            if isinstance(result, Exception):
                logger.error(
                    "Error in handler %s for topic %s: %s",
                    i,
                    event.topic.value,
                    result,
                )
