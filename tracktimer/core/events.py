"""
TrackTimer Event Bus
====================

Hands session and recorder events to async subscribers (CLI progress lines,
map/UI layers) on one event loop.

The session publishes from whatever thread pushes samples, so ``emit_sync``
marshals the event onto the bus loop with ``call_soon_threadsafe``. Events
published while the bus is not running are dropped and counted in
``dropped``; a session fed without a started bus never buffers events.

Usage:
    bus = EventBus()

    @bus.on(EventType.TRACKING_STOPPED)
    async def handle_stop(event: Event):
        print(f"Distance: {event.data.distance_m:.0f} m")

    await bus.start()
    session = TrackSession(bus=bus)
    ...
    await bus.stop()
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Coroutine, TypeAlias

logger = logging.getLogger(__name__)

AsyncHandler: TypeAlias = Callable[["Event"], Coroutine[Any, Any, None]]


class EventType(Enum):
    """All event types in the system."""

    # Session
    POINTS_SELECTED = auto()
    TRACKING_STARTED = auto()
    SAMPLE_ACCEPTED = auto()
    SAMPLE_REJECTED = auto()
    TRACKING_STOPPED = auto()
    SESSION_DISCARDED = auto()
    SESSION_RESET = auto()

    # Records
    RECORD_SAVED = auto()
    RECORD_SAVE_FAILED = auto()
    RECORD_UPDATED = auto()
    RECORD_DELETED = auto()

    # Location provider
    GPS_CONNECTED = auto()
    GPS_DISCONNECTED = auto()


@dataclass(frozen=True)
class Event:
    type: EventType
    data: Any = None
    source: str = "system"
    timestamp: float = field(default_factory=time.time)


class EventBus:
    """
    Async pub/sub bus bound to the loop that started it.

    Handlers run in subscription order. A failing handler is logged and
    does not stop the others.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[AsyncHandler]] = {}
        self._queue: asyncio.Queue[Event] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task | None = None
        self.dropped = 0

    def subscribe(self, event_type: EventType, handler: AsyncHandler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug("Subscribed to %s: %s", event_type.name, handler.__name__)

    def unsubscribe(self, event_type: EventType, handler: AsyncHandler) -> bool:
        """Remove a handler. Returns True if found."""
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def on(self, event_type: EventType) -> Callable[[AsyncHandler], AsyncHandler]:
        """
        Decorator for subscribing to events.

        Usage:
            @bus.on(EventType.SAMPLE_ACCEPTED)
            async def handle_sample(event: Event):
                print(event.data)
        """
        def decorator(handler: AsyncHandler) -> AsyncHandler:
            self.subscribe(event_type, handler)
            return handler
        return decorator

    async def emit(self, event_type: EventType, data: Any = None, source: str = "system") -> None:
        """Publish from a coroutine running on the bus loop."""
        event = Event(type=event_type, data=data, source=source)
        if self._queue is None:
            self._drop(event)
            return
        self._queue.put_nowait(event)

    def emit_sync(self, event_type: EventType, data: Any = None, source: str = "system") -> None:
        """Publish from sync code on any thread."""
        event = Event(type=event_type, data=data, source=source)
        loop, queue = self._loop, self._queue
        if loop is None or queue is None or loop.is_closed():
            self._drop(event)
            return
        try:
            loop.call_soon_threadsafe(queue.put_nowait, event)
        except RuntimeError:
            # Loop closed between the check and the call
            self._drop(event)

    async def start(self) -> None:
        """Bind to the running loop and start dispatching."""
        if self._task is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._task = asyncio.create_task(self._process_loop(self._queue))
        logger.info("Event bus started")

    async def stop(self, timeout: float = 5.0) -> None:
        """Dispatch what is already queued, then stop."""
        if self._task is None or self._queue is None:
            return
        # Let handoffs scheduled by emit_sync land in the queue first
        await asyncio.sleep(0)
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Event queue drain timeout, forcing stop")

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self._queue = None
        self._loop = None
        logger.info("Event bus stopped")

    async def _process_loop(self, queue: asyncio.Queue[Event]) -> None:
        while True:
            event = await queue.get()
            try:
                await self._dispatch(event)
            finally:
                queue.task_done()

    async def _dispatch(self, event: Event) -> None:
        for handler in list(self._handlers.get(event.type, [])):
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    "Handler error for %s: %s - %s",
                    event.type.name,
                    handler.__name__,
                    e,
                )

    def _drop(self, event: Event) -> None:
        self.dropped += 1
        logger.debug("Event bus not running, dropped %s", event.type.name)
