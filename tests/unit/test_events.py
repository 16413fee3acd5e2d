"""Event bus tests."""

import asyncio
import threading

import pytest

from tracktimer.core.events import Event, EventBus, EventType

pytestmark = pytest.mark.asyncio


async def test_handlers_called_in_subscription_order():
    bus = EventBus()
    calls: list[str] = []

    @bus.on(EventType.TRACKING_STARTED)
    async def first(event: Event) -> None:
        calls.append("first")

    @bus.on(EventType.TRACKING_STARTED)
    async def second(event: Event) -> None:
        calls.append("second")

    await bus.start()
    await bus.emit(EventType.TRACKING_STARTED, data=1)
    await bus.stop()

    assert calls == ["first", "second"]


async def test_handler_error_is_isolated():
    bus = EventBus()
    seen: list[str] = []

    async def broken(event: Event) -> None:
        raise RuntimeError("boom")

    async def fine(event: Event) -> None:
        seen.append("ok")

    bus.subscribe(EventType.SESSION_RESET, broken)
    bus.subscribe(EventType.SESSION_RESET, fine)
    await bus.start()
    await bus.emit(EventType.SESSION_RESET)
    await bus.stop()

    assert seen == ["ok"]


async def test_emit_sync_from_other_thread():
    bus = EventBus()
    received = asyncio.Event()

    async def handler(event: Event) -> None:
        received.set()

    bus.subscribe(EventType.SAMPLE_ACCEPTED, handler)
    await bus.start()

    t = threading.Thread(target=bus.emit_sync, args=(EventType.SAMPLE_ACCEPTED,))
    t.start()
    t.join()

    await asyncio.wait_for(received.wait(), timeout=2.0)
    await bus.stop()


async def test_stop_delivers_events_already_handed_off():
    bus = EventBus()
    seen: list[int] = []

    async def handler(event: Event) -> None:
        seen.append(event.data)

    bus.subscribe(EventType.SAMPLE_ACCEPTED, handler)
    await bus.start()
    for i in range(3):
        bus.emit_sync(EventType.SAMPLE_ACCEPTED, data=i)
    await bus.stop()

    assert seen == [0, 1, 2]


async def test_events_dropped_while_not_running():
    bus = EventBus()
    seen: list[int] = []

    async def handler(event: Event) -> None:
        seen.append(event.data)

    bus.subscribe(EventType.SAMPLE_ACCEPTED, handler)
    for i in range(100):
        bus.emit_sync(EventType.SAMPLE_ACCEPTED, data=i)
    await bus.emit(EventType.SAMPLE_ACCEPTED, data=100)
    assert bus.dropped == 101

    await bus.start()
    await bus.emit(EventType.SAMPLE_ACCEPTED, data=200)
    await bus.stop()
    bus.emit_sync(EventType.SAMPLE_ACCEPTED, data=300)

    assert seen == [200]
    assert bus.dropped == 102


async def test_unsubscribe():
    bus = EventBus()
    seen: list[int] = []

    async def handler(event: Event) -> None:
        seen.append(event.data)

    bus.subscribe(EventType.RECORD_DELETED, handler)
    assert bus.unsubscribe(EventType.RECORD_DELETED, handler) is True
    assert bus.unsubscribe(EventType.RECORD_DELETED, handler) is False

    await bus.start()
    await bus.emit(EventType.RECORD_DELETED, data=7)
    await bus.stop()

    assert seen == []
