"""
Route Recorder
==============

Connects a TrackSession to a location provider and a route store.

The store and the event bus are passed in; nothing here opens a database on
its own. Persistence is awaited outside the session lock; the session marks
the save as in flight so a second save of the same route is refused. A
failed save leaves the session STOPPED so the caller can retry or discard.

Usage:
    recorder = RouteRecorder(session, store, bus=bus)
    session.set_start_point(start)
    session.set_end_point(end)
    session.start()
    await recorder.feed(provider)   # until session.stop() or the stream ends
    record = await recorder.save(name="Commute")
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Protocol

from ..domain.errors import PersistenceFailure, RecordNotFound
from ..domain.models import LocationSample, RouteRecord, SessionState
from ..domain.store import RouteStore
from .events import EventBus, EventType
from .session import TrackSession

logger = logging.getLogger(__name__)


class LocationProvider(Protocol):
    """Anything that streams location samples (gpsd client, simulator)."""

    def stream_samples(self) -> AsyncIterator[LocationSample]: ...

    async def stop(self) -> None: ...


class RouteRecorder:
    """Drives one session: feeds samples in, commits the finished route."""

    def __init__(
        self,
        session: TrackSession,
        store: RouteStore,
        bus: EventBus | None = None,
    ) -> None:
        self.session = session
        self.store = store
        self._bus = bus

    async def feed(self, provider: LocationProvider, stop_when_done: bool = True) -> int:
        """
        Push provider samples into the session until tracking ends.

        Args:
            provider: Sample source
            stop_when_done: Stop the session if the stream ends while tracking

        Returns:
            Number of samples accepted into the track
        """
        accepted = 0
        await self._emit(EventType.GPS_CONNECTED, None)
        try:
            async for sample in provider.stream_samples():
                if self.session.on_sample(sample):
                    accepted += 1
                if self.session.state is not SessionState.TRACKING:
                    break
        finally:
            await provider.stop()
            await self._emit(EventType.GPS_DISCONNECTED, None)

        if stop_when_done and self.session.state is SessionState.TRACKING:
            self.session.stop()
        logger.info("Location feed finished, %d samples accepted", accepted)
        return accepted

    async def save(self, name: str | None = None, notes: str | None = None) -> RouteRecord:
        """
        Persist the stopped session and return the stored record.

        Raises:
            InvalidTransition: session is not stopped, or another save is in flight
            InvalidRecord: endpoints missing or no elapsed time; session stays STOPPED
            PersistenceFailure: store failed; session stays STOPPED
        """
        record = self.session.begin_save(name=name, notes=notes)
        try:
            record_id = await self.store.insert(record)
        except PersistenceFailure as e:
            self.session.abort_save(record)
            logger.error("Saving route failed: %s", e)
            await self._emit(EventType.RECORD_SAVE_FAILED, str(e))
            raise
        except BaseException:
            self.session.abort_save(record)
            raise

        stored = record.model_copy(update={"id": record_id})
        self.session.complete_save(record)
        await self._emit(EventType.RECORD_SAVED, stored)
        return stored

    def discard(self) -> None:
        self.session.discard()

    async def history(self, limit: int | None = None) -> list[RouteRecord]:
        """Saved routes, most recent first."""
        return await self.store.list_all(limit=limit)

    async def get(self, record_id: int) -> RouteRecord:
        record = await self.store.get_by_id(record_id)
        if record is None:
            raise RecordNotFound(record_id)
        return record

    async def update_details(
        self, record_id: int, name: str | None, notes: str | None
    ) -> RouteRecord:
        """Rename or annotate a stored route."""
        record = (await self.get(record_id)).with_details(name, notes)
        if not await self.store.update_details(record_id, name, notes):
            raise RecordNotFound(record_id)
        await self._emit(EventType.RECORD_UPDATED, record)
        return record

    async def delete(self, record_id: int) -> None:
        if not await self.store.delete_by_id(record_id):
            raise RecordNotFound(record_id)
        await self._emit(EventType.RECORD_DELETED, record_id)

    async def _emit(self, event_type: EventType, data: object) -> None:
        if self._bus is not None:
            await self._bus.emit(event_type, data=data, source="recorder")
