"""
Tracking Session State Machine
==============================

Owns the endpoints, the sample log and the derived metrics of one
start-to-stop tracking attempt.

States:
    IDLE -> POINTS_SELECTED -> TRACKING -> STOPPED -> IDLE

``reset`` returns to IDLE from anywhere. Every mutation and every snapshot
runs under one lock, so samples pushed from a provider thread and intents
from a UI thread never interleave.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import ValidationError

from ..domain.errors import (
    InvalidRecord,
    InvalidTransition,
    MissingEndpoints,
    OutOfOrderSample,
)
from ..domain.models import (
    GeoPoint,
    LocationSample,
    RouteRecord,
    SessionSnapshot,
    SessionState,
)
from ..infrastructure.gps.distance import TrackAccumulator, average_speed_kmh
from ..infrastructure.gps.gpsd_client import now_ms
from .events import EventBus, EventType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrozenMetrics:
    """Metrics captured at the instant tracking stopped."""

    elapsed_ms: int
    distance_m: float
    average_speed_kmh: float


class TrackSession:
    """
    Session state machine around a TrackAccumulator.

    Usage:
        session = TrackSession(bus=bus)
        session.set_start_point(GeoPoint(latitude=0, longitude=0))
        session.set_end_point(GeoPoint(latitude=0, longitude=1))
        session.start()
        session.on_sample(sample)
        session.stop()
        record = session.build_record(name="Morning loop")
    """

    def __init__(
        self,
        clock: Callable[[], int] = now_ms,
        bus: EventBus | None = None,
    ) -> None:
        self._clock = clock
        self._bus = bus
        self._lock = threading.Lock()
        self._track = TrackAccumulator()
        self._state = SessionState.IDLE
        self._start_point: GeoPoint | None = None
        self._end_point: GeoPoint | None = None
        self._current_location: GeoPoint | None = None
        self._start_time_ms: int | None = None
        self._frozen: FrozenMetrics | None = None
        self._saving = False
        self.rejected_samples = 0

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def samples(self) -> tuple[LocationSample, ...]:
        with self._lock:
            return self._track.samples

    # =========================================================================
    # Intents
    # =========================================================================

    def set_start_point(self, point: GeoPoint) -> SessionSnapshot:
        """Choose the route start. Allowed before tracking begins."""
        return self._set_point(point, is_start=True)

    def set_end_point(self, point: GeoPoint) -> SessionSnapshot:
        """Choose the route end. Allowed before tracking begins."""
        return self._set_point(point, is_start=False)

    def _set_point(self, point: GeoPoint, is_start: bool) -> SessionSnapshot:
        with self._lock:
            self._require(SessionState.IDLE, SessionState.POINTS_SELECTED, action="select points")
            if is_start:
                self._start_point = point
            else:
                self._end_point = point
            self._state = SessionState.POINTS_SELECTED
            snap = self._snapshot_locked()

        logger.info("%s point set: %s", "Start" if is_start else "End", point)
        self._emit(EventType.POINTS_SELECTED, snap)
        return snap

    def start(self) -> SessionSnapshot:
        """
        Begin tracking.

        Raises:
            MissingEndpoints: unless both start and end points are set
            InvalidTransition: if a stopped session awaits save/discard
        """
        with self._lock:
            if self._state is SessionState.TRACKING:
                return self._snapshot_locked()
            if self._state is SessionState.STOPPED:
                raise InvalidTransition("cannot start: previous session must be saved or discarded")
            if self._start_point is None or self._end_point is None:
                raise MissingEndpoints("both start and end points must be set before tracking")

            self._track.clear()
            self._frozen = None
            self.rejected_samples = 0
            self._start_time_ms = self._clock()
            self._state = SessionState.TRACKING
            snap = self._snapshot_locked()

        logger.info("Tracking started at %d", snap.start_time_ms)
        self._emit(EventType.TRACKING_STARTED, snap)
        return snap

    def on_sample(self, sample: LocationSample) -> bool:
        """
        Push a location sample from the provider.

        Outside TRACKING the sample only moves the current location. An
        out-of-order sample is dropped with a warning and tracking continues.

        Returns:
            True if the sample was appended to the track
        """
        with self._lock:
            if self._state is not SessionState.TRACKING:
                self._current_location = sample.point
                return False
            try:
                self._track.append(sample)
            except OutOfOrderSample as e:
                self.rejected_samples += 1
                rejected = e
            else:
                rejected = None
                self._current_location = sample.point
            snap = self._snapshot_locked()

        if rejected is not None:
            logger.warning("Dropping location sample: %s", rejected)
            self._emit(EventType.SAMPLE_REJECTED, sample)
            return False

        self._emit(EventType.SAMPLE_ACCEPTED, snap)
        return True

    def stop(self) -> SessionSnapshot:
        """
        End data collection and freeze the metrics.

        Calling stop on an already stopped session is a no-op.
        """
        with self._lock:
            if self._state is SessionState.STOPPED:
                return self._snapshot_locked()
            self._require(SessionState.TRACKING, action="stop")

            elapsed = max(0, self._clock() - (self._start_time_ms or 0))
            distance = self._track.total_distance_m()
            self._frozen = FrozenMetrics(
                elapsed_ms=elapsed,
                distance_m=distance,
                average_speed_kmh=average_speed_kmh(distance, elapsed),
            )
            self._state = SessionState.STOPPED
            snap = self._snapshot_locked()

        logger.info(
            "Tracking stopped: %d ms, %.1f m, %.2f km/h",
            snap.elapsed_ms,
            snap.distance_m,
            snap.average_speed_kmh,
        )
        self._emit(EventType.TRACKING_STOPPED, snap)
        return snap

    def build_record(self, name: str | None = None, notes: str | None = None) -> RouteRecord:
        """
        Build the record for a stopped session. The session is not changed.

        Raises:
            InvalidTransition: if the session is not stopped
            InvalidRecord: if an endpoint is missing or no time elapsed
        """
        with self._lock:
            return self._build_record_locked(name, notes)

    def begin_save(self, name: str | None = None, notes: str | None = None) -> RouteRecord:
        """
        Build the record and mark a save as in flight.

        Until ``complete_save`` or ``abort_save`` runs, a second save and
        ``discard`` are refused.

        Raises:
            InvalidTransition: if the session is not stopped or a save is in flight
            InvalidRecord: if an endpoint is missing or no time elapsed
        """
        with self._lock:
            if self._saving:
                raise InvalidTransition("cannot save: a save is already in progress")
            record = self._build_record_locked(name, notes)
            self._saving = True
            return record

    def abort_save(self, record: RouteRecord) -> None:
        """Clear the in-flight marker after a failed insert so the save can be retried."""
        with self._lock:
            if self._start_time_ms == record.start_time_ms:
                self._saving = False

    def _build_record_locked(self, name: str | None, notes: str | None) -> RouteRecord:
        self._require(SessionState.STOPPED, action="build a record")
        frozen = self._frozen
        start_time = self._start_time_ms
        if self._start_point is None or self._end_point is None:
            raise InvalidRecord("route needs both start and end points")
        if frozen is None or start_time is None or frozen.elapsed_ms <= 0:
            raise InvalidRecord("route has no elapsed time")
        try:
            return RouteRecord(
                start_point=self._start_point,
                end_point=self._end_point,
                start_time_ms=start_time,
                end_time_ms=start_time + frozen.elapsed_ms,
                elapsed_ms=frozen.elapsed_ms,
                distance_m=frozen.distance_m,
                average_speed_kmh=frozen.average_speed_kmh,
                name=name,
                notes=notes,
            )
        except ValidationError as e:
            raise InvalidRecord(str(e)) from e

    def complete_save(self, record: RouteRecord) -> SessionSnapshot:
        """Return to IDLE once ``record`` has been stored."""
        with self._lock:
            # A reset during the insert already cleared the session
            if self._state is SessionState.STOPPED and self._start_time_ms == record.start_time_ms:
                self._clear_locked()
            return self._snapshot_locked()

    def discard(self) -> SessionSnapshot:
        """Drop a stopped session without saving."""
        with self._lock:
            self._require(SessionState.STOPPED, action="discard")
            if self._saving:
                raise InvalidTransition("cannot discard: a save is in progress")
            self._clear_locked()
            snap = self._snapshot_locked()

        logger.info("Session discarded")
        self._emit(EventType.SESSION_DISCARDED, snap)
        return snap

    def reset(self) -> SessionSnapshot:
        """Return to IDLE from any state, clearing points, samples and metrics."""
        with self._lock:
            self._clear_locked()
            snap = self._snapshot_locked()

        logger.info("Session reset")
        self._emit(EventType.SESSION_RESET, snap)
        return snap

    # =========================================================================
    # Reads
    # =========================================================================

    def snapshot(self) -> SessionSnapshot:
        """Consistent view of the session for display."""
        with self._lock:
            return self._snapshot_locked()

    def _snapshot_locked(self) -> SessionSnapshot:
        if self._frozen is not None:
            elapsed = self._frozen.elapsed_ms
            distance = self._frozen.distance_m
            speed = self._frozen.average_speed_kmh
        elif self._state is SessionState.TRACKING and self._start_time_ms is not None:
            elapsed = max(0, self._clock() - self._start_time_ms)
            distance = self._track.total_distance_m()
            speed = average_speed_kmh(distance, elapsed)
        else:
            elapsed, distance, speed = 0, 0.0, 0.0

        return SessionSnapshot(
            state=self._state,
            start_point=self._start_point,
            end_point=self._end_point,
            current_location=self._current_location,
            start_time_ms=self._start_time_ms,
            elapsed_ms=elapsed,
            distance_m=distance,
            average_speed_kmh=speed,
            samples_count=len(self._track),
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _clear_locked(self) -> None:
        self._track.clear()
        self._state = SessionState.IDLE
        self._start_point = None
        self._end_point = None
        self._start_time_ms = None
        self._frozen = None
        self._saving = False
        self.rejected_samples = 0

    def _require(self, *allowed: SessionState, action: str) -> None:
        if self._state not in allowed:
            raise InvalidTransition(f"cannot {action} while {self._state.value}")

    def _emit(self, event_type: EventType, data: Any) -> None:
        if self._bus is not None:
            self._bus.emit_sync(event_type, data=data, source="session")
