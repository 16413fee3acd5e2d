"""
Session State Machine Unit Tests
================================

Tests for TrackSession transitions, metrics freezing and record building.
"""

import threading

import pytest

from tracktimer.core.events import EventBus, EventType
from tracktimer.core.session import TrackSession
from tracktimer.domain.errors import InvalidRecord, InvalidTransition, MissingEndpoints
from tracktimer.domain.models import GeoPoint, LocationSample, SessionState

START = GeoPoint(latitude=0.0, longitude=0.0)
END = GeoPoint(latitude=0.0, longitude=1.0)


class FakeClock:
    def __init__(self, now: int = 1_700_000_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def sample(t: int, lat: float, lon: float) -> LocationSample:
    return LocationSample(point=GeoPoint(latitude=lat, longitude=lon), timestamp_ms=t)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session(clock):
    return TrackSession(clock=clock)


def tracking_session(session: TrackSession) -> TrackSession:
    session.set_start_point(START)
    session.set_end_point(END)
    session.start()
    return session


class TestPointSelection:
    def test_starts_idle(self, session):
        snap = session.snapshot()
        assert snap.state is SessionState.IDLE
        assert snap.distance_m == 0.0
        assert snap.elapsed_ms == 0

    def test_single_endpoint_leaves_idle(self, session):
        session.set_end_point(END)
        assert session.state is SessionState.POINTS_SELECTED
        assert session.snapshot().end_point == END
        assert session.snapshot().start_point is None

    def test_points_can_be_changed_before_start(self, session):
        session.set_start_point(START)
        other = GeoPoint(latitude=1.0, longitude=1.0)
        session.set_start_point(other)
        assert session.snapshot().start_point == other

    def test_points_locked_while_tracking(self, session):
        tracking_session(session)
        with pytest.raises(InvalidTransition):
            session.set_start_point(END)
        assert session.snapshot().start_point == START


class TestStart:
    def test_start_with_one_endpoint_fails(self, session):
        session.set_start_point(START)
        with pytest.raises(MissingEndpoints):
            session.start()
        assert session.state is SessionState.POINTS_SELECTED

    def test_start_from_idle_fails(self, session):
        with pytest.raises(MissingEndpoints):
            session.start()
        assert session.state is SessionState.IDLE

    def test_start_records_time_and_clears_samples(self, session, clock):
        session.set_start_point(START)
        session.set_end_point(END)
        session.on_sample(sample(1, 5.0, 5.0))  # not tracking yet, ignored
        snap = session.start()

        assert snap.state is SessionState.TRACKING
        assert snap.start_time_ms == clock.now
        assert snap.samples_count == 0

    def test_start_while_tracking_is_noop(self, session, clock):
        tracking_session(session)
        started = session.snapshot().start_time_ms
        clock.advance(5000)
        session.start()
        assert session.snapshot().start_time_ms == started

    def test_start_while_stopped_fails(self, session):
        tracking_session(session)
        session.stop()
        with pytest.raises(InvalidTransition):
            session.start()
        assert session.state is SessionState.STOPPED


class TestSamples:
    def test_samples_ignored_outside_tracking(self, session):
        assert session.on_sample(sample(0, 1.0, 1.0)) is False
        snap = session.snapshot()
        assert snap.samples_count == 0
        assert snap.current_location == GeoPoint(latitude=1.0, longitude=1.0)

    def test_samples_accumulate_while_tracking(self, session, clock):
        tracking_session(session)
        t0 = clock.now
        assert session.on_sample(sample(t0, 0, 0))
        assert session.on_sample(sample(t0 + 1000, 0, 0.5))
        clock.advance(1000)

        snap = session.snapshot()
        assert snap.samples_count == 2
        assert snap.distance_m == pytest.approx(55_597, rel=0.005)
        assert snap.elapsed_ms == 1000
        assert snap.current_location == GeoPoint(latitude=0, longitude=0.5)

    def test_out_of_order_sample_dropped_and_tracking_continues(self, session, clock):
        tracking_session(session)
        t0 = clock.now
        session.on_sample(sample(t0 + 2000, 0, 0))
        before = session.snapshot()

        assert session.on_sample(sample(t0 + 1000, 0, 1)) is False

        after = session.snapshot()
        assert after.state is SessionState.TRACKING
        assert after.samples_count == before.samples_count
        assert after.distance_m == before.distance_m
        assert session.rejected_samples == 1
        assert session.on_sample(sample(t0 + 3000, 0, 0.1)) is True


class TestStop:
    def test_stop_freezes_metrics(self, session, clock):
        tracking_session(session)
        t0 = clock.now
        for i, lon in enumerate([0, 0.5, 1]):
            session.on_sample(sample(t0 + i * 1000, 0, lon))
        clock.advance(2000)

        snap = session.stop()

        assert snap.state is SessionState.STOPPED
        assert snap.elapsed_ms == 2000
        assert snap.distance_m == pytest.approx(111_195, rel=0.005)
        assert snap.average_speed_kmh == pytest.approx(200_151, rel=0.005)

        clock.advance(60_000)
        assert session.snapshot().elapsed_ms == 2000

    def test_stop_twice_is_noop(self, session, clock):
        tracking_session(session)
        session.on_sample(sample(clock.now, 0, 0))
        session.on_sample(sample(clock.now + 1000, 0, 0.01))
        clock.advance(1000)
        first = session.stop()

        clock.advance(10_000)
        second = session.stop()

        assert second == first
        assert session.state is SessionState.STOPPED

    def test_stop_before_tracking_fails(self, session):
        with pytest.raises(InvalidTransition):
            session.stop()

    def test_samples_after_stop_are_ignored(self, session, clock):
        tracking_session(session)
        clock.advance(1000)
        session.stop()
        assert session.on_sample(sample(clock.now, 0, 0.3)) is False
        assert session.snapshot().samples_count == 0


class TestResetAndDiscard:
    @pytest.mark.parametrize("target", ["idle", "points", "tracking", "stopped"])
    def test_reset_from_any_state(self, session, clock, target):
        if target != "idle":
            session.set_start_point(START)
        if target in ("tracking", "stopped"):
            session.set_end_point(END)
            session.start()
            session.on_sample(sample(clock.now, 0, 0))
            session.on_sample(sample(clock.now + 1000, 0, 0.2))
            clock.advance(1000)
        if target == "stopped":
            session.stop()

        snap = session.reset()

        assert snap.state is SessionState.IDLE
        assert snap.start_point is None
        assert snap.end_point is None
        assert snap.samples_count == 0
        assert snap.distance_m == 0.0
        assert snap.elapsed_ms == 0
        assert snap.average_speed_kmh == 0.0
        assert session.samples == ()

    def test_discard_returns_to_idle(self, session, clock):
        tracking_session(session)
        clock.advance(1000)
        session.stop()
        assert session.discard().state is SessionState.IDLE

    def test_discard_requires_stopped(self, session):
        tracking_session(session)
        with pytest.raises(InvalidTransition):
            session.discard()
        assert session.state is SessionState.TRACKING


class TestBuildRecord:
    def test_record_from_stopped_session(self, session, clock):
        tracking_session(session)
        started = clock.now
        session.on_sample(sample(started, 0, 0))
        session.on_sample(sample(started + 1000, 0, 0.01))
        clock.advance(90_000)
        snap = session.stop()

        record = session.build_record(name="Loop", notes="windy")

        assert record.id is None
        assert record.start_point == START
        assert record.end_point == END
        assert record.start_time_ms == started
        assert record.end_time_ms == started + 90_000
        assert record.elapsed_ms == 90_000
        assert record.distance_m == snap.distance_m
        assert record.average_speed_kmh == snap.average_speed_kmh
        assert record.name == "Loop"
        assert session.state is SessionState.STOPPED

    def test_zero_elapsed_refused(self, session):
        tracking_session(session)
        session.stop()  # clock did not move
        with pytest.raises(InvalidRecord):
            session.build_record()
        assert session.state is SessionState.STOPPED

    def test_requires_stopped(self, session):
        tracking_session(session)
        with pytest.raises(InvalidTransition):
            session.build_record()

    def test_complete_save_returns_to_idle(self, session, clock):
        tracking_session(session)
        clock.advance(1000)
        session.stop()
        record = session.build_record()
        assert session.complete_save(record).state is SessionState.IDLE

    def test_begin_save_refuses_second_save_until_aborted(self, session, clock):
        tracking_session(session)
        clock.advance(1000)
        session.stop()

        record = session.begin_save(name="a")
        with pytest.raises(InvalidTransition):
            session.begin_save(name="b")
        with pytest.raises(InvalidTransition):
            session.discard()

        session.abort_save(record)
        retry = session.begin_save(name="b")
        assert retry.name == "b"
        assert session.complete_save(retry).state is SessionState.IDLE


class TestEventsAndThreads:
    @pytest.mark.asyncio
    async def test_transitions_publish_events(self, clock):
        bus = EventBus()
        seen: list[EventType] = []

        async def record(event) -> None:
            seen.append(event.type)

        for event_type in EventType:
            bus.subscribe(event_type, record)
        await bus.start()

        session = TrackSession(clock=clock, bus=bus)
        tracking_session(session)
        session.on_sample(sample(clock.now, 0, 0))
        clock.advance(1000)
        session.stop()
        session.reset()
        await bus.stop()

        assert seen == [
            EventType.POINTS_SELECTED,
            EventType.POINTS_SELECTED,
            EventType.TRACKING_STARTED,
            EventType.SAMPLE_ACCEPTED,
            EventType.TRACKING_STOPPED,
            EventType.SESSION_RESET,
        ]

    def test_unstarted_bus_does_not_buffer_events(self, clock):
        bus = EventBus()
        session = TrackSession(clock=clock, bus=bus)
        tracking_session(session)
        for i in range(50):
            session.on_sample(sample(clock.now + i, 0, 0))

        assert bus.dropped == 53

    def test_concurrent_samples_keep_order_invariant(self, session, clock):
        tracking_session(session)
        base = clock.now

        def produce(offset: int) -> None:
            for i in range(200):
                session.on_sample(sample(base + i * 10 + offset, 0, (i % 7) * 0.001))

        threads = [threading.Thread(target=produce, args=(k,)) for k in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        stamps = [s.timestamp_ms for s in session.samples]
        assert stamps == sorted(stamps)
        assert len(stamps) + session.rejected_samples == 800
