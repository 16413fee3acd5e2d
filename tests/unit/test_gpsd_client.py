"""
GPS Client Unit Tests
=====================

TPV parsing, fix throttling and the simulated provider.
"""

import pytest

from tracktimer.domain.models import GeoPoint
from tracktimer.infrastructure.gps.gpsd_client import AsyncGPSClient, GPSConfig, SimulatedGPSClient


class TestParseTPV:
    def test_parses_fix_with_time(self):
        client = AsyncGPSClient()
        sample = client._parse_tpv(
            {
                "class": "TPV",
                "mode": 3,
                "lat": 41.0082,
                "lon": 28.9784,
                "eph": 4.5,
                "time": "2024-03-05T14:30:00.000Z",
            }
        )
        assert sample is not None
        assert sample.point == GeoPoint(latitude=41.0082, longitude=28.9784)
        assert sample.timestamp_ms == 1_709_649_000_000
        assert sample.accuracy_m == 4.5

    def test_no_fix_ignored(self):
        client = AsyncGPSClient()
        assert client._parse_tpv({"class": "TPV", "mode": 1, "lat": 1.0, "lon": 1.0}) is None

    def test_missing_position_ignored(self):
        client = AsyncGPSClient()
        assert client._parse_tpv({"class": "TPV", "mode": 3}) is None

    def test_invalid_coordinates_ignored(self):
        client = AsyncGPSClient()
        assert client._parse_tpv({"class": "TPV", "mode": 3, "lat": 95.0, "lon": 1.0}) is None


class TestThrottle:
    def test_fixes_closer_than_min_interval_dropped(self):
        client = AsyncGPSClient(GPSConfig(min_interval_ms=500))
        base = {"class": "TPV", "mode": 2, "lat": 1.0, "lon": 1.0}
        first = client._parse_tpv({**base, "time": "2024-01-01T00:00:00.000Z"})
        close = client._parse_tpv({**base, "time": "2024-01-01T00:00:00.200Z"})
        later = client._parse_tpv({**base, "time": "2024-01-01T00:00:01.000Z"})

        assert client._accept(first)
        client._publish(first)
        assert not client._accept(close)
        assert client._accept(later)
        assert client.state.throttled_count == 1

    def test_backwards_fix_passed_through(self):
        client = AsyncGPSClient(GPSConfig(min_interval_ms=500))
        base = {"class": "TPV", "mode": 2, "lat": 1.0, "lon": 1.0}
        first = client._parse_tpv({**base, "time": "2024-01-01T00:00:10.000Z"})
        earlier = client._parse_tpv({**base, "time": "2024-01-01T00:00:09.900Z"})

        client._publish(first)
        assert client._accept(earlier)
        assert client.state.throttled_count == 0

    def test_callbacks_receive_samples(self):
        client = AsyncGPSClient()
        got = []
        client.on_sample(got.append)
        sample = client._parse_tpv({"class": "TPV", "mode": 2, "lat": 1.0, "lon": 2.0})
        client._publish(sample)
        assert got == [sample]
        assert client.last_sample == sample


@pytest.mark.asyncio
async def test_simulated_client_walks_to_end():
    ticks = iter(range(0, 100_000, 1000))
    client = SimulatedGPSClient(
        GeoPoint(latitude=0, longitude=0),
        GeoPoint(latitude=0, longitude=1),
        steps=4,
        interval_ms=0,
        clock=lambda: next(ticks),
    )

    samples = [s async for s in client.stream_samples()]

    assert len(samples) == 5
    assert samples[0].point == GeoPoint(latitude=0, longitude=0)
    assert samples[-1].point == GeoPoint(latitude=0, longitude=1)
    assert [s.timestamp_ms for s in samples] == [0, 1000, 2000, 3000, 4000]
    assert not client.is_connected
