"""
Track Accumulator
=================

Keeps the ordered sample log of a tracking session and the running path
length. Uses the Haversine formula for segment distances.

Usage:
    track = TrackAccumulator()

    for sample in provider.stream_samples():
        segment = track.append(sample)
        print(f"Moved {segment:.1f}m, total: {track.total_distance_m():.0f}m")
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from ...domain.errors import OutOfOrderSample
from ...domain.models import GeoPoint, LocationSample

EARTH_RADIUS_M = 6371000.0
MS_PER_HOUR = 3_600_000


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two points using Haversine formula.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in meters
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def calculate_distance(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in meters between two points."""
    if a == b:
        return 0.0
    return haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)


def center_point(a: GeoPoint, b: GeoPoint) -> GeoPoint:
    """Arithmetic midpoint of two points, used to centre a map on a route."""
    return GeoPoint(
        latitude=(a.latitude + b.latitude) / 2,
        longitude=(a.longitude + b.longitude) / 2,
    )


def average_speed_kmh(distance_m: float, elapsed_ms: int) -> float:
    """Average speed in km/h; 0 for a non-positive elapsed time."""
    if elapsed_ms <= 0:
        return 0.0
    return (distance_m / 1000.0) / (elapsed_ms / MS_PER_HOUR)


@dataclass
class TrackAccumulator:
    """
    Ordered log of location samples with a running path length.

    Each append adds one segment to the total, so distance queries never walk
    the whole path. Not thread-safe on its own; the owning session serializes
    access.
    """

    total_meters: float = 0.0
    _samples: list[LocationSample] = field(default_factory=list)

    def append(self, sample: LocationSample) -> float:
        """
        Append a sample to the log.

        Args:
            sample: Location sample, not older than the last one

        Returns:
            Length of the new segment in meters (0 for the first sample)

        Raises:
            OutOfOrderSample: if the timestamp regresses; the log is unchanged
        """
        if not self._samples:
            self._samples.append(sample)
            return 0.0

        last = self._samples[-1]
        if sample.timestamp_ms < last.timestamp_ms:
            raise OutOfOrderSample(sample.timestamp_ms, last.timestamp_ms)

        segment = calculate_distance(last.point, sample.point)
        self._samples.append(sample)
        self.total_meters += segment
        return segment

    def total_distance_m(self) -> float:
        """Sum of consecutive segment distances in meters."""
        return self.total_meters

    def average_speed_kmh(self, elapsed_ms: int) -> float:
        """Average speed over ``elapsed_ms`` in km/h."""
        return average_speed_kmh(self.total_meters, elapsed_ms)

    @property
    def samples(self) -> tuple[LocationSample, ...]:
        return tuple(self._samples)

    def __len__(self) -> int:
        return len(self._samples)

    def clear(self) -> None:
        """Drop all samples and reset the running total."""
        self.total_meters = 0.0
        self._samples.clear()

