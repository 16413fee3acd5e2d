"""GPS infrastructure - gpsd client and track distance accumulation."""

from .distance import (
    TrackAccumulator,
    average_speed_kmh,
    calculate_distance,
    center_point,
    haversine_m,
)
from .gpsd_client import AsyncGPSClient, GPSConfig, SimulatedGPSClient

__all__ = [
    "AsyncGPSClient",
    "GPSConfig",
    "SimulatedGPSClient",
    "TrackAccumulator",
    "average_speed_kmh",
    "calculate_distance",
    "center_point",
    "haversine_m",
]
