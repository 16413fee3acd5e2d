"""TrackTimer Core - Session state machine, recorder and event bus."""

from .events import Event, EventBus, EventType
from .recorder import LocationProvider, RouteRecorder
from .session import FrozenMetrics, TrackSession

__all__ = [
    "Event",
    "EventBus",
    "EventType",
    "FrozenMetrics",
    "LocationProvider",
    "RouteRecorder",
    "TrackSession",
]
