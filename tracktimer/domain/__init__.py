"""TrackTimer Domain Layer - Core models, states and error kinds."""

from .errors import (
    InvalidRecord,
    InvalidTransition,
    MissingEndpoints,
    OutOfOrderSample,
    PersistenceFailure,
    RecordNotFound,
    TrackTimerError,
)
from .models import GeoPoint, LocationSample, RouteRecord, SessionSnapshot, SessionState
from .store import RouteStore

__all__ = [
    "GeoPoint",
    "InvalidRecord",
    "InvalidTransition",
    "LocationSample",
    "MissingEndpoints",
    "OutOfOrderSample",
    "PersistenceFailure",
    "RecordNotFound",
    "RouteRecord",
    "RouteStore",
    "SessionSnapshot",
    "SessionState",
    "TrackTimerError",
]
