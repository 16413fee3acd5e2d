"""Error kinds raised by the tracking core.

Every error is recoverable: the operation that raised it is refused and the
session is left exactly as it was.
"""

from __future__ import annotations


class TrackTimerError(Exception):
    """Base class for all TrackTimer errors."""


class MissingEndpoints(TrackTimerError):
    """Tracking was requested before both start and end points were set."""


class OutOfOrderSample(TrackTimerError):
    """A location sample is older than the last accepted one."""

    def __init__(self, timestamp_ms: int, last_timestamp_ms: int) -> None:
        super().__init__(
            f"sample at {timestamp_ms} ms precedes last sample at {last_timestamp_ms} ms"
        )
        self.timestamp_ms = timestamp_ms
        self.last_timestamp_ms = last_timestamp_ms


class InvalidRecord(TrackTimerError):
    """A route record cannot be built from the current session."""


class InvalidTransition(TrackTimerError):
    """The requested operation is not allowed in the current session state."""


class PersistenceFailure(TrackTimerError):
    """The storage backend failed to complete a request."""


class RecordNotFound(TrackTimerError):
    """No route record exists with the requested id."""

    def __init__(self, record_id: int) -> None:
        super().__init__(f"route record {record_id} not found")
        self.record_id = record_id
