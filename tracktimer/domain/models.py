"""TrackTimer Domain Models - Pydantic models for core entities."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SessionState(str, Enum):
    """Lifecycle states of a tracking session."""

    IDLE = "idle"
    POINTS_SELECTED = "points_selected"
    TRACKING = "tracking"
    STOPPED = "stopped"


class GeoPoint(BaseModel):
    """Latitude/longitude pair in decimal degrees."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    @classmethod
    def parse(cls, text: str) -> GeoPoint:
        """Parse a ``"lat,lon"`` string."""
        parts = [p.strip() for p in text.split(",")]
        if len(parts) != 2:
            raise ValueError(f"expected 'lat,lon', got {text!r}")
        return cls(latitude=float(parts[0]), longitude=float(parts[1]))

    def __str__(self) -> str:
        return f"{self.latitude:.6f},{self.longitude:.6f}"


class LocationSample(BaseModel):
    """One timestamped position reading from the location provider."""

    model_config = ConfigDict(frozen=True)

    point: GeoPoint
    timestamp_ms: int = Field(..., ge=0)
    accuracy_m: float | None = Field(default=None, ge=0)


class RouteRecord(BaseModel):
    """Persisted summary of a completed tracking session.

    Only ``name`` and ``notes`` may change after the record is stored; use
    ``with_details`` to derive the updated copy.
    """

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    start_point: GeoPoint
    end_point: GeoPoint
    start_time_ms: int = Field(..., ge=0)
    end_time_ms: int = Field(..., ge=0)
    elapsed_ms: int = Field(..., ge=0)
    distance_m: float = Field(..., ge=0)
    average_speed_kmh: float = Field(..., ge=0)
    name: str | None = None
    notes: str | None = None

    @model_validator(mode="after")
    def _check_end_time(self) -> RouteRecord:
        if self.end_time_ms != self.start_time_ms + self.elapsed_ms:
            raise ValueError("end_time_ms must equal start_time_ms + elapsed_ms")
        return self

    def with_details(self, name: str | None, notes: str | None) -> RouteRecord:
        """Copy with user-editable fields replaced."""
        return self.model_copy(update={"name": name, "notes": notes})


class SessionSnapshot(BaseModel):
    """Consistent read-only view of a session for display."""

    model_config = ConfigDict(frozen=True)

    state: SessionState
    start_point: GeoPoint | None = None
    end_point: GeoPoint | None = None
    current_location: GeoPoint | None = None
    start_time_ms: int | None = None
    elapsed_ms: int = 0
    distance_m: float = 0.0
    average_speed_kmh: float = 0.0
    samples_count: int = 0
