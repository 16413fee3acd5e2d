"""Display formatting for session metrics and records.

Presentation only: stored values always keep their raw meters/milliseconds.
"""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo

MS_PER_SECOND = 1000


def format_elapsed(ms: int) -> str:
    """Milliseconds as ``HH:MM:SS``, truncated to the second."""
    total_seconds = max(0, int(ms)) // MS_PER_SECOND
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def format_distance(meters: float) -> str:
    """``450 m`` below one kilometre, ``1.23 km`` from there on."""
    if meters < 1000:
        return f"{meters:.0f} m"
    return f"{meters / 1000:.2f} km"


def format_speed(kmh: float) -> str:
    return f"{kmh:.1f} km/h"


def format_date(epoch_ms: int, tz: tzinfo | None = None) -> str:
    """Record start time as ``Mar 05, 2025 14:30`` in ``tz`` (local time by default)."""
    if tz is None:
        dt = datetime.fromtimestamp(epoch_ms / 1000.0, tz=timezone.utc).astimezone()
    else:
        dt = datetime.fromtimestamp(epoch_ms / 1000.0, tz=tz)
    return dt.strftime("%b %d, %Y %H:%M")
