"""TrackTimer - GPS route timing between a chosen start and end point."""

__version__ = "0.1.0"
