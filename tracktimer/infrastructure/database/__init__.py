"""Database infrastructure - SQLite for route records."""

from .async_repository import AsyncRouteRepository
from .repository import RouteRepository
from .schema import ROUTE_SCHEMA

__all__ = [
    "ROUTE_SCHEMA",
    "AsyncRouteRepository",
    "RouteRepository",
]
