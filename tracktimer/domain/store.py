"""Storage contract the tracking core needs for completed routes."""

from __future__ import annotations

from abc import ABC, abstractmethod

from .models import RouteRecord


class RouteStore(ABC):
    """
    Persistent store for route records.

    Implementations raise PersistenceFailure when the backend fails.
    """

    @abstractmethod
    async def insert(self, record: RouteRecord) -> int:
        """Store a record and return its generated id."""

    @abstractmethod
    async def get_by_id(self, record_id: int) -> RouteRecord | None:
        """Record with ``record_id``, or None."""

    @abstractmethod
    async def delete_by_id(self, record_id: int) -> bool:
        """Delete a record; False if it did not exist."""

    @abstractmethod
    async def list_all(self, limit: int | None = None) -> list[RouteRecord]:
        """Records ordered by start time, most recent first."""

    @abstractmethod
    async def update_details(
        self, record_id: int, name: str | None, notes: str | None
    ) -> bool:
        """Replace name and notes; False if the record does not exist."""
