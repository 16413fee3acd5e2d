"""
Async Route Repository
======================

Fully async data access layer using aiosqlite, so persistence never blocks
the loop that feeds the tracking session.

Usage:
    repo = AsyncRouteRepository("data/routes.db")
    await repo.init_schema()

    record_id = await repo.insert(record)
    history = await repo.list_all()

    await repo.close()
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from ...domain.errors import PersistenceFailure
from ...domain.models import RouteRecord
from ...domain.store import RouteStore
from .repository import record_to_params, row_to_record, write_records_csv
from .schema import INSERT_ROUTE_SQL, ROUTE_SCHEMA, SELECT_ROUTES_SQL

logger = logging.getLogger(__name__)


class AsyncRouteRepository(RouteStore):
    """
    Async repository for route record persistence.

    Non-blocking SQLite operations using aiosqlite.
    All methods are async - no blocking I/O.
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialized = False

    async def init_schema(self) -> None:
        """Initialize database schema. Must be called after creation."""
        async with self._get_connection() as conn:
            await conn.executescript(ROUTE_SCHEMA)
            await conn.commit()
        self._initialized = True
        logger.info("Async route database initialized: %s", self.db_path)

    @asynccontextmanager
    async def _get_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Get async database connection with row factory."""
        try:
            conn = await aiosqlite.connect(str(self.db_path), timeout=30.0)
        except sqlite3.Error as e:
            raise PersistenceFailure(f"cannot open {self.db_path}: {e}") from e
        conn.row_factory = aiosqlite.Row
        try:
            await conn.execute("PRAGMA journal_mode=WAL")
            yield conn
        except sqlite3.Error as e:
            logger.error("Route database error: %s", e)
            raise PersistenceFailure(str(e)) from e
        finally:
            await conn.close()

    async def close(self) -> None:
        """Connections are per call; nothing stays open."""
        logger.debug("Async repository closed")

    # =========================================================================
    # Route Operations
    # =========================================================================

    async def insert(self, record: RouteRecord) -> int:
        """
        Store a new record.

        Returns:
            Auto-generated record ID
        """
        async with self._get_connection() as conn:
            cursor = await conn.execute(INSERT_ROUTE_SQL, record_to_params(record))
            await conn.commit()
            record_id = cursor.lastrowid or 0
        logger.info("Route record %d saved", record_id)
        return record_id

    async def get_by_id(self, record_id: int) -> RouteRecord | None:
        """Get record by ID."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM route_records WHERE id = ?", (record_id,)
            )
            row = await cursor.fetchone()
            return row_to_record(row) if row else None

    async def list_all(self, limit: int | None = None) -> list[RouteRecord]:
        """All records, most recent start time first."""
        async with self._get_connection() as conn:
            if limit is None:
                cursor = await conn.execute(SELECT_ROUTES_SQL)
            else:
                cursor = await conn.execute(f"{SELECT_ROUTES_SQL} LIMIT ?", (limit,))
            rows = await cursor.fetchall()
            return [row_to_record(row) for row in rows]

    async def update_details(
        self, record_id: int, name: str | None, notes: str | None
    ) -> bool:
        """Replace the user-editable name and notes. Returns False if no such record."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "UPDATE route_records SET name = ?, notes = ? WHERE id = ?",
                (name, notes, record_id),
            )
            await conn.commit()
            return cursor.rowcount > 0

    async def delete_by_id(self, record_id: int) -> bool:
        """Delete record. Returns False if no such record."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "DELETE FROM route_records WHERE id = ?", (record_id,)
            )
            await conn.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Route record %d deleted", record_id)
        return deleted

    async def count(self) -> int:
        async with self._get_connection() as conn:
            cursor = await conn.execute("SELECT COUNT(*) FROM route_records")
            row = await cursor.fetchone()
            return row[0] if row else 0

    async def export_csv(self, output_path: str | Path) -> int:
        """
        Export all records to CSV.

        Returns:
            Number of records exported
        """
        count = write_records_csv(await self.list_all(), output_path)
        logger.info("Exported %d route records to %s", count, output_path)
        return count
