"""Route record data access repository."""

from __future__ import annotations

import csv
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Optional

from ...domain.errors import PersistenceFailure
from ...domain.models import GeoPoint, RouteRecord
from .schema import CSV_HEADER, INSERT_ROUTE_SQL, ROUTE_SCHEMA, SELECT_ROUTES_SQL

logger = logging.getLogger(__name__)


def record_to_params(record: RouteRecord) -> tuple[Any, ...]:
    """Column values for ``INSERT_ROUTE_SQL``."""
    return (
        record.start_point.latitude,
        record.start_point.longitude,
        record.end_point.latitude,
        record.end_point.longitude,
        record.start_time_ms,
        record.end_time_ms,
        record.elapsed_ms,
        record.distance_m,
        record.average_speed_kmh,
        record.name,
        record.notes,
    )


def row_to_record(row: Mapping[str, Any]) -> RouteRecord:
    """Map a ``route_records`` row back to a RouteRecord."""
    return RouteRecord(
        id=row["id"],
        start_point=GeoPoint(latitude=row["start_lat"], longitude=row["start_lng"]),
        end_point=GeoPoint(latitude=row["end_lat"], longitude=row["end_lng"]),
        start_time_ms=row["start_time"],
        end_time_ms=row["end_time"],
        elapsed_ms=row["elapsed_ms"],
        distance_m=row["distance_m"],
        average_speed_kmh=row["average_speed_kmh"],
        name=row["name"],
        notes=row["notes"],
    )


def write_records_csv(records: Iterable[RouteRecord], output_path: str | Path) -> int:
    """Write records as CSV. Returns number of rows written."""
    count = 0
    with open(Path(output_path), "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADER)
        for r in records:
            writer.writerow(
                [
                    r.id,
                    r.name or "",
                    r.start_point.latitude,
                    r.start_point.longitude,
                    r.end_point.latitude,
                    r.end_point.longitude,
                    r.start_time_ms,
                    r.end_time_ms,
                    r.elapsed_ms,
                    f"{r.distance_m:.2f}",
                    f"{r.average_speed_kmh:.2f}",
                    r.notes or "",
                ]
            )
            count += 1
    return count


class RouteRepository:
    """
    Synchronous repository for route records.

    Opens a short-lived connection per call; used by the CLI history
    commands. The recorder uses AsyncRouteRepository instead.
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.executescript(ROUTE_SCHEMA)
            conn.commit()
        logger.info("Route database initialized: %s", self.db_path)

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get database connection with row factory; SQLite errors become PersistenceFailure."""
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        except sqlite3.Error as e:
            raise PersistenceFailure(f"cannot open {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            yield conn
        except sqlite3.Error as e:
            logger.error("Route database error: %s", e)
            raise PersistenceFailure(str(e)) from e
        finally:
            conn.close()

    def insert(self, record: RouteRecord) -> int:
        """
        Store a new record.

        Returns:
            Auto-generated record ID
        """
        with self._get_connection() as conn:
            cursor = conn.execute(INSERT_ROUTE_SQL, record_to_params(record))
            conn.commit()
            record_id = cursor.lastrowid or 0
        logger.info("Route record %d saved", record_id)
        return record_id

    def get_by_id(self, record_id: int) -> Optional[RouteRecord]:
        """Get record by ID."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM route_records WHERE id = ?", (record_id,)
            ).fetchone()
            return row_to_record(row) if row else None

    def list_all(self, limit: int | None = None) -> list[RouteRecord]:
        """All records, most recent start time first."""
        with self._get_connection() as conn:
            if limit is None:
                rows = conn.execute(SELECT_ROUTES_SQL).fetchall()
            else:
                rows = conn.execute(f"{SELECT_ROUTES_SQL} LIMIT ?", (limit,)).fetchall()
            return [row_to_record(row) for row in rows]

    def update_details(
        self, record_id: int, name: str | None, notes: str | None
    ) -> bool:
        """Replace the user-editable name and notes. Returns False if no such record."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE route_records SET name = ?, notes = ? WHERE id = ?",
                (name, notes, record_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def delete_by_id(self, record_id: int) -> bool:
        """Delete record. Returns False if no such record."""
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM route_records WHERE id = ?", (record_id,))
            conn.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Route record %d deleted", record_id)
        return deleted

    def count(self) -> int:
        with self._get_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM route_records").fetchone()[0]

    def export_csv(self, output_path: str | Path) -> int:
        """
        Export all records to CSV.

        Returns:
            Number of records exported
        """
        count = write_records_csv(self.list_all(), output_path)
        logger.info("Exported %d route records to %s", count, output_path)
        return count
