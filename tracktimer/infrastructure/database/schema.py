"""SQLite database schema for route records."""

ROUTE_SCHEMA = """
-- ============================================
-- TrackTimer Route Database Schema
-- Version: 1.0.0
-- ============================================

-- Completed routes (one row per saved session)
CREATE TABLE IF NOT EXISTS route_records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,

    -- Endpoints chosen on the map
    start_lat REAL NOT NULL,
    start_lng REAL NOT NULL,
    end_lat REAL NOT NULL,
    end_lng REAL NOT NULL,

    -- Epoch milliseconds
    start_time INTEGER NOT NULL,
    end_time INTEGER NOT NULL,
    elapsed_ms INTEGER NOT NULL CHECK (elapsed_ms >= 0),

    -- Metrics frozen at stop
    distance_m REAL NOT NULL CHECK (distance_m >= 0),
    average_speed_kmh REAL NOT NULL,

    -- User editable
    name TEXT,
    notes TEXT
);

CREATE INDEX IF NOT EXISTS idx_route_records_start_time ON route_records(start_time);
"""

ROUTE_COLUMNS = (
    "start_lat",
    "start_lng",
    "end_lat",
    "end_lng",
    "start_time",
    "end_time",
    "elapsed_ms",
    "distance_m",
    "average_speed_kmh",
    "name",
    "notes",
)

INSERT_ROUTE_SQL = f"""
INSERT INTO route_records ({", ".join(ROUTE_COLUMNS)})
VALUES ({", ".join("?" for _ in ROUTE_COLUMNS)})
"""

SELECT_ROUTES_SQL = "SELECT * FROM route_records ORDER BY start_time DESC, id DESC"

CSV_HEADER = [
    "id",
    "name",
    "start_lat",
    "start_lng",
    "end_lat",
    "end_lng",
    "start_time",
    "end_time",
    "elapsed_ms",
    "distance_m",
    "average_speed_kmh",
    "notes",
]
