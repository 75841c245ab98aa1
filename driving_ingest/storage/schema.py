"""Esquema SQLite del bridge.

Dos tablas:
- alerts: crashes y warnings.
- sensor_readings: muestras del acelerómetro con la metadata del batch
  desnormalizada en cada fila (no hay tabla de batches: un batch existe
  por la presencia de filas con su batch_id).
"""

from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.engine import Connection

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS alerts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        device_id TEXT NOT NULL DEFAULT 'unknown',
        type TEXT NOT NULL CHECK (type IN ('crash', 'warning')),
        event TEXT,
        device_timestamp INTEGER,
        accel_magnitude REAL,
        accel_x REAL,
        accel_y REAL,
        received_at INTEGER NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sensor_readings (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        device_id TEXT NOT NULL DEFAULT 'unknown',
        batch_id INTEGER NOT NULL,
        sample_index INTEGER NOT NULL,
        batch_start_timestamp INTEGER,
        sample_rate_hz INTEGER,
        calculated_timestamp INTEGER,
        x REAL NOT NULL,
        y REAL NOT NULL,
        z REAL NOT NULL,
        received_at INTEGER NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (batch_id, sample_index)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_alerts_device ON alerts(device_id)",
    "CREATE INDEX IF NOT EXISTS idx_alerts_type ON alerts(type)",
    "CREATE INDEX IF NOT EXISTS idx_alerts_received ON alerts(received_at)",
    "CREATE INDEX IF NOT EXISTS idx_readings_device ON sensor_readings(device_id)",
    "CREATE INDEX IF NOT EXISTS idx_readings_batch ON sensor_readings(batch_id)",
    "CREATE INDEX IF NOT EXISTS idx_readings_timestamp ON sensor_readings(calculated_timestamp)",
)


def create_schema(conn: Connection) -> None:
    """Crea tablas e índices si no existen (idempotente)."""
    for statement in SCHEMA_STATEMENTS:
        conn.execute(text(statement))


def max_batch_id(conn: Connection) -> int:
    row = conn.execute(text("SELECT MAX(batch_id) AS max_id FROM sensor_readings")).fetchone()
    return int(row.max_id) if row and row.max_id is not None else 0
