"""Almacenamiento durable de alertas y lecturas del acelerómetro.

Única garantía fuerte del sistema: un batch de telemetría se escribe en UNA
transacción. Un lector ve todas las filas del batch o ninguna; nunca un
subconjunto. SQLite serializa los escritores, así que dos batches
concurrentes no pueden intercalar filas.

Los batch_id los asigna el proceso (no la BD) y se siembran al arrancar con
max(batch_id persistido) + 1, de modo que sobreviven a reinicios sin
colisionar. Se toleran huecos (un id tomado por un batch que luego falló).
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..errors import StorageError
from .schema import create_schema, max_batch_id

logger = logging.getLogger(__name__)

DEFAULT_ALERTS_LIMIT = 50
DEFAULT_BATCHES_LIMIT = 10
DEFAULT_READINGS_LIMIT = 500
DEFAULT_HISTORY_HOURS = 24


def calculated_timestamp(batch_start_timestamp: int, sample_index: int, sample_rate_hz: int) -> int:
    """Tick estimado de la muestra: inicio + floor(index * 1000 / rate)."""
    return batch_start_timestamp + (sample_index * 1000) // sample_rate_hz


@dataclass(frozen=True)
class AlertRecord:
    """Fila de la tabla alerts. magnitude solo para crash; accel_x/y solo para warning."""

    device_id: str
    kind: str
    device_timestamp: int
    event: Optional[str] = None
    magnitude: Optional[float] = None
    accel_x: Optional[float] = None
    accel_y: Optional[float] = None

    @classmethod
    def crash(cls, device_id: str, device_timestamp: int, magnitude: float) -> "AlertRecord":
        return cls(
            device_id=device_id,
            kind="crash",
            device_timestamp=device_timestamp,
            magnitude=magnitude,
        )

    @classmethod
    def warning(
        cls,
        device_id: str,
        event: str,
        device_timestamp: int,
        accel_x: float,
        accel_y: float,
    ) -> "AlertRecord":
        return cls(
            device_id=device_id,
            kind="warning",
            event=event,
            device_timestamp=device_timestamp,
            accel_x=accel_x,
            accel_y=accel_y,
        )


class ReceivedClock:
    """Reloj de pared en milisegundos que nunca retrocede dentro del proceso."""

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def now_ms(self) -> int:
        with self._lock:
            now = int(time.time() * 1000)
            if now < self._last:
                now = self._last
            self._last = now
            return now


def _device_filter(device_id: Optional[str], *, prefix: str = "WHERE") -> str:
    return f" {prefix} device_id = :device_id" if device_id else ""


class DrivingStore:
    """Store SQLite (vía SQLAlchemy) del bridge."""

    def __init__(self, engine: Engine, clock: Optional[ReceivedClock] = None) -> None:
        self._engine = engine
        self._clock = clock or ReceivedClock()
        self._batch_lock = threading.Lock()
        self._next_batch_id = 1

    @contextmanager
    def _storage_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            logger.error("[DB] %s failed: %s", operation, type(e).__name__)
            raise StorageError(f"{operation} failed: {e}") from e

    def init(self) -> None:
        """Crea el esquema y siembra el contador de batches."""
        with self._storage_errors("init"):
            with self._engine.begin() as conn:
                create_schema(conn)
                seed = max_batch_id(conn) + 1

        with self._batch_lock:
            self._next_batch_id = seed
        logger.info("[DB] Database initialized (next batch_id: %d)", seed)

    def close(self) -> None:
        self._engine.dispose()
        logger.info("[DB] Database closed")

    def ping(self) -> bool:
        with self._storage_errors("ping"):
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        return True

    # ------------------------------------------------------------------
    # Escrituras
    # ------------------------------------------------------------------

    def next_batch_id(self) -> int:
        with self._batch_lock:
            batch_id = self._next_batch_id
            self._next_batch_id += 1
            return batch_id

    def insert_alert(self, alert: AlertRecord) -> int:
        """Inserta una alerta. Retorna el id de la fila."""
        received_at = self._clock.now_ms()
        with self._storage_errors("insert_alert"):
            with self._engine.begin() as conn:
                result = conn.execute(
                    text(
                        """
                        INSERT INTO alerts (
                            device_id, type, event, device_timestamp,
                            accel_magnitude, accel_x, accel_y, received_at
                        )
                        VALUES (
                            :device_id, :type, :event, :device_timestamp,
                            :magnitude, :accel_x, :accel_y, :received_at
                        )
                        """
                    ),
                    {
                        "device_id": alert.device_id,
                        "type": alert.kind,
                        "event": alert.event,
                        "device_timestamp": alert.device_timestamp,
                        "magnitude": alert.magnitude,
                        "accel_x": alert.accel_x,
                        "accel_y": alert.accel_y,
                        "received_at": received_at,
                    },
                )
                return int(result.lastrowid)

    def insert_batch(
        self,
        device_id: str,
        batch_id: int,
        batch_start_timestamp: int,
        sample_rate_hz: int,
        samples: Sequence[Sequence[float]],
    ) -> int:
        """Inserta todas las muestras del batch en una sola transacción.

        Args:
            device_id: Dispositivo origen
            batch_id: Id obtenido de next_batch_id()
            batch_start_timestamp: Tick del dispositivo en la primera muestra
            sample_rate_hz: Frecuencia de muestreo (> 0)
            samples: Secuencia de [x, y, z] en el orden transmitido

        Returns:
            Cantidad de filas escritas (len(samples))

        Raises:
            StorageError: si falla cualquier fila; no queda ninguna escrita.
        """
        if sample_rate_hz <= 0:
            raise ValueError(f"sample_rate_hz must be > 0, got {sample_rate_hz}")
        if not samples:
            return 0

        received_at = self._clock.now_ms()
        rows = []
        for index, (x, y, z) in enumerate(samples):
            rows.append({
                "device_id": device_id,
                "batch_id": batch_id,
                "sample_index": index,
                "batch_start_timestamp": batch_start_timestamp,
                "sample_rate_hz": sample_rate_hz,
                "calculated_timestamp": calculated_timestamp(
                    batch_start_timestamp, index, sample_rate_hz
                ),
                "x": x,
                "y": y,
                "z": z,
                "received_at": received_at,
            })

        with self._storage_errors("insert_batch"):
            with self._engine.begin() as conn:
                conn.execute(
                    text(
                        """
                        INSERT INTO sensor_readings (
                            device_id, batch_id, sample_index, batch_start_timestamp,
                            sample_rate_hz, calculated_timestamp, x, y, z, received_at
                        )
                        VALUES (
                            :device_id, :batch_id, :sample_index, :batch_start_timestamp,
                            :sample_rate_hz, :calculated_timestamp, :x, :y, :z, :received_at
                        )
                        """
                    ),
                    rows,
                )
        return len(rows)

    def delete_alerts(self, device_id: Optional[str] = None) -> int:
        """Borra las alertas del dispositivo (o todas). Retorna filas borradas."""
        params: Dict[str, Any] = {"device_id": device_id} if device_id else {}
        with self._storage_errors("delete_alerts"):
            with self._engine.begin() as conn:
                result = conn.execute(
                    text("DELETE FROM alerts" + _device_filter(device_id)),
                    params,
                )
                return int(result.rowcount or 0)

    # ------------------------------------------------------------------
    # Consultas
    # ------------------------------------------------------------------

    def _fetch_all(self, operation: str, sql: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        with self._storage_errors(operation):
            with self._engine.connect() as conn:
                return [dict(row) for row in conn.execute(text(sql), params).mappings().all()]

    def query_alerts(
        self,
        device_id: Optional[str] = None,
        kind: Optional[str] = None,
        limit: int = DEFAULT_ALERTS_LIMIT,
    ) -> List[Dict[str, Any]]:
        """Alertas más recientes primero."""
        clauses = []
        params: Dict[str, Any] = {"limit": int(limit)}
        if device_id:
            clauses.append("device_id = :device_id")
            params["device_id"] = device_id
        if kind:
            clauses.append("type = :kind")
            params["kind"] = kind

        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        return self._fetch_all(
            "query_alerts",
            """
            SELECT id, device_id, type, event, device_timestamp,
                   accel_magnitude, accel_x, accel_y, received_at, created_at
            FROM alerts
            """
            + where
            + " ORDER BY received_at DESC, id DESC LIMIT :limit",
            params,
        )

    def alert_summary(self, device_id: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"device_id": device_id} if device_id else {}
        return self._fetch_all(
            "alert_summary",
            "SELECT type, event, COUNT(*) AS count FROM alerts"
            + _device_filter(device_id)
            + " GROUP BY type, event ORDER BY type, event",
            params,
        )

    def alert_history(
        self,
        device_id: Optional[str] = None,
        hours: int = DEFAULT_HISTORY_HOURS,
    ) -> List[Dict[str, Any]]:
        """Histograma horario (UTC) por tipo en la ventana de las últimas `hours` horas."""
        cutoff = self._clock.now_ms() - int(hours) * 60 * 60 * 1000
        params: Dict[str, Any] = {"cutoff": cutoff}
        if device_id:
            params["device_id"] = device_id
        return self._fetch_all(
            "alert_history",
            """
            SELECT
                strftime('%Y-%m-%d %H:00', received_at / 1000, 'unixepoch') AS hour,
                type,
                COUNT(*) AS count
            FROM alerts
            WHERE received_at >= :cutoff
            """
            + _device_filter(device_id, prefix="AND")
            + " GROUP BY hour, type ORDER BY hour ASC, type ASC",
            params,
        )

    def query_batches(
        self,
        device_id: Optional[str] = None,
        limit: int = DEFAULT_BATCHES_LIMIT,
    ) -> List[Dict[str, Any]]:
        """Resumen por batch, más reciente primero."""
        params: Dict[str, Any] = {"limit": int(limit)}
        if device_id:
            params["device_id"] = device_id
        return self._fetch_all(
            "query_batches",
            """
            SELECT batch_id, device_id, batch_start_timestamp, sample_rate_hz,
                   COUNT(*) AS sample_count, MIN(received_at) AS received_at
            FROM sensor_readings
            """
            + _device_filter(device_id)
            + " GROUP BY batch_id ORDER BY batch_id DESC LIMIT :limit",
            params,
        )

    def query_readings(self, batch_id: int) -> List[Dict[str, Any]]:
        """Lecturas de un batch ordenadas por sample_index."""
        return self._fetch_all(
            "query_readings",
            """
            SELECT batch_id, device_id, sample_index, x, y, z, calculated_timestamp
            FROM sensor_readings
            WHERE batch_id = :batch_id
            ORDER BY sample_index ASC
            """,
            {"batch_id": int(batch_id)},
        )

    def query_latest_readings(
        self,
        device_id: Optional[str] = None,
        limit: int = DEFAULT_READINGS_LIMIT,
    ) -> List[Dict[str, Any]]:
        """Últimas `limit` lecturas, devueltas en orden ascendente (batch_id, sample_index)."""
        params: Dict[str, Any] = {"limit": int(limit)}
        if device_id:
            params["device_id"] = device_id
        rows = self._fetch_all(
            "query_latest_readings",
            """
            SELECT device_id, x, y, z, calculated_timestamp, batch_id, sample_index
            FROM sensor_readings
            """
            + _device_filter(device_id)
            + " ORDER BY batch_id DESC, sample_index DESC LIMIT :limit",
            params,
        )
        rows.reverse()
        return rows

    def query_stats(self, device_id: Optional[str] = None) -> Dict[str, int]:
        params = {"device_id": device_id} if device_id else {}
        where = _device_filter(device_id)
        and_device = _device_filter(device_id, prefix="AND")
        rows = self._fetch_all(
            "query_stats",
            f"""
            SELECT
                (SELECT COUNT(*) FROM alerts{where}) AS total_alerts,
                (SELECT COUNT(*) FROM alerts WHERE type = 'crash'{and_device}) AS crashes,
                (SELECT COUNT(*) FROM sensor_readings{where}) AS total_readings,
                (SELECT COUNT(DISTINCT batch_id) FROM sensor_readings{where}) AS total_batches
            """,
            params,
        )
        row = rows[0]
        total_alerts = int(row["total_alerts"])
        crashes = int(row["crashes"])
        return {
            "total_alerts": total_alerts,
            "crashes": crashes,
            "warnings": total_alerts - crashes,
            "total_readings": int(row["total_readings"]),
            "total_batches": int(row["total_batches"]),
        }
