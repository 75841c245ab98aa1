"""Dispatcher central: clasifica cada mensaje por topic y lo enruta a su handler.

Contrato: handle() NUNCA lanza excepciones. Cada mensaje produce un
IngestOutcome; los errores (payload malformado, tipo desconocido, fallo de
BD) quedan en outcome.error, se loguean y el mensaje se descarta. Un payload
roto de un dispositivo no puede tumbar el pipeline ni bloquear los mensajes
siguientes.

Orden dentro de cada handler: validar primero, efectos después. Un mensaje
rechazado no toca ni el registro ni la BD.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from common.config import MQTTSettings

from .errors import IngestError, PayloadError, StorageError
from .mqtt.validators import (
    CrashAlertPayload,
    decode_json,
    parse_alert,
    parse_status,
    parse_telemetry,
)
from .registry import DeviceRegistry
from .stats import IngestStats
from .storage import AlertRecord, DrivingStore

logger = logging.getLogger(__name__)

KIND_ALERT = "alert"
KIND_TELEMETRY = "telemetry"
KIND_STATUS = "status"
KIND_UNKNOWN = "unknown"


@dataclass
class IngestOutcome:
    """Resultado del procesamiento de un mensaje."""

    topic: str
    kind: str
    device_id: Optional[str] = None
    batch_id: Optional[int] = None
    rows: int = 0
    error: Optional[IngestError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class IngestDispatcher:
    """Enruta alertas, batches de telemetría y status a sus handlers."""

    def __init__(
        self,
        store: DrivingStore,
        registry: DeviceRegistry,
        mqtt_settings: MQTTSettings,
        stats: Optional[IngestStats] = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._stats = stats or IngestStats()
        self._routes = {
            mqtt_settings.topic_alerts: (KIND_ALERT, self._handle_alert),
            mqtt_settings.topic_telemetry: (KIND_TELEMETRY, self._handle_telemetry),
            mqtt_settings.topic_status: (KIND_STATUS, self._handle_status),
        }

    @property
    def stats(self) -> IngestStats:
        return self._stats

    def handle(self, topic: str, payload: bytes) -> IngestOutcome:
        """Procesa un mensaje (topic, bytes). No lanza."""
        kind, handler = self._routes.get(topic, (KIND_UNKNOWN, None))
        outcome = IngestOutcome(topic=topic, kind=kind)

        try:
            if handler is None:
                raise PayloadError(f"Unknown topic: {topic}")
            handler(decode_json(payload), outcome)
        except IngestError as e:
            outcome.error = e
            log = logger.error if isinstance(e, StorageError) else logger.warning
            log("[INGEST] Dropped %s message (topic=%s): %s", kind, topic, e)
        except Exception as e:
            outcome.error = IngestError(f"{type(e).__name__}: {e}")
            logger.exception("[INGEST] Dropped %s message (topic=%s): unexpected error", kind, topic)

        self._stats.record(
            kind,
            outcome.ok,
            outcome.error.error_type if outcome.error is not None else None,
        )
        return outcome

    def _handle_alert(self, data: dict[str, Any], outcome: IngestOutcome) -> None:
        alert = parse_alert(data)
        outcome.device_id = alert.dev

        if isinstance(alert, CrashAlertPayload):
            record = AlertRecord.crash(alert.dev, alert.ts, alert.mag)
        else:
            record = AlertRecord.warning(alert.dev, alert.event, alert.ts, alert.x, alert.y)

        self._registry.get_or_create(alert.dev)
        self._store.insert_alert(record)
        outcome.rows = 1

        if record.kind == "crash":
            logger.info("[Alert] %s: CRASH magnitude=%s", alert.dev, record.magnitude)
        else:
            logger.info("[Alert] %s: WARNING %s", alert.dev, record.event)

    def _handle_telemetry(self, data: dict[str, Any], outcome: IngestOutcome) -> None:
        batch = parse_telemetry(data)
        outcome.device_id = batch.dev

        if batch.declared_mismatch:
            logger.debug(
                "[Telemetry] %s: declared n=%d but received %d samples",
                batch.dev,
                batch.n,
                batch.sample_count,
            )

        batch_id = self._store.next_batch_id()
        outcome.batch_id = batch_id
        self._registry.get_or_create(batch.dev)
        outcome.rows = self._store.insert_batch(
            batch.dev,
            batch_id,
            batch.ts,
            batch.rate,
            batch.d,
        )

        logger.info(
            "[Telemetry] %s: %d samples (batch_id: %d)",
            batch.dev,
            outcome.rows,
            batch_id,
        )

    def _handle_status(self, data: dict[str, Any], outcome: IngestOutcome) -> None:
        status = parse_status(data)
        outcome.device_id = status.dev

        thresholds = status.thresholds()
        self._registry.update_status(status.dev, thresholds)

        logger.info(
            "[Status] %s: crash=%s braking=%s accel=%s cornering=%s",
            status.dev,
            thresholds["crash"],
            thresholds["braking"],
            thresholds["accel"],
            thresholds["cornering"],
        )
