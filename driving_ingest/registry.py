"""Registro en memoria del estado operacional de cada dispositivo.

FUENTE ÚNICA DE VERDAD para conexión y umbrales del dispositivo mientras
el proceso vive. No se persiste: tras un reinicio el registro arranca vacío
y se repuebla con los siguientes mensajes del broker.

Escritor: el handler de status (y get_or_create desde alertas/telemetría).
Lectores: la API de consulta. Todos los accesos pasan por un lock y los
lectores reciben copias, nunca la instancia interna.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass
class DeviceState:
    """Snapshot del estado de un dispositivo."""

    device_id: str
    connected: bool = True
    thresholds: Dict[str, Optional[float]] = field(default_factory=dict)
    last_update: Optional[datetime] = None

    def copy(self) -> "DeviceState":
        return replace(self, thresholds=dict(self.thresholds))


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DeviceRegistry:
    """Mapa device_id -> DeviceState protegido por lock."""

    def __init__(self, default_thresholds: Mapping[str, float]) -> None:
        self._default_thresholds = dict(default_thresholds)
        self._devices: Dict[str, DeviceState] = {}
        self._lock = threading.Lock()

    @property
    def default_thresholds(self) -> Dict[str, float]:
        return dict(self._default_thresholds)

    def _get_or_create_locked(self, device_id: str) -> DeviceState:
        device = self._devices.get(device_id)
        if device is None:
            device = DeviceState(
                device_id=device_id,
                connected=True,
                thresholds=dict(self._default_thresholds),
                last_update=_now(),
            )
            self._devices[device_id] = device
            logger.info("[REGISTRY] New device registered: %s", device_id)
        return device

    def get_or_create(self, device_id: str) -> DeviceState:
        """Idempotente: un dispositivo existente no se modifica."""
        with self._lock:
            return self._get_or_create_locked(device_id).copy()

    def get(self, device_id: str) -> Optional[DeviceState]:
        with self._lock:
            device = self._devices.get(device_id)
            return device.copy() if device is not None else None

    def list(self) -> List[DeviceState]:
        with self._lock:
            return [d.copy() for d in self._devices.values()]

    def first(self) -> Optional[DeviceState]:
        """Primer dispositivo registrado (endpoint legacy de un solo dispositivo)."""
        with self._lock:
            for device in self._devices.values():
                return device.copy()
            return None

    def update_status(
        self,
        device_id: str,
        thresholds: Mapping[str, Optional[float]],
    ) -> DeviceState:
        """Marca el dispositivo como conectado y REEMPLAZA todos sus umbrales."""
        with self._lock:
            device = self._get_or_create_locked(device_id)
            device.connected = True
            device.thresholds = dict(thresholds)
            device.last_update = _now()
            return device.copy()

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)
