"""Health and readiness endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..dispatcher import IngestDispatcher
from ..errors import StorageError
from ..mqtt.transport import MQTTTransport
from ..registry import DeviceRegistry
from ..storage import DrivingStore
from .deps import get_dispatcher, get_registry, get_store, get_transport

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    """Liveness probe: ok mientras el proceso esté vivo."""
    return {"status": "ok"}


@router.get("/ready")
def ready(store: DrivingStore = Depends(get_store)):
    """Readiness probe: verifica la conexión a SQLite."""
    try:
        store.ping()
        return {"status": "ready"}
    except StorageError:
        logging.getLogger(__name__).exception("Readiness check failed")
        raise HTTPException(status_code=503, detail="not ready")


@router.get("/mqtt/health")
def mqtt_health(
    transport: MQTTTransport = Depends(get_transport),
    dispatcher: IngestDispatcher = Depends(get_dispatcher),
    registry: DeviceRegistry = Depends(get_registry),
):
    """Estado del transporte MQTT, contadores del dispatcher y dispositivos vistos."""
    result = transport.health_check()
    result["transport"] = transport.stats
    result["ingest"] = dispatcher.stats.to_dict()
    result["devices"] = len(registry)
    return result
