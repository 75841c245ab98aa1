"""Endpoints de dispositivos: estado en memoria y comandos de umbral."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from ..errors import PublishError
from ..mqtt.transport import MQTTTransport
from ..registry import DeviceRegistry, DeviceState
from ..schemas import DeviceStatus, DeviceSummary, ThresholdCommandIn, ThresholdCommandResult
from .deps import get_registry, get_transport

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/devices", tags=["devices"])

# Montado aparte: /api/device/status (ruta legacy de un solo dispositivo).
legacy_router = APIRouter(tags=["devices"])


def _to_status(device: DeviceState) -> DeviceStatus:
    return DeviceStatus(
        id=device.device_id,
        connected=device.connected,
        thresholds=dict(device.thresholds),
        last_update=device.last_update,
    )


def _first_device_status(registry: DeviceRegistry) -> DeviceStatus:
    device = registry.first()
    if device is not None:
        return _to_status(device)
    # Sin dispositivos aún: desconectado con umbrales por defecto.
    return DeviceStatus(
        id="unknown",
        connected=False,
        thresholds=registry.default_thresholds,
        last_update=None,
    )


@router.get("", response_model=List[DeviceSummary])
def list_devices(registry: DeviceRegistry = Depends(get_registry)):
    return [
        DeviceSummary(id=d.device_id, connected=d.connected, last_update=d.last_update)
        for d in registry.list()
    ]


@router.get("/status", response_model=DeviceStatus)
def legacy_device_status(registry: DeviceRegistry = Depends(get_registry)):
    return _first_device_status(registry)


@legacy_router.get("/api/device/status", response_model=DeviceStatus)
def legacy_single_device_status(registry: DeviceRegistry = Depends(get_registry)):
    return _first_device_status(registry)


@router.get("/{device_id}/status", response_model=DeviceStatus)
def get_device_status(device_id: str, registry: DeviceRegistry = Depends(get_registry)):
    device = registry.get(device_id)
    if device is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Device not found")
    return _to_status(device)


@router.post("/{device_id}/threshold", response_model=ThresholdCommandResult)
def set_device_threshold(
    device_id: str,
    payload: ThresholdCommandIn,
    transport: MQTTTransport = Depends(get_transport),
):
    """Envía set_threshold al dispositivo.

    El registro NO se modifica aquí: el dispositivo confirma el cambio
    publicando su nuevo status.
    """
    command = {
        "cmd": "set_threshold",
        "type": payload.type.value,
        "value": payload.value,
    }
    try:
        transport.publish_command(device_id, command)
    except PublishError as e:
        logger.error("[API] Failed to send command to %s: %s", device_id, e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to send command",
        )

    logger.info("[Config] %s: %s=%sG", device_id, payload.type.value, payload.value)
    return ThresholdCommandResult(
        success=True,
        device_id=device_id,
        type=payload.type,
        value=payload.value,
    )
