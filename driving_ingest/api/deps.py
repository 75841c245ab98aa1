"""Dependencias FastAPI: componentes del bridge guardados en app.state."""

from __future__ import annotations

from fastapi import Request

from ..dispatcher import IngestDispatcher
from ..mqtt.transport import MQTTTransport
from ..registry import DeviceRegistry
from ..storage import DrivingStore


def get_store(request: Request) -> DrivingStore:
    return request.app.state.store


def get_registry(request: Request) -> DeviceRegistry:
    return request.app.state.registry


def get_transport(request: Request) -> MQTTTransport:
    return request.app.state.transport


def get_dispatcher(request: Request) -> IngestDispatcher:
    return request.app.state.dispatcher
