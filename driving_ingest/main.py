"""Aplicación FastAPI del bridge: arranca la ingesta MQTT y expone la API de consulta.

Flujo:
    broker --> MQTTTransport._on_message --> IngestWorker (cola) --> IngestDispatcher
                                                                       |--> DrivingStore (SQLite)
                                                                       '--> DeviceRegistry (memoria)

Los routers solo leen del store y del registro; el único camino de salida
hacia los dispositivos es POST /api/devices/{id}/threshold.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from common.config import Settings, get_settings
from common.db import get_engine

from . import __version__
from .api import alerts, devices, health, readings, stats
from .dispatcher import IngestDispatcher
from .mqtt import IngestWorker, MQTTTransport
from .registry import DeviceRegistry
from .storage import DrivingStore

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[DrivingStore] = None,
    registry: Optional[DeviceRegistry] = None,
    transport: Optional[MQTTTransport] = None,
) -> FastAPI:
    """Construye la app. store/registry/transport se pueden inyectar (tests)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = settings or get_settings()

        owns_store = store is None
        app_store = store or DrivingStore(get_engine(cfg))
        if owns_store:
            app_store.init()

        app_registry = registry or DeviceRegistry(cfg.default_thresholds)
        app_transport = transport or MQTTTransport(cfg.mqtt)

        dispatcher = IngestDispatcher(app_store, app_registry, cfg.mqtt)
        worker = IngestWorker(dispatcher, max_queue_size=cfg.ingest_queue_size)
        worker.start()

        app_transport.set_message_handler(worker.enqueue)
        # Sin esperar la conexión: el loop de paho reintenta en segundo plano.
        app_transport.start(wait=False)

        app.state.settings = cfg
        app.state.store = app_store
        app.state.registry = app_registry
        app.state.transport = app_transport
        app.state.dispatcher = dispatcher
        app.state.worker = worker

        logger.info("[APP] Driving monitor bridge started (http %s:%d)", cfg.http_host, cfg.http_port)
        try:
            yield
        finally:
            # Orden: cortar la entrada, vaciar la cola, cerrar la BD.
            app_transport.stop()
            worker.stop(drain=True)
            if owns_store:
                app_store.close()
            logger.info("[APP] Shutdown complete. %s", dispatcher.stats)

    app = FastAPI(title="Driving Monitor Bridge", version=__version__, lifespan=lifespan)

    app.include_router(health.router)
    app.include_router(devices.router)
    app.include_router(devices.legacy_router)
    app.include_router(alerts.router)
    app.include_router(readings.router, prefix="/api/readings")
    app.include_router(readings.router, prefix="/api/batches")
    app.include_router(stats.router, prefix="/api/stats")
    app.include_router(stats.router, prefix="/api/score")

    return app


app = create_app()
