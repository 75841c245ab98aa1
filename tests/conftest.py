"""Fixtures compartidas: BD SQLite temporal, store, registro y dispatcher."""

from typing import Any, Dict

import orjson
import pytest

from common.config import MQTTSettings, Settings
from common.db import get_engine
from driving_ingest.dispatcher import IngestDispatcher
from driving_ingest.registry import DeviceRegistry
from driving_ingest.storage import DrivingStore


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Ningún test lee un .env real del directorio de trabajo."""
    monkeypatch.setenv("DRIVING_ENV_FILE", str(tmp_path / "missing.env"))


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        db_path=str(tmp_path / "driving_monitor.db"),
        mqtt=MQTTSettings(client_id="test-bridge"),
    )


@pytest.fixture
def engine(settings):
    eng = get_engine(settings)
    yield eng
    eng.dispose()


@pytest.fixture
def store(engine) -> DrivingStore:
    s = DrivingStore(engine)
    s.init()
    return s


@pytest.fixture
def registry(settings) -> DeviceRegistry:
    return DeviceRegistry(settings.default_thresholds)


@pytest.fixture
def dispatcher(store, registry, settings) -> IngestDispatcher:
    return IngestDispatcher(store, registry, settings.mqtt)


@pytest.fixture
def encode():
    """Serializa un dict a bytes como llegaría desde el broker."""

    def _encode(data: Dict[str, Any]) -> bytes:
        return orjson.dumps(data)

    return _encode
