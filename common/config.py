from __future__ import annotations

import os
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict

from dotenv import load_dotenv


THRESHOLD_KINDS = ("crash", "braking", "accel", "cornering")


def _default_env_file() -> str:
    return str(Path.cwd() / ".env")


def _default_db_path() -> str:
    return str(Path.cwd() / "driving_monitor.db")


@dataclass(frozen=True)
class MQTTSettings:
    broker_host: str = "localhost"
    broker_port: int = 1883
    username: str | None = None
    password: str | None = None
    client_id: str = "driving-monitor-bridge"
    keepalive: int = 60

    # Segundos. El reintento es fijo e indefinido.
    connect_timeout: float = 4.0
    reconnect_period: float = 1.0
    publish_timeout: float = 5.0

    topic_prefix: str = "driving"

    qos_alerts: int = 1
    qos_telemetry: int = 0
    qos_status: int = 1
    qos_commands: int = 1

    @property
    def topic_alerts(self) -> str:
        return f"{self.topic_prefix}/alerts"

    @property
    def topic_telemetry(self) -> str:
        return f"{self.topic_prefix}/telemetry"

    @property
    def topic_status(self) -> str:
        return f"{self.topic_prefix}/status"

    @property
    def topic_commands(self) -> str:
        return f"{self.topic_prefix}/commands"

    def subscriptions(self) -> list[tuple[str, int]]:
        """Topics suscritos en cada conexión, con su QoS."""
        return [
            (self.topic_alerts, self.qos_alerts),
            (self.topic_telemetry, self.qos_telemetry),
            (self.topic_status, self.qos_status),
        ]

    def command_topic(self, device_id: str) -> str:
        return f"{self.topic_commands}/{device_id}"


def _default_thresholds() -> Dict[str, float]:
    return {"crash": 3.0, "braking": 2.0, "accel": 1.5, "cornering": 2.0}


@dataclass(frozen=True)
class Settings:
    db_path: str = field(default_factory=_default_db_path)

    http_host: str = "0.0.0.0"
    http_port: int = 3001

    ingest_queue_size: int = 1000

    mqtt: MQTTSettings = field(default_factory=MQTTSettings)
    default_thresholds: Dict[str, float] = field(default_factory=_default_thresholds)


def _optional(name: str) -> str | None:
    return os.getenv(name) or None


def get_settings() -> Settings:
    # Load env file (if present) but still allow overriding via real environment variables.
    env_file = os.getenv("DRIVING_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    client_id = os.getenv("MQTT_CLIENT_ID", "driving-monitor-bridge")

    mqtt = MQTTSettings(
        broker_host=os.getenv("MQTT_BROKER_HOST", "localhost"),
        broker_port=int(os.getenv("MQTT_BROKER_PORT", "1883")),
        username=_optional("MQTT_USERNAME"),
        password=_optional("MQTT_PASSWORD"),
        # Sufijo aleatorio: dos bridges con el mismo id se expulsan mutuamente del broker.
        client_id=f"{client_id}-{secrets.token_hex(3)}",
        keepalive=int(os.getenv("MQTT_KEEPALIVE", "60")),
        connect_timeout=float(os.getenv("MQTT_CONNECT_TIMEOUT", "4.0")),
        reconnect_period=float(os.getenv("MQTT_RECONNECT_PERIOD", "1.0")),
        publish_timeout=float(os.getenv("MQTT_PUBLISH_TIMEOUT", "5.0")),
        topic_prefix=os.getenv("MQTT_TOPIC_PREFIX", "driving").strip("/"),
    )

    defaults = _default_thresholds()
    thresholds = {
        kind: float(os.getenv(f"DEFAULT_THRESHOLD_{kind.upper()}", str(defaults[kind])))
        for kind in THRESHOLD_KINDS
    }

    return Settings(
        db_path=os.getenv("DRIVING_DB_PATH", _default_db_path()),
        http_host=os.getenv("HTTP_HOST", "0.0.0.0"),
        http_port=int(os.getenv("HTTP_PORT", "3001")),
        ingest_queue_size=int(os.getenv("INGEST_QUEUE_SIZE", "1000")),
        mqtt=mqtt,
        default_thresholds=thresholds,
    )
