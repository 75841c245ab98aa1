"""Transporte MQTT del bridge (paho-mqtt).

Responsabilidades:
- Una conexión persistente al broker
- Suscripción a alerts/telemetry/status con su QoS en CADA conexión
  (las suscripciones no sobreviven a una desconexión con clean session)
- Entregar cada mensaje (topic, payload) al handler registrado
- publish() para comandos hacia los dispositivos

Reconexión: la hace el loop de paho con intervalo fijo (min=max) y sin
límite de reintentos. publish() nunca reintenta: un fallo se informa al
llamador con PublishError.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import orjson
import paho.mqtt.client as mqtt

from common.config import MQTTSettings

from ..errors import PublishError

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, bytes], Any]


@dataclass(frozen=True)
class PublishResult:
    topic: str
    mid: int
    qos: int


class MQTTTransport:
    """Cliente MQTT del bridge."""

    def __init__(self, settings: MQTTSettings):
        self._settings = settings
        self._client: Optional[mqtt.Client] = None
        self._handler: Optional[MessageHandler] = None
        self._running = False
        self._connected = threading.Event()

        # Stats
        self._connect_count = 0
        self._messages_received = 0
        self._handler_errors = 0
        self._published = 0
        self._publish_failures = 0
        self._last_message_at: float = 0

    def set_message_handler(self, handler: MessageHandler) -> None:
        """Registra el único handler de mensajes entrantes."""
        self._handler = handler

    def _create_client(self) -> mqtt.Client:
        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self._settings.client_id,
            protocol=mqtt.MQTTv311,
            clean_session=True,
        )
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message

        if self._settings.username and self._settings.password:
            client.username_pw_set(self._settings.username, self._settings.password)

        client.connect_timeout = self._settings.connect_timeout
        client.reconnect_delay_set(
            min_delay=self._settings.reconnect_period,
            max_delay=self._settings.reconnect_period,
        )
        return client

    def start(self, wait: bool = True) -> bool:
        """Inicia la conexión y el loop de red de paho.

        Si el broker no está disponible el loop sigue reintentando en
        segundo plano; el retorno solo indica si ya hay conexión.
        """
        if self._running:
            return self.is_connected

        self._client = self._create_client()
        logger.info(
            "[MQTT] Connecting to %s:%d",
            self._settings.broker_host,
            self._settings.broker_port,
        )
        self._client.connect_async(
            self._settings.broker_host,
            self._settings.broker_port,
            keepalive=self._settings.keepalive,
        )
        self._client.loop_start()
        self._running = True

        if wait and not self._connected.wait(timeout=self._settings.connect_timeout):
            logger.warning("[MQTT] Connection timeout, retrying in background")
        return self.is_connected

    def stop(self) -> None:
        self._running = False
        if self._client is not None:
            try:
                self._client.disconnect()
                self._client.loop_stop()
            except Exception as e:
                logger.warning("[MQTT] Error stopping: %s", e)
        self._connected.clear()
        logger.info("[MQTT] Stopped. %s", self.stats)

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code == 0:
            self._connect_count += 1
            self._connected.set()
            logger.info("[MQTT] Connected to broker")
            for topic, qos in self._settings.subscriptions():
                client.subscribe(topic, qos=qos)
                logger.info("[MQTT] Subscribed to %s (QoS %d)", topic, qos)
        else:
            self._connected.clear()
            logger.error("[MQTT] Connection refused: rc=%s", reason_code)

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None):
        self._connected.clear()
        if self._running:
            logger.warning(
                "[MQTT] Disconnected (rc=%s), reconnecting every %.1fs",
                reason_code,
                self._settings.reconnect_period,
            )

    def _on_message(self, client, userdata, msg):
        self._messages_received += 1
        self._last_message_at = time.time()

        if self._handler is None:
            logger.warning("[MQTT] No handler registered, dropping message topic=%s", msg.topic)
            return
        try:
            self._handler(msg.topic, msg.payload)
        except Exception:
            # Una excepción aquí mataría el thread de red de paho.
            self._handler_errors += 1
            logger.exception("[MQTT] Handler error (topic=%s)", msg.topic)

    def publish(self, topic: str, payload: bytes | str, qos: int = 1) -> PublishResult:
        """Publica un mensaje. Lanza PublishError si no se confirma."""
        if self._client is None or not self.is_connected:
            self._publish_failures += 1
            raise PublishError("Not connected to broker")

        info = self._client.publish(topic, payload, qos=qos)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self._publish_failures += 1
            raise PublishError(f"Publish rejected: {mqtt.error_string(info.rc)}")

        try:
            info.wait_for_publish(timeout=self._settings.publish_timeout)
        except (RuntimeError, ValueError) as e:
            self._publish_failures += 1
            raise PublishError(f"Publish failed: {e}") from e

        if not info.is_published():
            self._publish_failures += 1
            raise PublishError(
                f"Publish not confirmed within {self._settings.publish_timeout:.1f}s"
            )

        self._published += 1
        return PublishResult(topic=topic, mid=info.mid, qos=qos)

    def publish_command(self, device_id: str, command: Dict[str, Any]) -> PublishResult:
        """Envía un comando a driving/commands/<device_id> con la QoS de comandos."""
        topic = self._settings.command_topic(device_id)
        result = self.publish(topic, orjson.dumps(command), qos=self._settings.qos_commands)
        logger.info("[Command] %s: %s", device_id, command)
        return result

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    @property
    def stats(self) -> dict:
        return {
            "running": self._running,
            "connected": self.is_connected,
            "broker": f"{self._settings.broker_host}:{self._settings.broker_port}",
            "reconnect_count": max(0, self._connect_count - 1),
            "messages_received": self._messages_received,
            "handler_errors": self._handler_errors,
            "published": self._published,
            "publish_failures": self._publish_failures,
            "last_message_at": self._last_message_at,
        }

    def health_check(self) -> dict:
        return {
            "healthy": self.is_running and self.is_connected,
            "running": self.is_running,
            "connected": self.is_connected,
            "messages_received": self._messages_received,
        }
