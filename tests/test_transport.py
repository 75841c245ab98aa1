"""Tests del transporte MQTT con el cliente paho mockeado."""

from unittest.mock import MagicMock, patch

import paho.mqtt.client as mqtt
import pytest

from common.config import MQTTSettings
from driving_ingest.errors import PublishError
from driving_ingest.mqtt.transport import MQTTTransport


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def mqtt_settings() -> MQTTSettings:
    return MQTTSettings(broker_host="broker.local", broker_port=1884, client_id="bridge-test")


@pytest.fixture
def mock_client():
    """Mock del cliente paho (sin red)."""
    with patch("driving_ingest.mqtt.transport.mqtt.Client") as client_cls:
        client = MagicMock()
        client_cls.return_value = client
        yield client


@pytest.fixture
def transport(mqtt_settings, mock_client) -> MQTTTransport:
    t = MQTTTransport(mqtt_settings)
    t.start(wait=False)
    return t


def _connect(transport: MQTTTransport, client: MagicMock, rc=0) -> None:
    transport._on_connect(client, None, {}, rc, None)


def _publish_info(rc=mqtt.MQTT_ERR_SUCCESS, published=True, mid=7):
    info = MagicMock()
    info.rc = rc
    info.mid = mid
    info.is_published.return_value = published
    return info


# =============================================================================
# CONEXIÓN Y SUSCRIPCIONES
# =============================================================================

class TestConnection:

    def test_start_connects_async_and_starts_loop(self, transport, mock_client):
        mock_client.connect_async.assert_called_once_with("broker.local", 1884, keepalive=60)
        mock_client.loop_start.assert_called_once()
        mock_client.reconnect_delay_set.assert_called_once_with(min_delay=1.0, max_delay=1.0)
        assert mock_client.connect_timeout == 4.0
        assert transport.is_running is True
        assert transport.is_connected is False

    def test_credentials_applied(self, mock_client):
        settings = MQTTSettings(username="user", password="secret")
        MQTTTransport(settings).start(wait=False)

        mock_client.username_pw_set.assert_called_once_with("user", "secret")

    def test_subscribes_all_topics_with_qos_on_connect(self, transport, mock_client):
        _connect(transport, mock_client)

        mock_client.subscribe.assert_any_call("driving/alerts", qos=1)
        mock_client.subscribe.assert_any_call("driving/telemetry", qos=0)
        mock_client.subscribe.assert_any_call("driving/status", qos=1)
        assert mock_client.subscribe.call_count == 3
        assert transport.is_connected is True

    def test_resubscribes_after_reconnect(self, transport, mock_client):
        """Clean session: las suscripciones se rehacen en cada conexión."""
        _connect(transport, mock_client)
        transport._on_disconnect(mock_client, None, None, 7, None)
        assert transport.is_connected is False

        _connect(transport, mock_client)

        assert mock_client.subscribe.call_count == 6
        assert transport.stats["reconnect_count"] == 1

    def test_refused_connection_does_not_subscribe(self, transport, mock_client):
        _connect(transport, mock_client, rc=5)

        mock_client.subscribe.assert_not_called()
        assert transport.is_connected is False

    def test_stop(self, transport, mock_client):
        _connect(transport, mock_client)
        transport.stop()

        mock_client.disconnect.assert_called_once()
        mock_client.loop_stop.assert_called_once()
        assert transport.is_running is False
        assert transport.health_check()["healthy"] is False


# =============================================================================
# MENSAJES ENTRANTES
# =============================================================================

class TestIncomingMessages:

    def test_handler_receives_topic_and_payload(self, transport, mock_client):
        handler = MagicMock()
        transport.set_message_handler(handler)

        msg = MagicMock(topic="driving/alerts", payload=b'{"type":"crash"}')
        transport._on_message(mock_client, None, msg)

        handler.assert_called_once_with("driving/alerts", b'{"type":"crash"}')
        assert transport.stats["messages_received"] == 1

    def test_handler_exception_is_contained(self, transport, mock_client):
        transport.set_message_handler(MagicMock(side_effect=RuntimeError("boom")))

        transport._on_message(mock_client, None, MagicMock(topic="driving/status", payload=b"{}"))

        assert transport.stats["handler_errors"] == 1

    def test_no_handler_drops_message(self, transport, mock_client):
        transport._on_message(mock_client, None, MagicMock(topic="driving/status", payload=b"{}"))
        assert transport.stats["messages_received"] == 1


# =============================================================================
# PUBLISH
# =============================================================================

class TestPublish:

    def test_publish_when_disconnected_fails(self, transport, mock_client):
        with pytest.raises(PublishError, match="Not connected"):
            transport.publish("driving/commands/d1", b"{}")

        mock_client.publish.assert_not_called()
        assert transport.stats["publish_failures"] == 1

    def test_publish_success(self, transport, mock_client):
        _connect(transport, mock_client)
        mock_client.publish.return_value = _publish_info(mid=42)

        result = transport.publish("driving/commands/d1", b"{}", qos=1)

        assert result.mid == 42
        assert result.topic == "driving/commands/d1"
        assert transport.stats["published"] == 1

    def test_rejected_publish_is_not_retried(self, transport, mock_client):
        _connect(transport, mock_client)
        mock_client.publish.return_value = _publish_info(rc=mqtt.MQTT_ERR_NO_CONN)

        with pytest.raises(PublishError, match="rejected"):
            transport.publish("driving/commands/d1", b"{}")

        assert mock_client.publish.call_count == 1

    def test_unconfirmed_publish_fails(self, transport, mock_client):
        _connect(transport, mock_client)
        mock_client.publish.return_value = _publish_info(published=False)

        with pytest.raises(PublishError, match="not confirmed"):
            transport.publish("driving/commands/d1", b"{}")

    def test_wait_for_publish_error(self, transport, mock_client):
        _connect(transport, mock_client)
        info = _publish_info()
        info.wait_for_publish.side_effect = RuntimeError("connection lost")
        mock_client.publish.return_value = info

        with pytest.raises(PublishError, match="connection lost"):
            transport.publish("driving/commands/d1", b"{}")

    def test_publish_command_topic_payload_and_qos(self, transport, mock_client):
        _connect(transport, mock_client)
        mock_client.publish.return_value = _publish_info()

        transport.publish_command("d1", {"cmd": "set_threshold", "type": "crash", "value": 4.0})

        mock_client.publish.assert_called_once_with(
            "driving/commands/d1",
            b'{"cmd":"set_threshold","type":"crash","value":4.0}',
            qos=1,
        )
