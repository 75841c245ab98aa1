"""MQTT para el bridge.

Estructura modular:
- transport.py: conexión paho, suscripciones, publish de comandos
- worker.py: cola acotada entre el callback de paho y el dispatcher
- validators.py: esquemas de los payloads del dispositivo
"""

from .transport import MQTTTransport, PublishResult
from .worker import IngestWorker

__all__ = [
    "MQTTTransport",
    "PublishResult",
    "IngestWorker",
]
