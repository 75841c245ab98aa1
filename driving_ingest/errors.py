"""Errores del bridge.

Taxonomía:
- PayloadError: JSON inválido, esquema incorrecto, tipo o topic desconocido.
  El mensaje se descarta.
- StorageError: fallo del motor de BD en una operación de escritura/lectura.
- TransportError / PublishError: fallos del broker MQTT visibles para quien
  envía comandos. Nunca se reintentan aquí.
"""

from __future__ import annotations


class IngestError(Exception):
    """Base de todos los errores de ingesta."""

    error_type = "ingest_error"


class PayloadError(IngestError):
    error_type = "payload_error"


class StorageError(IngestError):
    error_type = "storage_error"


class TransportError(IngestError):
    error_type = "transport_error"


class PublishError(TransportError):
    error_type = "publish_error"
