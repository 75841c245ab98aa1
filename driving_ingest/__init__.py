"""Bridge MQTT -> SQLite para el monitor de conducción."""

__version__ = "0.4.0"
