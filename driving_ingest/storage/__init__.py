"""Persistencia SQLite de alertas y lecturas."""

from .store import (
    AlertRecord,
    DrivingStore,
    ReceivedClock,
    calculated_timestamp,
)
from .schema import create_schema

__all__ = [
    "AlertRecord",
    "DrivingStore",
    "ReceivedClock",
    "calculated_timestamp",
    "create_schema",
]
