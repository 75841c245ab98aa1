"""Contadores del pipeline de ingesta."""

from __future__ import annotations

import threading
import time
from collections import Counter


class IngestStats:
    """Estadísticas del dispatcher (escritas por el worker, leídas por la API)."""

    def __init__(self):
        self._lock = threading.Lock()
        self.received = 0
        self.processed = 0
        self.failed = 0
        self.last_message_at: float = 0
        self._by_kind: Counter = Counter()
        self._errors: Counter = Counter()

    def record(self, kind: str, ok: bool, error_type: str | None = None) -> None:
        with self._lock:
            self.received += 1
            self.last_message_at = time.time()
            self._by_kind[kind] += 1
            if ok:
                self.processed += 1
            else:
                self.failed += 1
                self._errors[error_type or "unknown"] += 1

    def __str__(self) -> str:
        return (
            f"Stats: received={self.received} processed={self.processed} "
            f"failed={self.failed}"
        )

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "received": self.received,
                "processed": self.processed,
                "failed": self.failed,
                "last_message_at": self.last_message_at,
                "by_kind": dict(self._by_kind),
                "errors": dict(self._errors),
            }
