"""Ingest worker: desacopla el callback de paho del procesamiento.

El callback de paho solo encola (topic, payload) en una cola acotada y
retorna. UN thread consume la cola y llama al dispatcher, así que los
mensajes se procesan en el orden en que el broker los entregó.

Cola llena: el mensaje se descarta con warning. Telemetría es QoS 0 y las
alertas/status dependen del reenvío del propio dispositivo/broker.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import TYPE_CHECKING, Optional, Tuple

if TYPE_CHECKING:
    from ..dispatcher import IngestDispatcher

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1000


class IngestWorker:
    """Cola acotada + thread consumidor delante del dispatcher."""

    def __init__(
        self,
        dispatcher: IngestDispatcher,
        max_queue_size: int = DEFAULT_QUEUE_SIZE,
    ):
        self._dispatcher = dispatcher
        self._queue: "queue.Queue[Tuple[str, bytes]]" = queue.Queue(maxsize=max_queue_size)
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        # Metrics
        self._enqueued = 0
        self._dropped = 0
        self._lock = threading.Lock()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._worker_loop,
            daemon=True,
            name="ingest-worker",
        )
        self._thread.start()
        logger.info("[WORKER] Started queue_max=%d", self._queue.maxsize)

    def stop(self, drain: bool = True) -> None:
        """Detiene el worker. Con drain=True procesa lo pendiente antes."""
        if drain and self.is_running:
            self.join()
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None
        logger.info("[WORKER] Stopped. %s", self.metrics)

    def enqueue(self, topic: str, payload: bytes) -> bool:
        """Encola un mensaje. Retorna False si la cola está llena."""
        try:
            self._queue.put_nowait((topic, payload))
        except queue.Full:
            with self._lock:
                self._dropped += 1
            logger.warning("[WORKER] Queue full, dropped message topic=%s", topic)
            return False

        with self._lock:
            self._enqueued += 1
        return True

    def join(self) -> None:
        """Bloquea hasta que todos los mensajes encolados fueron procesados."""
        self._queue.join()

    def _worker_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                topic, payload = self._queue.get(timeout=0.5)
            except queue.Empty:
                continue

            try:
                # El dispatcher no lanza; el outcome fallido ya quedó logueado.
                self._dispatcher.handle(topic, payload)
            except Exception:
                logger.exception("[WORKER] Dispatcher raised for topic=%s", topic)
            finally:
                self._queue.task_done()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def metrics(self) -> dict:
        with self._lock:
            return {
                "queue_depth": self._queue.qsize(),
                "queue_max": self._queue.maxsize,
                "enqueued": self._enqueued,
                "dropped": self._dropped,
            }
