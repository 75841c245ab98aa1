from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from .config import Settings, get_settings


logger = logging.getLogger(__name__)

# Milisegundos que un escritor espera el lock de SQLite antes de fallar.
BUSY_TIMEOUT_MS = 5000


def build_sqlalchemy_url(settings: Settings) -> str:
    if settings.db_path == ":memory:":
        return "sqlite+pysqlite:///:memory:"
    return f"sqlite+pysqlite:///{Path(settings.db_path).resolve()}"


def _configure_sqlite(dbapi_connection, connection_record) -> None:
    # WAL: los lectores no bloquean al escritor ni ven transacciones a medias.
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
        cursor.execute("PRAGMA synchronous=NORMAL")
    finally:
        cursor.close()


def get_engine(settings: Settings | None = None) -> Engine:
    settings = settings or get_settings()
    url = build_sqlalchemy_url(settings)

    logger.info("[DB] Opening SQLite database path=%s", settings.db_path)

    kwargs = {}
    if settings.db_path == ":memory:":
        # Una sola conexión compartida; si no, cada conexión ve una BD vacía distinta.
        kwargs["poolclass"] = StaticPool

    engine = create_engine(
        url,
        pool_pre_ping=True,
        future=True,
        # El receptor MQTT y los endpoints usan conexiones desde threads distintos.
        connect_args={"check_same_thread": False},
        **kwargs,
    )
    event.listen(engine, "connect", _configure_sqlite)

    # Test de conexión: ayuda a ver en logs si el bridge realmente llega a la BD
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("[DB] Connection test OK")
    except Exception:
        logger.exception("[DB] Connection test FAILED")
        raise

    return engine
