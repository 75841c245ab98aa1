"""CLI del bridge: `serve` (API + ingesta MQTT) y `query` (consultas sobre la BD)."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from common.config import get_settings
from common.db import get_engine

from .errors import StorageError
from .storage import DrivingStore

logger = logging.getLogger(__name__)

QUERY_COMMANDS = ("alerts", "crashes", "warnings", "batches", "readings", "stats")

_RULE = "=" * 50


def _render_alerts(store: DrivingStore, device: Optional[str], limit: int) -> List[str]:
    rows = store.query_alerts(device_id=device, limit=limit)
    lines = [f"Recent alerts (last {limit}):", ""]
    if not rows:
        return lines + ["  No alerts recorded yet."]
    for row in rows:
        if row["type"] == "crash":
            lines.append(f"[{row['created_at']}] {row['device_id']} CRASH - magnitude: {row['accel_magnitude']}")
        else:
            lines.append(
                f"[{row['created_at']}] {row['device_id']} WARNING: {row['event']} - accel_y: {row['accel_y']}"
            )
    return lines


def _render_crashes(store: DrivingStore, device: Optional[str], limit: int) -> List[str]:
    rows = store.query_alerts(device_id=device, kind="crash", limit=limit)
    lines = ["Crash events:", ""]
    if not rows:
        return lines + ["  No crash events recorded."]
    for row in rows:
        lines.append(
            f"[{row['created_at']}] {row['device_id']} magnitude: {row['accel_magnitude']} "
            f"(device_ts: {row['device_timestamp']})"
        )
    return lines


def _render_warnings(store: DrivingStore, device: Optional[str], limit: int) -> List[str]:
    rows = store.query_alerts(device_id=device, kind="warning", limit=limit)
    lines = ["Warning events:", ""]
    if not rows:
        return lines + ["  No warning events recorded."]
    for row in rows:
        lines.append(f"[{row['created_at']}] {row['device_id']} {row['event']} - accel_y: {row['accel_y']}")
    return lines


def _render_batches(store: DrivingStore, device: Optional[str], limit: int) -> List[str]:
    rows = store.query_batches(device_id=device, limit=limit)
    lines = [f"Recent telemetry batches (last {limit}):", ""]
    if not rows:
        return lines + ["  No telemetry batches recorded yet."]
    for row in rows:
        lines.append(
            f"Batch #{row['batch_id']} ({row['device_id']}): "
            f"{row['sample_count']} samples @ {row['sample_rate_hz']}Hz"
        )
    return lines


def _render_readings(store: DrivingStore, device: Optional[str], limit: int) -> List[str]:
    rows = store.query_latest_readings(device_id=device, limit=limit)
    lines = [f"Recent sensor readings (last {limit}):", ""]
    if not rows:
        return lines + ["  No sensor readings recorded yet."]
    lines.append("  batch_id | index |    x     |    y     |    z")
    lines.append("  " + "-" * 50)
    for row in rows:
        lines.append(
            f"  {row['batch_id']:>8} | {row['sample_index']:>5} | "
            f"{row['x']:>8.4f} | {row['y']:>8.4f} | {row['z']:>8.4f}"
        )
    return lines


def _render_stats(store: DrivingStore, device: Optional[str], limit: int) -> List[str]:
    s = store.query_stats(device_id=device)
    return [
        "Database statistics:",
        "",
        "  Alerts:",
        f"    Total:    {s['total_alerts']}",
        f"    Crashes:  {s['crashes']}",
        f"    Warnings: {s['warnings']}",
        "",
        "  Telemetry:",
        f"    Batches:  {s['total_batches']}",
        f"    Readings: {s['total_readings']}",
    ]


_RENDERERS: Dict[str, Callable[[DrivingStore, Optional[str], int], List[str]]] = {
    "alerts": _render_alerts,
    "crashes": _render_crashes,
    "warnings": _render_warnings,
    "batches": _render_batches,
    "readings": _render_readings,
    "stats": _render_stats,
}


def render_query(
    store: DrivingStore,
    command: str,
    *,
    device: Optional[str] = None,
    limit: int = 20,
) -> List[str]:
    """Líneas de salida de un comando de consulta."""
    renderer = _RENDERERS.get(command)
    if renderer is None:
        raise ValueError(f"Unknown command: {command}")
    return renderer(store, device, limit)


def _run_query(args: argparse.Namespace) -> int:
    settings = get_settings()
    if args.db:
        settings = replace(settings, db_path=args.db)

    store = DrivingStore(get_engine(settings))
    try:
        store.init()
        lines = render_query(store, args.command, device=args.device, limit=args.limit)
    except StorageError as e:
        logger.error("Error opening database: %s", e)
        return 1
    finally:
        store.close()

    print(_RULE)
    print("  Driving Safety Monitor - Database Query")
    print(_RULE)
    print()
    for line in lines:
        print(line)
    return 0


def _run_serve(args: argparse.Namespace) -> int:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "driving_ingest.main:app",
        host=args.host or settings.http_host,
        port=args.port or settings.http_port,
        log_level="info",
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="driving-monitor", description="Driving monitor MQTT -> SQLite bridge")
    sub = p.add_subparsers(dest="action", required=True)

    serve = sub.add_parser("serve", help="run the HTTP API and the MQTT ingest")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.set_defaults(func=_run_serve)

    query = sub.add_parser("query", help="query the local database")
    query.add_argument("command", nargs="?", default="stats", choices=QUERY_COMMANDS)
    query.add_argument("--device", default=None, help="filter by device id")
    query.add_argument("--limit", type=int, default=20)
    query.add_argument("--db", default=None, help="database path (overrides DRIVING_DB_PATH)")
    query.set_defaults(func=_run_query)

    return p


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
