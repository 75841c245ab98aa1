"""Endpoints de alertas."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..schemas import AlertHistoryRow, AlertKind, AlertOut, AlertSummaryRow
from ..storage import DrivingStore
from .deps import get_store

router = APIRouter(prefix="/api/alerts", tags=["alerts"])


@router.get("", response_model=List[AlertOut])
def list_alerts(
    device: Optional[str] = None,
    kind: Optional[AlertKind] = None,
    limit: int = Query(50, ge=1, le=1000),
    store: DrivingStore = Depends(get_store),
):
    """Alertas más recientes, filtrables por dispositivo y tipo."""
    return store.query_alerts(
        device_id=device,
        kind=kind.value if kind is not None else None,
        limit=limit,
    )


@router.get("/summary", response_model=List[AlertSummaryRow])
def alert_summary(device: Optional[str] = None, store: DrivingStore = Depends(get_store)):
    return store.alert_summary(device_id=device)


@router.get("/history", response_model=List[AlertHistoryRow])
def alert_history(
    device: Optional[str] = None,
    hours: int = Query(24, ge=1, le=24 * 31),
    store: DrivingStore = Depends(get_store),
):
    """Histograma horario de alertas en las últimas `hours` horas."""
    return store.alert_history(device_id=device, hours=hours)
