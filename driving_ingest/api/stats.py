"""Estadísticas agregadas y reset de alertas.

Montado en /api/stats y /api/score.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends

from ..schemas import ResetResult, StatsOut
from ..storage import DrivingStore
from .deps import get_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["stats"])


@router.get("", response_model=StatsOut)
def get_stats(device: Optional[str] = None, store: DrivingStore = Depends(get_store)):
    return store.query_stats(device_id=device)


@router.post("/reset", response_model=ResetResult)
def reset_score(device: Optional[str] = None, store: DrivingStore = Depends(get_store)):
    """Reinicia el puntaje borrando las alertas (del dispositivo o todas)."""
    deleted = store.delete_alerts(device_id=device)
    if device:
        logger.info("[Reset] Cleared %d alerts for device %s", deleted, device)
    else:
        logger.info("[Reset] Cleared all alerts (%d)", deleted)
    return ResetResult(success=True, deleted=deleted)
