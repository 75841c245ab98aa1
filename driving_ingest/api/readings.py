"""Endpoints de lecturas del acelerómetro y batches.

El router se monta en /api/readings y en /api/batches.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..schemas import BatchSummary, ReadingOut
from ..storage import DrivingStore
from .deps import get_store

router = APIRouter(tags=["readings"])


@router.get("/latest", response_model=List[ReadingOut])
def latest_readings(
    device: Optional[str] = None,
    limit: int = Query(500, ge=1, le=10000),
    store: DrivingStore = Depends(get_store),
):
    return store.query_latest_readings(device_id=device, limit=limit)


@router.get("/batches", response_model=List[BatchSummary])
def list_batches(
    device: Optional[str] = None,
    limit: int = Query(10, ge=1, le=1000),
    store: DrivingStore = Depends(get_store),
):
    return store.query_batches(device_id=device, limit=limit)


@router.get("/batches/{batch_id}", response_model=List[ReadingOut])
def batch_readings(batch_id: int, store: DrivingStore = Depends(get_store)):
    return store.query_readings(batch_id)
