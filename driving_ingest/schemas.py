from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field, StrictFloat


MAX_THRESHOLD_VALUE = 50.0


class AlertKind(str, Enum):
    CRASH = "crash"
    WARNING = "warning"


class ThresholdKind(str, Enum):
    CRASH = "crash"
    BRAKING = "braking"
    ACCEL = "accel"
    CORNERING = "cornering"


class ThresholdCommandIn(BaseModel):
    type: ThresholdKind
    # Estricto: true o "5" no son números.
    value: StrictFloat = Field(..., ge=0.0, le=MAX_THRESHOLD_VALUE, allow_inf_nan=False)


class ThresholdCommandResult(BaseModel):
    success: bool
    device_id: str
    type: ThresholdKind
    value: float


class DeviceSummary(BaseModel):
    id: str
    connected: bool
    last_update: Optional[datetime] = None


class DeviceStatus(DeviceSummary):
    thresholds: Dict[str, Optional[float]] = Field(default_factory=dict)


class AlertOut(BaseModel):
    id: int
    device_id: str
    type: AlertKind
    event: Optional[str] = None
    device_timestamp: Optional[int] = None
    accel_magnitude: Optional[float] = None
    accel_x: Optional[float] = None
    accel_y: Optional[float] = None
    received_at: int
    created_at: Optional[str] = None


class AlertSummaryRow(BaseModel):
    type: AlertKind
    event: Optional[str] = None
    count: int


class AlertHistoryRow(BaseModel):
    hour: str
    type: AlertKind
    count: int


class ReadingOut(BaseModel):
    batch_id: int
    device_id: str
    sample_index: int
    x: float
    y: float
    z: float
    calculated_timestamp: int


class BatchSummary(BaseModel):
    batch_id: int
    device_id: str
    batch_start_timestamp: int
    sample_rate_hz: int
    sample_count: int
    received_at: int


class StatsOut(BaseModel):
    total_alerts: int
    crashes: int
    warnings: int
    total_readings: int
    total_batches: int


class ResetResult(BaseModel):
    success: bool
    deleted: int
