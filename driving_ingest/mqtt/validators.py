"""Validadores de payloads MQTT del dispositivo.

Cada tipo de mensaje es una variante con esquema estricto:

- Alerta crash:    {"type":"crash","ts":12345,"mag":8.5,"dev":"d1"}
- Alerta warning:  {"type":"warning","event":"harsh_braking","ts":12345,"x":0.1,"y":-4.5}
- Batch telemetry: {"ts":12345,"rate":100,"n":500,"d":[[x,y,z],...]}
- Status:          {"dev":"d1","crash":3.0,"braking":2.0,"accel":1.5,"cornering":2.0}

Todo lo que no encaja en una variante se rechaza con PayloadError. Los campos
numéricos son estrictos: true o "8.5" no cuentan como números (un entero sí
vale donde se espera float).
"""

from __future__ import annotations

import logging
import math
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

import orjson
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictInt,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from ..errors import PayloadError

logger = logging.getLogger(__name__)

UNKNOWN_DEVICE = "unknown"

ALERT_TYPES = ("crash", "warning")


class _DevicePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    dev: str = UNKNOWN_DEVICE

    @field_validator("dev", mode="before")
    @classmethod
    def default_device(cls, v):
        # "dev": null o "" cuentan como ausentes; un id numérico se guarda como texto.
        if v is None or (isinstance(v, str) and not v.strip()):
            return UNKNOWN_DEVICE
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


def _finite(v: float) -> float:
    if math.isnan(v) or math.isinf(v):
        raise ValueError("value must be finite")
    return v


class CrashAlertPayload(_DevicePayload):
    type: Literal["crash"]
    ts: StrictInt
    mag: StrictFloat

    @field_validator("mag")
    @classmethod
    def validate_mag(cls, v):
        return _finite(v)


class WarningAlertPayload(_DevicePayload):
    type: Literal["warning"]
    event: str = Field(..., min_length=1)
    ts: StrictInt
    x: StrictFloat
    y: StrictFloat

    @field_validator("x", "y")
    @classmethod
    def validate_accel(cls, v):
        return _finite(v)


AlertPayload = Annotated[
    Union[CrashAlertPayload, WarningAlertPayload],
    Field(discriminator="type"),
]

_alert_adapter: TypeAdapter = TypeAdapter(AlertPayload)


class TelemetryBatchPayload(_DevicePayload):
    ts: StrictInt
    rate: StrictInt = Field(..., gt=0)
    # Informativo: el número de filas escritas es len(d).
    n: StrictInt
    d: List[Tuple[StrictFloat, StrictFloat, StrictFloat]]

    @property
    def sample_count(self) -> int:
        return len(self.d)

    @property
    def declared_mismatch(self) -> bool:
        return self.n != len(self.d)


class StatusPayload(_DevicePayload):
    # Reemplazo completo: un umbral ausente queda en None.
    crash: Optional[StrictFloat] = None
    braking: Optional[StrictFloat] = None
    accel: Optional[StrictFloat] = None
    cornering: Optional[StrictFloat] = None

    def thresholds(self) -> Dict[str, Optional[float]]:
        return {
            "crash": self.crash,
            "braking": self.braking,
            "accel": self.accel,
            "cornering": self.cornering,
        }


def decode_json(payload: bytes | str) -> Dict[str, Any]:
    """Decodifica el payload; solo se aceptan objetos JSON."""
    try:
        data = orjson.loads(payload)
    except orjson.JSONDecodeError as e:
        raise PayloadError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise PayloadError(f"Expected JSON object, got {type(data).__name__}")
    return data


def _schema_error(kind: str, e: ValidationError) -> PayloadError:
    fields = ", ".join(
        ".".join(str(p) for p in err["loc"]) or "<root>" for err in e.errors()
    )
    return PayloadError(f"Invalid {kind} payload ({fields}): {e.error_count()} error(s)")


def parse_alert(data: Dict[str, Any]) -> Union[CrashAlertPayload, WarningAlertPayload]:
    alert_type = data.get("type")
    if alert_type not in ALERT_TYPES:
        raise PayloadError(f"Unknown alert type: {alert_type!r}")
    try:
        return _alert_adapter.validate_python(data)
    except ValidationError as e:
        raise _schema_error(f"{alert_type} alert", e) from e


def parse_telemetry(data: Dict[str, Any]) -> TelemetryBatchPayload:
    try:
        return TelemetryBatchPayload.model_validate(data)
    except ValidationError as e:
        raise _schema_error("telemetry", e) from e


def parse_status(data: Dict[str, Any]) -> StatusPayload:
    try:
        return StatusPayload.model_validate(data)
    except ValidationError as e:
        raise _schema_error("status", e) from e
