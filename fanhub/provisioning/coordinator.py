"""Provisioning coordinator: runs a whole CSV batch through validation,
duplicate detection and capacity checks, then commits the accepted subset.

Two batch kinds share the same pipeline:

  register batch  → one new fan model plus its register map
  fan batch       → many fan instances placed on one floor

Per-row problems become rejections; call-level problems (missing floor or
model, duplicate model, capacity overflow) raise and nothing is written.
"""

from __future__ import annotations

import logging
import sqlite3
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Hashable, Iterable, Mapping

from fanhub.db import new_id, transaction, utcnow
from fanhub.errors import (
    CapacityExceeded,
    Conflict,
    DuplicateModel,
    FanModelNotFound,
    FloorNotFound,
    ValidationError,
)
from fanhub.provisioning.validator import (
    INT_MAX,
    KIND_FAN,
    KIND_REGISTER,
    MAX_RPM,
    FanDraft,
    RowRejection,
    validate_row,
)
from fanhub.records import (
    count_fans_for_model,
    fan_dict,
    fan_model_with_registers,
    find_fan_model,
    get_fan_model,
    get_floor,
)

logger = logging.getLogger(__name__)

DUPLICATE_REGISTER = "Duplicate register number in CSV"
DUPLICATE_FAN = "Duplicate FanId for this model in CSV"
FAN_EXISTS = "Fan already exists for this model"
NAME_TAKEN = "Fan name already exists for this floor"
CAPACITY_MESSAGE = "Exceeds model totalDevices limit"

# Header is line 1, so the first data row is line 2
FIRST_DATA_ROW = 2


@dataclass
class BatchResult:
    entity_key: str
    entity: Any = None
    inserted: int = 0
    rejected: list[RowRejection] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "insertedCount": self.inserted,
            "errorCount": len(self.rejected),
            "errors": [r.to_dict() for r in self.rejected],
            self.entity_key: self.entity,
        }


@dataclass(frozen=True)
class _Accepted:
    row: int
    row_data: dict
    draft: Any


def _collect(
    raw_rows: Iterable[Mapping[str, Any]],
    kind: str,
    key: Callable[[Any], Hashable],
    duplicate_reason: str,
) -> tuple[list[_Accepted], list[RowRejection]]:
    """Validate rows in order and drop within-batch duplicates of *key*."""
    accepted: list[_Accepted] = []
    rejected: list[RowRejection] = []
    seen: set[Hashable] = set()

    for offset, raw in enumerate(raw_rows):
        row_index = FIRST_DATA_ROW + offset
        result = validate_row(raw, kind, row_index)
        if isinstance(result, RowRejection):
            rejected.append(result)
            continue
        k = key(result)
        if k in seen:
            rejected.append(RowRejection(row_index, dict(raw), duplicate_reason))
            continue
        seen.add(k)
        accepted.append(_Accepted(row_index, dict(raw), result))

    return accepted, rejected


# ══════════════════════════════════════════════════════════════════
# REGISTER BATCH
# ══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ModelTarget:
    ip_address: str
    port: int
    total_devices: int

    def validate(self) -> None:
        if not self.ip_address or not self.ip_address.strip():
            raise ValidationError("Missing ipAddress, port or totalDevices")
        if not 1 <= self.port <= 65535:
            raise ValidationError("port must be between 1 and 65535", {"port": self.port})
        if self.total_devices < 1:
            raise ValidationError(
                "totalDevices must be at least 1", {"totalDevices": self.total_devices}
            )

    def as_details(self) -> dict:
        return {
            "ipAddress": self.ip_address,
            "port": self.port,
            "totalDevices": self.total_devices,
        }


def ingest_registers(
    conn: sqlite3.Connection,
    raw_rows: Iterable[Mapping[str, Any]],
    target: ModelTarget,
) -> BatchResult:
    """Create a fan model at *target* from a register-map CSV."""
    target.validate()
    ip_address = target.ip_address.strip()

    if find_fan_model(conn, ip_address, target.port) is not None:
        raise DuplicateModel("Fan model details already exist", target.as_details())

    accepted, rejected = _collect(
        raw_rows, KIND_REGISTER, key=lambda d: d.register, duplicate_reason=DUPLICATE_REGISTER
    )
    result = BatchResult(entity_key="fanModel", rejected=rejected)
    if not accepted:
        logger.info(
            "Register import for %s:%d accepted no rows (%d rejected)",
            ip_address, target.port, len(rejected),
        )
        return result

    model_id = new_id()
    now = utcnow()
    with transaction(conn):
        # Another import may have claimed the endpoint since the first check
        if find_fan_model(conn, ip_address, target.port) is not None:
            raise DuplicateModel("Fan model details already exist", target.as_details())
        conn.execute(
            """INSERT INTO fan_models (id, ip_address, port, total_devices, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (model_id, ip_address, target.port, target.total_devices, now, now),
        )
        conn.executemany(
            """INSERT INTO fan_registers
               (model_id, position, register, description, access, value_range)
               VALUES (?, ?, ?, ?, ?, ?)""",
            [
                (model_id, pos, d.register, d.description, d.access, d.value_range)
                for pos, d in enumerate(a.draft for a in accepted)
            ],
        )

    result.inserted = len(accepted)
    result.entity = fan_model_with_registers(conn, model_id)
    logger.info(
        "Created fan model %s at %s:%d with %d registers (%d rejected)",
        model_id, ip_address, target.port, result.inserted, len(rejected),
    )
    return result


# ══════════════════════════════════════════════════════════════════
# FAN BATCH
# ══════════════════════════════════════════════════════════════════

def _fan_key(d: FanDraft) -> tuple[str, int]:
    return (d.fan_model_id, d.device_id)


def _check_capacity(conn: sqlite3.Connection, accepted: list[_Accepted]) -> dict[str, dict]:
    """Abort the batch if any model group is larger than its capacity."""
    grouped = Counter(a.draft.fan_model_id for a in accepted)
    models: dict[str, dict] = {}
    for model_id, received in grouped.items():
        model = get_fan_model(conn, model_id)
        if model is None:
            raise FanModelNotFound(model_id)
        if received > model["total_devices"]:
            raise CapacityExceeded(
                CAPACITY_MESSAGE,
                {"modelId": model_id, "allowed": model["total_devices"], "received": received},
            )
        models[model_id] = model
    return models


def _fan_exists(conn: sqlite3.Connection, draft: FanDraft) -> bool:
    return conn.execute(
        "SELECT 1 FROM fans WHERE fan_model_id = ? AND device_id = ?",
        (draft.fan_model_id, draft.device_id),
    ).fetchone() is not None


def _floor_names(conn: sqlite3.Connection, floor_id: str) -> set[str]:
    rows = conn.execute("SELECT name FROM fans WHERE floor_id = ?", (floor_id,)).fetchall()
    return {r["name"] for r in rows}


def ingest_fans(
    conn: sqlite3.Connection,
    raw_rows: Iterable[Mapping[str, Any]],
    floor_id: str,
) -> BatchResult:
    """Place the fans described by a CSV onto *floor_id*."""
    if not floor_id:
        raise ValidationError("Missing floorId")
    if get_floor(conn, floor_id) is None:
        raise FloorNotFound(floor_id)

    accepted, rejected = _collect(
        raw_rows, KIND_FAN, key=_fan_key, duplicate_reason=DUPLICATE_FAN
    )
    models = _check_capacity(conn, accepted)

    result = BatchResult(entity_key="fans", entity=[], rejected=rejected)
    if not accepted:
        return result

    now = utcnow()
    with transaction(conn):
        fresh: list[_Accepted] = []
        names = _floor_names(conn, floor_id)
        for a in accepted:
            if _fan_exists(conn, a.draft):
                rejected.append(RowRejection(a.row, a.row_data, FAN_EXISTS))
            elif a.draft.name in names:
                rejected.append(RowRejection(a.row, a.row_data, NAME_TAKEN))
            else:
                names.add(a.draft.name)
                fresh.append(a)

        # Re-count under the writer lock so concurrent imports cannot
        # jointly exceed a model's capacity.
        for model_id, new_count in Counter(a.draft.fan_model_id for a in fresh).items():
            existing = count_fans_for_model(conn, model_id)
            allowed = models[model_id]["total_devices"]
            if existing + new_count > allowed:
                raise CapacityExceeded(
                    CAPACITY_MESSAGE,
                    {
                        "modelId": model_id,
                        "allowed": allowed,
                        "existing": existing,
                        "received": new_count,
                    },
                )

        records = [
            {
                "id": new_id(),
                "floor_id": floor_id,
                "fan_model_id": a.draft.fan_model_id,
                "device_id": a.draft.device_id,
                "name": a.draft.name,
                "rpm": a.draft.rpm,
                "status": a.draft.status,
                "created_at": now,
                "updated_at": now,
            }
            for a in fresh
        ]
        conn.executemany(
            """INSERT INTO fans
               (id, floor_id, fan_model_id, device_id, name, rpm, status, created_at, updated_at)
               VALUES (:id, :floor_id, :fan_model_id, :device_id, :name, :rpm, :status,
                       :created_at, :updated_at)""",
            records,
        )

    rejected.sort(key=lambda r: r.row)
    result.inserted = len(records)
    result.entity = [fan_dict(r) for r in records]
    logger.info(
        "Imported %d fans onto floor %s (%d rejected)",
        result.inserted, floor_id, len(rejected),
    )
    return result


def add_fan(
    conn: sqlite3.Connection,
    floor_id: str,
    fan_model_id: str,
    device_id: int,
    name: str,
    rpm: int = 0,
) -> dict:
    """Place a single fan; same capacity and uniqueness rules as a batch."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("Fan name is required")
    if not 0 <= rpm <= MAX_RPM:
        raise ValidationError(f"rpm must be between 0 and {MAX_RPM}", {"rpm": rpm})
    if not 0 <= device_id <= INT_MAX:
        raise ValidationError("deviceId is out of range", {"deviceId": device_id})
    if get_floor(conn, floor_id) is None:
        raise FloorNotFound(floor_id)
    model = get_fan_model(conn, fan_model_id)
    if model is None:
        raise FanModelNotFound(fan_model_id)

    draft = FanDraft(device_id=device_id, name=name, fan_model_id=fan_model_id, rpm=rpm)
    now = utcnow()
    record = {
        "id": new_id(),
        "floor_id": floor_id,
        "fan_model_id": fan_model_id,
        "device_id": device_id,
        "name": name,
        "rpm": rpm,
        "status": draft.status,
        "created_at": now,
        "updated_at": now,
    }
    with transaction(conn):
        taken = conn.execute(
            "SELECT 1 FROM fans WHERE floor_id = ? AND name = ?", (floor_id, name)
        ).fetchone()
        if taken:
            raise Conflict(NAME_TAKEN, {"name": name})
        if _fan_exists(conn, draft):
            raise Conflict(FAN_EXISTS, {"fanModelId": fan_model_id, "deviceId": device_id})
        existing = count_fans_for_model(conn, fan_model_id)
        if existing + 1 > model["total_devices"]:
            raise CapacityExceeded(
                CAPACITY_MESSAGE,
                {
                    "modelId": fan_model_id,
                    "allowed": model["total_devices"],
                    "existing": existing,
                    "received": 1,
                },
            )
        conn.execute(
            """INSERT INTO fans
               (id, floor_id, fan_model_id, device_id, name, rpm, status, created_at, updated_at)
               VALUES (:id, :floor_id, :fan_model_id, :device_id, :name, :rpm, :status,
                       :created_at, :updated_at)""",
            record,
        )

    logger.info("Added fan %s (%s #%d) to floor %s", record["id"], fan_model_id, device_id, floor_id)
    return fan_dict(record)
