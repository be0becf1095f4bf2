"""Fan endpoints: CSV import, single placement, listings and plain HTTP control.

The control routes here write state but do not broadcast; live observers
only hear about changes made through the WebSocket control channel.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel, Field

from fanhub.auth import current_user, require_super_admin
from fanhub.control.controller import set_multiple, set_speed, set_status
from fanhub.db import get_db
from fanhub.errors import FanModelNotFound, FanNotFound, FloorNotFound, ValidationError
from fanhub.provisioning import FAN_COLUMNS, ingest_fans, read_rows, stored_upload
from fanhub.provisioning.coordinator import add_fan
from fanhub.records import fans_joined, get_fan_model, get_floor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/fan", tags=["fans"])

# RPM is optional in the file
_REQUIRED_FAN_COLUMNS = FAN_COLUMNS[:3]


class FanCreateRequest(BaseModel):
    model_config = {"populate_by_name": True}

    floor_id: str = Field(alias="floorId")
    fan_model_id: str = Field(alias="fanModelId")
    device_id: int = Field(alias="deviceId", ge=0)
    name: str
    rpm: int = 0


class SpeedRequest(BaseModel):
    rpm: Any = None


class StatusRequest(BaseModel):
    status: str | None = None


class SpeedCommand(BaseModel):
    model_config = {"populate_by_name": True}

    floor_id: str = Field(alias="floorId")
    fan_id: str = Field(alias="fanId")
    rpm: Any = None


class BulkSpeedRequest(BaseModel):
    model_config = {"populate_by_name": True}

    floor_id: str = Field(alias="floorId")
    fans: list[dict[str, Any]]


# ══════════════════════════════════════════════════════════════════
# PROVISIONING
# ══════════════════════════════════════════════════════════════════

@router.post("/upload-fans", status_code=201)
async def upload_fans(
    file: UploadFile | None = File(None),
    floor_id: str | None = Form(None, alias="floorId"),
    _: dict = Depends(require_super_admin),
):
    if file is None:
        raise ValidationError("No file uploaded")
    if not floor_id:
        raise ValidationError("Missing floorId")

    with stored_upload(file.file) as path:
        records = read_rows(path, required_columns=_REQUIRED_FAN_COLUMNS)
    result = ingest_fans(get_db(), records, floor_id)
    logger.info(
        "Fan upload %s for floor %s: %d inserted, %d rejected",
        file.filename, floor_id, result.inserted, len(result.rejected),
    )
    return result.to_dict()


@router.post("", status_code=201)
async def create_fan(req: FanCreateRequest, _: dict = Depends(require_super_admin)):
    return add_fan(get_db(), req.floor_id, req.fan_model_id, req.device_id, req.name, req.rpm)


# ══════════════════════════════════════════════════════════════════
# LISTINGS
# ══════════════════════════════════════════════════════════════════

@router.get("")
async def list_fans(_: dict = Depends(current_user)):
    return fans_joined(get_db())


@router.get("/model/{model_id}")
async def list_fans_for_model(model_id: str, _: dict = Depends(current_user)):
    conn = get_db()
    if get_fan_model(conn, model_id) is None:
        raise FanModelNotFound(model_id)
    return fans_joined(conn, "WHERE f.fan_model_id = ?", (model_id,))


@router.get("/{floor_id}/fans")
async def list_fans_on_floor(floor_id: str, _: dict = Depends(current_user)):
    conn = get_db()
    if get_floor(conn, floor_id) is None:
        raise FloorNotFound(floor_id)
    return fans_joined(conn, "WHERE f.floor_id = ?", (floor_id,))


@router.get("/{floor_id}/fans/{fan_id}")
async def get_fan_on_floor(floor_id: str, fan_id: str, _: dict = Depends(current_user)):
    found = fans_joined(get_db(), "WHERE f.id = ? AND f.floor_id = ?", (fan_id, floor_id))
    if not found:
        raise FanNotFound(fan_id)
    return found[0]


# ══════════════════════════════════════════════════════════════════
# CONTROL
# ══════════════════════════════════════════════════════════════════

@router.put("/speed")
async def speed_command(req: SpeedCommand, _: dict = Depends(require_super_admin)):
    return set_speed(get_db(), req.floor_id, req.fan_id, req.rpm)


@router.put("/speed/bulk")
async def bulk_speed(req: BulkSpeedRequest, _: dict = Depends(require_super_admin)):
    summary = set_multiple(get_db(), req.floor_id, req.fans)
    if not summary.floor_found:
        raise FloorNotFound(req.floor_id)
    return summary.to_dict()


@router.put("/{floor_id}/fans/{fan_id}/speed")
async def update_speed(
    floor_id: str, fan_id: str, req: SpeedRequest, _: dict = Depends(require_super_admin)
):
    return set_speed(get_db(), floor_id, fan_id, req.rpm)


@router.put("/{floor_id}/fans/{fan_id}/status")
async def update_status(
    floor_id: str, fan_id: str, req: StatusRequest, _: dict = Depends(require_super_admin)
):
    return set_status(get_db(), floor_id, fan_id, req.status)
