"""Fan model endpoints: register-map CSV import and model listings."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, Form, UploadFile

from fanhub.auth import current_user, require_super_admin
from fanhub.db import get_db, rows
from fanhub.errors import FanModelNotFound, ReferenceNotFound, ValidationError
from fanhub.provisioning import REGISTER_COLUMNS, ModelTarget, ingest_registers, read_rows, stored_upload
from fanhub.records import fan_model_with_registers

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/fanmodel", tags=["fan models"])


def _form_int(name: str, value: str | None) -> int:
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValidationError(f"{name} must be an integer", {name: value})


@router.post("/upload-fanmodel", status_code=201)
async def upload_fan_model(
    file: UploadFile | None = File(None),
    ip_address: str | None = Form(None, alias="ipAddress"),
    port: str | None = Form(None),
    total_devices: str | None = Form(None, alias="totalDevices"),
    _: dict = Depends(require_super_admin),
):
    if file is None:
        raise ValidationError("No file uploaded")
    if not ip_address or not port or not total_devices:
        raise ValidationError("Missing ipAddress, port or totalDevices")

    target = ModelTarget(
        ip_address=ip_address.strip(),
        port=_form_int("port", port),
        total_devices=_form_int("totalDevices", total_devices),
    )
    with stored_upload(file.file) as path:
        records = read_rows(path, required_columns=REGISTER_COLUMNS)
    result = ingest_registers(get_db(), records, target)
    logger.info(
        "Register upload %s for %s:%d: %d inserted, %d rejected",
        file.filename, target.ip_address, target.port, result.inserted, len(result.rejected),
    )
    return result.to_dict()


@router.get("")
async def list_fan_models(_: dict = Depends(current_user)):
    conn = get_db()
    ids = [r["id"] for r in rows(conn.execute("SELECT id FROM fan_models ORDER BY created_at"))]
    if not ids:
        raise ReferenceNotFound("No fan models found")
    return [fan_model_with_registers(conn, model_id) for model_id in ids]


@router.get("/{model_id}")
async def get_fan_model(model_id: str, _: dict = Depends(current_user)):
    model = fan_model_with_registers(get_db(), model_id)
    if model is None:
        raise FanModelNotFound(model_id)
    return model
