"""Floor and layout endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from fanhub import floors
from fanhub.auth import current_user, require_super_admin
from fanhub.db import get_db
from fanhub.errors import FloorNotFound
from fanhub.records import floor_with_layout, get_floor

router = APIRouter(prefix="/floor", tags=["floors"])


class FloorCreateRequest(BaseModel):
    name: str
    file: str | None = None


class FloorUpdateRequest(BaseModel):
    name: str | None = None
    file: str | None = None


class LayoutMetaRequest(BaseModel):
    meta: Any = None


@router.post("", status_code=201)
async def create_floor(req: FloorCreateRequest, _: dict = Depends(require_super_admin)):
    return floors.create_floor(get_db(), req.name, req.file)


@router.get("")
async def list_floors(_: dict = Depends(current_user)):
    return floors.list_floors(get_db())


@router.get("/get/{floor_id}")
async def get_floor_by_id(floor_id: str, _: dict = Depends(current_user)):
    conn = get_db()
    floor = get_floor(conn, floor_id)
    if floor is None:
        raise FloorNotFound(floor_id)
    return floor_with_layout(conn, floor)


@router.put("/layouts/{floor_id}")
async def write_layout(
    floor_id: str,
    req: LayoutMetaRequest,
    response: Response,
    _: dict = Depends(require_super_admin),
):
    layout, created = floors.write_layout_meta(get_db(), floor_id, req.meta)
    response.status_code = 201 if created else 200
    return {"created": created, "layout": layout}


@router.put("/{floor_id}")
async def update_floor(
    floor_id: str, req: FloorUpdateRequest, _: dict = Depends(require_super_admin)
):
    return floors.update_floor(get_db(), floor_id, req.name, req.file)


@router.delete("/{floor_id}")
async def delete_floor(floor_id: str, _: dict = Depends(require_super_admin)):
    return floors.delete_floor(get_db(), floor_id)
