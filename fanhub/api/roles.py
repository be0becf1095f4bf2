"""Role management.  Any signed-in user may read roles; only SuperAdmin writes."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from fanhub.auth import current_user, require_super_admin
from fanhub.db import dumps, get_db, new_id, row, rows, transaction, utcnow
from fanhub.errors import Conflict, ReferenceNotFound
from fanhub.records import role_dict

router = APIRouter(prefix="/role", tags=["roles"])


class RoleRequest(BaseModel):
    name: str = Field(min_length=1)
    permissions: dict[str, bool] | None = None


def _get_role(conn, role_id: str) -> dict:
    r = row(conn.execute("SELECT * FROM roles WHERE id = ?", (role_id,)))
    if r is None:
        raise ReferenceNotFound("Role not found", {"roleId": role_id})
    return r


@router.get("")
async def list_roles(_: dict = Depends(current_user)):
    return [role_dict(r) for r in rows(get_db().execute("SELECT * FROM roles ORDER BY name"))]


@router.get("/{role_id}")
async def get_role(role_id: str, _: dict = Depends(current_user)):
    return role_dict(_get_role(get_db(), role_id))


@router.post("", status_code=201)
async def create_role(req: RoleRequest, _: dict = Depends(require_super_admin)):
    conn = get_db()
    name = req.name.strip()
    role_id = new_id()
    now = utcnow()
    with transaction(conn):
        # roles.name is COLLATE NOCASE
        if conn.execute("SELECT 1 FROM roles WHERE name = ?", (name,)).fetchone():
            raise Conflict("A role with this name already exists", {"name": name})
        conn.execute(
            "INSERT INTO roles (id, name, permissions, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (role_id, name, dumps(req.permissions or {}), now, now),
        )
    return role_dict(_get_role(conn, role_id))


@router.put("/{role_id}")
async def update_role(role_id: str, req: RoleRequest, _: dict = Depends(require_super_admin)):
    conn = get_db()
    name = req.name.strip()
    with transaction(conn):
        _get_role(conn, role_id)
        taken = conn.execute(
            "SELECT 1 FROM roles WHERE name = ? AND id != ?", (name, role_id)
        ).fetchone()
        if taken:
            raise Conflict("A role with this name already exists", {"name": name})
        conn.execute(
            "UPDATE roles SET name = ?, updated_at = ? WHERE id = ?", (name, utcnow(), role_id)
        )
        if req.permissions is not None:
            conn.execute(
                "UPDATE roles SET permissions = ? WHERE id = ?", (dumps(req.permissions), role_id)
            )
    return role_dict(_get_role(conn, role_id))


@router.delete("/{role_id}")
async def delete_role(role_id: str, _: dict = Depends(require_super_admin)):
    conn = get_db()
    with transaction(conn):
        role = _get_role(conn, role_id)
        conn.execute("DELETE FROM roles WHERE id = ?", (role_id,))
    return role_dict(role)
