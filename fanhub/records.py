"""Record lookups and API shapes for floors, layouts, fan models and fans.

Rows come out of SQLite with snake_case columns; everything returned from
here uses the camelCase keys the HTTP and WebSocket clients see.
"""

from __future__ import annotations

import sqlite3

from fanhub.db import loads, row, rows


# ── Shapes ────────────────────────────────────────────────────────

def floor_dict(r: dict) -> dict:
    return {
        "id": r["id"],
        "name": r["name"],
        "file": r["file"],
        "createdAt": r["created_at"],
        "updatedAt": r["updated_at"],
    }


def layout_dict(r: dict) -> dict:
    return {
        "id": r["id"],
        "floorId": r["floor_id"],
        "file": r["file"],
        "meta": loads(r["meta"]),
        "createdAt": r["created_at"],
        "updatedAt": r["updated_at"],
    }


def register_dict(r: dict) -> dict:
    return {
        "register": r["register"],
        "description": r["description"],
        "access": r["access"],
        "valueRange": r["value_range"],
    }


def fan_model_dict(r: dict, registers: list[dict] | None = None) -> dict:
    return {
        "id": r["id"],
        "ipAddress": r["ip_address"],
        "port": r["port"],
        "totalDevices": r["total_devices"],
        "registers": [register_dict(x) for x in registers or []],
        "createdAt": r["created_at"],
        "updatedAt": r["updated_at"],
    }


def fan_dict(r: dict) -> dict:
    return {
        "id": r["id"],
        "floorId": r["floor_id"],
        "fanModelId": r["fan_model_id"],
        "deviceId": r["device_id"],
        "name": r["name"],
        "rpm": r["rpm"],
        "status": r["status"],
        "createdAt": r["created_at"],
        "updatedAt": r["updated_at"],
    }


def role_dict(r: dict) -> dict:
    return {
        "id": r["id"],
        "name": r["name"],
        "permissions": loads(r["permissions"]),
        "createdAt": r["created_at"],
        "updatedAt": r["updated_at"],
    }


# ── Point lookups ─────────────────────────────────────────────────

def get_floor(conn: sqlite3.Connection, floor_id: str) -> dict | None:
    return row(conn.execute("SELECT * FROM floors WHERE id = ?", (floor_id,)))


def get_layout(conn: sqlite3.Connection, floor_id: str) -> dict | None:
    return row(conn.execute("SELECT * FROM layouts WHERE floor_id = ?", (floor_id,)))


def get_fan_model(conn: sqlite3.Connection, model_id: str) -> dict | None:
    return row(conn.execute("SELECT * FROM fan_models WHERE id = ?", (model_id,)))


def find_fan_model(conn: sqlite3.Connection, ip_address: str, port: int) -> dict | None:
    return row(conn.execute(
        "SELECT * FROM fan_models WHERE ip_address = ? AND port = ?",
        (ip_address, port),
    ))


def get_registers(conn: sqlite3.Connection, model_id: str) -> list[dict]:
    return rows(conn.execute(
        "SELECT * FROM fan_registers WHERE model_id = ? ORDER BY position",
        (model_id,),
    ))


def get_fan(conn: sqlite3.Connection, fan_id: str, floor_id: str | None = None) -> dict | None:
    if floor_id is None:
        return row(conn.execute("SELECT * FROM fans WHERE id = ?", (fan_id,)))
    return row(conn.execute(
        "SELECT * FROM fans WHERE id = ? AND floor_id = ?", (fan_id, floor_id)
    ))


def count_fans_for_model(conn: sqlite3.Connection, model_id: str) -> int:
    return conn.execute(
        "SELECT COUNT(*) FROM fans WHERE fan_model_id = ?", (model_id,)
    ).fetchone()[0]


# ── Joined listings ───────────────────────────────────────────────

def fan_model_with_registers(conn: sqlite3.Connection, model_id: str) -> dict | None:
    model = get_fan_model(conn, model_id)
    if model is None:
        return None
    return fan_model_dict(model, get_registers(conn, model_id))


def floor_with_layout(conn: sqlite3.Connection, floor: dict) -> dict:
    out = floor_dict(floor)
    layout = get_layout(conn, floor["id"])
    out["layout"] = layout_dict(layout) if layout else None
    return out


def fans_joined(
    conn: sqlite3.Connection,
    where: str = "",
    params: tuple = (),
) -> list[dict]:
    """Fans with their floor and fan model attached (``floor``, ``fanModel``)."""
    cur = conn.execute(
        "SELECT f.* FROM fans f "
        "JOIN floors fl ON fl.id = f.floor_id "
        "JOIN fan_models m ON m.id = f.fan_model_id "
        f"{where} ORDER BY fl.name, f.fan_model_id, f.device_id",
        params,
    )
    fans = rows(cur)
    floors: dict[str, dict] = {}
    models: dict[str, dict] = {}
    out = []
    for f in fans:
        if f["floor_id"] not in floors:
            floors[f["floor_id"]] = floor_dict(get_floor(conn, f["floor_id"]))
        if f["fan_model_id"] not in models:
            models[f["fan_model_id"]] = fan_model_with_registers(conn, f["fan_model_id"])
        item = fan_dict(f)
        item["floor"] = floors[f["floor_id"]]
        item["fanModel"] = models[f["fan_model_id"]]
        out.append(item)
    return out
