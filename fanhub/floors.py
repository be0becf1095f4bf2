"""Floors and their layouts.

A layout only exists once a floor has been given an image or a metadata
document.  Layout writes are read-then-branch so callers can tell a newly
created layout from an updated one.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any

from fanhub.db import dumps, new_id, rows, transaction, utcnow
from fanhub.errors import Conflict, FloorNotFound, ValidationError
from fanhub.records import floor_dict, floor_with_layout, get_floor, get_layout, layout_dict

logger = logging.getLogger(__name__)


def _name_taken(conn: sqlite3.Connection, name: str, exclude_id: str | None = None) -> bool:
    if exclude_id is None:
        cur = conn.execute("SELECT 1 FROM floors WHERE name = ?", (name,))
    else:
        cur = conn.execute("SELECT 1 FROM floors WHERE name = ? AND id != ?", (name, exclude_id))
    return cur.fetchone() is not None


def _write_layout(
    conn: sqlite3.Connection,
    floor_id: str,
    file: str | None = None,
    meta: Any = None,
) -> tuple[dict, bool]:
    """Create or update the floor's layout; returns ``(layout, created)``.

    Must run inside a transaction.
    """
    now = utcnow()
    existing = get_layout(conn, floor_id)
    if existing is None:
        conn.execute(
            """INSERT INTO layouts (id, floor_id, file, meta, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (new_id(), floor_id, file, dumps(meta), now, now),
        )
        created = True
    else:
        if file is not None:
            conn.execute(
                "UPDATE layouts SET file = ?, updated_at = ? WHERE floor_id = ?",
                (file, now, floor_id),
            )
        if meta is not None:
            conn.execute(
                "UPDATE layouts SET meta = ?, updated_at = ? WHERE floor_id = ?",
                (dumps(meta), now, floor_id),
            )
        created = False
    return layout_dict(get_layout(conn, floor_id)), created


def create_floor(conn: sqlite3.Connection, name: str, file: str | None = None) -> dict:
    """Create a floor; a layout is created alongside it only when *file* is set."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")

    floor_id = new_id()
    now = utcnow()
    with transaction(conn):
        if _name_taken(conn, name):
            raise Conflict("Floor name already exists", {"name": name})
        conn.execute(
            "INSERT INTO floors (id, name, file, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (floor_id, name, file or None, now, now),
        )
        layout = None
        if file:
            layout, _ = _write_layout(conn, floor_id, file=file, meta={})

    logger.info("Created floor %s (%s)", floor_id, name)
    return {"floor": floor_dict(get_floor(conn, floor_id)), "layout": layout}


def update_floor(
    conn: sqlite3.Connection,
    floor_id: str,
    name: str | None = None,
    file: str | None = None,
) -> dict:
    """Rename a floor and/or set its image; the layout follows the image."""
    with transaction(conn):
        if get_floor(conn, floor_id) is None:
            raise FloorNotFound(floor_id)
        now = utcnow()
        if name is not None and name.strip():
            name = name.strip()
            if _name_taken(conn, name, exclude_id=floor_id):
                raise Conflict("Floor name already exists", {"name": name})
            conn.execute(
                "UPDATE floors SET name = ?, updated_at = ? WHERE id = ?", (name, now, floor_id)
            )
        layout = None
        layout_created = False
        if file:
            conn.execute(
                "UPDATE floors SET file = ?, updated_at = ? WHERE id = ?", (file, now, floor_id)
            )
            layout, layout_created = _write_layout(conn, floor_id, file=file)

    return {
        "floor": floor_dict(get_floor(conn, floor_id)),
        "layout": layout,
        "layoutCreated": layout_created,
    }


def write_layout_meta(conn: sqlite3.Connection, floor_id: str, meta: Any) -> tuple[dict, bool]:
    """Replace the layout's metadata document; returns ``(layout, created)``."""
    if meta is None:
        raise ValidationError("meta JSON is required")
    with transaction(conn):
        if get_floor(conn, floor_id) is None:
            raise FloorNotFound(floor_id)
        layout, created = _write_layout(conn, floor_id, meta=meta)
    logger.info("%s layout for floor %s", "Created" if created else "Updated", floor_id)
    return layout, created


def delete_floor(conn: sqlite3.Connection, floor_id: str) -> dict:
    """Delete a floor together with its layout and fans, all or nothing."""
    with transaction(conn):
        if get_floor(conn, floor_id) is None:
            raise FloorNotFound(floor_id)
        fans = conn.execute("DELETE FROM fans WHERE floor_id = ?", (floor_id,)).rowcount
        layouts = conn.execute("DELETE FROM layouts WHERE floor_id = ?", (floor_id,)).rowcount
        conn.execute("DELETE FROM floors WHERE id = ?", (floor_id,))

    logger.info("Deleted floor %s with %d fans and %d layout", floor_id, fans, layouts)
    return {"floorId": floor_id, "deletedFans": fans, "deletedLayout": bool(layouts)}


def list_floors(conn: sqlite3.Connection) -> list[dict]:
    return [
        floor_with_layout(conn, f)
        for f in rows(conn.execute("SELECT * FROM floors ORDER BY name"))
    ]
