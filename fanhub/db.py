"""Database initialisation for FanHub.

Creates the SQLite database holding floors, layouts, fan models, register
definitions, fans, roles and users.  The database path is taken from the
``FANHUB_DATA_DIR`` environment variable (default: ``./data``).

Usage::

    from fanhub.db import get_db, init_db
    init_db()                  # idempotent — safe to call multiple times
    conn = get_db()            # returns a per-thread connection

Multi-statement writes go through :func:`transaction`, which takes the SQLite
writer lock up front (``BEGIN IMMEDIATE``) so check-then-insert sequences are
serialized across connections.
"""

from __future__ import annotations

import json
import os
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

_DB_PATH: Path | None = None
_LOCAL = threading.local()


def _db_path() -> Path:
    global _DB_PATH
    if _DB_PATH is None:
        data_dir = Path(os.environ.get("FANHUB_DATA_DIR", "./data"))
        data_dir.mkdir(parents=True, exist_ok=True)
        _DB_PATH = data_dir / "fanhub.db"
    return _DB_PATH


def set_db_path(path: str | Path) -> None:
    """Override the database path (useful for tests)."""
    global _DB_PATH, _LOCAL
    _DB_PATH = Path(path)
    _LOCAL = threading.local()


def get_db() -> sqlite3.Connection:
    """Return a per-thread SQLite connection (WAL mode, FK enabled)."""
    conn = getattr(_LOCAL, "conn", None)
    if conn is None:
        conn = sqlite3.connect(str(_db_path()), check_same_thread=False, timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        _LOCAL.conn = conn
    return conn


def init_db(path: str | Path | None = None) -> None:
    """Create all tables (idempotent — safe to run multiple times)."""
    if path:
        set_db_path(path)
    conn = get_db()
    _create_schema(conn)
    conn.commit()


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block inside ``BEGIN IMMEDIATE`` … ``COMMIT``.

    Any exception rolls the whole block back and propagates.
    """
    if conn.in_transaction:
        conn.commit()
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    else:
        conn.commit()


# ── Row helpers ───────────────────────────────────────────────────

def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def rows(cur: sqlite3.Cursor) -> list[dict]:
    cols = [d[0] for d in cur.description] if cur.description else []
    return [dict(zip(cols, r)) for r in cur.fetchall()]


def row(cur: sqlite3.Cursor) -> dict | None:
    r = cur.fetchone()
    if r is None:
        return None
    cols = [d[0] for d in cur.description]
    return dict(zip(cols, r))


def dumps(value: Any) -> str:
    return json.dumps(value if value is not None else {})


def loads(raw: str | None) -> Any:
    if not raw:
        return {}
    return json.loads(raw)


_SCHEMA_SQL = """
-- ───────── Identity ─────────

CREATE TABLE IF NOT EXISTS roles (
    id           TEXT PRIMARY KEY,
    name         TEXT NOT NULL UNIQUE COLLATE NOCASE,
    permissions  TEXT NOT NULL DEFAULT '{}',
    created_at   TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at   TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS users (
    id             TEXT PRIMARY KEY,
    username       TEXT NOT NULL UNIQUE,
    email          TEXT NOT NULL UNIQUE,
    password_hash  TEXT NOT NULL,
    role_id        TEXT REFERENCES roles(id) ON DELETE SET NULL,
    otp            TEXT,
    otp_expiry     TIMESTAMP,
    otp_verified   INTEGER NOT NULL DEFAULT 0,
    created_at     TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at     TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_users_role ON users(role_id);

-- ───────── Building ─────────

CREATE TABLE IF NOT EXISTS floors (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL UNIQUE,
    file        TEXT,
    created_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS layouts (
    id          TEXT PRIMARY KEY,
    floor_id    TEXT NOT NULL UNIQUE,
    file        TEXT,
    meta        TEXT NOT NULL DEFAULT '{}',
    created_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (floor_id) REFERENCES floors(id) ON DELETE CASCADE
);

-- ───────── Fan models & registers ─────────

CREATE TABLE IF NOT EXISTS fan_models (
    id             TEXT PRIMARY KEY,
    ip_address     TEXT NOT NULL,
    port           INTEGER NOT NULL CHECK (port BETWEEN 1 AND 65535),
    total_devices  INTEGER NOT NULL CHECK (total_devices >= 1),
    created_at     TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at     TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(ip_address, port)
);

CREATE TABLE IF NOT EXISTS fan_registers (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    model_id     TEXT NOT NULL,
    position     INTEGER NOT NULL,
    register     INTEGER NOT NULL,
    description  TEXT NOT NULL,
    access       TEXT NOT NULL CHECK (access IN ('Read', 'Write', 'Read/Write')),
    value_range  TEXT NOT NULL,
    UNIQUE(model_id, register),
    FOREIGN KEY (model_id) REFERENCES fan_models(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_registers_model ON fan_registers(model_id, position);

-- ───────── Fans ─────────

CREATE TABLE IF NOT EXISTS fans (
    id            TEXT PRIMARY KEY,
    floor_id      TEXT NOT NULL,
    fan_model_id  TEXT NOT NULL,
    device_id     INTEGER NOT NULL,
    name          TEXT NOT NULL,
    rpm           INTEGER NOT NULL DEFAULT 0 CHECK (rpm >= 0),
    status        TEXT NOT NULL DEFAULT 'OFF' CHECK (status IN ('ON', 'OFF')),
    created_at    TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at    TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(fan_model_id, device_id),
    CHECK ((rpm > 0 AND status = 'ON') OR (rpm = 0 AND status = 'OFF')),
    FOREIGN KEY (floor_id) REFERENCES floors(id) ON DELETE CASCADE,
    FOREIGN KEY (fan_model_id) REFERENCES fan_models(id)
);
CREATE INDEX IF NOT EXISTS idx_fans_floor ON fans(floor_id);
CREATE INDEX IF NOT EXISTS idx_fans_model ON fans(fan_model_id);
"""


def _create_schema(conn: sqlite3.Connection) -> None:
    """Execute all CREATE TABLE / INDEX statements in one transaction."""
    conn.executescript(_SCHEMA_SQL)
