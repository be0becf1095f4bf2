"""Authentication and role gating for FanHub.

JWT-based auth with bcrypt password hashing.  On first start the
``SuperAdmin`` role and a default admin account are seeded (email from
``FANHUB_ADMIN_EMAIL``, password from ``FANHUB_ADMIN_PASSWORD``).  Change the
password immediately.
"""

from __future__ import annotations

import os
import secrets
import sqlite3
import time

import bcrypt
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from fanhub.db import get_db, new_id, row, utcnow

# ── Configuration ─────────────────────────────────────────────────
JWT_SECRET = os.environ.get("FANHUB_JWT_SECRET", "fanhub-change-me")
JWT_ALGORITHM = "HS256"
JWT_EXPIRY_SECONDS = int(os.environ.get("FANHUB_JWT_EXPIRY", "86400"))  # 24h
REFRESH_EXPIRY_SECONDS = int(os.environ.get("FANHUB_REFRESH_EXPIRY", "604800"))  # 7d

SUPER_ADMIN = "SuperAdmin"
DEFAULT_ADMIN_EMAIL = os.environ.get("FANHUB_ADMIN_EMAIL", "admin@fanhub.local")
DEFAULT_ADMIN_PASSWORD = os.environ.get("FANHUB_ADMIN_PASSWORD", "fanhub-admin")

_bearer = HTTPBearer(auto_error=False)


# ── Password helpers ──────────────────────────────────────────────

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode(), hashed.encode())


def generate_otp(length: int = 6) -> str:
    return "".join(secrets.choice("0123456789") for _ in range(length))


# ── JWT helpers ───────────────────────────────────────────────────

def create_token(user_id: str, email: str, expires_in: int = JWT_EXPIRY_SECONDS) -> str:
    payload = {
        "sub": user_id,
        "email": email,
        "iat": int(time.time()),
        "exp": int(time.time()) + expires_in,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")


# ── FastAPI dependencies ──────────────────────────────────────────

def load_identity(conn: sqlite3.Connection, user_id: str) -> dict | None:
    """Return ``{id, username, email, roles}`` for *user_id*, or *None*."""
    user = row(conn.execute(
        """SELECT u.id, u.username, u.email, r.name AS role_name
           FROM users u LEFT JOIN roles r ON r.id = u.role_id
           WHERE u.id = ?""",
        (user_id,),
    ))
    if user is None:
        return None
    return {
        "id": user["id"],
        "username": user["username"],
        "email": user["email"],
        "roles": [user["role_name"]] if user["role_name"] else [],
    }


async def current_user(
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> dict:
    """Dependency that resolves the caller's identity from a bearer JWT."""
    if creds is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No token provided")
    payload = decode_token(creds.credentials)
    identity = load_identity(get_db(), payload.get("sub", ""))
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return identity


def require_role(*allowed: str):
    """Dependency factory: the caller must hold one of *allowed* roles."""

    async def _check(user: dict = Depends(current_user)) -> dict:
        if not any(r in allowed for r in user["roles"]):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required: {', '.join(allowed)}",
            )
        return user

    return _check


require_super_admin = require_role(SUPER_ADMIN)


# ── Database helpers ──────────────────────────────────────────────

def seed_admin(conn: sqlite3.Connection) -> None:
    """Create the SuperAdmin role and default admin user if missing."""
    role = row(conn.execute("SELECT id FROM roles WHERE name = ?", (SUPER_ADMIN,)))
    if role is None:
        role_id = new_id()
        conn.execute(
            "INSERT INTO roles (id, name, permissions, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (role_id, SUPER_ADMIN, '{"all": true}', utcnow(), utcnow()),
        )
    else:
        role_id = role["id"]

    exists = conn.execute(
        "SELECT 1 FROM users WHERE email = ?", (DEFAULT_ADMIN_EMAIL,)
    ).fetchone()
    if exists is None:
        conn.execute(
            """INSERT INTO users (id, username, email, password_hash, role_id, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (new_id(), "admin", DEFAULT_ADMIN_EMAIL, hash_password(DEFAULT_ADMIN_PASSWORD),
             role_id, utcnow(), utcnow()),
        )
    conn.commit()


def authenticate(conn: sqlite3.Connection, email: str, password: str) -> dict | None:
    """Validate credentials and return the identity dict, or *None* on failure."""
    user = row(conn.execute(
        "SELECT id, password_hash FROM users WHERE email = ?", (email,)
    ))
    if user is None:
        return None
    if not verify_password(password, user["password_hash"]):
        return None
    return load_identity(conn, user["id"])
