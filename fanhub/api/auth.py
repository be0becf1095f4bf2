"""Account endpoints: registration, login and OTP-based password reset."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, Field

from fanhub.auth import (
    JWT_EXPIRY_SECONDS,
    REFRESH_EXPIRY_SECONDS,
    authenticate,
    create_token,
    current_user,
    generate_otp,
    hash_password,
    load_identity,
)
from fanhub.db import get_db, new_id, row, utcnow
from fanhub.mailer import mailer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

OTP_TTL_SECONDS = int(os.environ.get("FANHUB_OTP_TTL_SECONDS", "120"))


class RegisterRequest(BaseModel):
    model_config = {"populate_by_name": True}

    username: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)
    confirm_password: str = Field(alias="confirmPassword")
    role: str | None = None


class LoginRequest(BaseModel):
    email: str
    password: str


class EmailRequest(BaseModel):
    email: str


class VerifyOtpRequest(BaseModel):
    email: str
    otp: str


class ResetPasswordRequest(BaseModel):
    model_config = {"populate_by_name": True}

    email: str
    new_password: str = Field(alias="newPassword", min_length=1)
    confirm_password: str = Field(alias="confirmPassword")


def _user_by_email(email: str) -> dict:
    user = row(get_db().execute("SELECT * FROM users WHERE email = ?", (email.strip(),)))
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _issue_otp(user: dict) -> str:
    otp = generate_otp(6)
    expiry = datetime.now(timezone.utc) + timedelta(seconds=OTP_TTL_SECONDS)
    conn = get_db()
    conn.execute(
        "UPDATE users SET otp = ?, otp_expiry = ?, otp_verified = 0, updated_at = ? WHERE id = ?",
        (otp, expiry.isoformat(), utcnow(), user["id"]),
    )
    conn.commit()
    return otp


# ══════════════════════════════════════════════════════════════════
# REGISTER / LOGIN
# ══════════════════════════════════════════════════════════════════

@router.post("/register", status_code=201)
async def register(req: RegisterRequest):
    if req.password != req.confirm_password:
        raise HTTPException(status_code=400, detail="Passwords do not match")

    conn = get_db()
    email = req.email.strip()
    username = req.username.strip()
    if conn.execute("SELECT 1 FROM users WHERE email = ?", (email,)).fetchone():
        raise HTTPException(status_code=409, detail="User email already exists")
    if conn.execute("SELECT 1 FROM users WHERE username = ?", (username,)).fetchone():
        raise HTTPException(status_code=409, detail="Username already exists")

    role_id = None
    if req.role:
        role = row(conn.execute("SELECT id FROM roles WHERE name = ?", (req.role,)))
        if role is None:
            raise HTTPException(status_code=400, detail="Invalid role")
        role_id = role["id"]

    user_id = new_id()
    now = utcnow()
    conn.execute(
        """INSERT INTO users (id, username, email, password_hash, role_id, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (user_id, username, email, hash_password(req.password), role_id, now, now),
    )
    conn.commit()
    logger.info("Registered user %s (%s)", user_id, email)
    return {"message": "User registered successfully", "user": load_identity(conn, user_id)}


@router.post("/login")
async def login(req: LoginRequest):
    user = authenticate(get_db(), req.email.strip(), req.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    expires_at = datetime.now(timezone.utc) + timedelta(seconds=JWT_EXPIRY_SECONDS)
    return {
        "user": user,
        "accessToken": create_token(user["id"], user["email"]),
        "refreshToken": create_token(user["id"], user["email"], REFRESH_EXPIRY_SECONDS),
        "expiresIn": JWT_EXPIRY_SECONDS,
        "expiresAt": expires_at.isoformat(),
    }


@router.get("/me")
async def me(user: dict = Depends(current_user)):
    return user


# ══════════════════════════════════════════════════════════════════
# PASSWORD RESET
# ══════════════════════════════════════════════════════════════════

@router.post("/forgot-password")
async def forgot_password(req: EmailRequest, background: BackgroundTasks):
    user = _user_by_email(req.email)
    otp = _issue_otp(user)
    background.add_task(
        mailer.send_forgot_password, user["email"], user["username"], otp, OTP_TTL_SECONDS // 60
    )
    return {"message": "OTP sent successfully to your email"}


@router.post("/resend-otp")
async def resend_otp(req: EmailRequest, background: BackgroundTasks):
    user = _user_by_email(req.email)
    otp = _issue_otp(user)
    background.add_task(
        mailer.send_resend_otp, user["email"], user["username"], otp, OTP_TTL_SECONDS // 60
    )
    return {"message": "OTP resent successfully to your email"}


@router.post("/verify-otp")
async def verify_otp(req: VerifyOtpRequest):
    user = _user_by_email(req.email)
    if not user["otp"] or user["otp"] != req.otp.strip():
        raise HTTPException(status_code=400, detail="Invalid OTP")
    expiry = datetime.fromisoformat(user["otp_expiry"])
    if datetime.now(timezone.utc) > expiry:
        raise HTTPException(status_code=400, detail="OTP expired")

    conn = get_db()
    conn.execute(
        "UPDATE users SET otp = NULL, otp_expiry = NULL, otp_verified = 1, updated_at = ? WHERE id = ?",
        (utcnow(), user["id"]),
    )
    conn.commit()
    return {"message": "OTP verified successfully", "email": user["email"]}


@router.post("/reset-password")
async def reset_password(req: ResetPasswordRequest):
    if req.new_password != req.confirm_password:
        raise HTTPException(status_code=400, detail="Passwords do not match")
    user = _user_by_email(req.email)
    if not user["otp_verified"]:
        raise HTTPException(status_code=400, detail="Please verify OTP before resetting password")

    conn = get_db()
    conn.execute(
        "UPDATE users SET password_hash = ?, otp_verified = 0, updated_at = ? WHERE id = ?",
        (hash_password(req.new_password), utcnow(), user["id"]),
    )
    conn.commit()
    logger.info("Password reset for user %s", user["id"])
    return {"message": "Password reset successfully. You can now log in."}
