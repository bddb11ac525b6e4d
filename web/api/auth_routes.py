"""Auth API routes: register, login, current user."""
from __future__ import annotations

import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator
from sqlalchemy import select

import config
from teamy.models import User
from teamy.models.base import async_session_factory
from teamy.services.activity_log import log_activity
from web.auth import (
    create_access_token,
    get_current_user,
    get_user_by_email,
    hash_password,
    require_user,
    verify_password,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8


class RegisterRequest(BaseModel):
    email: str
    password: str
    name: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not EMAIL_RE.match(v):
            raise ValueError("Invalid email format")
        return v


class LoginRequest(BaseModel):
    email: str
    password: str


class UserResponse(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    role: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class UpdateMeRequest(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def name_length(cls, v: str) -> str:
        v = v.strip()
        if not v or len(v) > 128:
            raise ValueError("Name must be 1-128 characters")
        return v


def _user_response(user: User) -> UserResponse:
    return UserResponse(id=user.id, email=user.email, name=user.name, role=user.role)


def _login_response(user: User) -> LoginResponse:
    return LoginResponse(access_token=create_access_token(user), user=_user_response(user))


@router.post("/register", response_model=LoginResponse)
async def register(body: RegisterRequest):
    """Create an account and return a JWT."""
    if not config.ALLOW_SIGNUP:
        raise HTTPException(403, "Signup is disabled")
    if len(body.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(400, f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    async with async_session_factory() as session:
        existing = await session.execute(select(User).where(User.email == body.email))
        if existing.scalar_one_or_none():
            raise HTTPException(400, "Email already registered")
        user = User(
            email=body.email,
            name=(body.name or "").strip() or None,
            password_hash=hash_password(body.password),
            role="user",
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
    await log_activity("USER_REGISTERED", f"{user.email} created an account", user_id=user.id)
    return _login_response(user)


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest):
    """Authenticate and return JWT."""
    email = body.email.strip().lower()
    user = await get_user_by_email(email)
    if not user:
        # Bootstrap: first staff account from INITIAL_STAFF_EMAIL / INITIAL_STAFF_PASSWORD
        if (
            config.INITIAL_STAFF_PASSWORD
            and config.INITIAL_STAFF_EMAIL
            and email == config.INITIAL_STAFF_EMAIL
            and body.password == config.INITIAL_STAFF_PASSWORD
        ):
            async with async_session_factory() as session:
                user = User(
                    email=config.INITIAL_STAFF_EMAIL,
                    password_hash=hash_password(config.INITIAL_STAFF_PASSWORD),
                    role="staff",
                )
                session.add(user)
                await session.commit()
                await session.refresh(user)
            return _login_response(user)
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return _login_response(user)


@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(require_user)):
    """Get current authenticated user."""
    return _user_response(user)


@router.get("/me/optional")
async def get_me_optional(user: Optional[User] = Depends(get_current_user)):
    """Get current user if logged in, else null. For frontend auth check."""
    if not user:
        return None
    return _user_response(user)


@router.patch("/me", response_model=UserResponse)
async def update_me(body: UpdateMeRequest, user: User = Depends(require_user)):
    """Change display name."""
    async with async_session_factory() as session:
        db_user = await session.get(User, user.id)
        db_user.name = body.name
        await session.commit()
        await session.refresh(db_user)
        return _user_response(db_user)
