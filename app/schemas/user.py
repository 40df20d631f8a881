"""Pydantic schemas for sign-up and profiles."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, field_validator

from app.models.profile import ROLES


class SignUpRequest(BaseModel):
    email: str
    password: str
    full_name: str | None = None

    @field_validator("email")
    @classmethod
    def _normalise_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Invalid email address")
        return v

    @field_validator("password")
    @classmethod
    def _password(cls, v: str) -> str:
        if len(v) < 6:
            raise ValueError("Password must be at least 6 characters")
        return v


class ProfileRead(BaseModel):
    id: str
    email: str | None
    full_name: str | None
    phone: str | None
    designation: str | None
    role: str
    present: bool
    updated_at: datetime | None

    model_config = {"from_attributes": True}


class SessionRead(BaseModel):
    """The signed-in principal as seen by the client."""

    user_id: str
    email: str
    profile: ProfileRead


class ProfileUpdate(BaseModel):
    full_name: str | None = None
    phone: str | None = None
    designation: str | None = None
    present: bool | None = None


class RoleUpdate(BaseModel):
    role: str

    @field_validator("role")
    @classmethod
    def _validate_role(cls, v: str) -> str:
        if v not in ROLES:
            raise ValueError(f"Role must be one of: {', '.join(ROLES)}")
        return v


class ProfileDeleteResponse(BaseModel):
    success: bool
    deleted_tasks: int
