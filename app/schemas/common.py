"""Response schemas shared across routers."""

from __future__ import annotations

from pydantic import BaseModel


class MessageResponse(BaseModel):
    message: str


class DeleteResponse(BaseModel):
    success: bool
    message: str


class HealthResponse(BaseModel):
    db: bool
    redis: bool


class ClientConfig(BaseModel):
    """Refresh intervals the web client polls with (seconds)."""

    task_refresh_seconds: int
    roster_refresh_seconds: int
    notice_refresh_seconds: int
    comment_edit_window_minutes: int
    max_image_bytes: int
