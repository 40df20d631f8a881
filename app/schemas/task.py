"""Pydantic schemas for tasks, assignments and comments."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from app.models.task import TASK_STATUSES


class TaskCreate(BaseModel):
    title: str
    description: str | None = None
    primary_poc: str
    member_ids: list[str] = Field(default_factory=list)
    due_date: datetime | None = None

    @field_validator("title")
    @classmethod
    def _title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title must not be empty")
        if len(v) > 300:
            raise ValueError("Title must not exceed 300 characters")
        return v


class TaskUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    current_status: str | None = None
    due_date: datetime | None = None
    expected_completion_date: datetime | None = None
    primary_poc: str | None = None

    @field_validator("current_status")
    @classmethod
    def _status(cls, v: str | None) -> str | None:
        if v is not None and v not in TASK_STATUSES:
            raise ValueError(f"Status must be one of: {', '.join(TASK_STATUSES)}")
        return v


class AssignmentRead(BaseModel):
    id: int
    task_id: int
    user_id: str
    user_name: str | None
    is_primary_poc: bool

    model_config = {"from_attributes": True}


class TaskRead(BaseModel):
    id: int
    title: str
    description: str | None
    current_status: str
    due_date: datetime | None
    expected_completion_date: datetime | None
    assigned_date: datetime | None
    primary_poc: str
    primary_poc_name: str | None
    assigned_to: str | None
    assigned_to_name: str | None
    assigned_by: str | None
    assigned_by_name: str | None
    created_at: datetime | None
    updated_at: datetime | None
    is_overdue: bool = False

    model_config = {"from_attributes": True}


class TaskDetail(TaskRead):
    assignments: list[AssignmentRead] = Field(default_factory=list)
    editable_fields: list[str] = Field(default_factory=list)
    can_delete: bool = False


class TaskStats(BaseModel):
    total: int
    open: int
    in_progress: int
    blocked: int
    done: int


class MemberAdd(BaseModel):
    user_id: str


class PrimaryPocChange(BaseModel):
    user_id: str


# ── Comments ───────────────────────────────────────────────────────
class CommentCreate(BaseModel):
    comment_text: str


class CommentUpdate(BaseModel):
    comment_text: str


class MentionRead(BaseModel):
    display_name: str
    profile_id: str


class CommentRead(BaseModel):
    id: int
    task_id: int
    user_id: str
    user_name: str | None
    comment_text: str
    rendered_text: str
    mentions: list[MentionRead]
    is_edited: bool
    created_at: datetime | None
    can_edit: bool = False
    edit_seconds_left: int = 0
    can_delete: bool = False


class MentionCandidate(BaseModel):
    id: str
    display_name: str
    email: str | None
    role: str
    token: str
