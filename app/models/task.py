"""
Task, TaskAssignment & TaskComment models — work tracking domain.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (Boolean, Column, DateTime, ForeignKey, Index, Integer,
                        String, Text, UniqueConstraint)

from app.db.base import Base

TASK_STATUSES = ("Open", "In Progress", "Blocked", "Done")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Task(Base):
    __tablename__ = "tasks"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    title: str = Column(String(300), nullable=False)  # type: ignore[assignment]
    description: str | None = Column(Text, nullable=True)  # type: ignore[assignment]
    current_status: str = Column(  # type: ignore[assignment]
        String(20), nullable=False, default="Open", server_default="Open"
    )  # Open | In Progress | Blocked | Done
    due_date: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    expected_completion_date: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    assigned_date: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]
    primary_poc: str = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)  # type: ignore[assignment]
    primary_poc_name: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    # Legacy mirrors of primary_poc kept for older clients
    assigned_to: str | None = Column(String(36), nullable=True)  # type: ignore[assignment]
    assigned_to_name: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    assigned_by: str | None = Column(String(36), nullable=True)  # type: ignore[assignment]
    assigned_by_name: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class TaskAssignment(Base):
    __tablename__ = "task_assignments"
    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="uq_assignment_task_user"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    task_id: int = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)  # type: ignore[assignment]
    user_id: str = Column(String(36), ForeignKey("profiles.id"), nullable=False)  # type: ignore[assignment]
    user_name: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    is_primary_poc: bool = Column(Boolean, default=False, server_default="false")  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]


class TaskComment(Base):
    __tablename__ = "task_comments"
    __table_args__ = (Index("ix_comment_task_created", "task_id", "created_at"),)

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    task_id: int = Column(Integer, ForeignKey("tasks.id"), nullable=False)  # type: ignore[assignment]
    user_id: str = Column(String(36), nullable=False, index=True)  # type: ignore[assignment]
    user_name: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    comment_text: str = Column(Text, nullable=False)  # type: ignore[assignment]
    is_edited: bool = Column(Boolean, default=False, server_default="false")  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )
