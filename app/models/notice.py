"""
Notice board models — announcements, categories and tags.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (Boolean, Column, DateTime, ForeignKey, Integer, String,
                        Text, UniqueConstraint)

from app.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NoticeCategory(Base):
    __tablename__ = "notice_categories"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    name: str = Column(String(100), unique=True, nullable=False)  # type: ignore[assignment]
    color: str | None = Column(String(20), nullable=True)  # type: ignore[assignment]
    icon: str | None = Column(String(20), nullable=True)  # type: ignore[assignment]


class NoticeTag(Base):
    __tablename__ = "notice_tags"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    name: str = Column(String(50), unique=True, nullable=False)  # type: ignore[assignment]


class Notice(Base):
    __tablename__ = "notices"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    title: str = Column(String(300), nullable=False)  # type: ignore[assignment]
    content: str = Column(Text, nullable=False)  # type: ignore[assignment]
    category_id: int | None = Column(Integer, ForeignKey("notice_categories.id"), nullable=True)  # type: ignore[assignment]
    author_id: str = Column(String(36), nullable=False)  # type: ignore[assignment]
    author_name: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    image_url: str | None = Column(String(1000), nullable=True)  # type: ignore[assignment]
    video_url: str | None = Column(String(1000), nullable=True)  # type: ignore[assignment]
    is_pinned: bool = Column(Boolean, default=False, server_default="false")  # type: ignore[assignment]
    view_count: int = Column(Integer, nullable=False, default=0, server_default="0")  # type: ignore[assignment]
    published_at: datetime = Column(DateTime(timezone=True), default=_utcnow, index=True)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class NoticeTagAssignment(Base):
    __tablename__ = "notice_tag_assignments"
    __table_args__ = (
        UniqueConstraint("notice_id", "tag_id", name="uq_notice_tag"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    notice_id: int = Column(Integer, ForeignKey("notices.id"), nullable=False, index=True)  # type: ignore[assignment]
    tag_id: int = Column(Integer, ForeignKey("notice_tags.id"), nullable=False)  # type: ignore[assignment]
