"""
DailyAttendance model — one self-reported status per user per calendar day.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (Column, DateTime, ForeignKey, Index, Integer, String,
                        UniqueConstraint)

from app.db.base import Base

ATTENDANCE_STATUSES = ("Present", "Absent", "Leave", "WFH", "Holiday")


class DailyAttendance(Base):
    __tablename__ = "daily_attendance"
    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_attendance_user_date"),
        Index("ix_attendance_date", "date"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    user_id: str = Column(String(36), ForeignKey("profiles.id"), nullable=False)  # type: ignore[assignment]
    user_name: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    date: str = Column(String(10), nullable=False)  # type: ignore[assignment]  # YYYY-MM-DD
    status: str = Column(String(20), nullable=False)  # type: ignore[assignment]
    # Present | Absent | Leave | WFH | Holiday
    remarks: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    marked_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
