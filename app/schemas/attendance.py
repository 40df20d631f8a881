"""Pydantic schemas for daily attendance."""

from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, field_validator

from app.models.attendance import ATTENDANCE_STATUSES


class AttendanceMark(BaseModel):
    status: str
    remarks: str | None = None
    date: dt.date | None = None

    @field_validator("status")
    @classmethod
    def _status(cls, v: str) -> str:
        if v not in ATTENDANCE_STATUSES:
            raise ValueError(f"Status must be one of: {', '.join(ATTENDANCE_STATUSES)}")
        return v

    @field_validator("remarks")
    @classmethod
    def _remarks(cls, v: str | None) -> str | None:
        if v is not None and len(v) > 500:
            raise ValueError("Remarks must not exceed 500 characters")
        return v


class AttendanceRead(BaseModel):
    id: int
    user_id: str
    user_name: str | None
    date: str
    status: str
    remarks: str | None
    marked_at: dt.datetime | None

    model_config = {"from_attributes": True}


class TodayStatus(BaseModel):
    date: str
    status: str


class MonthlySummaryRow(BaseModel):
    user_id: str
    user_name: str
    total_days: int
    present_days: int
    absent_days: int
    leave_days: int
    wfh_days: int
    holiday_days: int
    attendance_percentage: float


class MonthlySummaryResponse(BaseModel):
    year: int
    month: int
    scope: str  # team | self
    users: list[MonthlySummaryRow]
