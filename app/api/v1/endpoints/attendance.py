"""
Daily attendance endpoints — self-marking, history, monthly summary and CSV export.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from fastapi.responses import StreamingResponse

from app.api.v1.deps import get_attendance, get_current_profile
from app.core.policy import Action, is_allowed
from app.models.attendance import DailyAttendance
from app.models.profile import Profile
from app.schemas.attendance import (AttendanceMark, AttendanceRead,
                                    MonthlySummaryResponse, MonthlySummaryRow,
                                    TodayStatus)
from app.services.attendance import AttendanceRecorder, utc_today

router = APIRouter(prefix="/attendance", tags=["attendance"])


@router.post("", response_model=AttendanceRead)
async def mark_attendance(
    body: AttendanceMark,
    attendance: AttendanceRecorder = Depends(get_attendance),
    current: Profile = Depends(get_current_profile),
) -> DailyAttendance:
    """Mark (or re-mark) the caller's status for a day, today by default."""
    return await attendance.mark_attendance(current, body.status, body.remarks, body.date)


@router.get("/today", response_model=TodayStatus)
async def today_status(
    attendance: AttendanceRecorder = Depends(get_attendance),
    current: Profile = Depends(get_current_profile),
) -> TodayStatus:
    today = utc_today()
    return TodayStatus(date=today.isoformat(), status=await attendance.today_status(current, today))


@router.get("/history", response_model=list[AttendanceRead])
async def history(
    user_id: Optional[str] = Query(None),
    days: Optional[int] = Query(None, ge=1, le=366),
    attendance: AttendanceRecorder = Depends(get_attendance),
    current: Profile = Depends(get_current_profile),
) -> list[DailyAttendance]:
    """Newest first. Other users' history is admin-only."""
    return await attendance.get_history(current, user_id, days)


@router.get("/summary/{year}/{month}", response_model=MonthlySummaryResponse)
async def monthly_summary(
    year: int = Path(..., ge=1970, le=9999),
    month: int = Path(..., ge=1, le=12),
    attendance: AttendanceRecorder = Depends(get_attendance),
    current: Profile = Depends(get_current_profile),
) -> MonthlySummaryResponse:
    rows = await attendance.get_monthly_summary(current, month, year)
    return MonthlySummaryResponse(
        year=year,
        month=month,
        scope="team" if is_allowed(current, Action.ATTENDANCE_VIEW_ALL) else "self",
        users=[MonthlySummaryRow(**row) for row in rows],
    )


@router.get("/report/{year}/{month}/csv")
async def monthly_csv(
    year: int = Path(..., ge=1970, le=9999),
    month: int = Path(..., ge=1, le=12),
    attendance: AttendanceRecorder = Depends(get_attendance),
    current: Profile = Depends(get_current_profile),
) -> StreamingResponse:
    """Export the month as a CSV download."""
    lines = await attendance.monthly_csv(current, month, year)
    return StreamingResponse(
        lines,
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename=attendance_{year}_{month:02d}.csv"
        },
    )
