"""
Attendance recorder — one self-reported status per user per day.

There is no daily reset job: a day without a row simply reads as
``Absent``.
"""

from __future__ import annotations

import csv
import io
import logging
from collections.abc import Iterator
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import select

from app.core.config import settings
from app.core.exceptions import ValidationError
from app.core.policy import Action, authorize, is_allowed
from app.db.procedures import month_bounds
from app.db.store import DataStore
from app.models.attendance import ATTENDANCE_STATUSES, DailyAttendance
from app.models.profile import Profile

logger = logging.getLogger(__name__)

DEFAULT_STATUS = "Absent"


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _check_month(month: int, year: int) -> None:
    if month < 1 or month > 12:
        raise ValidationError("Month must be 1-12")
    if year < 1970 or year > 9999:
        raise ValidationError("Year is out of range")


class AttendanceRecorder:
    def __init__(self, store: DataStore) -> None:
        self.store = store

    async def mark_attendance(
        self,
        user: Profile,
        status: str,
        remarks: str | None = None,
        day: date | None = None,
    ) -> DailyAttendance:
        """Record *status* for *day* (default today), replacing any earlier mark."""
        if status not in ATTENDANCE_STATUSES:
            raise ValidationError(f"Status must be one of: {', '.join(ATTENDANCE_STATUSES)}")
        day = day or utc_today()
        row = await self.store.rpc(
            "mark_attendance",
            user_id_param=user.id,
            user_name_param=user.display_name,
            status_param=status,
            remarks_param=(remarks or "").strip() or None,
            date_param=day.isoformat(),
        )
        logger.info("Attendance %s for %s on %s", status, user.id, day.isoformat())
        return row

    async def today_status(self, user: Profile, today: date | None = None) -> str:
        row = await self.store.get(
            "daily_attendance",
            {"user_id": user.id, "date": (today or utc_today()).isoformat()},
        )
        return row.status if row is not None else DEFAULT_STATUS

    async def get_history(
        self,
        requester: Profile,
        user_id: str | None = None,
        days_back: int | None = None,
        today: date | None = None,
    ) -> list[DailyAttendance]:
        """Trailing window of a user's rows, newest first.

        Looking at someone else's history requires the admin view.
        """
        user_id = user_id or requester.id
        if user_id != requester.id:
            authorize(requester, Action.ATTENDANCE_VIEW_ALL)
        return await self.store.rpc(
            "get_user_attendance_history",
            user_id_param=user_id,
            days_back=days_back or settings.ATTENDANCE_HISTORY_DAYS,
            today_param=today,
        )

    async def get_monthly_summary(self, requester: Profile, month: int, year: int) -> list[dict[str, Any]]:
        """Per-user counts for the month: everyone for admins, oneself otherwise."""
        _check_month(month, year)
        params: dict[str, Any] = {"month_param": month, "year_param": year}
        if not is_allowed(requester, Action.ATTENDANCE_VIEW_ALL):
            params["user_id_param"] = requester.id
        return await self.store.rpc("get_monthly_attendance_summary", **params)

    async def month_records(self, user_id: str, month: int, year: int) -> list[DailyAttendance]:
        _check_month(month, year)
        start, end = month_bounds(year, month)
        result = await self.store.execute(
            select(DailyAttendance)
            .where(
                DailyAttendance.user_id == user_id,
                DailyAttendance.date >= start,
                DailyAttendance.date <= end,
            )
            .order_by(DailyAttendance.date.desc()),
            "daily_attendance",
            "read",
        )
        return list(result.scalars().all())

    async def monthly_csv(self, requester: Profile, month: int, year: int) -> Iterator[str]:
        """CSV lines: the team summary for admins, one's own days otherwise."""
        if is_allowed(requester, Action.ATTENDANCE_VIEW_ALL):
            header = ["User Name", "Total Days", "Present", "Absent", "Leave", "WFH", "Attendance %"]
            rows = [
                [
                    s["user_name"],
                    s["total_days"],
                    s["present_days"],
                    s["absent_days"],
                    s["leave_days"],
                    s["wfh_days"],
                    s["attendance_percentage"],
                ]
                for s in await self.get_monthly_summary(requester, month, year)
            ]
        else:
            header = ["Date", "Status", "Remarks"]
            rows = [
                [r.date, r.status, r.remarks or ""]
                for r in await self.month_records(requester.id, month, year)
            ]

        def iter_csv() -> Iterator[str]:
            for line in [header, *rows]:
                buf = io.StringIO()
                csv.writer(buf).writerow(line)
                yield buf.getvalue()

        return iter_csv()
