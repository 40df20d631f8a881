"""
Named remote procedures callable through ``DataStore.rpc``.

These run as single round trips against the database and own the
aggregation queries the managers would otherwise assemble by hand.
"""

from __future__ import annotations

import calendar
import logging
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from sqlalchemy import func, select, update

from app.core.exceptions import NotFound
from app.models.attendance import DailyAttendance
from app.models.notice import Notice
from app.models.profile import Profile

if TYPE_CHECKING:
    from app.db.store import DataStore

logger = logging.getLogger(__name__)

PROCEDURES: dict[str, Callable[..., Awaitable[Any]]] = {}


def procedure(name: str):
    def register(fn):
        PROCEDURES[name] = fn
        return fn

    return register


def month_bounds(year: int, month: int) -> tuple[str, str]:
    _, days_in_month = calendar.monthrange(year, month)
    return f"{year:04d}-{month:02d}-01", f"{year:04d}-{month:02d}-{days_in_month:02d}"


# ── Attendance ──────────────────────────────────────────────────────
@procedure("mark_attendance")
async def mark_attendance(
    store: DataStore,
    *,
    user_id_param: str,
    user_name_param: str | None,
    status_param: str,
    remarks_param: str | None = None,
    date_param: str | None = None,
) -> DailyAttendance:
    """Upsert today's (or *date_param*'s) attendance row for one user."""
    day = date_param or datetime.now(timezone.utc).date().isoformat()
    return await store.upsert(
        "daily_attendance",
        {
            "user_id": user_id_param,
            "user_name": user_name_param,
            "date": day,
            "status": status_param,
            "remarks": remarks_param,
            "marked_at": datetime.now(timezone.utc),
        },
        conflict=("user_id", "date"),
    )


@procedure("get_user_attendance_history")
async def get_user_attendance_history(
    store: DataStore,
    *,
    user_id_param: str,
    days_back: int = 30,
    today_param: date | None = None,
) -> list[DailyAttendance]:
    """Rows for the trailing *days_back* days, newest first."""
    today = today_param or datetime.now(timezone.utc).date()
    start = (today - timedelta(days=days_back)).isoformat()
    result = await store.execute(
        select(DailyAttendance)
        .where(
            DailyAttendance.user_id == user_id_param,
            DailyAttendance.date >= start,
            DailyAttendance.date <= today.isoformat(),
        )
        .order_by(DailyAttendance.date.desc()),
        "daily_attendance",
        "read",
    )
    return list(result.scalars().all())


@procedure("get_monthly_attendance_summary")
async def get_monthly_attendance_summary(
    store: DataStore,
    *,
    month_param: int,
    year_param: int,
    user_id_param: str | None = None,
) -> list[dict[str, Any]]:
    """Per-user status counts for one month (one query, aggregated in Python)."""
    start, end = month_bounds(year_param, month_param)
    stmt = (
        select(DailyAttendance, Profile.full_name, Profile.email)
        .outerjoin(Profile, DailyAttendance.user_id == Profile.id)
        .where(DailyAttendance.date >= start, DailyAttendance.date <= end)
        .order_by(DailyAttendance.user_id, DailyAttendance.date)
    )
    if user_id_param is not None:
        stmt = stmt.where(DailyAttendance.user_id == user_id_param)
    result = await store.execute(stmt, "daily_attendance", "read")

    counts: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
    names: dict[str, str] = {}
    for row, full_name, email in result.all():
        counts[row.user_id][row.status] += 1
        names[row.user_id] = full_name or email or row.user_name or "Unknown"

    summary = []
    for user_id, by_status in counts.items():
        total = sum(by_status.values())
        present = by_status["Present"]
        summary.append(
            {
                "user_id": user_id,
                "user_name": names[user_id],
                "total_days": total,
                "present_days": present,
                "absent_days": by_status["Absent"],
                "leave_days": by_status["Leave"],
                "wfh_days": by_status["WFH"],
                "holiday_days": by_status["Holiday"],
                "attendance_percentage": round(present / total * 100, 2) if total else 0.0,
            }
        )
    summary.sort(key=lambda s: s["user_name"].lower())
    return summary


# ── Notices ─────────────────────────────────────────────────────────
@procedure("increment_notice_views")
async def increment_notice_views(store: DataStore, *, notice_id_param: int) -> int:
    """Atomically bump a notice's view counter and return the new value."""
    result = await store.execute(
        update(Notice)
        .where(Notice.id == notice_id_param)
        .values(view_count=Notice.view_count + 1)
        .execution_options(synchronize_session=False),
        "notices",
        "update",
    )
    if result.rowcount == 0:
        raise NotFound("Notice not found")
    count = await store.execute(
        select(func.coalesce(Notice.view_count, 0)).where(Notice.id == notice_id_param),
        "notices",
        "read",
    )
    value = count.scalar_one()
    await store.commit()
    return value
