"""Tests for daily attendance marking, history, monthly summary and CSV export."""

from datetime import date

import pytest
from httpx import AsyncClient

from app.core.exceptions import PermissionDenied, ValidationError
from app.db.store import DataStore
from app.services.attendance import AttendanceRecorder


@pytest.mark.asyncio
async def test_marking_twice_overwrites(store: DataStore, member):
    attendance = AttendanceRecorder(store)
    day = date(2024, 3, 4)
    await attendance.mark_attendance(member, "Present", day=day)
    row = await attendance.mark_attendance(member, "WFH", "home", day=day)

    assert row.status == "WFH"
    assert row.remarks == "home"
    rows = await store.select("daily_attendance", {"user_id": member.id})
    assert len(rows) == 1
    assert await attendance.today_status(member, day) == "WFH"


@pytest.mark.asyncio
async def test_unmarked_day_reads_absent(store: DataStore, member):
    assert await AttendanceRecorder(store).today_status(member, date(2024, 1, 1)) == "Absent"


@pytest.mark.asyncio
async def test_invalid_status_rejected(store: DataStore, member):
    with pytest.raises(ValidationError):
        await AttendanceRecorder(store).mark_attendance(member, "Sleeping")


@pytest.mark.asyncio
async def test_history_window_newest_first(store: DataStore, admin, member):
    attendance = AttendanceRecorder(store)
    for day, status in ((1, "Present"), (10, "Leave"), (20, "WFH")):
        await attendance.mark_attendance(member, status, day=date(2024, 3, day))

    rows = await attendance.get_history(member, days_back=15, today=date(2024, 3, 20))
    assert [r.date for r in rows] == ["2024-03-20", "2024-03-10"]

    with pytest.raises(PermissionDenied):
        await attendance.get_history(member, user_id=admin.id)
    rows = await attendance.get_history(admin, user_id=member.id, days_back=30, today=date(2024, 3, 20))
    assert len(rows) == 3


@pytest.mark.asyncio
async def test_monthly_summary_counts_and_percentage(store: DataStore, admin, member):
    attendance = AttendanceRecorder(store)
    marks = ["Present", "Present", "Absent", "Leave", "WFH", "Holiday"]
    for day, status in enumerate(marks, start=1):
        await attendance.mark_attendance(member, status, day=date(2024, 2, day))
    await attendance.mark_attendance(admin, "Present", day=date(2024, 2, 1))
    # Outside the month
    await attendance.mark_attendance(member, "Present", day=date(2024, 3, 1))

    summary = await attendance.get_monthly_summary(admin, 2, 2024)
    assert [s["user_name"] for s in summary] == ["Ada Admin", "Mia Member"]
    mia = summary[1]
    assert mia["total_days"] == 6
    assert mia["present_days"] == 2
    assert (mia["absent_days"], mia["leave_days"], mia["wfh_days"], mia["holiday_days"]) == (1, 1, 1, 1)
    assert mia["attendance_percentage"] == 33.33
    assert summary[0]["attendance_percentage"] == 100.0

    own = await attendance.get_monthly_summary(member, 2, 2024)
    assert [s["user_id"] for s in own] == [member.id]


@pytest.mark.asyncio
async def test_summary_rejects_bad_month(store: DataStore, admin):
    with pytest.raises(ValidationError):
        await AttendanceRecorder(store).get_monthly_summary(admin, 13, 2024)


@pytest.mark.asyncio
async def test_csv_shapes(store: DataStore, admin, member):
    attendance = AttendanceRecorder(store)
    await attendance.mark_attendance(member, "Leave", "dentist, then home", day=date(2024, 4, 2))

    lines = list(await attendance.monthly_csv(admin, 4, 2024))
    assert lines[0].strip() == "User Name,Total Days,Present,Absent,Leave,WFH,Attendance %"
    assert lines[1].strip() == "Mia Member,1,0,0,1,0,0.0"

    lines = list(await attendance.monthly_csv(member, 4, 2024))
    assert lines[0].strip() == "Date,Status,Remarks"
    assert lines[1].strip() == '2024-04-02,Leave,"dentist, then home"'


# ── HTTP ────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_attendance_endpoints(async_client: AsyncClient, auth, admin, member):
    resp = await async_client.get("/api/v1/attendance/today", headers=auth(member))
    assert resp.json()["status"] == "Absent"

    resp = await async_client.post(
        "/api/v1/attendance", json={"status": "Present"}, headers=auth(member)
    )
    assert resp.status_code == 200
    marked = resp.json()
    assert marked["user_name"] == "Mia Member"

    resp = await async_client.get("/api/v1/attendance/today", headers=auth(member))
    assert resp.json() == {"date": marked["date"], "status": "Present"}

    resp = await async_client.get("/api/v1/attendance/history", headers=auth(member))
    assert [r["status"] for r in resp.json()] == ["Present"]

    resp = await async_client.get(
        "/api/v1/attendance/history", params={"user_id": admin.id}, headers=auth(member)
    )
    assert resp.status_code == 403

    resp = await async_client.post(
        "/api/v1/attendance", json={"status": "Napping"}, headers=auth(member)
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_summary_and_csv_endpoints(async_client: AsyncClient, auth, admin, member):
    await async_client.post(
        "/api/v1/attendance",
        json={"status": "WFH", "date": "2024-06-03"},
        headers=auth(member),
    )
    resp = await async_client.get("/api/v1/attendance/summary/2024/6", headers=auth(admin))
    assert resp.json()["scope"] == "team"
    assert resp.json()["users"][0]["wfh_days"] == 1

    resp = await async_client.get("/api/v1/attendance/summary/2024/6", headers=auth(member))
    assert resp.json()["scope"] == "self"

    resp = await async_client.get("/api/v1/attendance/report/2024/6/csv", headers=auth(member))
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert "attendance_2024_06.csv" in resp.headers["content-disposition"]
    assert resp.text.splitlines()[1] == "2024-06-03,WFH,"

    resp = await async_client.get("/api/v1/attendance/summary/2024/13", headers=auth(admin))
    assert resp.status_code == 422
