"""
Task & assignment manager.

Owns the task lifecycle, the task <-> member assignment rows and the
primary point-of-contact (POC) designation.  Invariant maintained by every
operation here: each task has exactly one assignment row flagged
``is_primary_poc`` and that row's ``user_id`` equals ``tasks.primary_poc``.

Writes that must land together (a patch with a POC change, the POC flag
moves) share one store transaction.  Task creation and assignment merging
are also written so re-running them after a partial failure converges on
the same state.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select

from app.core.exceptions import ConflictError, ValidationError
from app.core.policy import Action, TaskContext, authorize, ensure_utc
from app.db.store import DataStore
from app.models.profile import Profile
from app.models.task import TASK_STATUSES, Task, TaskAssignment

logger = logging.getLogger(__name__)

ASSIGNMENT_KEY = ("task_id", "user_id")


def is_overdue(task: Task, now: datetime | None = None) -> bool:
    if task.due_date is None or task.current_status == "Done":
        return False
    return ensure_utc(task.due_date) < (now or datetime.now(timezone.utc))


def _clean_patch(patch: Mapping[str, Any]) -> dict[str, Any]:
    values = dict(patch)
    if "title" in values:
        title = (values["title"] or "").strip()
        if not title:
            raise ValidationError("Task title is required")
        values["title"] = title
    if "current_status" in values and values["current_status"] not in TASK_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(TASK_STATUSES)}")
    return values


class TaskManager:
    def __init__(self, store: DataStore) -> None:
        self.store = store

    async def _profile(self, user_id: str) -> Profile:
        return await self.store.one("profiles", {"id": user_id}, "Profile")

    async def assignments(self, task_id: int) -> list[TaskAssignment]:
        """Assignment rows of a task, primary POC first."""
        return await self.store.select(
            "task_assignments", {"task_id": task_id}, order_by=("-is_primary_poc", "id")
        )

    async def get_task(self, task_id: int) -> TaskContext:
        task = await self.store.one("tasks", {"id": task_id}, "Task")
        return TaskContext(task, await self.assignments(task_id))

    async def list_tasks(self) -> list[Task]:
        return await self.store.select("tasks", order_by=("due_date", "id"))

    async def task_stats(self) -> dict[str, int]:
        result = await self.store.execute(
            select(Task.current_status, func.count(Task.id)).group_by(Task.current_status),
            "tasks",
            "read",
        )
        stats = {status: 0 for status in TASK_STATUSES}
        for status, count in result.all():
            stats[status] = count
        stats["total"] = sum(stats.values())
        return stats

    # ── Create ──────────────────────────────────────────────────────
    async def create_task(
        self,
        creator: Profile,
        *,
        title: str,
        primary_poc_id: str | None,
        description: str | None = None,
        additional_member_ids: Iterable[str] = (),
        due_date: datetime | None = None,
    ) -> TaskContext:
        authorize(creator, Action.TASK_CREATE)
        title = (title or "").strip()
        if not title:
            raise ValidationError("Task title is required")
        if not primary_poc_id:
            raise ValidationError("A primary POC is required")

        poc = await self._profile(primary_poc_id)
        member_ids = [uid for uid in dict.fromkeys(additional_member_ids) if uid != poc.id]
        for uid in member_ids:
            await self._profile(uid)

        now = datetime.now(timezone.utc)
        task = await self.store.insert(
            "tasks",
            {
                "title": title,
                "description": description,
                "current_status": "Open",
                "due_date": due_date,
                "assigned_date": now,
                "primary_poc": poc.id,
                "primary_poc_name": poc.display_name,
                "assigned_to": poc.id,
                "assigned_to_name": poc.display_name,
                "assigned_by": creator.id,
                "assigned_by_name": creator.display_name,
            },
        )
        task_id = task.id
        logger.info("Task %d created by %s (POC %s)", task_id, creator.id, poc.id)

        await self.merge_assignments(task_id, member_ids)
        return await self.get_task(task_id)

    async def merge_assignments(
        self, task_id: int, member_ids: Iterable[str] = ()
    ) -> list[TaskAssignment]:
        """Make sure the POC and *member_ids* all have an assignment row.

        Rows that already exist (for instance inserted by a database trigger
        or a previous, partially failed run) are kept; only the missing ones
        are inserted.  The POC flag is then moved back onto the POC's row so
        exactly one row carries it.  Safe to call any number of times.
        """
        task = await self.store.one("tasks", {"id": task_id}, "Task")
        existing = {a.user_id: a for a in await self.assignments(task_id)}

        wanted = list(dict.fromkeys([task.primary_poc, *member_ids]))
        missing = []
        for user_id in wanted:
            if user_id in existing:
                continue
            profile = await self._profile(user_id)
            missing.append(
                {
                    "task_id": task_id,
                    "user_id": user_id,
                    "user_name": profile.display_name,
                    "is_primary_poc": user_id == task.primary_poc,
                }
            )

        if missing:
            try:
                await self.store.insert_missing("task_assignments", missing, ASSIGNMENT_KEY)
            except ConflictError:
                logger.warning("Task %d: assignment rows already present, skipped", task_id)

        stray = [
            a.id for a in existing.values() if a.is_primary_poc and a.user_id != task.primary_poc
        ]
        poc_row = existing.get(task.primary_poc)
        async with self.store.transaction():
            if stray:
                await self.store.update("task_assignments", {"is_primary_poc": False}, {"id": stray})
                logger.warning("Task %d: cleared stray POC flag on %d row(s)", task_id, len(stray))
            if poc_row is not None and not poc_row.is_primary_poc:
                await self.store.update(
                    "task_assignments",
                    {"is_primary_poc": True},
                    {"task_id": task_id, "user_id": task.primary_poc},
                )
        return await self.assignments(task_id)

    # ── Update ──────────────────────────────────────────────────────
    async def update_task(
        self, task_id: int, patch: Mapping[str, Any], requester: Profile
    ) -> TaskContext:
        """Apply *patch* if every field in it is editable by *requester*."""
        ctx = await self.get_task(task_id)
        values = dict(patch)
        if "primary_poc" in values and values["primary_poc"] == ctx.task.primary_poc:
            del values["primary_poc"]
        authorize(requester, Action.TASK_UPDATE, ctx, fields=values.keys())

        values = _clean_patch(values)
        new_poc = values.pop("primary_poc", None)
        if "primary_poc" in patch and not patch["primary_poc"]:
            raise ValidationError("A primary POC is required")

        if new_poc is not None:
            await self._profile(new_poc)

        async with self.store.transaction():
            if values:
                await self.store.update("tasks", values, {"id": task_id})
            if new_poc is not None:
                await self.change_primary_poc(task_id, new_poc, requester)
        if values:
            logger.info("Task %d updated by %s: %s", task_id, requester.id, sorted(values))
        return await self.get_task(task_id)

    async def change_primary_poc(
        self, task_id: int, new_user_id: str, requester: Profile
    ) -> TaskContext:
        """Hand the primary POC role to *new_user_id*.

        Adds the user as a member when needed, moves the flag and refreshes
        the denormalized name fields on the task.
        """
        authorize(requester, Action.TASK_CHANGE_POC)
        await self.store.one("tasks", {"id": task_id}, "Task")
        profile = await self._profile(new_user_id)
        name = profile.display_name

        async with self.store.transaction():
            await self.store.insert_missing(
                "task_assignments",
                [
                    {
                        "task_id": task_id,
                        "user_id": profile.id,
                        "user_name": name,
                        "is_primary_poc": False,
                    }
                ],
                ASSIGNMENT_KEY,
            )
            await self.store.update(
                "task_assignments",
                {"is_primary_poc": False},
                {"task_id": task_id, "is_primary_poc": True},
            )
            await self.store.update(
                "task_assignments",
                {"is_primary_poc": True, "user_name": name},
                {"task_id": task_id, "user_id": profile.id},
            )
            await self.store.update(
                "tasks",
                {
                    "primary_poc": profile.id,
                    "primary_poc_name": name,
                    "assigned_to": profile.id,
                    "assigned_to_name": name,
                },
                {"id": task_id},
            )
        logger.info("Task %d primary POC -> %s (by %s)", task_id, profile.id, requester.id)
        return await self.get_task(task_id)

    # ── Members ─────────────────────────────────────────────────────
    async def add_member(self, task_id: int, user_id: str, requester: Profile) -> TaskAssignment:
        authorize(requester, Action.TASK_ADD_MEMBER)
        await self.store.one("tasks", {"id": task_id}, "Task")
        profile = await self._profile(user_id)

        existing = await self.store.get("task_assignments", {"task_id": task_id, "user_id": user_id})
        if existing is not None:
            return existing
        try:
            row = await self.store.insert(
                "task_assignments",
                {
                    "task_id": task_id,
                    "user_id": user_id,
                    "user_name": profile.display_name,
                    "is_primary_poc": False,
                },
            )
        except ConflictError:
            logger.warning("Task %d: %s was assigned concurrently", task_id, user_id)
            return await self.store.one(
                "task_assignments", {"task_id": task_id, "user_id": user_id}, "Assignment"
            )
        logger.info("Task %d: added member %s", task_id, user_id)
        return row

    async def remove_member(self, task_id: int, assignment_id: int, requester: Profile) -> None:
        authorize(requester, Action.TASK_REMOVE_MEMBER)
        task = await self.store.one("tasks", {"id": task_id}, "Task")
        assignment = await self.store.one(
            "task_assignments", {"id": assignment_id, "task_id": task_id}, "Assignment"
        )
        if assignment.is_primary_poc or assignment.user_id == task.primary_poc:
            raise ValidationError("Transfer the primary POC role before removing this member")
        await self.store.delete("task_assignments", {"id": assignment_id})
        logger.info("Task %d: removed member %s", task_id, assignment.user_id)

    # ── Delete ──────────────────────────────────────────────────────
    async def delete_task(self, task_id: int, requester: Profile) -> None:
        authorize(requester, Action.TASK_DELETE)
        await self.store.one("tasks", {"id": task_id}, "Task")
        await self.purge(task_id)
        logger.info("Task %d deleted by %s", task_id, requester.id)

    async def purge(self, task_id: int) -> None:
        """Delete a task with its comments and assignments (no permission check)."""
        async with self.store.transaction():
            await self.store.delete("task_comments", {"task_id": task_id})
            await self.store.delete("task_assignments", {"task_id": task_id})
            await self.store.delete("tasks", {"id": task_id})
