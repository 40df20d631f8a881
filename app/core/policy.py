"""
Authorization policy — the single place that decides who may do what.

Every manager calls :func:`authorize` with ``(principal, action, resource)``
instead of branching on roles itself.  Rules return ``None`` to allow or a
human-readable reason to deny.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable

from app.core.config import settings
from app.core.exceptions import PermissionDenied
from app.models.profile import ROLE_ADMIN, ROLE_COLLABORATOR, ROLE_MEMBER, Profile
from app.models.task import Task, TaskAssignment, TaskComment


class Action(str, Enum):
    TASK_CREATE = "task:create"
    TASK_UPDATE = "task:update"
    TASK_DELETE = "task:delete"
    TASK_ADD_MEMBER = "task:add_member"
    TASK_REMOVE_MEMBER = "task:remove_member"
    TASK_CHANGE_POC = "task:change_poc"
    COMMENT_CREATE = "comment:create"
    COMMENT_EDIT = "comment:edit"
    COMMENT_DELETE = "comment:delete"
    NOTICE_CREATE = "notice:create"
    NOTICE_UPDATE = "notice:update"
    NOTICE_DELETE = "notice:delete"
    NOTICE_TAXONOMY = "notice:taxonomy"
    ATTENDANCE_VIEW_ALL = "attendance:view_all"
    PROFILE_SET_ROLE = "profile:set_role"
    PROFILE_DELETE = "profile:delete"


TASK_FIELDS = frozenset(
    {
        "title",
        "description",
        "current_status",
        "due_date",
        "expected_completion_date",
        "primary_poc",
    }
)
COLLABORATOR_TASK_FIELDS = TASK_FIELDS - {"primary_poc"}
POC_MEMBER_TASK_FIELDS = frozenset({"current_status", "expected_completion_date"})


@dataclass
class TaskContext:
    """A task together with its assignment rows."""

    task: Task
    assignments: Sequence[TaskAssignment] = field(default_factory=list)

    def is_assignee(self, user_id: str) -> bool:
        return any(a.user_id == user_id for a in self.assignments)

    def is_primary_poc(self, user_id: str) -> bool:
        return self.task.primary_poc == user_id or any(
            a.user_id == user_id and a.is_primary_poc for a in self.assignments
        )


def ensure_utc(dt: datetime) -> datetime:
    """Normalise a potentially-naive timestamp to UTC-aware."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def edit_window() -> timedelta:
    return timedelta(minutes=settings.COMMENT_EDIT_WINDOW_MINUTES)


def comment_edit_deadline(comment: TaskComment) -> datetime:
    return ensure_utc(comment.created_at) + edit_window()


def editable_task_fields(principal: Profile, ctx: TaskContext) -> frozenset[str]:
    if principal.role == ROLE_ADMIN:
        return TASK_FIELDS
    if principal.role == ROLE_COLLABORATOR and ctx.is_assignee(principal.id):
        return COLLABORATOR_TASK_FIELDS
    if principal.role == ROLE_MEMBER and ctx.is_primary_poc(principal.id):
        return POC_MEMBER_TASK_FIELDS
    return frozenset()


# ── Rules ───────────────────────────────────────────────────────────
def _admin_only(principal: Profile, _resource: Any, **_ctx: Any) -> str | None:
    if principal.role != ROLE_ADMIN:
        return "Admin privileges required"
    return None


def _admin_or_collaborator(principal: Profile, _resource: Any, **_ctx: Any) -> str | None:
    if principal.role not in (ROLE_ADMIN, ROLE_COLLABORATOR):
        return "Only admins and collaborators can create tasks"
    return None


def _anyone(_principal: Profile, _resource: Any, **_ctx: Any) -> str | None:
    return None


def _task_update(
    principal: Profile,
    resource: TaskContext,
    *,
    fields: Iterable[str] = (),
    **_ctx: Any,
) -> str | None:
    allowed = editable_task_fields(principal, resource)
    if not allowed:
        return "You do not have permission to edit this task"
    forbidden = sorted(set(fields) - allowed)
    if forbidden:
        return f"You are not allowed to change: {', '.join(forbidden)}"
    return None


def _comment_edit(
    principal: Profile,
    resource: TaskComment,
    *,
    now: datetime | None = None,
    **_ctx: Any,
) -> str | None:
    if resource.user_id != principal.id:
        return "Only the author can edit a comment"
    now = ensure_utc(now or datetime.now(timezone.utc))
    if now > comment_edit_deadline(resource):
        return (
            f"Comments can only be edited within "
            f"{settings.COMMENT_EDIT_WINDOW_MINUTES} minutes of posting"
        )
    return None


_RULES: dict[Action, Callable[..., str | None]] = {
    Action.TASK_CREATE: _admin_or_collaborator,
    Action.TASK_UPDATE: _task_update,
    Action.TASK_DELETE: _admin_only,
    Action.TASK_ADD_MEMBER: _admin_only,
    Action.TASK_REMOVE_MEMBER: _admin_only,
    Action.TASK_CHANGE_POC: _admin_only,
    Action.COMMENT_CREATE: _anyone,
    Action.COMMENT_EDIT: _comment_edit,
    Action.COMMENT_DELETE: _admin_only,
    Action.NOTICE_CREATE: _admin_only,
    Action.NOTICE_UPDATE: _admin_only,
    Action.NOTICE_DELETE: _admin_only,
    Action.NOTICE_TAXONOMY: _admin_only,
    Action.ATTENDANCE_VIEW_ALL: _admin_only,
    Action.PROFILE_SET_ROLE: _admin_only,
    Action.PROFILE_DELETE: _admin_only,
}


def denial_reason(
    principal: Profile, action: Action, resource: Any = None, **ctx: Any
) -> str | None:
    return _RULES[action](principal, resource, **ctx)


def is_allowed(principal: Profile, action: Action, resource: Any = None, **ctx: Any) -> bool:
    return denial_reason(principal, action, resource, **ctx) is None


def authorize(principal: Profile, action: Action, resource: Any = None, **ctx: Any) -> None:
    """Raise :class:`PermissionDenied` unless *principal* may perform *action*."""
    reason = denial_reason(principal, action, resource, **ctx)
    if reason is not None:
        raise PermissionDenied(reason)
