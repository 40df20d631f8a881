"""
Task & assignment endpoints.

- Any authenticated user can list and read tasks.
- Creating needs admin or collaborator; field-level edit rights are decided
  per task by the authorization policy.
- Deleting, membership and primary-POC changes are admin-only.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.v1.deps import get_current_profile, get_task_manager
from app.core.policy import Action, TaskContext, editable_task_fields, is_allowed
from app.models.profile import Profile
from app.models.task import Task, TaskAssignment
from app.schemas.common import DeleteResponse
from app.schemas.task import (AssignmentRead, MemberAdd, PrimaryPocChange,
                              TaskCreate, TaskDetail, TaskRead, TaskStats,
                              TaskUpdate)
from app.services.tasks import TaskManager, is_overdue

router = APIRouter(prefix="/tasks", tags=["tasks"])


def _task_read(task: Task) -> TaskRead:
    data = TaskRead.model_validate(task)
    data.is_overdue = is_overdue(task)
    return data


def _task_detail(ctx: TaskContext, viewer: Profile) -> TaskDetail:
    return TaskDetail(
        **_task_read(ctx.task).model_dump(),
        assignments=[AssignmentRead.model_validate(a) for a in ctx.assignments],
        editable_fields=sorted(editable_task_fields(viewer, ctx)),
        can_delete=is_allowed(viewer, Action.TASK_DELETE),
    )


@router.get("", response_model=list[TaskRead])
async def list_tasks(
    tasks: TaskManager = Depends(get_task_manager),
    _user: Profile = Depends(get_current_profile),
) -> list[TaskRead]:
    """All tasks ordered by due date (undated last)."""
    return [_task_read(t) for t in await tasks.list_tasks()]


@router.get("/stats", response_model=TaskStats)
async def task_stats(
    tasks: TaskManager = Depends(get_task_manager),
    _user: Profile = Depends(get_current_profile),
) -> TaskStats:
    stats = await tasks.task_stats()
    return TaskStats(
        total=stats["total"],
        open=stats["Open"],
        in_progress=stats["In Progress"],
        blocked=stats["Blocked"],
        done=stats["Done"],
    )


@router.post("", response_model=TaskDetail, status_code=201)
async def create_task(
    body: TaskCreate,
    tasks: TaskManager = Depends(get_task_manager),
    current: Profile = Depends(get_current_profile),
) -> TaskDetail:
    ctx = await tasks.create_task(
        current,
        title=body.title,
        description=body.description,
        primary_poc_id=body.primary_poc,
        additional_member_ids=body.member_ids,
        due_date=body.due_date,
    )
    return _task_detail(ctx, current)


@router.get("/{task_id}", response_model=TaskDetail)
async def get_task(
    task_id: int,
    tasks: TaskManager = Depends(get_task_manager),
    current: Profile = Depends(get_current_profile),
) -> TaskDetail:
    return _task_detail(await tasks.get_task(task_id), current)


@router.patch("/{task_id}", response_model=TaskDetail)
async def update_task(
    task_id: int,
    body: TaskUpdate,
    tasks: TaskManager = Depends(get_task_manager),
    current: Profile = Depends(get_current_profile),
) -> TaskDetail:
    """Partial update; only fields present in the body are considered."""
    ctx = await tasks.update_task(task_id, body.model_dump(exclude_unset=True), current)
    return _task_detail(ctx, current)


@router.delete("/{task_id}", response_model=DeleteResponse)
async def delete_task(
    task_id: int,
    tasks: TaskManager = Depends(get_task_manager),
    current: Profile = Depends(get_current_profile),
) -> DeleteResponse:
    await tasks.delete_task(task_id, current)
    return DeleteResponse(success=True, message=f"Task {task_id} deleted")


@router.post("/{task_id}/members", response_model=AssignmentRead, status_code=201)
async def add_member(
    task_id: int,
    body: MemberAdd,
    tasks: TaskManager = Depends(get_task_manager),
    current: Profile = Depends(get_current_profile),
) -> TaskAssignment:
    return await tasks.add_member(task_id, body.user_id, current)


@router.delete("/{task_id}/members/{assignment_id}", response_model=DeleteResponse)
async def remove_member(
    task_id: int,
    assignment_id: int,
    tasks: TaskManager = Depends(get_task_manager),
    current: Profile = Depends(get_current_profile),
) -> DeleteResponse:
    await tasks.remove_member(task_id, assignment_id, current)
    return DeleteResponse(success=True, message="Member removed")


@router.put("/{task_id}/primary-poc", response_model=TaskDetail)
async def change_primary_poc(
    task_id: int,
    body: PrimaryPocChange,
    tasks: TaskManager = Depends(get_task_manager),
    current: Profile = Depends(get_current_profile),
) -> TaskDetail:
    ctx = await tasks.change_primary_poc(task_id, body.user_id, current)
    return _task_detail(ctx, current)
