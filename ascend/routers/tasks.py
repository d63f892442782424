"""Tasks CRUD API endpoints.

Tasks live inside a project or stand alone as personal tasks. A task is
visible to its creator and to everyone with access to its project.
Ordering inside a Kanban column uses ``position``; new tasks go to the
end of their column unless a position is given.
"""

import logging
from typing import Annotated, Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.task import Task
from ..models.user import User
from ..schemas.common import Priority
from ..schemas.task import (
    TaskCreate,
    TaskPositionUpdate,
    TaskReorder,
    TaskResponse,
    TaskStatus,
    TaskUpdate,
)
from ..services.activity_service import (
    TASK_TRACKED_FIELDS,
    record_task_changes,
    record_task_created,
    record_task_deleted,
    snapshot,
)
from ..services.auth_service import get_current_user
from ..services.notification_service import NotificationService
from ..services.permission_service import (
    get_project_or_404,
    get_task_or_404,
    visible_tasks_clause,
)
from ..utils.sanitize import LIKE_ESCAPE, escape_like
from ..utils.task_sort import (
    group_by_status,
    parse_sort_option_key,
    sort_tasks,
    sort_tasks_with_completed_last,
)
from ..websocket.handlers import ChangeEvent, publish_change

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["Tasks"])

# Columns that cannot be cleared with an explicit null
_NON_NULLABLE_FIELDS = {"title", "status", "priority", "is_duplicate", "is_archived", "position"}


async def next_position(
    db: AsyncSession,
    task_status: str,
    project_id: Optional[UUID],
    owner_id: UUID,
) -> int:
    """
    Position for a task appended to a status column: highest + 1, or 0.

    Standalone tasks are numbered per creator.
    """
    query = select(func.max(Task.position)).where(Task.status == task_status)
    if project_id is not None:
        query = query.where(Task.project_id == project_id)
    else:
        query = query.where(Task.project_id.is_(None), Task.created_by == owner_id)

    result = await db.execute(query)
    highest = result.scalar()
    return 0 if highest is None else highest + 1


async def _ensure_assignee_exists(db: AsyncSession, assignee_id: Optional[UUID]) -> None:
    if assignee_id is not None and await db.get(User, assignee_id) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Assignee not found",
        )


async def _publish_task(
    event: ChangeEvent,
    task: Task,
    old: Any = None,
    new: Any = None,
) -> None:
    # Personal tasks go to the creator's own room
    user_ids = [task.created_by] if task.project_id is None else []
    await publish_change(
        "tasks", event, new=new, old=old, project_id=task.project_id, user_ids=user_ids,
    )


async def _assignment_notifications(
    db: AsyncSession,
    task: Task,
    old_assignee_id: Optional[UUID],
    actor_id: UUID,
) -> list:
    notifications = []
    if old_assignee_id == task.assignee_id:
        return notifications
    if old_assignee_id:
        notifications.append(await NotificationService.notify_task_unassigned(
            db, old_assignee_id, actor_id, task.id, task.project_id,
        ))
    if task.assignee_id:
        notifications.append(await NotificationService.notify_task_assigned(
            db, task.assignee_id, actor_id, task.id, task.project_id,
        ))
    return notifications


def _filtered_query(
    user_id: UUID,
    project_id: Optional[UUID],
    task_status: Optional[TaskStatus],
    priority: Optional[Priority],
    assignee_id: Optional[UUID],
    search: Optional[str],
    include_archived: bool,
):
    query = select(Task).where(visible_tasks_clause(user_id))
    if project_id:
        query = query.where(Task.project_id == project_id)
    if task_status:
        query = query.where(Task.status == task_status.value)
    if priority:
        query = query.where(Task.priority == priority.value)
    if assignee_id:
        query = query.where(Task.assignee_id == assignee_id)
    if search:
        query = query.where(Task.title.ilike(f"%{escape_like(search)}%", escape=LIKE_ESCAPE))
    if not include_archived:
        query = query.where(Task.is_archived.is_(False))
    return query


# ============================================================================
# List endpoints
# ============================================================================


@router.get(
    "",
    response_model=list[TaskResponse],
    summary="List visible tasks",
    description="Tasks the user can see, filtered and sorted.",
    responses={
        200: {"description": "List of tasks retrieved successfully"},
        401: {"description": "Not authenticated"},
    },
)
async def list_tasks(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    project_id: Optional[UUID] = Query(None, description="Only tasks in this project"),
    task_status: Optional[TaskStatus] = Query(None, alias="status", description="Filter by status"),
    priority: Optional[Priority] = Query(None, description="Filter by priority"),
    assignee_id: Optional[UUID] = Query(None, description="Filter by assignee"),
    search: Optional[str] = Query(None, description="Search term for task title"),
    include_archived: bool = Query(False, description="Include archived tasks"),
    sort: Optional[str] = Query(None, description="Sort key 'field:direction', e.g. 'due_date:asc'"),
    completed_last: bool = Query(False, description="Put done tasks after the rest"),
) -> list[TaskResponse]:
    """
    List tasks.

    - **sort**: one of position, due_date, priority with asc or desc;
      unknown keys fall back to position:asc
    - **completed_last**: sort incomplete and done tasks separately and
      list done tasks last
    """
    query = _filtered_query(
        current_user.id, project_id, task_status, priority, assignee_id, search, include_archived,
    )
    result = await db.execute(query.order_by(Task.created_at.asc()))
    tasks = list(result.scalars().all())

    field, direction = parse_sort_option_key(sort)
    if completed_last:
        return sort_tasks_with_completed_last(tasks, field, direction)
    return sort_tasks(tasks, field, direction)


@router.get(
    "/board",
    response_model=dict[str, list[TaskResponse]],
    summary="Tasks grouped into Kanban columns",
    responses={
        200: {"description": "Columns keyed by status"},
        404: {"description": "Project not found"},
    },
)
async def get_board(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    project_id: Optional[UUID] = Query(None, description="Board of this project; omit for all visible tasks"),
) -> dict[str, list[TaskResponse]]:
    """Non-archived tasks keyed by status, each column ordered by position."""
    if project_id is not None:
        await get_project_or_404(db, project_id, current_user)

    query = _filtered_query(current_user.id, project_id, None, None, None, None, False)
    result = await db.execute(query)
    return group_by_status(result.scalars().all())


# ============================================================================
# Create
# ============================================================================


@router.post(
    "",
    response_model=TaskResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a task",
    responses={
        201: {"description": "Task created successfully"},
        400: {"description": "Assignee not found"},
        404: {"description": "Project not found"},
    },
)
async def create_task(
    task_data: TaskCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> TaskResponse:
    """
    Create a task in a project or as a personal task.

    An assignee other than the creator is notified.
    """
    if task_data.project_id is not None:
        await get_project_or_404(db, task_data.project_id, current_user)
    await _ensure_assignee_exists(db, task_data.assignee_id)

    values = {k: getattr(v, "value", v) for k, v in task_data.model_dump().items()}
    if values["position"] is None:
        values["position"] = await next_position(
            db, task_data.status.value, task_data.project_id, current_user.id,
        )

    task = Task(**values, created_by=current_user.id)
    db.add(task)
    await db.flush()

    await record_task_created(db, task, current_user.id)
    notifications = []
    if task.assignee_id:
        notifications.append(await NotificationService.notify_task_assigned(
            db, task.assignee_id, current_user.id, task.id, task.project_id,
        ))

    await db.commit()
    logger.info(f"Task created: {task.id} in project {task.project_id}")

    await _publish_task(ChangeEvent.INSERT, task, new=task)
    await NotificationService.deliver(notifications)
    return task


# ============================================================================
# Position updates (drag and drop)
# ============================================================================


async def _apply_position(
    db: AsyncSession,
    item: TaskPositionUpdate,
    user: User,
) -> tuple[Task, dict[str, Any]]:
    task = await get_task_or_404(db, item.id, user, action="edit")
    before = snapshot(task, TASK_TRACKED_FIELDS + ("position",))
    task.status = item.status.value
    task.position = item.position
    await record_task_changes(db, before, task, user.id)
    return task, before


@router.put(
    "/position",
    response_model=TaskResponse,
    summary="Move a task",
    description="Set a task's status column and position.",
    responses={
        200: {"description": "Task moved"},
        404: {"description": "Task not found"},
    },
)
async def update_task_position(
    item: TaskPositionUpdate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> TaskResponse:
    task, before = await _apply_position(db, item, current_user)
    await db.commit()
    await _publish_task(ChangeEvent.UPDATE, task, old=before, new=task)
    return task


@router.put(
    "/reorder",
    response_model=list[TaskResponse],
    summary="Move several tasks at once",
    description="Applies every move in one transaction; any inaccessible task aborts the batch.",
    responses={
        200: {"description": "Tasks moved"},
        404: {"description": "A task was not found"},
    },
)
async def reorder_tasks(
    payload: TaskReorder,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> list[TaskResponse]:
    moved = []
    for item in payload.items:
        moved.append(await _apply_position(db, item, current_user))
    await db.commit()

    for task, before in moved:
        await _publish_task(ChangeEvent.UPDATE, task, old=before, new=task)
    return [task for task, _ in moved]


# ============================================================================
# Single-task endpoints
# ============================================================================


@router.get(
    "/{task_id}",
    response_model=TaskResponse,
    summary="Get a task",
    responses={
        200: {"description": "Task retrieved successfully"},
        404: {"description": "Task not found"},
    },
)
async def get_task(
    task_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> TaskResponse:
    return await get_task_or_404(db, task_id, current_user)


@router.patch(
    "/{task_id}",
    response_model=TaskResponse,
    summary="Update a task",
    description="Only provided fields are changed.",
    responses={
        200: {"description": "Task updated successfully"},
        400: {"description": "Assignee not found"},
        404: {"description": "Task or target project not found"},
    },
)
async def update_task(
    task_id: UUID,
    task_data: TaskUpdate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> TaskResponse:
    """
    Update a task.

    - Moving to another project requires access to that project
    - Rescheduling the due date re-arms the due reminder
    - Assignee changes notify both the old and the new assignee
    """
    task = await get_task_or_404(db, task_id, current_user, action="edit")
    before = snapshot(task, TASK_TRACKED_FIELDS + ("due_date", "position"))

    update_data = task_data.model_dump(exclude_unset=True)
    if update_data.get("project_id") and update_data["project_id"] != task.project_id:
        await get_project_or_404(db, update_data["project_id"], current_user)
    if "assignee_id" in update_data:
        await _ensure_assignee_exists(db, update_data["assignee_id"])

    for field, value in update_data.items():
        if field in _NON_NULLABLE_FIELDS and value is None:
            continue
        setattr(task, field, getattr(value, "value", value))

    if task.due_date != before["due_date"]:
        task.due_reminder_sent_at = None

    notifications = await _assignment_notifications(
        db, task, before["assignee_id"], current_user.id,
    )
    await record_task_changes(db, before, task, current_user.id)
    await db.commit()

    await _publish_task(ChangeEvent.UPDATE, task, old=before, new=task)
    if before["project_id"] and before["project_id"] != task.project_id:
        # Let the old project's board drop the task
        await publish_change(
            "tasks", ChangeEvent.DELETE,
            old=before | {"id": task.id}, project_id=before["project_id"],
        )
    await NotificationService.deliver(notifications)
    return task


@router.delete(
    "/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a task",
    responses={
        204: {"description": "Task deleted successfully"},
        403: {"description": "Only the task creator or project creator can delete"},
        404: {"description": "Task not found"},
    },
)
async def delete_task(
    task_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> None:
    task = await get_task_or_404(db, task_id, current_user, action="delete")

    await record_task_deleted(db, task, current_user.id)
    await db.delete(task)
    await db.commit()
    logger.info(f"Task deleted: {task_id} by {current_user.id}")

    await _publish_task(ChangeEvent.DELETE, task, old=task)
