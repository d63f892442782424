"""Projects CRUD API endpoints.

Projects group tasks, notes and documents. A project is visible to its
creator and its members; the creator and "owner" members may edit it and
only the creator may delete it.
"""

import logging
from datetime import datetime
from typing import Annotated, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.project import Project
from ..models.project_member import ProjectMember
from ..models.task import Task
from ..models.user import User
from ..schemas.project import (
    ProjectCreate,
    ProjectResponse,
    ProjectStatus,
    ProjectUpdate,
    ProjectWithCounts,
)
from ..services.activity_service import PROJECT_TRACKED_FIELDS, record_project_updated, snapshot
from ..services.auth_service import get_current_user
from ..services.notification_service import NotificationService
from ..services.permission_service import accessible_project_ids, get_project_or_404
from ..utils.sanitize import LIKE_ESCAPE, escape_like
from ..websocket.handlers import ChangeEvent, get_project_room, publish_change
from ..websocket.room_auth import invalidate_room_cache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects", tags=["Projects"])


def _task_counts_subquery():
    """Per-project counts of non-archived tasks and of those marked done."""
    return (
        select(
            Task.project_id.label("project_id"),
            func.count(Task.id).label("task_count"),
            func.sum(case((Task.status == "done", 1), else_=0)).label("done_count"),
        )
        .where(Task.project_id.is_not(None), Task.is_archived.is_(False))
        .group_by(Task.project_id)
        .subquery()
    )


@router.get(
    "",
    response_model=List[ProjectWithCounts],
    summary="List accessible projects",
    description="Projects the user created or is a member of, with task progress counts.",
    responses={
        200: {"description": "List of projects retrieved successfully"},
        401: {"description": "Not authenticated"},
    },
)
async def list_projects(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    project_status: Optional[ProjectStatus] = Query(None, alias="status", description="Filter by status"),
    search: Optional[str] = Query(None, description="Search term for project title"),
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(100, ge=1, le=500, description="Maximum number of records to return"),
) -> List[ProjectWithCounts]:
    """
    List projects ordered by most recently updated.

    - **status**: Optional filter (active, completed, archived)
    - **search**: Optional case-insensitive title match
    """
    counts = _task_counts_subquery()
    query = (
        select(
            Project,
            func.coalesce(counts.c.task_count, 0),
            func.coalesce(counts.c.done_count, 0),
        )
        .outerjoin(counts, counts.c.project_id == Project.id)
        .where(Project.id.in_(accessible_project_ids(current_user.id)))
    )

    if project_status:
        query = query.where(Project.status == project_status.value)
    if search:
        query = query.where(Project.title.ilike(f"%{escape_like(search)}%", escape=LIKE_ESCAPE))

    query = query.order_by(Project.updated_at.desc()).offset(skip).limit(limit)
    result = await db.execute(query)

    projects = []
    for project, task_count, done_count in result.all():
        item = ProjectWithCounts.model_validate(project)
        item.task_count = int(task_count)
        item.done_count = int(done_count)
        projects.append(item)
    return projects


@router.post(
    "",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a project",
    responses={
        201: {"description": "Project created successfully"},
        401: {"description": "Not authenticated"},
        422: {"description": "Validation error"},
    },
)
async def create_project(
    project_data: ProjectCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> ProjectResponse:
    """
    Create a project owned by the current user.

    The creator is added as an "owner" member. A lead other than the
    creator is notified.
    """
    project = Project(
        **{k: getattr(v, "value", v) for k, v in project_data.model_dump().items()},
        created_by=current_user.id,
    )
    db.add(project)
    await db.flush()

    now = datetime.utcnow()
    db.add(ProjectMember(
        project_id=project.id,
        user_id=current_user.id,
        role="owner",
        invited_by=current_user.id,
        invited_at=now,
        accepted_at=now,
    ))

    notifications = []
    if project.lead_id:
        notifications.append(await NotificationService.notify_project_lead_assigned(
            db, project.lead_id, current_user.id, project.id,
        ))

    await db.commit()
    logger.info(f"Project created: {project.id} by {current_user.id}")

    await publish_change(
        "projects", ChangeEvent.INSERT,
        new=project, project_id=project.id, user_ids=[current_user.id],
    )
    await NotificationService.deliver(notifications)
    return project


@router.get(
    "/{project_id}",
    response_model=ProjectWithCounts,
    summary="Get a project",
    responses={
        200: {"description": "Project retrieved successfully"},
        404: {"description": "Project not found"},
    },
)
async def get_project(
    project_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> ProjectWithCounts:
    project = await get_project_or_404(db, project_id, current_user)

    counts = _task_counts_subquery()
    result = await db.execute(
        select(
            func.coalesce(counts.c.task_count, 0),
            func.coalesce(counts.c.done_count, 0),
        ).where(counts.c.project_id == project.id)
    )
    row = result.first()

    item = ProjectWithCounts.model_validate(project)
    if row is not None:
        item.task_count = int(row[0])
        item.done_count = int(row[1])
    return item


@router.patch(
    "/{project_id}",
    response_model=ProjectResponse,
    summary="Update a project",
    description="Only provided fields are changed. Requires creator or owner role.",
    responses={
        200: {"description": "Project updated successfully"},
        403: {"description": "Not a project owner"},
        404: {"description": "Project not found"},
    },
)
async def update_project(
    project_id: UUID,
    project_data: ProjectUpdate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> ProjectResponse:
    """
    Update a project.

    Rescheduling the due date re-arms the due reminder. Changing the lead
    notifies the new lead and the previous one.
    """
    project = await get_project_or_404(db, project_id, current_user, action="edit")
    before = snapshot(project, PROJECT_TRACKED_FIELDS)

    update_data = project_data.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if field in ("title", "status", "priority", "color") and value is None:
            continue
        setattr(project, field, getattr(value, "value", value))

    if project.due_date != before["due_date"]:
        project.due_reminder_sent_at = None

    notifications = []
    if project.lead_id != before["lead_id"]:
        if before["lead_id"]:
            notifications.append(await NotificationService.notify_project_lead_removed(
                db, before["lead_id"], current_user.id, project.id,
            ))
        if project.lead_id:
            notifications.append(await NotificationService.notify_project_lead_assigned(
                db, project.lead_id, current_user.id, project.id,
            ))

    await record_project_updated(db, before, project, current_user.id)
    await db.commit()

    await publish_change(
        "projects", ChangeEvent.UPDATE,
        new=project, old=before, project_id=project.id,
    )
    await NotificationService.deliver(notifications)
    return project


@router.delete(
    "/{project_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a project",
    description="Deletes the project with its members, tasks, notes, documents and activity.",
    responses={
        204: {"description": "Project deleted successfully"},
        403: {"description": "Only the creator can delete"},
        404: {"description": "Project not found"},
    },
)
async def delete_project(
    project_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> None:
    project = await get_project_or_404(db, project_id, current_user, action="delete")

    await db.delete(project)
    await db.commit()
    logger.info(f"Project deleted: {project_id} by {current_user.id}")

    await publish_change(
        "projects", ChangeEvent.DELETE,
        old=project, project_id=project_id, user_ids=[current_user.id],
    )
    invalidate_room_cache(get_project_room(project_id))
