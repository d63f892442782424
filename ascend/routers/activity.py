"""Project activity feed API endpoint."""

from datetime import datetime
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.activity_log import ActivityLog
from ..models.user import User
from ..schemas.activity import ActivityPage, ActivityResponse
from ..schemas.common import to_naive_utc
from ..schemas.user import UserSummary
from ..services.auth_service import get_current_user
from ..services.permission_service import get_project_or_404

router = APIRouter(tags=["Activity"])


@router.get(
    "/api/projects/{project_id}/activity",
    response_model=ActivityPage,
    summary="Project activity feed",
    description="Newest entries first. Pass next_cursor back as ?before= for older entries.",
    responses={404: {"description": "Project not found"}},
)
async def list_activity(
    project_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    before: Optional[datetime] = Query(None, description="Only entries created before this time"),
    limit: int = Query(20, ge=1, le=100, description="Maximum number of entries"),
) -> ActivityPage:
    await get_project_or_404(db, project_id, current_user)

    query = (
        select(ActivityLog, User)
        .outerjoin(User, User.id == ActivityLog.actor_id)
        .where(ActivityLog.project_id == project_id)
    )
    if before is not None:
        query = query.where(ActivityLog.created_at < to_naive_utc(before))

    result = await db.execute(query.order_by(ActivityLog.created_at.desc()).limit(limit))

    items = []
    for entry, actor in result.all():
        item = ActivityResponse.model_validate(entry)
        if actor is not None:
            item.actor = UserSummary.model_validate(actor)
        items.append(item)

    next_cursor: Optional[datetime] = items[-1].created_at if len(items) == limit else None
    return ActivityPage(items=items, next_cursor=next_cursor)
