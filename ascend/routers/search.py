"""Global search API endpoint.

Case-insensitive title matching across the tasks and projects the user
can see. Archived tasks are left out.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..models.project import Project
from ..models.task import Task
from ..models.user import User
from ..schemas.search import ProjectSearchHit, SearchResults, TaskSearchHit
from ..services.auth_service import get_current_user
from ..services.permission_service import accessible_project_ids, visible_tasks_clause
from ..utils.sanitize import LIKE_ESCAPE, escape_like

router = APIRouter(prefix="/api/search", tags=["Search"])


@router.get(
    "",
    response_model=SearchResults,
    summary="Search tasks and projects by title",
)
async def search(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    q: str = Query(..., min_length=1, max_length=200, description="Search term"),
) -> SearchResults:
    """Return up to 10 matching tasks and 5 matching projects (configurable)."""
    pattern = f"%{escape_like(q.strip())}%"

    tasks_result = await db.execute(
        select(Task)
        .where(
            visible_tasks_clause(current_user.id),
            Task.is_archived.is_(False),
            Task.title.ilike(pattern, escape=LIKE_ESCAPE),
        )
        .order_by(Task.updated_at.desc())
        .limit(settings.search_task_limit)
    )
    projects_result = await db.execute(
        select(Project)
        .where(
            Project.id.in_(accessible_project_ids(current_user.id)),
            Project.title.ilike(pattern, escape=LIKE_ESCAPE),
        )
        .order_by(Project.updated_at.desc())
        .limit(settings.search_project_limit)
    )

    return SearchResults(
        tasks=[TaskSearchHit.model_validate(t) for t in tasks_result.scalars().all()],
        projects=[ProjectSearchHit.model_validate(p) for p in projects_result.scalars().all()],
    )
