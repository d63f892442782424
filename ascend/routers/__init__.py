"""API routers package.

This package contains all FastAPI routers for the application.
Each router handles a specific domain of the API.
"""

from .activity import router as activity_router
from .auth import router as auth_router
from .comments import router as comments_router
from .documents import router as documents_router
from .notes import router as notes_router
from .notifications import router as notifications_router
from .project_members import router as project_members_router
from .projects import router as projects_router
from .search import router as search_router
from .tasks import router as tasks_router
from .time_entries import router as time_entries_router
from .users import router as users_router

__all__ = [
    "activity_router",
    "auth_router",
    "comments_router",
    "documents_router",
    "notes_router",
    "notifications_router",
    "project_members_router",
    "projects_router",
    "search_router",
    "tasks_router",
    "time_entries_router",
    "users_router",
]
