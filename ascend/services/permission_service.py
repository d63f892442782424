"""Access rules for projects and everything that hangs off them.

Permission Model:
- Project creator: full control, including deleting the project
- Project member with role "owner": edit the project and manage members
- Project member with role "member": read and edit project content
- Standalone tasks (no project) belong to their creator alone

Tasks are visible and editable by their creator or by anyone with access
to the task's project. Deleting a task needs its creator or the project
creator. Notes and documents follow their project; deleting a note needs
the note's author or the project creator, deleting a document needs the
project creator.

Lookups that fail a visibility rule raise 404 (the row is not revealed);
visible rows that fail a write rule raise 403.
"""

from typing import Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.comment import Comment
from ..models.document import ProjectDocument
from ..models.note import Note
from ..models.project import Project
from ..models.project_member import ProjectMember
from ..models.task import Task
from ..models.user import User


def accessible_project_ids(user_id: UUID):
    """Subquery of project IDs the user created or is a member of."""
    member_projects = select(ProjectMember.project_id).where(ProjectMember.user_id == user_id)
    return select(Project.id).where(
        or_(Project.created_by == user_id, Project.id.in_(member_projects))
    )


def visible_tasks_clause(user_id: UUID):
    """WHERE clause selecting tasks the user may see."""
    return or_(
        Task.created_by == user_id,
        Task.project_id.in_(accessible_project_ids(user_id)),
    )


class PermissionService:
    """
    Permission checks bound to a database session.

    Methods return booleans; the module-level ``get_*_or_404`` helpers turn
    them into HTTP errors for routers.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_member_role(self, user_id: UUID, project_id: UUID) -> Optional[str]:
        """Return 'owner', 'member' or None when the user is not a member."""
        result = await self.db.execute(
            select(ProjectMember.role).where(
                ProjectMember.project_id == project_id,
                ProjectMember.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def is_project_member(self, user_id: UUID, project_id: UUID) -> bool:
        result = await self.db.execute(
            select(
                exists().where(
                    ProjectMember.project_id == project_id,
                    ProjectMember.user_id == user_id,
                )
            )
        )
        return bool(result.scalar())

    async def can_view_project(self, user_id: UUID, project: Project) -> bool:
        if project.created_by == user_id:
            return True
        return await self.is_project_member(user_id, project.id)

    async def can_edit_project(self, user_id: UUID, project: Project) -> bool:
        if project.created_by == user_id:
            return True
        return await self.get_member_role(user_id, project.id) == "owner"

    @staticmethod
    def can_delete_project(user_id: UUID, project: Project) -> bool:
        return project.created_by == user_id

    async def can_manage_members(self, user_id: UUID, project: Project) -> bool:
        """Invite, remove and change roles: creator or 'owner' members."""
        return await self.can_edit_project(user_id, project)

    async def can_access_project_id(self, user_id: UUID, project_id: UUID) -> bool:
        """Visibility check when only the project ID is at hand."""
        result = await self.db.execute(
            select(exists().where(Project.id.in_(accessible_project_ids(user_id)), Project.id == project_id))
        )
        return bool(result.scalar())

    async def can_view_task(self, user_id: UUID, task: Task) -> bool:
        if task.created_by == user_id:
            return True
        if task.project_id is None:
            return False
        return await self.can_access_project_id(user_id, task.project_id)

    async def can_delete_task(self, user_id: UUID, task: Task) -> bool:
        if task.created_by == user_id:
            return True
        if task.project_id is None:
            return False
        project = await self.db.get(Project, task.project_id)
        return project is not None and project.created_by == user_id

    async def can_delete_note(self, user_id: UUID, note: Note) -> bool:
        if note.created_by == user_id:
            return True
        project = await self.db.get(Project, note.project_id)
        return project is not None and project.created_by == user_id


# ============================================================================
# Router helpers
# ============================================================================


def _not_found(what: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{what} not found")


def _forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


async def get_project_or_404(
    db: AsyncSession,
    project_id: UUID,
    user: User,
    action: str = "view",
) -> Project:
    """
    Load a project the user may act on.

    Args:
        action: "view", "edit" or "delete"

    Raises:
        HTTPException: 404 if missing or invisible, 403 if the action is not allowed
    """
    perms = PermissionService(db)
    project = await db.get(Project, project_id)
    if project is None or not await perms.can_view_project(user.id, project):
        raise _not_found("Project")

    if action == "edit" and not await perms.can_edit_project(user.id, project):
        raise _forbidden("Only project owners can edit this project")
    if action == "delete" and not perms.can_delete_project(user.id, project):
        raise _forbidden("Only the project creator can delete this project")
    return project


async def get_task_or_404(
    db: AsyncSession,
    task_id: UUID,
    user: User,
    action: str = "view",
) -> Task:
    """
    Load a task the user may act on.

    Args:
        action: "view", "edit" or "delete" (edit has the same rule as view)
    """
    perms = PermissionService(db)
    task = await db.get(Task, task_id)
    if task is None or not await perms.can_view_task(user.id, task):
        raise _not_found("Task")

    if action == "delete" and not await perms.can_delete_task(user.id, task):
        raise _forbidden("Only the task creator or project creator can delete this task")
    return task


async def get_note_or_404(
    db: AsyncSession,
    note_id: UUID,
    user: User,
    action: str = "view",
) -> Note:
    perms = PermissionService(db)
    note = await db.get(Note, note_id)
    if note is None or not await perms.can_access_project_id(user.id, note.project_id):
        raise _not_found("Note")

    if action == "delete" and not await perms.can_delete_note(user.id, note):
        raise _forbidden("Only the note author or project creator can delete this note")
    return note


async def get_document_or_404(
    db: AsyncSession,
    document_id: UUID,
    user: User,
    action: str = "view",
) -> ProjectDocument:
    perms = PermissionService(db)
    document = await db.get(ProjectDocument, document_id)
    if document is None or not await perms.can_access_project_id(user.id, document.project_id):
        raise _not_found("Document")

    if action == "delete":
        project = await db.get(Project, document.project_id)
        if project is None or project.created_by != user.id:
            raise _forbidden("Only the project creator can delete documents")
    return document


async def get_comment_or_404(
    db: AsyncSession,
    comment_id: UUID,
    user: User,
    action: str = "view",
) -> Comment:
    """
    Load a comment; editing and deleting are limited to its author.
    """
    comment = await db.get(Comment, comment_id)
    if comment is None:
        raise _not_found("Comment")

    if comment.task_id is not None:
        await get_task_or_404(db, comment.task_id, user)
    elif not await PermissionService(db).can_access_project_id(user.id, comment.project_id):
        raise _not_found("Comment")

    if action in ("edit", "delete") and comment.author_id != user.id:
        raise _forbidden("Only the author can change this comment")
    return comment
