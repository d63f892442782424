"""Project activity feed writer.

Mutating endpoints call these helpers after applying a change so the feed
records who did what. Only project-scoped rows are logged; personal tasks
have no feed.
"""

import logging
from datetime import datetime
from typing import Any, Iterable, Optional
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.activity_log import ActivityLog
from ..models.comment import Comment
from ..models.note import Note
from ..models.project import Project
from ..models.task import Task
from ..models.user import User
from ..utils.descriptions import strip_formatting

logger = logging.getLogger(__name__)

COMMENT_PREVIEW_LENGTH = 100

TASK_TRACKED_FIELDS = ("title", "status", "priority", "assignee_id", "project_id")
PROJECT_TRACKED_FIELDS = ("title", "status", "priority", "lead_id", "due_date")
NOTE_TRACKED_FIELDS = ("title", "content")


def snapshot(row: Any, fields: Iterable[str]) -> dict[str, Any]:
    """Capture the given attributes of a row before it is mutated."""
    return {name: getattr(row, name) for name in fields}


async def log_activity(
    db: AsyncSession,
    project_id: Optional[UUID],
    actor_id: Optional[UUID],
    action: str,
    details: Optional[dict[str, Any]] = None,
    task_id: Optional[UUID] = None,
) -> Optional[ActivityLog]:
    """
    Append one entry to a project's activity feed.

    Returns:
        The new entry, or None when there is no project to log against
    """
    if project_id is None:
        return None

    entry = ActivityLog(
        project_id=project_id,
        task_id=task_id,
        actor_id=actor_id,
        action=action,
        details=jsonable_encoder(details or {}),
    )
    db.add(entry)
    logger.debug(f"Activity: project={project_id} action={action} actor={actor_id}")
    return entry


async def record_task_created(db: AsyncSession, task: Task, actor_id: UUID) -> None:
    await log_activity(
        db,
        task.project_id,
        actor_id,
        "task_created",
        {"task_title": task.title, "status": task.status, "priority": task.priority},
        task_id=task.id,
    )


async def record_task_changes(
    db: AsyncSession,
    before: dict[str, Any],
    task: Task,
    actor_id: UUID,
) -> list[ActivityLog]:
    """
    Log status, priority and assignee changes between a snapshot and the task.

    Each changed field produces its own entry.
    """
    entries = []

    if before["status"] != task.status:
        entries.append(await log_activity(
            db, task.project_id, actor_id, "task_status_changed",
            {"task_title": task.title, "old_status": before["status"], "new_status": task.status},
            task_id=task.id,
        ))

    if before["priority"] != task.priority:
        entries.append(await log_activity(
            db, task.project_id, actor_id, "task_priority_changed",
            {"task_title": task.title, "old_priority": before["priority"], "new_priority": task.priority},
            task_id=task.id,
        ))

    if before["assignee_id"] != task.assignee_id:
        entries.append(await log_activity(
            db, task.project_id, actor_id, "task_assigned",
            {
                "task_title": task.title,
                "old_assignee_id": before["assignee_id"],
                "new_assignee_id": task.assignee_id,
            },
            task_id=task.id,
        ))

    return [e for e in entries if e is not None]


async def record_task_deleted(db: AsyncSession, task: Task, actor_id: UUID) -> None:
    # task_id stays empty: the row is about to disappear
    await log_activity(db, task.project_id, actor_id, "task_deleted", {"task_title": task.title})


async def record_comment_added(
    db: AsyncSession,
    comment: Comment,
    project_id: Optional[UUID],
    actor_id: UUID,
) -> None:
    await log_activity(
        db,
        project_id,
        actor_id,
        "comment_added",
        {"comment_preview": strip_formatting(comment.content)[:COMMENT_PREVIEW_LENGTH]},
        task_id=comment.task_id,
    )


def _display_name(user: Optional[User]) -> str:
    if user is None:
        return "Unknown"
    return user.display_name or user.email or "Unknown"


async def record_member_added(
    db: AsyncSession, project_id: UUID, member: User, actor_id: UUID
) -> None:
    await log_activity(
        db, project_id, actor_id, "member_added",
        {"user_id": member.id, "member_name": _display_name(member)},
    )


async def record_member_removed(
    db: AsyncSession, project_id: UUID, member: Optional[User], member_id: UUID, actor_id: UUID
) -> None:
    await log_activity(
        db, project_id, actor_id, "member_removed",
        {"user_id": member_id, "member_name": _display_name(member)},
    )


async def record_project_updated(
    db: AsyncSession,
    before: dict[str, Any],
    project: Project,
    actor_id: UUID,
) -> Optional[ActivityLog]:
    """
    Log a single ``project_updated`` entry carrying old/new pairs.

    Nothing is logged unless title, status, priority, lead or due date
    changed. Lead changes also record the leads' display names.
    """
    changes: dict[str, Any] = {}

    for name in ("title", "status", "priority"):
        if before[name] != getattr(project, name):
            changes[f"old_{name}"] = before[name]
            changes[f"new_{name}"] = getattr(project, name)

    if before["lead_id"] != project.lead_id:
        old_lead = await db.get(User, before["lead_id"]) if before["lead_id"] else None
        new_lead = await db.get(User, project.lead_id) if project.lead_id else None
        changes.update({
            "old_lead_id": before["lead_id"],
            "new_lead_id": project.lead_id,
            "old_lead_name": _display_name(old_lead) if old_lead else "None",
            "new_lead_name": _display_name(new_lead) if new_lead else "None",
        })

    if before["due_date"] != project.due_date:
        changes["old_due_date"] = _iso(before["due_date"])
        changes["new_due_date"] = _iso(project.due_date)

    if not changes:
        return None

    changes["project_title"] = project.title
    return await log_activity(db, project.id, actor_id, "project_updated", changes)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


async def record_note_created(db: AsyncSession, note: Note, actor_id: UUID) -> None:
    await log_activity(
        db, note.project_id, actor_id, "note_created",
        {"note_id": note.id, "note_title": note.title},
    )


async def record_note_updated(
    db: AsyncSession, before: dict[str, Any], note: Note, actor_id: UUID
) -> None:
    """Log only when the title or content actually changed."""
    if before["title"] == note.title and before["content"] == note.content:
        return
    await log_activity(
        db, note.project_id, actor_id, "note_updated",
        {"note_id": note.id, "note_title": note.title},
    )


async def record_note_deleted(db: AsyncSession, note: Note, actor_id: UUID) -> None:
    await log_activity(
        db, note.project_id, actor_id, "note_deleted",
        {"note_id": note.id, "note_title": note.title},
    )
