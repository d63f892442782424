"""Notes API endpoints.

Notes belong to a project and may be linked to any number of tasks the
user can see. Everyone with project access reads and edits notes;
deleting needs the note's author or the project creator.
"""

import logging
from collections import defaultdict
from typing import Annotated, List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.note import Note, NoteTask
from ..models.user import User
from ..schemas.note import NoteCreate, NoteResponse, NoteTaskCreate, NoteUpdate, NoteWithTasks
from ..services.activity_service import (
    NOTE_TRACKED_FIELDS,
    record_note_created,
    record_note_deleted,
    record_note_updated,
    snapshot,
)
from ..services.auth_service import get_current_user
from ..services.permission_service import get_note_or_404, get_project_or_404, get_task_or_404
from ..websocket.handlers import ChangeEvent, publish_change

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Notes"])


async def _linked_task_ids(db: AsyncSession, note_ids: list[UUID]) -> dict[UUID, list[UUID]]:
    if not note_ids:
        return {}
    result = await db.execute(
        select(NoteTask.note_id, NoteTask.task_id)
        .where(NoteTask.note_id.in_(note_ids))
        .order_by(NoteTask.created_at.asc())
    )
    links: dict[UUID, list[UUID]] = defaultdict(list)
    for note_id, task_id in result.all():
        links[note_id].append(task_id)
    return links


def _with_tasks(note: Note, task_ids: list[UUID]) -> NoteWithTasks:
    response = NoteWithTasks.model_validate(note)
    response.task_ids = task_ids
    return response


# ============================================================================
# Project-nested endpoints
# ============================================================================


@router.get(
    "/api/projects/{project_id}/notes",
    response_model=List[NoteWithTasks],
    summary="List notes in a project",
    responses={
        200: {"description": "Notes retrieved successfully"},
        404: {"description": "Project not found"},
    },
)
async def list_notes(
    project_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> List[NoteWithTasks]:
    """List notes, most recently updated first, with their linked task IDs."""
    await get_project_or_404(db, project_id, current_user)

    result = await db.execute(
        select(Note).where(Note.project_id == project_id).order_by(Note.updated_at.desc())
    )
    notes = list(result.scalars().all())
    links = await _linked_task_ids(db, [note.id for note in notes])
    return [_with_tasks(note, links.get(note.id, [])) for note in notes]


@router.post(
    "/api/projects/{project_id}/notes",
    response_model=NoteResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a note",
    responses={
        201: {"description": "Note created successfully"},
        404: {"description": "Project not found"},
    },
)
async def create_note(
    project_id: UUID,
    note_data: NoteCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> NoteResponse:
    await get_project_or_404(db, project_id, current_user)

    note = Note(
        project_id=project_id,
        title=note_data.title,
        content=note_data.content,
        created_by=current_user.id,
    )
    db.add(note)
    await db.flush()
    await record_note_created(db, note, current_user.id)
    await db.commit()

    await publish_change("notes", ChangeEvent.INSERT, new=note, project_id=project_id)
    return note


# ============================================================================
# Note endpoints
# ============================================================================


@router.get(
    "/api/notes/{note_id}",
    response_model=NoteWithTasks,
    summary="Get a note",
    responses={
        200: {"description": "Note retrieved successfully"},
        404: {"description": "Note not found"},
    },
)
async def get_note(
    note_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> NoteWithTasks:
    note = await get_note_or_404(db, note_id, current_user)
    links = await _linked_task_ids(db, [note.id])
    return _with_tasks(note, links.get(note.id, []))


@router.patch(
    "/api/notes/{note_id}",
    response_model=NoteResponse,
    summary="Update a note",
    responses={
        200: {"description": "Note updated successfully"},
        404: {"description": "Note not found"},
    },
)
async def update_note(
    note_id: UUID,
    note_data: NoteUpdate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> NoteResponse:
    note = await get_note_or_404(db, note_id, current_user, action="edit")
    before = snapshot(note, NOTE_TRACKED_FIELDS)

    update_data = note_data.model_dump(exclude_unset=True)
    if update_data.get("title") is not None:
        note.title = update_data["title"]
    if "content" in update_data:
        note.content = update_data["content"]

    await record_note_updated(db, before, note, current_user.id)
    await db.commit()

    await publish_change("notes", ChangeEvent.UPDATE, new=note, old=before, project_id=note.project_id)
    return note


@router.delete(
    "/api/notes/{note_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a note",
    responses={
        204: {"description": "Note deleted successfully"},
        403: {"description": "Only the author or project creator can delete"},
        404: {"description": "Note not found"},
    },
)
async def delete_note(
    note_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> None:
    note = await get_note_or_404(db, note_id, current_user, action="delete")

    await record_note_deleted(db, note, current_user.id)
    await db.delete(note)
    await db.commit()
    logger.info(f"Note deleted: {note_id} by {current_user.id}")

    await publish_change("notes", ChangeEvent.DELETE, old=note, project_id=note.project_id)


# ============================================================================
# Task links
# ============================================================================


@router.post(
    "/api/notes/{note_id}/tasks",
    status_code=status.HTTP_201_CREATED,
    summary="Link a task to a note",
    responses={
        201: {"description": "Task linked"},
        400: {"description": "Task already linked"},
        404: {"description": "Note or task not found"},
    },
)
async def link_task(
    note_id: UUID,
    payload: NoteTaskCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> dict:
    note = await get_note_or_404(db, note_id, current_user, action="edit")
    await get_task_or_404(db, payload.task_id, current_user)

    existing = await db.execute(
        select(NoteTask).where(NoteTask.note_id == note_id, NoteTask.task_id == payload.task_id)
    )
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Task is already linked to this note",
        )

    link = NoteTask(note_id=note_id, task_id=payload.task_id)
    db.add(link)
    await db.commit()

    await publish_change("note_tasks", ChangeEvent.INSERT, new=link, project_id=note.project_id)
    return {"note_id": str(note_id), "task_id": str(payload.task_id)}


@router.delete(
    "/api/notes/{note_id}/tasks/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Unlink a task from a note",
    responses={
        204: {"description": "Task unlinked"},
        404: {"description": "Note or link not found"},
    },
)
async def unlink_task(
    note_id: UUID,
    task_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> None:
    note = await get_note_or_404(db, note_id, current_user, action="edit")

    result = await db.execute(
        select(NoteTask).where(NoteTask.note_id == note_id, NoteTask.task_id == task_id)
    )
    link = result.scalar_one_or_none()
    if link is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Link not found",
        )

    await db.delete(link)
    await db.commit()
    await publish_change("note_tasks", ChangeEvent.DELETE, old=link, project_id=note.project_id)
