"""Time tracking API endpoints.

Time entries are private to the user who recorded them. Each user has at
most one running timer. Rule violations answer with a ``detail`` object
carrying a machine-readable ``code``.
"""

import logging
from typing import Annotated, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.time_entry import TimeEntry
from ..models.user import User
from ..schemas.time_entry import (
    ProjectTimeReport,
    TimeEntityType,
    TimeEntryCreate,
    TimeEntryResponse,
    TimeEntryUpdate,
    TimerStart,
)
from ..services.auth_service import get_current_user
from ..services.permission_service import get_note_or_404, get_project_or_404, get_task_or_404
from ..services.time_tracking_service import (
    INVALID_TIME_RANGE,
    NO_ACTIVE_TIMER,
    TIMER_ALREADY_RUNNING,
    TimeTrackingError,
    apply_entry_update,
    build_project_report,
    calculate_duration,
    get_active_timer,
    start_timer,
    stop_timer,
)
from ..websocket.handlers import ChangeEvent, publish_change

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Time Tracking"])

_ERROR_STATUS = {
    TIMER_ALREADY_RUNNING: status.HTTP_409_CONFLICT,
    NO_ACTIVE_TIMER: status.HTTP_404_NOT_FOUND,
    INVALID_TIME_RANGE: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def _http_error(error: TimeTrackingError) -> HTTPException:
    return HTTPException(
        status_code=_ERROR_STATUS.get(error.code, status.HTTP_400_BAD_REQUEST),
        detail={"code": error.code, "message": error.message},
    )


async def _check_entity_access(
    db: AsyncSession,
    entity_type: TimeEntityType,
    entity_id: UUID,
    user: User,
) -> None:
    if entity_type == TimeEntityType.TASK:
        await get_task_or_404(db, entity_id, user)
    elif entity_type == TimeEntityType.NOTE:
        await get_note_or_404(db, entity_id, user)
    else:
        await get_project_or_404(db, entity_id, user)


async def _get_own_entry(db: AsyncSession, entry_id: UUID, user: User) -> TimeEntry:
    entry = await db.get(TimeEntry, entry_id)
    if entry is None or entry.user_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Time entry not found",
        )
    return entry


async def _publish(event: ChangeEvent, entry: TimeEntry, old=None, new=None) -> None:
    await publish_change("time_entries", event, new=new, old=old, user_ids=[entry.user_id])


# ============================================================================
# Timer
# ============================================================================


@router.post(
    "/api/time-entries/start",
    response_model=TimeEntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a timer",
    responses={
        201: {"description": "Timer started"},
        404: {"description": "Entity not found"},
        409: {"description": "Another timer is already running"},
    },
)
async def start(
    payload: TimerStart,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> TimeEntryResponse:
    await _check_entity_access(db, payload.entity_type, payload.entity_id, current_user)
    try:
        entry = await start_timer(
            db,
            current_user.id,
            payload.entity_type.value,
            payload.entity_id,
            tz=payload.timezone,
            description=payload.description,
        )
    except TimeTrackingError as e:
        raise _http_error(e)

    await db.commit()
    await _publish(ChangeEvent.INSERT, entry, new=entry)
    return entry


@router.post(
    "/api/time-entries/stop",
    response_model=TimeEntryResponse,
    summary="Stop the running timer",
    responses={
        200: {"description": "Timer stopped"},
        404: {"description": "No timer is running"},
    },
)
async def stop(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> TimeEntryResponse:
    try:
        entry = await stop_timer(db, current_user.id)
    except TimeTrackingError as e:
        raise _http_error(e)

    await db.commit()
    await _publish(ChangeEvent.UPDATE, entry, old={"id": entry.id, "end_time": None}, new=entry)
    return entry


@router.get(
    "/api/time-entries/active",
    response_model=Optional[TimeEntryResponse],
    summary="Get the running timer",
    description="Returns null when no timer is running.",
)
async def get_active(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> Optional[TimeEntryResponse]:
    return await get_active_timer(db, current_user.id)


# ============================================================================
# Entries
# ============================================================================


@router.get(
    "/api/time-entries",
    response_model=List[TimeEntryResponse],
    summary="List my time entries",
)
async def list_entries(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    entity_type: Optional[TimeEntityType] = Query(None, description="Filter by entity kind"),
    entity_id: Optional[UUID] = Query(None, description="Filter by entity"),
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(100, ge=1, le=500, description="Maximum number of records to return"),
) -> List[TimeEntryResponse]:
    """The current user's entries, most recent start first."""
    query = select(TimeEntry).where(TimeEntry.user_id == current_user.id)
    if entity_type:
        query = query.where(TimeEntry.entity_type == entity_type.value)
    if entity_id:
        query = query.where(TimeEntry.entity_id == entity_id)

    result = await db.execute(
        query.order_by(TimeEntry.start_time.desc()).offset(skip).limit(limit)
    )
    return list(result.scalars().all())


@router.post(
    "/api/time-entries",
    response_model=TimeEntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record time manually",
    responses={
        201: {"description": "Entry created"},
        404: {"description": "Entity not found"},
        422: {"description": "End time is not after start time"},
    },
)
async def create_entry(
    payload: TimeEntryCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> TimeEntryResponse:
    await _check_entity_access(db, payload.entity_type, payload.entity_id, current_user)

    entry = TimeEntry(
        entity_type=payload.entity_type.value,
        entity_id=payload.entity_id,
        user_id=current_user.id,
        start_time=payload.start_time,
        end_time=payload.end_time,
        duration=calculate_duration(payload.start_time, payload.end_time),
        timezone=payload.timezone,
        description=payload.description,
    )
    db.add(entry)
    await db.commit()

    await _publish(ChangeEvent.INSERT, entry, new=entry)
    return entry


@router.patch(
    "/api/time-entries/{entry_id}",
    response_model=TimeEntryResponse,
    summary="Edit a time entry",
    description="Changing start or end recomputes the duration.",
    responses={
        200: {"description": "Entry updated"},
        404: {"description": "Entry not found"},
        422: {"description": "End time is before start time"},
    },
)
async def update_entry(
    entry_id: UUID,
    payload: TimeEntryUpdate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> TimeEntryResponse:
    entry = await _get_own_entry(db, entry_id, current_user)
    old = {
        "id": entry.id,
        "start_time": entry.start_time,
        "end_time": entry.end_time,
        "duration": entry.duration,
        "description": entry.description,
    }

    fields = payload.model_fields_set
    try:
        apply_entry_update(
            entry,
            start_time=payload.start_time,
            end_time=payload.end_time,
            description=payload.description,
            description_set="description" in fields,
        )
    except TimeTrackingError as e:
        raise _http_error(e)

    await db.commit()
    await _publish(ChangeEvent.UPDATE, entry, old=old, new=entry)
    return entry


@router.delete(
    "/api/time-entries/{entry_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a time entry",
    responses={
        204: {"description": "Entry deleted"},
        404: {"description": "Entry not found"},
    },
)
async def delete_entry(
    entry_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> None:
    entry = await _get_own_entry(db, entry_id, current_user)
    await db.delete(entry)
    await db.commit()
    await _publish(ChangeEvent.DELETE, entry, old=entry)


# ============================================================================
# Reports
# ============================================================================


@router.get(
    "/api/projects/{project_id}/time-report",
    response_model=ProjectTimeReport,
    summary="Time tracked on a project's tasks",
    description="Totals per task and per day, including archived tasks.",
    responses={404: {"description": "Project not found"}},
)
async def get_project_time_report(
    project_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    tz: Optional[str] = Query(None, description="IANA timezone used to group days; defaults to UTC"),
) -> ProjectTimeReport:
    await get_project_or_404(db, project_id, current_user)
    return await build_project_report(db, project_id, tz)
