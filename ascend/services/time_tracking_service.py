"""Time tracking: timers, manual entries and project reports."""

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.task import Task
from ..models.time_entry import TimeEntry
from ..schemas.time_entry import DayTimeGroup, ProjectTimeReport, TaskTimeTotal

logger = logging.getLogger(__name__)


TIMER_ALREADY_RUNNING = "TIMER_ALREADY_RUNNING"
NO_ACTIVE_TIMER = "NO_ACTIVE_TIMER"
INVALID_TIME_RANGE = "INVALID_TIME_RANGE"

_ALREADY_RUNNING_MESSAGE = "Another timer is already running. Stop it first."


class TimeTrackingError(Exception):
    """Raised for rule violations; ``code`` is a stable machine-readable string."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


def calculate_duration(start: datetime, end: datetime) -> int:
    """Whole seconds between two timestamps (floored)."""
    return int((end - start).total_seconds() // 1)


def format_duration(seconds: int) -> str:
    """
    Format seconds as ``H:MM:SS`` (with hours) or ``M:SS``.

    >>> format_duration(3725)
    '1:02:05'
    >>> format_duration(65)
    '1:05'
    """
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def get_active_timer(db: AsyncSession, user_id: UUID) -> Optional[TimeEntry]:
    result = await db.execute(
        select(TimeEntry).where(TimeEntry.user_id == user_id, TimeEntry.end_time.is_(None))
    )
    return result.scalars().first()


async def start_timer(
    db: AsyncSession,
    user_id: UUID,
    entity_type: str,
    entity_id: UUID,
    tz: str = "UTC",
    description: Optional[str] = None,
) -> TimeEntry:
    """
    Start a timer for the user.

    Raises:
        TimeTrackingError: TIMER_ALREADY_RUNNING when another timer is running,
            including one started concurrently that trips ux_time_entries_one_running
    """
    if await get_active_timer(db, user_id) is not None:
        raise TimeTrackingError(TIMER_ALREADY_RUNNING, _ALREADY_RUNNING_MESSAGE)

    entry = TimeEntry(
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        start_time=_utcnow(),
        timezone=tz,
        description=description,
    )
    db.add(entry)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        logger.info(f"Concurrent timer start rejected: user={user_id}")
        raise TimeTrackingError(TIMER_ALREADY_RUNNING, _ALREADY_RUNNING_MESSAGE)
    logger.info(f"Timer started: user={user_id}, {entity_type}={entity_id}")
    return entry


async def stop_timer(db: AsyncSession, user_id: UUID) -> TimeEntry:
    """
    Stop the running timer and record its duration.

    Raises:
        TimeTrackingError: NO_ACTIVE_TIMER when nothing is running
    """
    entry = await get_active_timer(db, user_id)
    if entry is None:
        raise TimeTrackingError(NO_ACTIVE_TIMER, "No timer is running")

    entry.end_time = _utcnow()
    entry.duration = max(0, calculate_duration(entry.start_time, entry.end_time))
    await db.flush()
    logger.info(f"Timer stopped: user={user_id}, duration={entry.duration}s")
    return entry


def apply_entry_update(
    entry: TimeEntry,
    start_time: Optional[datetime] = None,
    end_time: Optional[datetime] = None,
    description: Optional[str] = None,
    description_set: bool = False,
) -> TimeEntry:
    """
    Apply edits to an entry, recomputing duration when times change.

    Raises:
        TimeTrackingError: INVALID_TIME_RANGE when end precedes start
    """
    if start_time is not None or end_time is not None:
        new_start = start_time or entry.start_time
        new_end = end_time or entry.end_time
        if new_end is not None:
            duration = calculate_duration(new_start, new_end)
            if duration < 0:
                raise TimeTrackingError(INVALID_TIME_RANGE, "End time must be after start time")
            entry.duration = duration
        entry.start_time = new_start
        entry.end_time = new_end

    if description_set:
        entry.description = description
    return entry


def resolve_timezone(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r}, using UTC")
        return ZoneInfo("UTC")


def _local_date(value: datetime, tz: ZoneInfo) -> str:
    return value.replace(tzinfo=timezone.utc).astimezone(tz).date().isoformat()


async def build_project_report(
    db: AsyncSession,
    project_id: UUID,
    tz_name: Optional[str] = None,
) -> ProjectTimeReport:
    """
    Aggregate finished time entries on a project's tasks (archived included).

    Days are computed in ``tz_name`` and listed newest first; tasks are
    ordered by tracked seconds, highest first.
    """
    tz = resolve_timezone(tz_name)

    tasks_result = await db.execute(
        select(Task.id, Task.title, Task.status, Task.is_archived).where(Task.project_id == project_id)
    )
    tasks = {row.id: row for row in tasks_result.all()}
    if not tasks:
        return ProjectTimeReport(
            project_id=project_id,
            total_seconds=0,
            formatted_total=format_duration(0),
            by_task=[],
            by_day=[],
        )

    entries_result = await db.execute(
        select(TimeEntry.entity_id, TimeEntry.start_time, TimeEntry.duration)
        .where(
            TimeEntry.entity_type == "task",
            TimeEntry.entity_id.in_(list(tasks.keys())),
            TimeEntry.duration.is_not(None),
        )
        .order_by(TimeEntry.start_time.desc())
    )
    entries = entries_result.all()

    per_task: dict[UUID, int] = defaultdict(int)
    per_day: dict[str, dict[UUID, int]] = defaultdict(lambda: defaultdict(int))
    for entry in entries:
        per_task[entry.entity_id] += entry.duration or 0
        per_day[_local_date(entry.start_time, tz)][entry.entity_id] += entry.duration or 0

    by_task = sorted(
        (
            TaskTimeTotal(
                task_id=task_id,
                title=tasks[task_id].title,
                seconds=seconds,
                status=tasks[task_id].status,
                is_archived=tasks[task_id].is_archived,
            )
            for task_id, seconds in per_task.items()
        ),
        key=lambda item: item.seconds,
        reverse=True,
    )

    by_day = []
    for day in sorted(per_day.keys(), reverse=True):
        day_tasks = sorted(
            (
                TaskTimeTotal(task_id=task_id, title=tasks[task_id].title, seconds=seconds)
                for task_id, seconds in per_day[day].items()
            ),
            key=lambda item: item.seconds,
            reverse=True,
        )
        by_day.append(
            DayTimeGroup(date=day, total_seconds=sum(t.seconds for t in day_tasks), tasks=day_tasks)
        )

    total = sum(e.duration or 0 for e in entries)
    return ProjectTimeReport(
        project_id=project_id,
        total_seconds=total,
        formatted_total=format_duration(total),
        by_task=by_task,
        by_day=by_day,
    )
