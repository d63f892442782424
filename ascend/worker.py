"""
ARQ Worker Configuration

Background job processing with a Redis-backed task queue.
Sends due-date reminders for tasks and projects and sweeps stale presence
entries on cron schedules.

Run with:
    arq ascend.worker.WorkerSettings
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Optional
from urllib.parse import urlparse

from arq import cron
from arq.connections import RedisSettings
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .database import async_session_maker
from .models.notification import Notification
from .models.project import Project
from .models.task import Task
from .schemas.notification import NotificationType
from .services.notification_service import NotificationService
from .services.redis_service import redis_service
from .websocket.presence import PRESENCE_TTL

logger = logging.getLogger(__name__)

PRESENCE_PREFIX = "presence:"


def parse_redis_url(url: str) -> RedisSettings:
    """
    Parse a Redis URL into ARQ RedisSettings.

    Format: redis://host:port/db or redis://:password@host:port/db
    """
    parsed = urlparse(url)
    return RedisSettings(
        host=parsed.hostname or "localhost",
        port=parsed.port or 6379,
        password=parsed.password,
        database=int(parsed.path.lstrip("/") or 0),
    )


# =============================================================================
# Due reminders
# =============================================================================


async def queue_due_reminders(
    db: AsyncSession,
    now: Optional[datetime] = None,
) -> list[Notification]:
    """
    Stage reminders for everything due within the lead window.

    Items already past due that never got a reminder are included, so a
    reminder goes out once even if the worker was down at the time.

    Tasks: not done, not archived, assigned, reminder not yet sent.
    Projects: not completed or archived, with a lead, reminder not yet sent.

    Returns:
        The staged notifications; the caller commits and delivers them.
    """
    now = now or datetime.utcnow()
    horizon = now + timedelta(minutes=settings.due_reminder_lead_minutes)
    notifications: list[Notification] = []

    task_result = await db.execute(
        select(Task).where(
            Task.due_date.is_not(None),
            Task.due_date <= horizon,
            Task.due_reminder_sent_at.is_(None),
            Task.status != "done",
            Task.is_archived.is_(False),
            Task.assignee_id.is_not(None),
        )
    )
    for task in task_result.scalars().all():
        notification = await NotificationService.create_notification(
            db, task.assignee_id, None, NotificationType.TASK_DUE,
            task_id=task.id, project_id=task.project_id,
        )
        task.due_reminder_sent_at = now
        notifications.append(notification)

    project_result = await db.execute(
        select(Project).where(
            Project.due_date.is_not(None),
            Project.due_date <= horizon,
            Project.due_reminder_sent_at.is_(None),
            Project.status.not_in(("completed", "archived")),
            Project.lead_id.is_not(None),
        )
    )
    for project in project_result.scalars().all():
        notification = await NotificationService.create_notification(
            db, project.lead_id, None, NotificationType.PROJECT_DUE, project_id=project.id,
        )
        project.due_reminder_sent_at = now
        notifications.append(notification)

    return notifications


async def send_due_reminders(ctx: dict[str, Any]) -> dict[str, Any]:
    """
    Cron job: create and push due reminders.

    Returns:
        dict with the number of reminders sent
    """
    logger.info("Running due reminder scan...")
    sent = 0

    try:
        async with async_session_maker() as db:
            notifications = await queue_due_reminders(db)
            await db.commit()
            sent = len(notifications)

        # Pushed through Redis to whichever API worker holds the socket
        await NotificationService.deliver(notifications)
        logger.info(f"Due reminders sent: {sent}")
    except Exception as e:
        logger.error(f"Error sending due reminders: {e}", exc_info=True)

    return {"sent": sent, "run_at": datetime.utcnow().isoformat()}


# =============================================================================
# Presence cleanup
# =============================================================================


async def cleanup_stale_presence(ctx: dict[str, Any]) -> dict[str, int]:
    """
    Cron job: drop presence entries older than PRESENCE_TTL.

    Viewers whose tab died without a clean disconnect stop showing up
    in Redis-backed presence lists.

    Returns:
        dict with count of removed entries
    """
    if not redis_service.is_connected:
        logger.debug("Redis not connected, skipping presence cleanup")
        return {"removed": 0}

    cutoff = time.time() - PRESENCE_TTL
    total_removed = 0
    try:
        keys = await redis_service.scan_keys(f"{PRESENCE_PREFIX}*")
        for key in keys:
            room_id = key[len(PRESENCE_PREFIX):]
            removed = await redis_service.presence_cleanup(room_id, cutoff)
            if removed:
                logger.debug(f"Cleaned {removed} stale presence entries from {room_id}")
                total_removed += removed
    except Exception as e:
        logger.error(f"Redis presence cleanup error: {e}")

    return {"removed": total_removed}


# =============================================================================
# Startup/Shutdown Hooks
# =============================================================================


async def startup(ctx: dict[str, Any]) -> None:
    logger.info("ARQ worker starting up...")
    try:
        await redis_service.connect()
        logger.info("Redis connected for ARQ worker")
    except Exception as e:
        logger.warning(f"Redis connection failed in ARQ worker: {e}")


async def shutdown(ctx: dict[str, Any]) -> None:
    logger.info("ARQ worker shutting down...")
    await redis_service.disconnect()


# =============================================================================
# Schedule Parsing
# =============================================================================


def parse_schedule_set(value: str) -> set[int]:
    """
    Parse a comma-separated string of integers into a set.

    Examples:
        "0,12" -> {0, 12}
        "0,15,30,45" -> {0, 15, 30, 45}
    """
    return {int(x.strip()) for x in value.split(",") if x.strip()}


def build_due_reminder_cron():
    """Due reminder cron at the configured minutes (every hour at minute 0 if empty)."""
    minutes = parse_schedule_set(settings.arq_due_reminder_minutes) or {0}
    return cron(send_due_reminders, minute=minutes, second=0)


def build_presence_cleanup_cron():
    """Presence sweep every minute at the configured seconds (second 0 if empty)."""
    seconds = parse_schedule_set(settings.arq_presence_cleanup_seconds) or {0}
    return cron(cleanup_stale_presence, second=seconds)


# =============================================================================
# Worker Settings
# =============================================================================


class WorkerSettings:
    """ARQ worker configuration."""

    redis_settings = parse_redis_url(settings.redis_url)

    # Job functions that can be called via arq.enqueue_job()
    functions = [
        send_due_reminders,
        cleanup_stale_presence,
    ]

    # ARQ_DUE_REMINDER_MINUTES: comma-separated minutes of the hour
    # ARQ_PRESENCE_CLEANUP_SECONDS: comma-separated seconds of the minute
    cron_jobs = [
        build_due_reminder_cron(),
        build_presence_cleanup_cron(),
    ]

    on_startup = startup
    on_shutdown = shutdown

    max_jobs = 10
    job_timeout = 300
    keep_result = 3600

    health_check_interval = 30
