"""Notification service for creating and delivering notifications.

All notification types go through ``create_notification`` so the rules
live in one place:
- Users are never notified about their own actions
- New notifications are pushed to the recipient's ``user:<id>`` room
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.notification import Notification
from ..schemas.notification import NotificationType
from ..websocket.handlers import handle_notification

logger = logging.getLogger(__name__)


class NotificationService:
    """
    Service for managing notifications.

    Creation only stages rows in the session; call ``deliver`` after the
    transaction commits so recipients never see uncommitted rows.
    """

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        recipient_id: UUID,
        actor_id: Optional[UUID],
        notification_type: NotificationType,
        task_id: Optional[UUID] = None,
        project_id: Optional[UUID] = None,
        comment_id: Optional[UUID] = None,
    ) -> Optional[Notification]:
        """
        Stage a notification.

        Args:
            db: Database session
            recipient_id: User receiving the notification
            actor_id: User who caused it (None for system reminders)
            notification_type: Kind of notification

        Returns:
            Notification, or None when the recipient is the actor
        """
        if actor_id is not None and recipient_id == actor_id:
            return None

        notification = Notification(
            user_id=recipient_id,
            actor_id=actor_id,
            type=notification_type.value,
            task_id=task_id,
            project_id=project_id,
            comment_id=comment_id,
            read=False,
        )
        db.add(notification)
        logger.info(
            f"Notification created: user={recipient_id}, type={notification_type.value}"
        )
        return notification

    @staticmethod
    async def deliver(notifications: list[Optional[Notification]]) -> int:
        """Push committed notifications over WebSocket; returns local recipients."""
        delivered = 0
        for notification in notifications:
            if notification is None:
                continue
            try:
                delivered += await handle_notification(notification)
            except Exception as e:
                logger.warning(f"Realtime delivery failed for notification {notification.id}: {e}")
        return delivered

    # ------------------------------------------------------------------
    # Typed helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def notify_mention(db, recipient_id, actor_id, comment_id, task_id=None, project_id=None):
        return await NotificationService.create_notification(
            db, recipient_id, actor_id, NotificationType.MENTION,
            task_id=task_id, project_id=project_id, comment_id=comment_id,
        )

    @staticmethod
    async def notify_task_assigned(db, recipient_id, actor_id, task_id, project_id=None):
        return await NotificationService.create_notification(
            db, recipient_id, actor_id, NotificationType.TASK_ASSIGNED,
            task_id=task_id, project_id=project_id,
        )

    @staticmethod
    async def notify_task_unassigned(db, recipient_id, actor_id, task_id, project_id=None):
        return await NotificationService.create_notification(
            db, recipient_id, actor_id, NotificationType.TASK_UNASSIGNED,
            task_id=task_id, project_id=project_id,
        )

    @staticmethod
    async def notify_project_invited(db, recipient_id, actor_id, project_id):
        return await NotificationService.create_notification(
            db, recipient_id, actor_id, NotificationType.PROJECT_INVITED, project_id=project_id,
        )

    @staticmethod
    async def notify_project_lead_assigned(db, recipient_id, actor_id, project_id):
        return await NotificationService.create_notification(
            db, recipient_id, actor_id, NotificationType.PROJECT_LEAD_ASSIGNED, project_id=project_id,
        )

    @staticmethod
    async def notify_project_lead_removed(db, recipient_id, actor_id, project_id):
        return await NotificationService.create_notification(
            db, recipient_id, actor_id, NotificationType.PROJECT_LEAD_REMOVED, project_id=project_id,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        user_id: UUID,
        unread_only: bool = False,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Notification]:
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.read.is_(False))
        query = query.order_by(Notification.created_at.desc()).offset(skip).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def unread_count(db: AsyncSession, user_id: UUID) -> int:
        result = await db.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.read.is_(False),
            )
        )
        return result.scalar() or 0

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: UUID) -> int:
        result = await db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
            .values(read=True)
        )
        return result.rowcount or 0

    @staticmethod
    async def delete_all(db: AsyncSession, user_id: UUID) -> int:
        result = await db.execute(delete(Notification).where(Notification.user_id == user_id))
        return result.rowcount or 0
