"""Notifications API endpoints.

Notifications are private to their recipient. Changes are echoed to the
recipient's ``user:<id>`` room so other open sessions stay in sync.
"""

from typing import Annotated, List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.notification import Notification
from ..models.user import User
from ..schemas.notification import MarkAllReadResult, NotificationResponse, UnreadCount
from ..services.auth_service import get_current_user
from ..services.notification_service import NotificationService
from ..websocket.handlers import ChangeEvent, publish_change

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


async def _get_own_notification(
    db: AsyncSession,
    notification_id: UUID,
    user: User,
) -> Notification:
    notification = await db.get(Notification, notification_id)
    if notification is None or notification.user_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
    return notification


@router.get(
    "",
    response_model=List[NotificationResponse],
    summary="List user notifications",
    responses={
        200: {"description": "List of notifications retrieved successfully"},
        401: {"description": "Not authenticated"},
    },
)
async def list_notifications(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(50, ge=1, le=100, description="Maximum number of records to return"),
    unread_only: bool = Query(False, description="Return only unread notifications"),
) -> List[NotificationResponse]:
    """Notifications for the current user, newest first."""
    return await NotificationService.list_for_user(
        db, current_user.id, unread_only=unread_only, skip=skip, limit=limit,
    )


@router.get(
    "/unread-count",
    response_model=UnreadCount,
    summary="Count unread notifications",
)
async def get_unread_count(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> UnreadCount:
    return UnreadCount(count=await NotificationService.unread_count(db, current_user.id))


@router.post(
    "/read-all",
    response_model=MarkAllReadResult,
    summary="Mark all notifications read",
)
async def mark_all_read(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> MarkAllReadResult:
    updated = await NotificationService.mark_all_read(db, current_user.id)
    await db.commit()

    if updated:
        await publish_change(
            "notifications", ChangeEvent.UPDATE,
            new={"user_id": current_user.id, "read": True}, user_ids=[current_user.id],
        )
    return MarkAllReadResult(updated=updated)


@router.patch(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark a notification read",
    responses={
        200: {"description": "Notification marked read"},
        404: {"description": "Notification not found"},
    },
)
async def mark_read(
    notification_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> NotificationResponse:
    notification = await _get_own_notification(db, notification_id, current_user)
    if not notification.read:
        notification.read = True
        await db.commit()
        await publish_change(
            "notifications", ChangeEvent.UPDATE,
            new=notification, old={"id": notification.id, "read": False},
            user_ids=[current_user.id],
        )
    return notification


@router.delete(
    "/{notification_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a notification",
    responses={
        204: {"description": "Notification deleted"},
        404: {"description": "Notification not found"},
    },
)
async def delete_notification(
    notification_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> None:
    notification = await _get_own_notification(db, notification_id, current_user)
    await db.delete(notification)
    await db.commit()
    await publish_change(
        "notifications", ChangeEvent.DELETE, old=notification, user_ids=[current_user.id],
    )


@router.delete(
    "",
    response_model=MarkAllReadResult,
    summary="Delete all notifications",
)
async def delete_all_notifications(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> MarkAllReadResult:
    deleted = await NotificationService.delete_all(db, current_user.id)
    await db.commit()

    if deleted:
        await publish_change(
            "notifications", ChangeEvent.DELETE,
            old={"user_id": current_user.id}, user_ids=[current_user.id],
        )
    return MarkAllReadResult(updated=deleted)
