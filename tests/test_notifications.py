"""Unit tests for notifications API and service."""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ascend.models.notification import Notification
from ascend.models.user import User
from ascend.schemas.notification import NotificationType
from ascend.services.notification_service import NotificationService


@pytest_asyncio.fixture
async def notifications(db_session: AsyncSession, test_user: User, test_user_2: User) -> list[Notification]:
    """Three notifications for test_user (one read) and one for test_user_2."""
    base = datetime(2026, 3, 1, 12, 0)
    rows = [
        Notification(user_id=test_user.id, actor_id=test_user_2.id, type="task_assigned",
                     read=False, created_at=base),
        Notification(user_id=test_user.id, actor_id=test_user_2.id, type="mention",
                     read=True, created_at=base + timedelta(minutes=1)),
        Notification(user_id=test_user.id, actor_id=None, type="task_due",
                     read=False, created_at=base + timedelta(minutes=2)),
        Notification(user_id=test_user_2.id, actor_id=test_user.id, type="project_invited",
                     read=False, created_at=base),
    ]
    db_session.add_all(rows)
    await db_session.commit()
    return rows


@pytest.mark.asyncio
class TestNotificationService:
    """Tests for NotificationService."""

    async def test_no_self_notifications(self, db_session: AsyncSession, test_user: User):
        result = await NotificationService.create_notification(
            db_session, test_user.id, test_user.id, NotificationType.MENTION,
        )
        assert result is None

    async def test_system_notification_has_no_actor(self, db_session: AsyncSession, test_user: User):
        notification = await NotificationService.create_notification(
            db_session, test_user.id, None, NotificationType.TASK_DUE,
        )
        await db_session.commit()

        assert notification.actor_id is None
        assert notification.type == "task_due"
        assert notification.read is False

    async def test_deliver_skips_none(self):
        assert await NotificationService.deliver([None, None]) == 0

    async def test_unread_count(self, db_session: AsyncSession, test_user: User, notifications):
        assert await NotificationService.unread_count(db_session, test_user.id) == 2


@pytest.mark.asyncio
class TestNotificationRoutes:
    """Tests for /api/notifications."""

    async def test_list_newest_first(self, client: AsyncClient, auth_headers: dict, notifications):
        response = await client.get("/api/notifications", headers=auth_headers)

        assert response.status_code == 200
        assert [n["type"] for n in response.json()] == ["task_due", "mention", "task_assigned"]

    async def test_list_unread_only_with_paging(self, client: AsyncClient, auth_headers: dict, notifications):
        response = await client.get(
            "/api/notifications?unread_only=true&limit=1&skip=1", headers=auth_headers,
        )

        assert [n["type"] for n in response.json()] == ["task_assigned"]

    async def test_unread_count(self, client: AsyncClient, auth_headers: dict, notifications):
        response = await client.get("/api/notifications/unread-count", headers=auth_headers)
        assert response.json() == {"count": 2}

    async def test_mark_read(self, client: AsyncClient, auth_headers: dict, notifications):
        target = notifications[0]

        response = await client.patch(f"/api/notifications/{target.id}/read", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["read"] is True
        response = await client.get("/api/notifications/unread-count", headers=auth_headers)
        assert response.json() == {"count": 1}

    async def test_cannot_touch_others_notifications(
        self, client: AsyncClient, auth_headers: dict, notifications
    ):
        foreign = notifications[3]

        response = await client.patch(f"/api/notifications/{foreign.id}/read", headers=auth_headers)
        assert response.status_code == 404

        response = await client.delete(f"/api/notifications/{foreign.id}", headers=auth_headers)
        assert response.status_code == 404

    async def test_mark_all_read(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession,
        notifications, test_user_2: User
    ):
        response = await client.post("/api/notifications/read-all", headers=auth_headers)

        assert response.json() == {"updated": 2}
        result = await db_session.execute(
            select(Notification.read).where(Notification.user_id == test_user_2.id)
        )
        assert result.scalars().all() == [False]

    async def test_delete_one_and_all(self, client: AsyncClient, auth_headers: dict, notifications):
        response = await client.delete(f"/api/notifications/{notifications[0].id}", headers=auth_headers)
        assert response.status_code == 204

        response = await client.delete("/api/notifications", headers=auth_headers)
        assert response.json() == {"updated": 2}

        response = await client.get("/api/notifications", headers=auth_headers)
        assert response.json() == []

    async def test_unknown_notification(self, client: AsyncClient, auth_headers: dict):
        response = await client.patch(f"/api/notifications/{uuid4()}/read", headers=auth_headers)
        assert response.status_code == 404
