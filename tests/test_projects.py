"""Unit tests for Projects and project membership API endpoints."""

from datetime import datetime
from uuid import UUID, uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ascend.models.activity_log import ActivityLog
from ascend.models.notification import Notification
from ascend.models.project import Project
from ascend.models.project_member import ProjectMember
from ascend.models.task import Task
from ascend.models.user import User


@pytest.mark.asyncio
class TestCreateProject:
    """Tests for creating projects."""

    async def test_create_project_adds_owner_membership(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession, test_user: User
    ):
        response = await client.post(
            "/api/projects",
            headers=auth_headers,
            json={"title": "  Website   Redesign ", "priority": "high"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["title"] == "Website Redesign"
        assert data["status"] == "active"
        assert data["priority"] == "high"
        assert data["created_by"] == str(test_user.id)

        result = await db_session.execute(
            select(ProjectMember).where(ProjectMember.project_id == UUID(data["id"]))
        )
        members = result.scalars().all()
        assert [(m.user_id, m.role) for m in members] == [(test_user.id, "owner")]

    async def test_create_project_notifies_lead(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession, test_user_2: User
    ):
        response = await client.post(
            "/api/projects",
            headers=auth_headers,
            json={"title": "Led project", "lead_id": str(test_user_2.id)},
        )

        assert response.status_code == 201
        result = await db_session.execute(
            select(Notification).where(Notification.user_id == test_user_2.id)
        )
        notification = result.scalar_one()
        assert notification.type == "project_lead_assigned"

    async def test_create_project_invalid_color(self, client: AsyncClient, auth_headers: dict):
        response = await client.post(
            "/api/projects", headers=auth_headers, json={"title": "Bad", "color": "red"},
        )
        assert response.status_code == 422

    async def test_create_project_unauthenticated(self, client: AsyncClient):
        response = await client.post("/api/projects", json={"title": "Nope"})
        assert response.status_code == 401


@pytest.mark.asyncio
class TestListProjects:
    """Tests for listing projects."""

    async def test_list_includes_counts(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession,
        test_project: Project, test_user: User
    ):
        for status, archived in [("todo", False), ("done", False), ("done", True)]:
            db_session.add(Task(
                title=f"{status} task", status=status, is_archived=archived,
                project_id=test_project.id, created_by=test_user.id,
            ))
        await db_session.commit()

        response = await client.get("/api/projects", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["task_count"] == 2
        assert data[0]["done_count"] == 1

    async def test_list_excludes_other_users_projects(
        self, client: AsyncClient, auth_headers_2: dict, test_project: Project
    ):
        response = await client.get("/api/projects", headers=auth_headers_2)

        assert response.status_code == 200
        assert response.json() == []

    async def test_member_sees_project(
        self, client: AsyncClient, auth_headers_2: dict, test_project: Project,
        test_user_2: User, add_member
    ):
        await add_member(test_project, test_user_2)

        response = await client.get("/api/projects", headers=auth_headers_2)

        assert [p["id"] for p in response.json()] == [str(test_project.id)]

    async def test_filter_by_status_and_search(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession, test_user: User
    ):
        for title, status in [("Alpha", "active"), ("Beta", "completed"), ("Alpha two", "completed")]:
            db_session.add(Project(title=title, status=status, created_by=test_user.id))
        await db_session.commit()

        response = await client.get(
            "/api/projects?status=completed&search=alpha", headers=auth_headers,
        )

        assert [p["title"] for p in response.json()] == ["Alpha two"]


@pytest.mark.asyncio
class TestGetUpdateDeleteProject:
    """Tests for single-project endpoints."""

    async def test_get_project(self, client: AsyncClient, auth_headers: dict, test_project: Project):
        response = await client.get(f"/api/projects/{test_project.id}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["task_count"] == 0

    async def test_get_project_not_visible(
        self, client: AsyncClient, auth_headers_2: dict, test_project: Project
    ):
        response = await client.get(f"/api/projects/{test_project.id}", headers=auth_headers_2)
        assert response.status_code == 404

    async def test_get_project_not_found(self, client: AsyncClient, auth_headers: dict):
        response = await client.get(f"/api/projects/{uuid4()}", headers=auth_headers)
        assert response.status_code == 404

    async def test_update_project_logs_activity(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession, test_project: Project
    ):
        response = await client.patch(
            f"/api/projects/{test_project.id}",
            headers=auth_headers,
            json={"status": "completed", "title": None},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["title"] == "Test Project"

        result = await db_session.execute(
            select(ActivityLog).where(ActivityLog.project_id == test_project.id)
        )
        entry = result.scalar_one()
        assert entry.action == "project_updated"
        assert entry.details["old_status"] == "active"
        assert entry.details["new_status"] == "completed"
        assert "old_title" not in entry.details

    async def test_reschedule_rearms_reminder(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession, test_project: Project
    ):
        test_project.due_reminder_sent_at = datetime(2026, 1, 1)
        await db_session.commit()

        response = await client.patch(
            f"/api/projects/{test_project.id}",
            headers=auth_headers,
            json={"due_date": "2026-12-01T09:00:00Z"},
        )

        assert response.status_code == 200
        await db_session.refresh(test_project)
        assert test_project.due_reminder_sent_at is None
        assert test_project.due_date == datetime(2026, 12, 1, 9, 0)

    async def test_plain_member_cannot_edit(
        self, client: AsyncClient, auth_headers_2: dict, test_project: Project,
        test_user_2: User, add_member
    ):
        await add_member(test_project, test_user_2, role="member")

        response = await client.patch(
            f"/api/projects/{test_project.id}", headers=auth_headers_2, json={"title": "Hijack"},
        )
        assert response.status_code == 403

    async def test_owner_member_can_edit_but_not_delete(
        self, client: AsyncClient, auth_headers_2: dict, test_project: Project,
        test_user_2: User, add_member
    ):
        await add_member(test_project, test_user_2, role="owner")

        response = await client.patch(
            f"/api/projects/{test_project.id}", headers=auth_headers_2, json={"title": "Renamed"},
        )
        assert response.status_code == 200

        response = await client.delete(f"/api/projects/{test_project.id}", headers=auth_headers_2)
        assert response.status_code == 403

    async def test_delete_project_cascades(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession,
        test_project: Project, test_task: Task
    ):
        project_id, task_id = test_project.id, test_task.id

        response = await client.delete(f"/api/projects/{project_id}", headers=auth_headers)

        assert response.status_code == 204
        db_session.expunge_all()
        assert await db_session.get(Project, project_id) is None
        assert await db_session.get(Task, task_id) is None


@pytest.mark.asyncio
class TestProjectMembers:
    """Tests for project membership endpoints."""

    async def test_list_members(
        self, client: AsyncClient, auth_headers: dict, test_project: Project, test_user: User
    ):
        response = await client.get(f"/api/projects/{test_project.id}/members", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["role"] == "owner"
        assert data[0]["user"]["email"] == test_user.email

    async def test_invite_member(
        self, client: AsyncClient, auth_headers: dict, auth_headers_2: dict,
        db_session: AsyncSession, test_project: Project, test_user_2: User
    ):
        response = await client.post(
            f"/api/projects/{test_project.id}/members",
            headers=auth_headers,
            json={"email": "TEST2@example.com"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["role"] == "member"
        assert data["accepted_at"] is not None

        result = await db_session.execute(
            select(Notification).where(Notification.user_id == test_user_2.id)
        )
        assert result.scalar_one().type == "project_invited"

        # The invitee can now see the project
        response = await client.get(f"/api/projects/{test_project.id}", headers=auth_headers_2)
        assert response.status_code == 200

    async def test_invite_unknown_email(self, client: AsyncClient, auth_headers: dict, test_project: Project):
        response = await client.post(
            f"/api/projects/{test_project.id}/members",
            headers=auth_headers,
            json={"email": "ghost@example.com"},
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "No user with that email"

    async def test_invite_existing_member(
        self, client: AsyncClient, auth_headers: dict, test_project: Project,
        test_user_2: User, add_member
    ):
        await add_member(test_project, test_user_2)

        response = await client.post(
            f"/api/projects/{test_project.id}/members",
            headers=auth_headers,
            json={"email": test_user_2.email},
        )

        assert response.status_code == 400

    async def test_member_cannot_invite(
        self, client: AsyncClient, auth_headers_2: dict, db_session: AsyncSession,
        test_project: Project, test_user_2: User, add_member
    ):
        await add_member(test_project, test_user_2)
        outsider = User(email="outsider@example.com", password_hash="x", display_name="Outsider")
        db_session.add(outsider)
        await db_session.commit()

        response = await client.post(
            f"/api/projects/{test_project.id}/members",
            headers=auth_headers_2,
            json={"email": "outsider@example.com"},
        )

        assert response.status_code == 403
        assert response.json()["detail"] == "Only project owners can manage members"

    async def test_change_role(
        self, client: AsyncClient, auth_headers: dict, test_project: Project,
        test_user_2: User, add_member
    ):
        await add_member(test_project, test_user_2)

        response = await client.patch(
            f"/api/projects/{test_project.id}/members/{test_user_2.id}",
            headers=auth_headers,
            json={"role": "owner"},
        )

        assert response.status_code == 200
        assert response.json()["role"] == "owner"

    async def test_creator_cannot_be_removed(
        self, client: AsyncClient, auth_headers: dict, test_project: Project, test_user: User
    ):
        response = await client.delete(
            f"/api/projects/{test_project.id}/members/{test_user.id}", headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "The project creator cannot be removed"

    async def test_member_can_leave(
        self, client: AsyncClient, auth_headers_2: dict, test_project: Project,
        test_user_2: User, add_member
    ):
        await add_member(test_project, test_user_2)

        response = await client.delete(
            f"/api/projects/{test_project.id}/members/{test_user_2.id}", headers=auth_headers_2,
        )

        assert response.status_code == 204
        response = await client.get(f"/api/projects/{test_project.id}", headers=auth_headers_2)
        assert response.status_code == 404
