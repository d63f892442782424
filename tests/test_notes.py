"""Unit tests for notes, note-task links and project documents."""

from datetime import datetime
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ascend.models.activity_log import ActivityLog
from ascend.models.document import ProjectDocument
from ascend.models.note import Note, NoteTask
from ascend.models.project import Project
from ascend.models.task import Task
from ascend.models.user import User


@pytest_asyncio.fixture
async def test_note(db_session: AsyncSession, test_project: Project, test_user: User) -> Note:
    note = Note(
        project_id=test_project.id,
        title="Kickoff meeting",
        content="Agenda",
        created_by=test_user.id,
    )
    db_session.add(note)
    await db_session.commit()
    return note


@pytest_asyncio.fixture
async def test_document(db_session: AsyncSession, test_project: Project) -> ProjectDocument:
    document = ProjectDocument(
        project_id=test_project.id,
        title="Design brief",
        url="https://example.com/brief",
        type="link",
    )
    db_session.add(document)
    await db_session.commit()
    return document


async def _actions(db: AsyncSession) -> list[str]:
    result = await db.execute(select(ActivityLog.action).order_by(ActivityLog.created_at.asc()))
    return list(result.scalars().all())


@pytest.mark.asyncio
class TestNotes:
    """Tests for note CRUD."""

    async def test_create_note(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession,
        test_project: Project, test_user: User
    ):
        response = await client.post(
            f"/api/projects/{test_project.id}/notes",
            headers=auth_headers,
            json={"title": "Retro", "content": "What went well"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["created_by"] == str(test_user.id)
        assert await _actions(db_session) == ["note_created"]

    async def test_create_note_requires_project_access(
        self, client: AsyncClient, auth_headers_2: dict, test_project: Project
    ):
        response = await client.post(
            f"/api/projects/{test_project.id}/notes", headers=auth_headers_2, json={"title": "Nope"},
        )
        assert response.status_code == 404

    async def test_list_notes_newest_first_with_links(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession,
        test_project: Project, test_user: User, test_note: Note, test_task: Task
    ):
        test_note.updated_at = datetime(2026, 1, 1)
        newer = Note(
            project_id=test_project.id, title="Later", created_by=test_user.id,
            updated_at=datetime(2026, 2, 1),
        )
        db_session.add_all([newer, NoteTask(note_id=test_note.id, task_id=test_task.id)])
        await db_session.commit()

        response = await client.get(f"/api/projects/{test_project.id}/notes", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert [n["title"] for n in data] == ["Later", "Kickoff meeting"]
        assert data[0]["task_ids"] == []
        assert data[1]["task_ids"] == [str(test_task.id)]

    async def test_update_note_logs_only_real_changes(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession, test_note: Note
    ):
        response = await client.patch(
            f"/api/notes/{test_note.id}", headers=auth_headers, json={"title": "Kickoff meeting"},
        )
        assert response.status_code == 200
        assert await _actions(db_session) == []

        response = await client.patch(
            f"/api/notes/{test_note.id}", headers=auth_headers, json={"content": None},
        )
        assert response.json()["content"] is None
        assert await _actions(db_session) == ["note_updated"]

    async def test_member_can_edit_but_not_delete(
        self, client: AsyncClient, auth_headers_2: dict, test_project: Project,
        test_user_2: User, add_member, test_note: Note
    ):
        await add_member(test_project, test_user_2)

        response = await client.patch(
            f"/api/notes/{test_note.id}", headers=auth_headers_2, json={"title": "Edited"},
        )
        assert response.status_code == 200

        response = await client.delete(f"/api/notes/{test_note.id}", headers=auth_headers_2)
        assert response.status_code == 403

    async def test_delete_note(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession, test_note: Note
    ):
        note_id = test_note.id

        response = await client.delete(f"/api/notes/{note_id}", headers=auth_headers)

        assert response.status_code == 204
        db_session.expunge_all()
        assert await db_session.get(Note, note_id) is None
        assert await _actions(db_session) == ["note_deleted"]

    async def test_get_unknown_note(self, client: AsyncClient, auth_headers: dict):
        response = await client.get(f"/api/notes/{uuid4()}", headers=auth_headers)
        assert response.status_code == 404


@pytest.mark.asyncio
class TestNoteTaskLinks:
    """Tests for linking tasks to notes."""

    async def test_link_and_unlink(
        self, client: AsyncClient, auth_headers: dict, test_note: Note, test_task: Task
    ):
        response = await client.post(
            f"/api/notes/{test_note.id}/tasks", headers=auth_headers, json={"task_id": str(test_task.id)},
        )
        assert response.status_code == 201

        response = await client.get(f"/api/notes/{test_note.id}", headers=auth_headers)
        assert response.json()["task_ids"] == [str(test_task.id)]

        response = await client.delete(
            f"/api/notes/{test_note.id}/tasks/{test_task.id}", headers=auth_headers,
        )
        assert response.status_code == 204

        response = await client.delete(
            f"/api/notes/{test_note.id}/tasks/{test_task.id}", headers=auth_headers,
        )
        assert response.status_code == 404

    async def test_duplicate_link(
        self, client: AsyncClient, auth_headers: dict, test_note: Note, test_task: Task
    ):
        payload = {"task_id": str(test_task.id)}
        await client.post(f"/api/notes/{test_note.id}/tasks", headers=auth_headers, json=payload)

        response = await client.post(f"/api/notes/{test_note.id}/tasks", headers=auth_headers, json=payload)

        assert response.status_code == 400
        assert response.json()["detail"] == "Task is already linked to this note"

    async def test_link_invisible_task(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession,
        test_note: Note, test_user_2: User
    ):
        private = Task(title="Private", created_by=test_user_2.id)
        db_session.add(private)
        await db_session.commit()

        response = await client.post(
            f"/api/notes/{test_note.id}/tasks", headers=auth_headers, json={"task_id": str(private.id)},
        )
        assert response.status_code == 404


@pytest.mark.asyncio
class TestDocuments:
    """Tests for project documents."""

    async def test_create_link(self, client: AsyncClient, auth_headers: dict, test_project: Project):
        response = await client.post(
            f"/api/projects/{test_project.id}/documents",
            headers=auth_headers,
            json={"title": "Roadmap", "url": "Example.com/roadmap"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["type"] == "link"
        assert data["url"] == "https://example.com/roadmap"

    async def test_create_link_with_unsafe_url(
        self, client: AsyncClient, auth_headers: dict, test_project: Project
    ):
        response = await client.post(
            f"/api/projects/{test_project.id}/documents",
            headers=auth_headers,
            json={"title": "Bad", "url": "javascript:alert(1)"},
        )
        assert response.status_code == 422

    async def test_list_filter_by_type(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession,
        test_project: Project, test_document: ProjectDocument
    ):
        db_session.add(ProjectDocument(
            project_id=test_project.id, title="Notes", content="Body", type="note",
        ))
        await db_session.commit()

        response = await client.get(
            f"/api/projects/{test_project.id}/documents?type=note", headers=auth_headers,
        )

        assert [d["title"] for d in response.json()] == ["Notes"]

    async def test_update_cannot_strip_link_url(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession,
        test_document: ProjectDocument
    ):
        response = await client.patch(
            f"/api/documents/{test_document.id}", headers=auth_headers, json={"url": None},
        )

        assert response.status_code == 422
        db_session.expunge_all()
        document = await db_session.get(ProjectDocument, test_document.id)
        assert document.url == "https://example.com/brief"

    async def test_update_to_note(
        self, client: AsyncClient, auth_headers: dict, test_document: ProjectDocument
    ):
        response = await client.patch(
            f"/api/documents/{test_document.id}",
            headers=auth_headers,
            json={"type": "note", "content": "Inline brief", "title": None},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["type"] == "note"
        assert data["title"] == "Design brief"

    async def test_only_creator_deletes(
        self, client: AsyncClient, auth_headers: dict, auth_headers_2: dict,
        test_project: Project, test_user_2: User, add_member, test_document: ProjectDocument
    ):
        await add_member(test_project, test_user_2, role="owner")

        response = await client.delete(f"/api/documents/{test_document.id}", headers=auth_headers_2)
        assert response.status_code == 403

        response = await client.delete(f"/api/documents/{test_document.id}", headers=auth_headers)
        assert response.status_code == 204

    async def test_outsider_cannot_read(
        self, client: AsyncClient, auth_headers_2: dict, test_document: ProjectDocument
    ):
        response = await client.get(f"/api/documents/{test_document.id}", headers=auth_headers_2)
        assert response.status_code == 404
