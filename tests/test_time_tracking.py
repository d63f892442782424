"""Tests for time tracking: duration helpers, timers, entries and reports."""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ascend.models.project import Project
from ascend.models.task import Task
from ascend.models.time_entry import TimeEntry
from ascend.models.user import User
from ascend.services import time_tracking_service
from ascend.services.time_tracking_service import (
    INVALID_TIME_RANGE,
    NO_ACTIVE_TIMER,
    TIMER_ALREADY_RUNNING,
    TimeTrackingError,
    apply_entry_update,
    build_project_report,
    calculate_duration,
    format_duration,
    resolve_timezone,
    start_timer,
    stop_timer,
)


class TestDurationHelpers:
    """Tests for duration math and formatting."""

    def test_calculate_duration_floors(self):
        start = datetime(2026, 1, 1, 9, 0, 0)
        assert calculate_duration(start, datetime(2026, 1, 1, 9, 0, 59, 999000)) == 59
        assert calculate_duration(start, datetime(2026, 1, 1, 10, 0, 0)) == 3600

    @pytest.mark.parametrize("seconds, expected", [
        (0, "0:00"),
        (65, "1:05"),
        (3599, "59:59"),
        (3600, "1:00:00"),
        (3725, "1:02:05"),
        (36000, "10:00:00"),
    ])
    def test_format_duration(self, seconds, expected):
        assert format_duration(seconds) == expected

    def test_resolve_unknown_timezone(self):
        assert resolve_timezone("Mars/Olympus_Mons").key == "UTC"
        assert resolve_timezone(None).key == "UTC"
        assert resolve_timezone("Europe/Berlin").key == "Europe/Berlin"


class TestApplyEntryUpdate:
    """Tests for editing entries."""

    def _entry(self) -> TimeEntry:
        return TimeEntry(
            start_time=datetime(2026, 1, 1, 9, 0),
            end_time=datetime(2026, 1, 1, 10, 0),
            duration=3600,
            description="Focus",
        )

    def test_changing_end_recomputes_duration(self):
        entry = apply_entry_update(self._entry(), end_time=datetime(2026, 1, 1, 9, 30))
        assert entry.duration == 1800

    def test_end_before_start_rejected(self):
        with pytest.raises(TimeTrackingError) as exc_info:
            apply_entry_update(self._entry(), start_time=datetime(2026, 1, 1, 11, 0))
        assert exc_info.value.code == INVALID_TIME_RANGE

    def test_description_only_when_set(self):
        entry = apply_entry_update(self._entry(), description=None)
        assert entry.description == "Focus"
        entry = apply_entry_update(entry, description=None, description_set=True)
        assert entry.description is None


@pytest.mark.asyncio
class TestTimerService:
    """Tests for start/stop rules."""

    async def test_one_running_timer_per_user(self, db_session: AsyncSession, test_user: User):
        await start_timer(db_session, test_user.id, "task", uuid4())

        with pytest.raises(TimeTrackingError) as exc_info:
            await start_timer(db_session, test_user.id, "task", uuid4())
        assert exc_info.value.code == TIMER_ALREADY_RUNNING

    async def test_stop_records_duration(self, db_session: AsyncSession, test_user: User):
        entry = await start_timer(db_session, test_user.id, "project", uuid4())
        entry.start_time = datetime(2000, 1, 1)

        stopped = await stop_timer(db_session, test_user.id)

        assert stopped.id == entry.id
        assert stopped.end_time is not None
        assert stopped.duration == calculate_duration(stopped.start_time, stopped.end_time)

    async def test_stop_without_timer(self, db_session: AsyncSession, test_user: User):
        with pytest.raises(TimeTrackingError) as exc_info:
            await stop_timer(db_session, test_user.id)
        assert exc_info.value.code == NO_ACTIVE_TIMER

    async def test_index_allows_one_running_entry_per_user(self, db_session: AsyncSession, test_user: User):
        user_id = test_user.id

        def entry(**kwargs) -> TimeEntry:
            return TimeEntry(
                entity_type="task", entity_id=uuid4(), user_id=user_id, start_time=datetime(2026, 1, 1, 9), **kwargs
            )

        db_session.add(entry())
        db_session.add(entry(end_time=datetime(2026, 1, 1, 10), duration=3600))
        await db_session.commit()

        db_session.add(entry())
        with pytest.raises(IntegrityError):
            await db_session.commit()
        await db_session.rollback()

    async def test_concurrent_start_is_already_running(self, db_session: AsyncSession, test_user: User):
        user_id = test_user.id
        await start_timer(db_session, user_id, "task", uuid4())
        await db_session.commit()

        # Another request started a timer after this one checked
        with patch.object(time_tracking_service, "get_active_timer", AsyncMock(return_value=None)):
            with pytest.raises(TimeTrackingError) as exc_info:
                await start_timer(db_session, user_id, "task", uuid4())

        assert exc_info.value.code == TIMER_ALREADY_RUNNING
        running = await time_tracking_service.get_active_timer(db_session, user_id)
        assert running is not None


@pytest_asyncio.fixture
async def report_data(db_session: AsyncSession, test_project: Project, test_user: User):
    alpha = Task(title="Alpha", project_id=test_project.id, created_by=test_user.id)
    beta = Task(title="Beta", status="done", is_archived=True, project_id=test_project.id, created_by=test_user.id)
    db_session.add_all([alpha, beta])
    await db_session.flush()

    def entry(entity_type, entity_id, start, duration):
        return TimeEntry(
            entity_type=entity_type, entity_id=entity_id, user_id=test_user.id,
            start_time=start, duration=duration, timezone="UTC",
            end_time=start + timedelta(seconds=duration) if duration is not None else None,
        )

    db_session.add_all([
        entry("task", alpha.id, datetime(2026, 3, 1, 23, 30), 1800),
        entry("task", alpha.id, datetime(2026, 3, 2, 10, 0), 600),
        entry("task", beta.id, datetime(2026, 3, 2, 12, 0), 3600),
        # Still running: not counted
        entry("task", alpha.id, datetime(2026, 3, 3, 8, 0), None),
        # Not a task of this project
        entry("note", uuid4(), datetime(2026, 3, 2, 9, 0), 900),
    ])
    await db_session.commit()
    return alpha, beta


@pytest.mark.asyncio
class TestProjectReport:
    """Tests for build_project_report."""

    async def test_report_in_utc(self, db_session: AsyncSession, test_project: Project, report_data):
        alpha, beta = report_data

        report = await build_project_report(db_session, test_project.id)

        assert report.total_seconds == 6000
        assert report.formatted_total == "1:40:00"
        assert [(t.title, t.seconds) for t in report.by_task] == [("Beta", 3600), ("Alpha", 2400)]
        assert report.by_task[0].is_archived is True
        assert [(d.date, d.total_seconds) for d in report.by_day] == [
            ("2026-03-02", 4200), ("2026-03-01", 1800),
        ]
        assert [t.title for t in report.by_day[0].tasks] == ["Beta", "Alpha"]

    async def test_days_follow_timezone(self, db_session: AsyncSession, test_project: Project, report_data):
        report = await build_project_report(db_session, test_project.id, "Asia/Tokyo")

        assert [(d.date, d.total_seconds) for d in report.by_day] == [("2026-03-02", 6000)]

    async def test_empty_project(self, db_session: AsyncSession, test_project: Project):
        report = await build_project_report(db_session, test_project.id)

        assert report.total_seconds == 0
        assert report.formatted_total == "0:00"
        assert report.by_day == []


@pytest.mark.asyncio
class TestTimeEntryRoutes:
    """Tests for the time tracking API."""

    async def test_start_stop_cycle(self, client: AsyncClient, auth_headers: dict, test_task: Task):
        response = await client.post(
            "/api/time-entries/start",
            headers=auth_headers,
            json={"entity_type": "task", "entity_id": str(test_task.id), "timezone": "Europe/Berlin"},
        )
        assert response.status_code == 201
        assert response.json()["end_time"] is None

        response = await client.get("/api/time-entries/active", headers=auth_headers)
        assert response.json()["entity_id"] == str(test_task.id)

        response = await client.post(
            "/api/time-entries/start",
            headers=auth_headers,
            json={"entity_type": "task", "entity_id": str(test_task.id)},
        )
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "TIMER_ALREADY_RUNNING"

        response = await client.post("/api/time-entries/stop", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["duration"] is not None

        response = await client.get("/api/time-entries/active", headers=auth_headers)
        assert response.json() is None

    async def test_stop_without_timer(self, client: AsyncClient, auth_headers: dict):
        response = await client.post("/api/time-entries/stop", headers=auth_headers)

        assert response.status_code == 404

    async def test_concurrent_start_answers_conflict(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession, test_user: User, test_task: Task
    ):
        task_id = test_task.id
        db_session.add(TimeEntry(
            entity_type="task", entity_id=task_id, user_id=test_user.id, start_time=datetime(2026, 1, 1, 9),
        ))
        await db_session.commit()

        with patch.object(time_tracking_service, "get_active_timer", AsyncMock(return_value=None)):
            response = await client.post(
                "/api/time-entries/start",
                headers=auth_headers,
                json={"entity_type": "task", "entity_id": str(task_id)},
            )

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "TIMER_ALREADY_RUNNING"

        response = await client.get("/api/time-entries", headers=auth_headers)
        assert len(response.json()) == 1
        assert response.json()["detail"] == {"code": "NO_ACTIVE_TIMER", "message": "No timer is running"}

    async def test_start_on_invisible_entity(
        self, client: AsyncClient, auth_headers_2: dict, test_project: Project
    ):
        response = await client.post(
            "/api/time-entries/start",
            headers=auth_headers_2,
            json={"entity_type": "project", "entity_id": str(test_project.id)},
        )
        assert response.status_code == 404

    async def test_manual_entry_and_edit(self, client: AsyncClient, auth_headers: dict, test_task: Task):
        response = await client.post(
            "/api/time-entries",
            headers=auth_headers,
            json={
                "entity_type": "task",
                "entity_id": str(test_task.id),
                "start_time": "2026-03-02T09:00:00Z",
                "end_time": "2026-03-02T10:30:00Z",
            },
        )
        assert response.status_code == 201
        entry = response.json()
        assert entry["duration"] == 5400

        response = await client.patch(
            f"/api/time-entries/{entry['id']}",
            headers=auth_headers,
            json={"end_time": "2026-03-02T09:15:00Z"},
        )
        assert response.json()["duration"] == 900

        response = await client.patch(
            f"/api/time-entries/{entry['id']}",
            headers=auth_headers,
            json={"end_time": "2026-03-02T08:00:00Z"},
        )
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_TIME_RANGE"

    async def test_manual_entry_range_validated(self, client: AsyncClient, auth_headers: dict, test_task: Task):
        response = await client.post(
            "/api/time-entries",
            headers=auth_headers,
            json={
                "entity_type": "task",
                "entity_id": str(test_task.id),
                "start_time": "2026-03-02T10:00:00Z",
                "end_time": "2026-03-02T10:00:00Z",
            },
        )
        assert response.status_code == 422

    async def test_entries_are_private(
        self, client: AsyncClient, auth_headers_2: dict, db_session: AsyncSession, test_user: User
    ):
        entry = TimeEntry(
            entity_type="project", entity_id=uuid4(), user_id=test_user.id,
            start_time=datetime(2026, 1, 1), end_time=datetime(2026, 1, 1, 1), duration=3600,
        )
        db_session.add(entry)
        await db_session.commit()

        response = await client.get("/api/time-entries", headers=auth_headers_2)
        assert response.json() == []

        response = await client.delete(f"/api/time-entries/{entry.id}", headers=auth_headers_2)
        assert response.status_code == 404

    async def test_project_report_route(
        self, client: AsyncClient, auth_headers: dict, test_project: Project, report_data
    ):
        response = await client.get(
            f"/api/projects/{test_project.id}/time-report?tz=Asia/Tokyo", headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["total_seconds"] == 6000
