"""Shared pytest fixtures for backend tests."""

import os

# Point the app engine at SQLite before anything imports ascend.database
os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite+aiosqlite://")

from typing import AsyncGenerator
from unittest.mock import patch
from uuid import uuid4

import bcrypt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import ascend.models  # noqa: F401  registers every table on Base.metadata
from ascend.client.mutation_queue import mutation_queue
from ascend.database import Base, get_db
from ascend.main import app
from ascend.models.project import Project
from ascend.models.project_member import ProjectMember
from ascend.models.task import Task
from ascend.models.user import User
from ascend.services.auth_service import create_access_token
from ascend.websocket import presence, room_auth
from ascend.websocket.manager import manager


def get_test_password_hash(password: str) -> str:
    """
    Generate a password hash for testing.

    Uses bcrypt directly to avoid passlib version detection issues.
    """
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


# Use in-memory SQLite for testing
SQLALCHEMY_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture
async def engine():
    """Create a test database engine with SQLite."""
    engine = create_async_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign key support for SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, session_maker) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database dependency override."""
    async def override_get_db():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db

    with patch.object(room_auth, "async_session_maker", session_maker), \
            patch.object(presence, "async_session_maker", session_maker):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
            yield test_client

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_global_state():
    """Global singletons must not leak between tests."""
    room_auth.clear_cache()
    mutation_queue.clear()
    yield
    manager._connections.clear()
    manager._rooms.clear()
    manager._user_connections.clear()
    presence.presence_manager.clear()
    room_auth.clear_cache()
    mutation_queue.clear()


async def _make_user(db: AsyncSession, email: str, password: str, name: str) -> User:
    user = User(
        id=uuid4(),
        email=email,
        password_hash=get_test_password_hash(password),
        display_name=name,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Create a test user."""
    return await _make_user(db_session, "test@example.com", "TestPassword123!", "Test User")


@pytest_asyncio.fixture
async def test_user_2(db_session: AsyncSession) -> User:
    """Create a second test user."""
    return await _make_user(db_session, "test2@example.com", "TestPassword456!", "Test User 2")


def _token(user: User) -> str:
    return create_access_token(data={"sub": str(user.id), "email": user.email})


@pytest.fixture
def auth_token(test_user: User) -> str:
    """Create an authentication token for the test user."""
    return _token(test_user)


@pytest.fixture
def auth_headers(auth_token: str) -> dict:
    """Create authorization headers."""
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture
def auth_headers_2(test_user_2: User) -> dict:
    """Create authorization headers for second user."""
    return {"Authorization": f"Bearer {_token(test_user_2)}"}


@pytest_asyncio.fixture
async def test_project(db_session: AsyncSession, test_user: User) -> Project:
    """Create a test project owned by test_user."""
    project = Project(
        id=uuid4(),
        title="Test Project",
        description="A test project",
        created_by=test_user.id,
    )
    db_session.add(project)
    await db_session.flush()
    db_session.add(ProjectMember(
        project_id=project.id,
        user_id=test_user.id,
        role="owner",
        accepted_at=project.created_at,
    ))
    await db_session.commit()
    await db_session.refresh(project)
    return project


@pytest_asyncio.fixture
async def test_task(db_session: AsyncSession, test_project: Project, test_user: User) -> Task:
    """Create a test task."""
    task = Task(
        id=uuid4(),
        project_id=test_project.id,
        title="Test Task",
        description="A test task description",
        status="todo",
        priority="medium",
        position=0,
        created_by=test_user.id,
    )
    db_session.add(task)
    await db_session.commit()
    await db_session.refresh(task)
    return task


@pytest_asyncio.fixture
async def add_member(db_session: AsyncSession):
    """Factory: add a user to a project with a role."""
    async def _add(project: Project, user: User, role: str = "member") -> ProjectMember:
        member = ProjectMember(project_id=project.id, user_id=user.id, role=role)
        db_session.add(member)
        await db_session.commit()
        return member

    return _add
