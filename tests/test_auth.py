"""Unit tests for authentication and account settings endpoints."""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ascend.models.user import User
from ascend.services.auth_service import create_access_token, decode_access_token
from ascend.utils.security import verify_password


@pytest.mark.asyncio
class TestRegister:
    """Tests for user registration."""

    async def test_register_success(self, client: AsyncClient):
        response = await client.post(
            "/auth/register",
            json={"email": "New.User@Example.com", "password": "SecurePass123"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "new.user@example.com"
        assert data["display_name"] == "New.User"
        assert "password" not in data
        assert "password_hash" not in data

    async def test_register_duplicate_email_case_insensitive(self, client: AsyncClient, test_user: User):
        response = await client.post(
            "/auth/register",
            json={"email": "TEST@example.com", "password": "SecurePass123"},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Email already registered"

    async def test_register_short_password(self, client: AsyncClient):
        response = await client.post(
            "/auth/register",
            json={"email": "short@example.com", "password": "abc"},
        )
        assert response.status_code == 422

    async def test_register_invalid_email(self, client: AsyncClient):
        response = await client.post(
            "/auth/register",
            json={"email": "not-an-email", "password": "SecurePass123"},
        )
        assert response.status_code == 422


@pytest.mark.asyncio
class TestLogin:
    """Tests for login."""

    async def test_login_success(self, client: AsyncClient, test_user: User):
        response = await client.post(
            "/auth/login",
            data={"username": "test@example.com", "password": "TestPassword123!"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        token_data = decode_access_token(data["access_token"])
        assert token_data.user_id == str(test_user.id)

    async def test_login_wrong_password(self, client: AsyncClient, test_user: User):
        response = await client.post(
            "/auth/login",
            data={"username": "test@example.com", "password": "WrongPassword1"},
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Incorrect email or password"

    async def test_login_unknown_user(self, client: AsyncClient):
        response = await client.post(
            "/auth/login",
            data={"username": "nobody@example.com", "password": "Whatever123"},
        )
        assert response.status_code == 401


@pytest.mark.asyncio
class TestCurrentUser:
    """Tests for /auth/me and token handling."""

    async def test_me(self, client: AsyncClient, auth_headers: dict, test_user: User):
        response = await client.get("/auth/me", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["id"] == str(test_user.id)

    async def test_me_without_token(self, client: AsyncClient):
        response = await client.get("/auth/me")
        assert response.status_code == 401

    async def test_me_with_expired_token(self, client: AsyncClient, test_user: User):
        token = create_access_token({"sub": str(test_user.id)}, expires_delta=timedelta(seconds=-1))
        response = await client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_me_with_garbage_token(self, client: AsyncClient):
        response = await client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401


@pytest.mark.asyncio
class TestAccountSettings:
    """Tests for /api/users/me endpoints."""

    async def test_update_profile(self, client: AsyncClient, auth_headers: dict):
        response = await client.patch(
            "/api/users/me", headers=auth_headers, json={"display_name": "  Renamed  "},
        )

        assert response.status_code == 200
        assert response.json()["display_name"] == "Renamed"

    async def test_change_email(self, client: AsyncClient, auth_headers: dict):
        response = await client.put(
            "/api/users/me/email", headers=auth_headers, json={"new_email": "fresh@example.com"},
        )

        assert response.status_code == 200
        assert response.json()["email"] == "fresh@example.com"

    async def test_change_email_taken(self, client: AsyncClient, auth_headers: dict, test_user_2: User):
        response = await client.put(
            "/api/users/me/email", headers=auth_headers, json={"new_email": test_user_2.email},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Email already in use"

    async def test_change_password(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession, test_user: User
    ):
        response = await client.put(
            "/api/users/me/password",
            headers=auth_headers,
            json={
                "current_password": "TestPassword123!",
                "new_password": "BrandNew123",
                "confirm_password": "BrandNew123",
            },
        )

        assert response.status_code == 204
        await db_session.refresh(test_user)
        assert verify_password("BrandNew123", test_user.password_hash)

    async def test_change_password_wrong_current(self, client: AsyncClient, auth_headers: dict):
        response = await client.put(
            "/api/users/me/password",
            headers=auth_headers,
            json={
                "current_password": "Nope12345",
                "new_password": "BrandNew123",
                "confirm_password": "BrandNew123",
            },
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Current password is incorrect"

    async def test_change_password_policy(self, client: AsyncClient, auth_headers: dict):
        response = await client.put(
            "/api/users/me/password",
            headers=auth_headers,
            json={
                "current_password": "TestPassword123!",
                "new_password": "alllowercase",
                "confirm_password": "alllowercase",
            },
        )
        assert response.status_code == 422

    async def test_delete_account_requires_phrase(self, client: AsyncClient, auth_headers: dict):
        response = await client.request(
            "DELETE", "/api/users/me", headers=auth_headers, json={"confirmation": "yes"},
        )
        assert response.status_code == 422

    async def test_delete_account(
        self, client: AsyncClient, auth_headers: dict, db_session: AsyncSession, test_user: User
    ):
        user_id = test_user.id
        response = await client.request(
            "DELETE", "/api/users/me", headers=auth_headers,
            json={"confirmation": "delete my account"},
        )

        assert response.status_code == 204
        db_session.expunge_all()
        result = await db_session.execute(select(User).where(User.id == user_id))
        assert result.scalar_one_or_none() is None


@pytest.mark.asyncio
class TestUserSearch:
    """Tests for user search."""

    async def test_search_by_email_excludes_self(
        self, client: AsyncClient, auth_headers: dict, test_user: User, test_user_2: User
    ):
        response = await client.get("/api/users/search?email=example.com", headers=auth_headers)

        assert response.status_code == 200
        ids = [u["id"] for u in response.json()]
        assert ids == [str(test_user_2.id)]

    async def test_search_by_name(self, client: AsyncClient, auth_headers: dict, test_user_2: User):
        response = await client.get("/api/users/search?name=user 2", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()[0]["display_name"] == "Test User 2"

    async def test_search_without_terms(self, client: AsyncClient, auth_headers: dict):
        response = await client.get("/api/users/search", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == []
