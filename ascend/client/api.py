"""
Async HTTP client for the Ascend API.

Thin wrapper over ``httpx.AsyncClient``: bearer auth, a time budget per
call, and ``AscendAPIError`` for any non-2xx response. Methods return the
decoded JSON.
"""

import logging
from typing import Any, Optional

import httpx

from ..config import settings
from .timeouts import TIMEOUTS, TimeoutError, with_timeout

logger = logging.getLogger(__name__)


class AscendAPIError(Exception):
    """Non-2xx response from the API."""

    def __init__(self, status_code: int, detail: Any):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{status_code}: {detail}")

    @property
    def code(self) -> Optional[str]:
        """Machine-readable error code when the API sends one."""
        if isinstance(self.detail, dict):
            return self.detail.get("code")
        return None


def _params(**kwargs: Any) -> dict[str, Any]:
    return {k: v for k, v in kwargs.items() if v is not None}


class AscendClient:
    """
    Usage:
        async with AscendClient() as client:
            await client.login("me@example.com", "secret")
            tasks = await client.list_tasks(status="todo")
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        # No transport-level timeout: each call is bounded by with_timeout
        self._http = httpx.AsyncClient(
            base_url=base_url or settings.client_api_url,
            transport=transport,
            timeout=None,
        )

    async def __aenter__(self) -> "AscendClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        timeout_ms: Optional[int] = None,
        **kwargs: Any,
    ) -> Any:
        """
        Send one request and return the decoded JSON body.

        Raises:
            AscendAPIError: for any status >= 400
            TimeoutError: when the call exceeds ``timeout_ms``
        """
        if timeout_ms is None:
            timeout_ms = TIMEOUTS["data_query"] if method == "GET" else TIMEOUTS["mutation"]
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = await with_timeout(
                self._http.request(method, path, headers=headers, **kwargs),
                timeout_ms,
            )
        except httpx.TimeoutException as e:
            raise TimeoutError(f"Request timed out after {timeout_ms}ms", timeout_ms) from e
        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = response.text
            detail = body.get("detail", body) if isinstance(body, dict) else body
            logger.debug(f"{method} {path} failed: {response.status_code} {detail}")
            raise AscendAPIError(response.status_code, detail)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # Auth

    async def register(self, email: str, password: str, display_name: Optional[str] = None) -> dict:
        return await self.request(
            "POST", "/auth/register",
            json=_params(email=email, password=password, display_name=display_name),
            timeout_ms=TIMEOUTS["auth_session"],
        )

    async def login(self, email: str, password: str) -> str:
        """Log in and keep the token for later calls."""
        data = await self.request(
            "POST", "/auth/login",
            data={"username": email, "password": password},
            timeout_ms=TIMEOUTS["auth_session"],
        )
        self.token = data["access_token"]
        return self.token

    async def me(self) -> dict:
        return await self.request("GET", "/auth/me", timeout_ms=TIMEOUTS["auth_session"])

    async def health(self) -> dict:
        return await self.request("GET", "/health", timeout_ms=TIMEOUTS["health_check"])

    # Projects

    async def list_projects(self, **filters: Any) -> list[dict]:
        return await self.request("GET", "/api/projects", params=_params(**filters))

    async def create_project(self, **fields: Any) -> dict:
        return await self.request("POST", "/api/projects", json=fields)

    async def get_project(self, project_id: str) -> dict:
        return await self.request("GET", f"/api/projects/{project_id}")

    async def update_project(self, project_id: str, **changes: Any) -> dict:
        return await self.request("PATCH", f"/api/projects/{project_id}", json=changes)

    async def delete_project(self, project_id: str) -> None:
        await self.request("DELETE", f"/api/projects/{project_id}")

    # Tasks

    async def list_tasks(self, **filters: Any) -> list[dict]:
        return await self.request("GET", "/api/tasks", params=_params(**filters))

    async def task_board(self, **filters: Any) -> dict[str, list[dict]]:
        return await self.request("GET", "/api/tasks/board", params=_params(**filters))

    async def create_task(self, **fields: Any) -> dict:
        return await self.request("POST", "/api/tasks", json=fields)

    async def update_task(self, task_id: str, **changes: Any) -> dict:
        return await self.request("PATCH", f"/api/tasks/{task_id}", json=changes)

    async def move_task(self, task_id: str, status: str, position: int) -> Any:
        return await self.request(
            "PUT", "/api/tasks/position",
            json={"id": str(task_id), "status": status, "position": position},
        )

    async def delete_task(self, task_id: str) -> None:
        await self.request("DELETE", f"/api/tasks/{task_id}")

    # Comments

    async def list_task_comments(self, task_id: str) -> list[dict]:
        return await self.request("GET", f"/api/tasks/{task_id}/comments")

    async def add_task_comment(self, task_id: str, content: str) -> dict:
        return await self.request("POST", f"/api/tasks/{task_id}/comments", json={"content": content})

    # Notifications

    async def list_notifications(self, unread_only: bool = False) -> list[dict]:
        return await self.request("GET", "/api/notifications", params={"unread_only": unread_only})

    async def unread_count(self) -> int:
        data = await self.request("GET", "/api/notifications/unread-count")
        return data["count"]

    async def mark_all_read(self) -> dict:
        return await self.request("POST", "/api/notifications/read-all")

    # Time tracking

    async def start_timer(
        self,
        entity_type: str,
        entity_id: str,
        timezone: str = "UTC",
        description: Optional[str] = None,
    ) -> dict:
        return await self.request(
            "POST", "/api/time-entries/start",
            json=_params(entity_type=entity_type, entity_id=str(entity_id),
                         timezone=timezone, description=description),
        )

    async def stop_timer(self) -> dict:
        return await self.request("POST", "/api/time-entries/stop")

    async def active_timer(self) -> Optional[dict]:
        return await self.request("GET", "/api/time-entries/active")

    # Activity and search

    async def project_activity(self, project_id: str, before: Optional[str] = None, limit: int = 20) -> dict:
        return await self.request(
            "GET", f"/api/projects/{project_id}/activity",
            params=_params(before=before, limit=limit),
        )

    async def search(self, q: str) -> dict:
        return await self.request("GET", "/api/search", params={"q": q})
