"""
Clockify REST client with lazy HTTP session setup.

Thin typed wrapper over the upstream endpoints the engine consumes. Every
call passes the per-credential rate limiter first, and every upstream or
transport failure surfaces as RemoteApiError, except upstream throttling
(429), which surfaces as RateLimited. Nothing here retries: a
blind retry of a create would duplicate entries.
"""

import logging
from typing import Any

import httpx

from core.config import API_KEY_HEADER, CLOCKIFY_BASE_URL, HTTP_TIMEOUT_SECONDS, PAGE_SIZE
from core.errors import RateLimited, RemoteApiError
from core.ratelimit import RateLimiter, get_rate_limiter
from core.timezones import format_instant

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    """Best human-readable message from an upstream error response."""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.text.strip() or response.reason_phrase or "Unknown error"


def _retry_after(response: httpx.Response, default: float) -> float:
    """Seconds from a numeric Retry-After header, else `default`."""
    try:
        return max(0.0, float(response.headers.get("Retry-After", "")))
    except ValueError:
        return default


class ClockifyClient:
    """
    Async client for the Clockify API.

    Usage:
        async with ClockifyClient(api_key) as client:
            projects = await client.list_projects(workspace_id)
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = CLOCKIFY_BASE_URL,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        rate_limiter: RateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        page_size: int = PAGE_SIZE,
    ):
        if not api_key:
            raise ValueError("api_key is required")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.rate_limiter = rate_limiter if rate_limiter is not None else get_rate_limiter()
        self.page_size = page_size
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "ClockifyClient":
        self._get_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get HTTP client, creating one if needed."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={API_KEY_HEADER: self.api_key, "Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        json: Any = None,
    ) -> Any:
        """
        Make one upstream call.

        Raises:
            RateLimited: the credential's window is exhausted (no call made), or
                upstream answered 429.
            RemoteApiError: non-2xx response, timeout or transport failure.
        """
        self.rate_limiter.acquire(self.api_key)
        client = self._get_client()
        logger.debug("%s %s", method, path)

        try:
            response = await client.request(method, path, params=params, json=json)
        except httpx.TimeoutException as e:
            raise RemoteApiError(0, f"Timed out after {self.timeout}s", method, path) from e
        except httpx.RequestError as e:
            raise RemoteApiError(0, str(e) or e.__class__.__name__, method, path) from e

        if response.status_code == 429:
            retry_after = _retry_after(response, self.rate_limiter.window_seconds)
            logger.warning("Clockify throttled %s %s, retry in %.0fs", method, path, retry_after)
            raise RateLimited(self.rate_limiter.clock() + retry_after)

        if response.is_error:
            message = _error_message(response)
            logger.error("Clockify %s %s failed: %s %s", method, path, response.status_code, message)
            raise RemoteApiError(response.status_code, message, method, path)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RemoteApiError(
                response.status_code, "Response is not valid JSON", method, path
            ) from e

    async def _paginate(self, path: str, params: dict | None = None) -> list[dict]:
        """Fetch every page of a list endpoint, in upstream order."""
        items: list[dict] = []
        page = 1
        while True:
            page_params = {**(params or {}), "page": page, "page-size": self.page_size}
            batch = await self._request("GET", path, params=page_params)
            if not isinstance(batch, list):
                raise RemoteApiError(200, f"Expected a list from {path}", "GET", path)
            items.extend(batch)
            if len(batch) < self.page_size:
                break
            page += 1
        return items

    # =========================================================================
    # USER / WORKSPACES
    # =========================================================================

    async def get_current_user(self) -> dict:
        return await self._request("GET", "/user")

    async def list_workspaces(self) -> list[dict]:
        return await self._request("GET", "/workspaces")

    # =========================================================================
    # PROJECTS / TASKS / TAGS
    # =========================================================================

    async def list_projects(self, workspace_id: str) -> list[dict]:
        return await self._paginate(f"/workspaces/{workspace_id}/projects")

    async def create_project(self, workspace_id: str, name: str) -> dict:
        return await self._request("POST", f"/workspaces/{workspace_id}/projects", json={"name": name})

    async def list_tasks(self, workspace_id: str, project_id: str) -> list[dict]:
        return await self._paginate(f"/workspaces/{workspace_id}/projects/{project_id}/tasks")

    async def create_task(self, workspace_id: str, project_id: str, name: str) -> dict:
        return await self._request(
            "POST", f"/workspaces/{workspace_id}/projects/{project_id}/tasks", json={"name": name}
        )

    async def delete_task(self, workspace_id: str, project_id: str, task_id: str) -> None:
        await self._request("DELETE", f"/workspaces/{workspace_id}/projects/{project_id}/tasks/{task_id}")

    async def list_tags(self, workspace_id: str) -> list[dict]:
        return await self._paginate(f"/workspaces/{workspace_id}/tags")

    async def create_tag(self, workspace_id: str, name: str) -> dict:
        return await self._request("POST", f"/workspaces/{workspace_id}/tags", json={"name": name})

    async def delete_tag(self, workspace_id: str, tag_id: str) -> None:
        await self._request("DELETE", f"/workspaces/{workspace_id}/tags/{tag_id}")

    # =========================================================================
    # TIME ENTRIES
    # =========================================================================

    async def list_time_entries(
        self,
        workspace_id: str,
        user_id: str,
        project_id: str | None = None,
        start=None,
        end=None,
    ) -> list[dict]:
        params: dict[str, str] = {}
        if project_id:
            params["project"] = project_id
        if start is not None:
            params["start"] = start if isinstance(start, str) else format_instant(start)
        if end is not None:
            params["end"] = end if isinstance(end, str) else format_instant(end)
        return await self._paginate(f"/workspaces/{workspace_id}/user/{user_id}/time-entries", params)

    async def create_time_entry(self, workspace_id: str, payload: dict, user_id: str | None = None) -> dict:
        if user_id:
            path = f"/workspaces/{workspace_id}/user/{user_id}/time-entries"
        else:
            path = f"/workspaces/{workspace_id}/time-entries"
        return await self._request("POST", path, json=payload)

    async def update_time_entry(self, workspace_id: str, entry_id: str, payload: dict) -> dict:
        return await self._request("PUT", f"/workspaces/{workspace_id}/time-entries/{entry_id}", json=payload)

    async def bulk_update_time_entries(self, workspace_id: str, user_id: str, payloads: list[dict]) -> list[dict]:
        """One call for many entries; each payload carries its own 'id'."""
        return await self._request(
            "PUT", f"/workspaces/{workspace_id}/user/{user_id}/time-entries", json=payloads
        )

    async def delete_time_entry(self, workspace_id: str, entry_id: str) -> None:
        await self._request("DELETE", f"/workspaces/{workspace_id}/time-entries/{entry_id}")
