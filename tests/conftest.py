"""
Pytest configuration and shared fixtures.

FakeClockify is an in-memory stand-in for the upstream REST API, served to
httpx through MockTransport so the real client code runs end to end.
"""

import itertools
import json
import sys
from datetime import datetime
from pathlib import Path

import httpx
import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from core.clockify_client import ClockifyClient  # noqa: E402
from core.ratelimit import RateLimiter  # noqa: E402

WORKSPACE_ID = "ws-1"
USER_ID = "user-1"
API_KEY = "test-api-key-0123456789"


class FakeClock:
    """Settable epoch-seconds clock for the rate limiter and workflow."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def _parse(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class FakeClockify:
    """Just enough of the Clockify API for the engine's calls."""

    def __init__(self, workspace_id: str = WORKSPACE_ID, user_id: str = USER_ID):
        self.workspace_id = workspace_id
        self.user_id = user_id
        self.projects: list[dict] = []
        self.tasks: dict[str, list[dict]] = {}
        self.tags: list[dict] = []
        self.entries: dict[str, dict] = {}
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[tuple[str, str], tuple[int, str]] = {}
        self._ids = itertools.count(1)

    # ----- seeding -----

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def add_project(self, name: str) -> dict:
        project = {"id": self._next_id("p"), "name": name}
        self.projects.append(project)
        self.tasks.setdefault(project["id"], [])
        return project

    def add_task(self, project_id: str, name: str) -> dict:
        task = {"id": self._next_id("t"), "name": name, "projectId": project_id}
        self.tasks.setdefault(project_id, []).append(task)
        return task

    def add_tag(self, name: str) -> dict:
        tag = {"id": self._next_id("g"), "name": name}
        self.tags.append(tag)
        return tag

    def add_entry(self, start: str, end: str, **fields) -> dict:
        entry = {
            "id": self._next_id("e"),
            "description": fields.get("description", ""),
            "timeInterval": {"start": start, "end": end},
            "projectId": fields.get("projectId"),
            "taskId": fields.get("taskId"),
            "tagIds": fields.get("tagIds", []),
            "billable": fields.get("billable", False),
            "userId": self.user_id,
        }
        self.entries[entry["id"]] = entry
        return entry

    def fail(self, method: str, path: str, status: int, message: str):
        """Make every call to (method, path) fail; path is relative to /api/v1."""
        self.failures[(method, path)] = (status, message)

    def count(self, method: str, suffix: str) -> int:
        return sum(1 for m, p in self.calls if m == method and p.endswith(suffix))

    # ----- transport -----

    def transport(self) -> httpx.MockTransport:
        # Late-bound so tests can swap `handle` after the client exists
        return httpx.MockTransport(lambda request: self.handle(request))

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api/v1")
        self.calls.append((request.method, path))

        if (request.method, path) in self.failures:
            status, message = self.failures[(request.method, path)]
            return httpx.Response(status, json={"message": message, "code": status})

        body = json.loads(request.content) if request.content else None
        parts = path.strip("/").split("/")
        return self._route(request, parts, body)

    def _page(self, request: httpx.Request, items: list[dict]) -> httpx.Response:
        page = int(request.url.params.get("page", 1))
        size = int(request.url.params.get("page-size", 50))
        return httpx.Response(200, json=items[(page - 1) * size : page * size])

    def _route(self, request, parts, body) -> httpx.Response:
        method = request.method

        if parts == ["user"]:
            return httpx.Response(200, json={"id": self.user_id, "name": "Test User", "email": "test@example.com"})
        if parts == ["workspaces"]:
            return httpx.Response(200, json=[{"id": self.workspace_id, "name": "Main"}])
        if len(parts) < 3 or parts[1] != self.workspace_id:
            return httpx.Response(404, json={"message": "Workspace not found"})

        resource = parts[2:]

        if resource == ["projects"]:
            if method == "GET":
                return self._page(request, self.projects)
            return httpx.Response(201, json=self.add_project(body["name"]))

        if len(resource) >= 3 and resource[0] == "projects" and resource[2] == "tasks":
            project_id = resource[1]
            if project_id not in self.tasks:
                return httpx.Response(404, json={"message": "Project not found"})
            if len(resource) == 3:
                if method == "GET":
                    return self._page(request, self.tasks[project_id])
                return httpx.Response(201, json=self.add_task(project_id, body["name"]))
            task_id = resource[3]
            remaining = [t for t in self.tasks[project_id] if t["id"] != task_id]
            if len(remaining) == len(self.tasks[project_id]):
                return httpx.Response(400, json={"message": "Task doesn't belong to Project"})
            self.tasks[project_id] = remaining
            return httpx.Response(200, json={"id": task_id})

        if resource == ["tags"]:
            if method == "GET":
                return self._page(request, self.tags)
            if any(t["name"].lower() == body["name"].lower() for t in self.tags):
                return httpx.Response(400, json={"message": "Tag with that name already exists"})
            return httpx.Response(201, json=self.add_tag(body["name"]))

        if len(resource) == 2 and resource[0] == "tags":
            remaining = [t for t in self.tags if t["id"] != resource[1]]
            if len(remaining) == len(self.tags):
                return httpx.Response(400, json={"message": "Tag doesn't belong to Workspace"})
            self.tags = remaining
            return httpx.Response(200, json={"id": resource[1]})

        if resource == ["time-entries"] and method == "POST":
            return httpx.Response(201, json=self._create_entry(body))

        if len(resource) == 3 and resource[0] == "user" and resource[2] == "time-entries":
            if method == "GET":
                return self._page(request, self._list_entries(request))
            if method == "POST":
                return httpx.Response(201, json=self._create_entry(body))
            if method == "PUT":
                updated = [self._update_entry(item.pop("id"), item) for item in body]
                return httpx.Response(200, json=updated)

        if len(resource) == 2 and resource[0] == "time-entries":
            entry_id = resource[1]
            if entry_id not in self.entries:
                return httpx.Response(404, json={"message": "Time entry not found"})
            if method == "PUT":
                return httpx.Response(200, json=self._update_entry(entry_id, body))
            if method == "DELETE":
                del self.entries[entry_id]
                return httpx.Response(204)

        return httpx.Response(404, json={"message": f"No route for {method} {request.url.path}"})

    def _create_entry(self, body: dict) -> dict:
        fields = {k: v for k, v in body.items() if k not in ("start", "end")}
        entry = self.add_entry(body["start"], body.get("end"), **fields)
        entry["type"] = body.get("type")
        return entry

    def _update_entry(self, entry_id: str, body: dict) -> dict:
        entry = self.entries[entry_id]
        for key, value in body.items():
            if key in ("start", "end"):
                entry["timeInterval"][key] = value
            else:
                entry[key] = value
        return entry

    def _list_entries(self, request: httpx.Request) -> list[dict]:
        params = request.url.params
        entries = list(self.entries.values())
        if params.get("project"):
            entries = [e for e in entries if e["projectId"] == params["project"]]
        if params.get("start"):
            entries = [e for e in entries if _parse(e["timeInterval"]["start"]) >= _parse(params["start"])]
        if params.get("end"):
            entries = [e for e in entries if _parse(e["timeInterval"]["start"]) < _parse(params["end"])]
        return entries


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_clockify():
    return FakeClockify()


@pytest.fixture
def rate_limiter():
    """Generous limiter so tests only hit the limit on purpose."""
    return RateLimiter(max_requests=10_000, window_seconds=60)


@pytest.fixture
def clockify_client(fake_clockify, rate_limiter):
    return ClockifyClient(API_KEY, rate_limiter=rate_limiter, transport=fake_clockify.transport(), page_size=2)
