"""
Tests for the FastAPI host adapter.
"""

import pytest
from fastapi.testclient import TestClient

import core.database
from api.dependencies import get_api_rate_limiter, get_transport, get_upstream_rate_limiter
from api.logging import RequestLog, log_request
from api.main import app
from api.models import ErrorCodes
from conftest import API_KEY, WORKSPACE_ID
from core.errors import ErrorCodes as CoreErrorCodes
from core.ratelimit import RateLimiter, credential_key

HEADERS = {"X-Api-Key": API_KEY}
BASE = f"/v1/workspaces/{WORKSPACE_ID}"


@pytest.fixture
def api_limiter():
    return RateLimiter(max_requests=1000, window_seconds=60)


@pytest.fixture
def log_db(tmp_path, monkeypatch):
    db_path = tmp_path / "requests.db"
    monkeypatch.setattr(core.database, "DB_PATH", db_path)
    conn = core.database.get_connection()
    core.database.create_tables(conn)
    conn.close()
    return db_path


@pytest.fixture
def client(fake_clockify, rate_limiter, api_limiter, log_db):
    app.dependency_overrides[get_transport] = fake_clockify.transport
    app.dependency_overrides[get_upstream_rate_limiter] = lambda: rate_limiter
    app.dependency_overrides[get_api_rate_limiter] = lambda: api_limiter
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealthAndAuth:
    def test_health(self, client):
        response = client.get("/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_missing_key(self, client):
        response = client.post("/v1/validate-key")
        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "UNAUTHORIZED"

    def test_short_key(self, client):
        response = client.post("/v1/validate-key", headers={"X-Api-Key": "short"})
        assert response.status_code == 401

    def test_validate_key(self, client):
        response = client.post("/v1/validate-key", headers=HEADERS)
        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["user_id"] == "user-1"
        assert data["workspaces"] == [{"id": WORKSPACE_ID, "name": "Main"}]

    def test_validate_key_rejected_upstream(self, client, fake_clockify):
        fake_clockify.fail("GET", "/user", 401, "Api key does not exist")
        response = client.post("/v1/validate-key", headers=HEADERS)
        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "REMOTE_API_ERROR"

    def test_rate_limit(self, fake_clockify, rate_limiter, log_db):
        app.dependency_overrides[get_transport] = fake_clockify.transport
        app.dependency_overrides[get_upstream_rate_limiter] = lambda: rate_limiter
        limited = RateLimiter(max_requests=2, window_seconds=60)
        app.dependency_overrides[get_api_rate_limiter] = lambda: limited
        try:
            client = TestClient(app)
            first = client.post("/v1/validate-key", headers=HEADERS)
            assert first.headers["X-RateLimit-Remaining"] == "1"
            client.post("/v1/validate-key", headers=HEADERS)
            third = client.post("/v1/validate-key", headers=HEADERS)
            assert third.status_code == 429
            assert third.json()["detail"]["reset_at"]
            assert third.json()["detail"]["code"] == CoreErrorCodes.RATE_LIMITED
            assert third.headers["X-RateLimit-Remaining"] == "0"
        finally:
            app.dependency_overrides.clear()


class TestReferences:
    def test_projects_check(self, client, fake_clockify):
        fake_clockify.add_project("Internal")
        response = client.post(f"{BASE}/projects/check", json={"names": ["internal", "Ghost"]}, headers=HEADERS)
        assert response.status_code == 200
        data = response.json()
        assert [p["name"] for p in data["existing"]] == ["Internal"]
        assert data["missing"] == ["Ghost"]

    def test_tasks_check_without_project(self, client, fake_clockify):
        response = client.post(f"{BASE}/tasks/check", json={"names": ["Design"]}, headers=HEADERS)
        assert response.json()["missing"] == ["Design"]
        assert fake_clockify.calls == []

    def test_empty_names_rejected(self, client):
        response = client.post(f"{BASE}/tags/check", json={"names": []}, headers=HEADERS)
        assert response.status_code == 422

    def test_tags_create_is_idempotent(self, client, fake_clockify):
        first = client.post(f"{BASE}/tags/create", json={"names": ["billing"]}, headers=HEADERS)
        second = client.post(f"{BASE}/tags/create", json={"names": ["Billing"]}, headers=HEADERS)
        assert len(first.json()["created"]) == 1
        assert second.json()["created"] == []
        assert len(fake_clockify.tags) == 1

    def test_tasks_create(self, client, fake_clockify):
        project = fake_clockify.add_project("Alpha")
        response = client.post(
            f"{BASE}/tasks/create", json={"project_id": project["id"], "names": ["Design"]}, headers=HEADERS
        )
        assert response.json()["created"][0]["project_id"] == project["id"]


class TestCleanup:
    def test_tags_bulk_delete_with_foreign_tag(self, client, fake_clockify):
        tag = fake_clockify.add_tag("old")
        response = client.request(
            "DELETE", f"{BASE}/tags/bulk-delete", json={"tag_ids": [tag["id"], "g-foreign"]}, headers=HEADERS
        )
        assert response.status_code == 200
        data = response.json()
        assert data["deleted"] == [tag["id"]]
        assert [s["id"] for s in data["skipped"]] == ["g-foreign"]
        assert fake_clockify.tags == []

    def test_tasks_bulk_delete_partial_failure(self, client, fake_clockify):
        project = fake_clockify.add_project("Alpha")
        keep = fake_clockify.add_task(project["id"], "Keep")
        drop = fake_clockify.add_task(project["id"], "Drop")
        fake_clockify.fail("DELETE", f"/workspaces/{WORKSPACE_ID}/projects/{project['id']}/tasks/{keep['id']}", 500, "oops")
        response = client.request(
            "DELETE",
            f"{BASE}/tasks/bulk-delete",
            json={"project_id": project["id"], "task_ids": [keep["id"], drop["id"]]},
            headers=HEADERS,
        )
        assert response.status_code == 207
        assert response.json()["failed"][0]["id"] == keep["id"]


class TestTimeEntries:
    def test_bulk_commit(self, client, fake_clockify):
        fake_clockify.add_project("Internal")
        rows = [
            {"description": "Standup", "start": "2024-03-10T02:30", "end": "2024-03-10T02:45", "projectName": "Internal"},
            {"description": "Review", "start": "2024-03-11T10:00", "end": "2024-03-11T11:00", "projectName": "Internal", "tags": "review"},
        ]
        response = client.post(
            f"{BASE}/time-entries/bulk", json={"timezone": "America/New_York", "rows": rows}, headers=HEADERS
        )
        assert response.status_code == 207
        data = response.json()
        assert [r["row"] for r in data["created"]] == [2]
        assert data["failed"][0]["row"] == 1
        assert len(fake_clockify.entries) == 1

    def test_bulk_commit_unknown_timezone(self, client):
        response = client.post(
            f"{BASE}/time-entries/bulk",
            json={"timezone": "Mars/Base", "rows": [{"start": "2024-01-01T09:00"}]},
            headers=HEADERS,
        )
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "UNKNOWN_TIMEZONE"

    def test_update_entry(self, client, fake_clockify):
        entry = fake_clockify.add_entry("2024-01-15T08:00:00Z", "2024-01-15T09:00:00Z", description="old")
        response = client.put(
            f"{BASE}/time-entries/{entry['id']}",
            json={"timezone": "Europe/Berlin", "end": "2024-01-15T11:00"},
            headers=HEADERS,
        )
        assert response.status_code == 200
        assert response.json()["end"] == "2024-01-15T10:00:00Z"
        assert response.json()["description"] == "old"

    def test_update_rejects_reversed_interval(self, client, fake_clockify):
        entry = fake_clockify.add_entry("2024-01-15T08:00:00Z", "2024-01-15T09:00:00Z")
        response = client.put(
            f"{BASE}/time-entries/{entry['id']}",
            json={"timezone": "UTC", "start": "2024-01-15T10:00", "end": "2024-01-15T09:00"},
            headers=HEADERS,
        )
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "TIME_ORDERING"

    def test_delete_entry(self, client, fake_clockify):
        entry = fake_clockify.add_entry("2024-01-15T08:00:00Z", "2024-01-15T09:00:00Z")
        response = client.delete(f"{BASE}/time-entries/{entry['id']}", headers=HEADERS)
        assert response.json() == {"deleted": entry["id"]}
        assert fake_clockify.entries == {}

    def test_list_across_projects(self, client, fake_clockify):
        alpha = fake_clockify.add_project("Alpha")
        beta = fake_clockify.add_project("Beta")
        fake_clockify.add_entry("2024-01-15T08:00:00Z", "2024-01-15T09:00:00Z", projectId=alpha["id"])
        fake_clockify.add_entry("2024-01-16T08:00:00Z", "2024-01-16T09:00:00Z", projectId=beta["id"])
        fake_clockify.add_entry("2024-01-17T08:00:00Z", "2024-01-17T09:00:00Z")
        response = client.get(
            f"{BASE}/time-entries",
            params={"timezone": "UTC", "project_ids": [alpha["id"], beta["id"]]},
            headers=HEADERS,
        )
        assert [e["project_id"] for e in response.json()] == [alpha["id"], beta["id"]]


class TestLogs:
    def test_logs_scoped_to_credential(self, client):
        client.post("/v1/validate-key", headers=HEADERS)
        client.post("/v1/validate-key", headers={"X-Api-Key": "another-key-abcdef"})
        client.post(f"{BASE}/time-entries/bulk", json={"timezone": "Bad/Zone", "rows": [{"a": 1}]}, headers=HEADERS)

        response = client.get("/v1/logs", headers=HEADERS)
        assert response.status_code == 200
        logs = response.json()["logs"]
        assert response.json()["count"] == 2
        assert logs[0]["status_code"] == 400
        assert logs[0]["error_code"] == "UNKNOWN_TIMEZONE"
        assert logs[1]["endpoint"] == "/v1/validate-key"

    def test_logs_pruned(self, log_db):
        key = credential_key(API_KEY)
        for i in range(5):
            log_request(
                RequestLog(endpoint=f"/e{i}", method="GET", credential_key=key, status_code=200, timestamp=f"2024-01-01T00:00:0{i}")
            )

        conn = core.database.get_connection()
        try:
            assert core.database.prune_request_logs(conn, key, keep=3) == 2
            logs = core.database.fetch_request_logs(conn, key)
        finally:
            conn.close()
        assert [log["endpoint"] for log in logs] == ["/e4", "/e3", "/e2"]


def test_api_error_codes_extend_engine_codes():
    assert issubclass(ErrorCodes, CoreErrorCodes)
    assert ErrorCodes.UNKNOWN_TIMEZONE == CoreErrorCodes.UNKNOWN_TIMEZONE
    assert ErrorCodes.UNAUTHORIZED == "UNAUTHORIZED"
