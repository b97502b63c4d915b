"""Tests for the log viewer HTTP service."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from cclogview.app import create_app
from cclogview.config import Settings

from conftest import AGENT_ID
from helpers import OTHER_SESSION_ID, SESSION_ID


@pytest.fixture
def settings(claude_dir: Path) -> Settings:
    """Create settings pointing at the fixture data directory."""
    return Settings(claude_dir=claude_dir)


@pytest.fixture
def client(settings: Settings) -> TestClient:
    """Create test client."""
    app = create_app(settings)
    return TestClient(app)


class TestHealthEndpoint:
    def test_health_check(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestProjects:
    def test_list_projects(self, client: TestClient):
        response = client.get("/projects", params={"sort": "name"})

        assert response.status_code == 200
        assert [project["name"] for project in response.json()] == ["demo", "linter"]

    def test_invalid_sort(self, client: TestClient):
        assert client.get("/projects", params={"sort": "size"}).status_code == 422

    def test_project_sessions(self, client: TestClient):
        response = client.get("/projects/demo/sessions", params={"agent_types": True})

        assert response.status_code == 200
        assert response.json()[0]["agent_types_used"] == ["code-reviewer"]

    def test_unknown_project_is_404(self, client: TestClient):
        response = client.get("/projects/elsewhere/sessions")

        assert response.status_code == 404
        assert response.json() == {"detail": "project not found: elsewhere"}

    def test_agent_sessions(self, client: TestClient):
        response = client.get("/agents/code-reviewer/sessions", params={"limit": 5})

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["sessions"][0]["session_id"] == SESSION_ID
        assert data["sessions"][0]["usage_count"] == 1


class TestSessionRoutes:
    def test_logs(self, client: TestClient):
        response = client.get(f"/sessions/{SESSION_ID}/logs")

        assert response.status_code == 200
        data = response.json()
        assert data["project"] == "demo"
        assert [entry["uuid"] for entry in data["entries"]] == ["u1", "a1", "a2"]

    def test_agent_summary(self, client: TestClient):
        response = client.get(f"/sessions/{SESSION_ID}/summary", params={"agent": AGENT_ID})

        assert response.status_code == 200
        assert response.json()["agent_id"] == AGENT_ID

    def test_tools_and_errors(self, client: TestClient):
        tools = client.get(f"/sessions/{OTHER_SESSION_ID}/tools").json()
        errors = client.get(f"/sessions/{OTHER_SESSION_ID}/errors", params={"limit": 0}).json()

        assert [tool["name"] for tool in tools["tools"]] == ["Bash", "Grep"]
        assert errors["total_errors"] == 1
        assert errors["errors"][0]["tool_name"] == "Bash"

    def test_timeline_uses_default_limit(self, claude_dir: Path):
        client = TestClient(create_app(Settings(claude_dir=claude_dir, default_limit=3)))

        data = client.get(f"/sessions/{OTHER_SESSION_ID}/timeline").json()

        assert data["returned_entries"] == 3
        assert data["total_entries"] == 4

    def test_stats(self, client: TestClient):
        data = client.get(f"/sessions/{OTHER_SESSION_ID}/stats").json()

        assert data["summary"]["tool_calls"]["failed"] == 1
        assert data["tool_stats"]["patterns"]["last_tool"] == "Grep"

    def test_sidechains(self, client: TestClient):
        data = client.get(f"/sessions/{SESSION_ID}/sidechains").json()

        assert data["sidechains"][0]["last_assistant_message"] == "The parser looks fine."

    def test_entry_context(self, client: TestClient):
        response = client.get(f"/sessions/{OTHER_SESSION_ID}/entries/o4/around")

        assert response.status_code == 200
        assert [log["offset"] for log in response.json()["entries"]] == [-2, -1, 0]

    def test_unknown_entry_is_404(self, client: TestClient):
        response = client.get(f"/sessions/{OTHER_SESSION_ID}/entries/missing/around")

        assert response.status_code == 404

    def test_unknown_session_is_404(self, client: TestClient):
        response = client.get("/sessions/nope/summary")

        assert response.status_code == 404
        assert response.json()["detail"] == "session not found: nope"

    def test_agent_id_with_separators_is_404(self, client: TestClient):
        response = client.get(f"/sessions/{SESSION_ID}/logs", params={"agent": "../../etc"})

        assert response.status_code == 404


class TestSearch:
    def test_search(self, client: TestClient):
        response = client.get("/search", params={"query": "linter", "role": "user"})

        assert response.status_code == 200
        data = response.json()
        assert data["total_matches"] == 1
        assert data["results"][0]["entry_uuid"] == "o1"


class TestSettings:
    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        monkeypatch.setenv("CCLOG_CLAUDE_DIR", str(tmp_path))
        monkeypatch.setenv("CCLOG_PORT", "9200")

        settings = Settings()

        assert settings.claude_dir == tmp_path
        assert settings.port == 9200
        assert settings.projects_dir == tmp_path / "projects"
