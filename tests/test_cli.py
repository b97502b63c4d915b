"""Tests for the cclog command line."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from cclog.main import app

from conftest import AGENT_ID, PROJECT_DIR_NAME
from helpers import OTHER_SESSION_ID, SESSION_ID


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def invoke(runner: CliRunner, claude_dir: Path):
    def _invoke(*args: str):
        return runner.invoke(app, ["--claude-dir", str(claude_dir), *args])

    return _invoke


class TestListing:
    def test_projects_sorted_by_name(self, invoke):
        result = invoke("projects", "--sort", "name")

        assert result.exit_code == 0, result.output
        assert [project["name"] for project in json.loads(result.stdout)] == ["demo", "linter"]

    def test_sessions(self, invoke):
        result = invoke("sessions", "demo", "--agent-types")

        assert result.exit_code == 0, result.output
        sessions = json.loads(result.stdout)
        assert sessions[0]["session_id"] == SESSION_ID
        assert sessions[0]["agent_types_used"] == ["code-reviewer"]
        assert "file_path" not in sessions[0]

    def test_unknown_project_exits_with_error(self, invoke):
        result = invoke("sessions", "elsewhere")

        assert result.exit_code == 1
        assert "ERROR: project not found: elsewhere" in result.stdout

    def test_agent_sessions(self, invoke):
        result = invoke("agent-sessions", "code-reviewer")

        assert result.exit_code == 0, result.output
        found = json.loads(result.stdout)
        assert found["count"] == 1
        assert found["sessions"][0]["project"] == "demo"
        assert found["sessions"][0]["prompts"] == ["Review the parser module"]

    def test_agent_sessions_unknown_project(self, invoke):
        result = invoke("agent-sessions", "code-reviewer", "--project", "elsewhere")

        assert result.exit_code == 1
        assert "ERROR: project not found: elsewhere" in result.stdout


class TestSessionReports:
    def test_summary(self, invoke):
        result = invoke("summary", SESSION_ID)

        assert result.exit_code == 0, result.output
        summary = json.loads(result.stdout)
        assert summary["message_count"] == 3
        assert summary["sidechains"]["agent_ids"] == [AGENT_ID]

    def test_logs_from_file(self, invoke, claude_dir: Path):
        path = claude_dir / "projects" / PROJECT_DIR_NAME / f"{SESSION_ID}.jsonl"

        result = invoke("logs", "--file", str(path))

        assert result.exit_code == 0, result.output
        assert [entry["uuid"] for entry in json.loads(result.stdout)["entries"]] == ["u1", "a1", "a2"]

    def test_agent_logs(self, invoke):
        result = invoke("logs", SESSION_ID, "--agent", AGENT_ID)

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["entries"][0]["uuid"] == "s1"

    def test_errors_with_limit(self, invoke):
        result = invoke("errors", OTHER_SESSION_ID, "--limit", "5")

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["categories"]["validation_error"] == 1

    def test_tools_timeline_and_stats(self, invoke):
        tools = invoke("tools", OTHER_SESSION_ID)
        timeline = invoke("timeline", OTHER_SESSION_ID, "--limit", "2")
        stats = invoke("stats", OTHER_SESSION_ID)

        assert json.loads(tools.stdout)["patterns"]["most_failed"] == "Bash"
        assert json.loads(timeline.stdout)["returned_entries"] == 2
        assert json.loads(stats.stdout)["errors"]["total_errors"] == 1

    def test_sidechains(self, invoke):
        result = invoke("sidechains", SESSION_ID)

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["sidechains"][0]["subagent_type"] == "code-reviewer"

    def test_sidechains_from_file(self, invoke, claude_dir: Path):
        path = claude_dir / "projects" / PROJECT_DIR_NAME / f"{SESSION_ID}.jsonl"

        result = invoke("sidechains", "--file", str(path))

        assert result.exit_code == 0, result.output
        digests = json.loads(result.stdout)["sidechains"]
        assert len(digests) == 1
        assert digests[0]["agent_id"] == AGENT_ID
        assert digests[0]["entry_count"] == 3

    def test_around(self, invoke):
        result = invoke("around", OTHER_SESSION_ID, "o2", "--offset", "1")

        assert result.exit_code == 0, result.output
        assert [log["offset"] for log in json.loads(result.stdout)["entries"]] == [0, 1]

    def test_around_unknown_entry(self, invoke):
        result = invoke("around", OTHER_SESSION_ID, "missing")

        assert result.exit_code == 1
        assert "ERROR: entry with UUID missing not found" in result.stdout

    def test_unknown_session(self, invoke):
        result = invoke("summary", "nope")

        assert result.exit_code == 1
        assert "ERROR: session not found: nope" in result.stdout

    def test_missing_file(self, invoke, tmp_path: Path):
        result = invoke("summary", "--file", str(tmp_path / "absent.jsonl"))

        assert result.exit_code == 1
        assert "ERROR: file not found" in result.stdout

    def test_session_or_file_required(self, invoke):
        result = invoke("summary")

        assert result.exit_code != 0


class TestSearch:
    def test_search_by_tool(self, invoke):
        result = invoke("search", "--tool", "grep", "--project", "linter")

        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert payload["total_matches"] == 1
        assert payload["results"][0]["tool_name"] == "Grep"
