"""Shared pytest fixtures for session log tests."""

from pathlib import Path
from typing import Final

import pytest

from helpers import OTHER_SESSION_ID, SESSION_ID, assistant, task_session_rows, tool_result, tool_use, user, write_jsonl

PROJECT_DIR_NAME: Final[str] = "-Users-dev-demo"
OTHER_PROJECT_DIR_NAME: Final[str] = "-Users-dev-tools-linter"
AGENT_ID: Final[str] = "a7f3c1"


def other_session_rows() -> list[dict]:
    """A short session with one failed Bash call and one successful Grep."""
    return [
        user("o1", "Run the linter", at=0),
        assistant("o2", "", parent="o1", at=1, tools=[tool_use("toolu_bash", "Bash", {"command": "ruff check ."})]),
        tool_result(
            "o3",
            "toolu_bash",
            "InputValidationError: ruff is not installed",
            parent="o2",
            at=2,
            is_error=True,
        ),
        assistant("o4", "", parent="o3", at=3, tools=[tool_use("toolu_grep", "Grep", {"pattern": "TODO"})]),
        tool_result("o5", "toolu_grep", "src/app.py:12: TODO", parent="o4", at=4),
        assistant("o6", "Found one TODO in the linter config.", parent="o5", at=5),
    ]


@pytest.fixture
def claude_dir(tmp_path: Path) -> Path:
    """A Claude data directory with two projects.

    `demo` holds the Task session and its sub-agent log; `linter` holds a
    session with a failed tool call.
    """
    root = tmp_path / "claude"
    demo = root / "projects" / PROJECT_DIR_NAME
    main, sidechain = task_session_rows()
    write_jsonl(demo / f"{SESSION_ID}.jsonl", main)
    write_jsonl(demo / SESSION_ID / "subagents" / f"agent-{AGENT_ID}.jsonl", sidechain)
    write_jsonl(root / "projects" / OTHER_PROJECT_DIR_NAME / f"{OTHER_SESSION_ID}.jsonl", other_session_rows())
    return root


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--sessions-dir",
        action="store",
        default=None,
        help="Directory of real session JSONL files checked by tests/test_real_sessions.py.",
    )


def _resolve_sessions_dir(config: pytest.Config) -> Path | None:
    value = config.getoption("--sessions-dir")
    if not value:
        return None

    sessions_dir = Path(value).expanduser()
    if not sessions_dir.is_dir():
        raise pytest.UsageError(f"--sessions-dir path is not a directory: {sessions_dir}")
    return sessions_dir


def pytest_generate_tests(metafunc: pytest.Metafunc) -> None:
    if "session_log_path" not in metafunc.fixturenames:
        return

    sessions_dir = _resolve_sessions_dir(metafunc.config)
    paths = sorted(p for p in sessions_dir.rglob("*.jsonl") if p.is_file()) if sessions_dir else []
    metafunc.parametrize("session_log_path", paths, ids=[p.name for p in paths])
