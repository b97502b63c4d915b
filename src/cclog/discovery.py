"""Locate projects, sessions and sub-agent logs under a Claude data directory."""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from pathlib import Path
from typing import Any

from loguru import logger

from .models import TASK_TOOL_NAME, Message, ProjectInfo, RawRecord, SessionInfo, TextBlock, ToolUseBlock
from .parser import SUBAGENTS_DIR_NAME, read_jsonl_file
from .text import truncate
from .transform import parse_message, parse_timestamp

PROJECTS_DIR_NAME = "projects"
SESSION_FILE_PATTERN = re.compile(
    r"^([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})\.jsonl$"
)
FIRST_MESSAGE_PREVIEW_LENGTH = 200
SAFE_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]+")


def is_safe_identifier(value: str) -> bool:
    """True when `value` can name a file without leaving its directory."""
    return SAFE_ID_PATTERN.fullmatch(value) is not None


class ProjectSort(StrEnum):
    NAME = "name"
    SESSION_COUNT = "session_count"
    LAST_MODIFIED = "last_modified"


def default_claude_dir() -> Path:
    return Path.home() / ".claude"


def projects_root(claude_dir: Path) -> Path:
    return claude_dir / PROJECTS_DIR_NAME


def decode_project_path(encoded: str) -> str:
    """Turn "-Users-me-code" back into "/Users/me/code"."""
    if not encoded:
        return ""
    return "/" + encoded.removeprefix("-").replace("-", "/")


def encode_project_path(path: str) -> str:
    return "-" + path.removeprefix("/").replace("/", "-")


def count_session_files(project_dir: Path) -> int:
    """Count main session files (UUID-named), ignoring agent files."""
    if not project_dir.is_dir():
        return 0
    return sum(
        1 for path in project_dir.iterdir() if path.is_file() and SESSION_FILE_PATTERN.match(path.name)
    )


def list_projects(claude_dir: Path, sort_by: ProjectSort = ProjectSort.LAST_MODIFIED) -> list[ProjectInfo]:
    root = projects_root(claude_dir)
    if not root.is_dir():
        logger.debug("Projects directory {path} does not exist", path=root)
        return []

    projects: list[ProjectInfo] = []
    for directory in root.iterdir():
        if not directory.is_dir():
            continue
        decoded = decode_project_path(directory.name)
        projects.append(
            ProjectInfo(
                name=Path(decoded).name,
                path=decoded,
                encoded_path=directory.name,
                session_count=count_session_files(directory),
                last_modified=datetime.fromtimestamp(directory.stat().st_mtime, tz=UTC),
            )
        )

    match sort_by:
        case ProjectSort.NAME:
            projects.sort(key=lambda project: project.name)
        case ProjectSort.SESSION_COUNT:
            projects.sort(key=lambda project: project.session_count, reverse=True)
        case _:
            projects.sort(key=lambda project: project.last_modified, reverse=True)
    return projects


def find_project(claude_dir: Path, name: str) -> ProjectInfo | None:
    """Exact name match first, then case-insensitive substring of name or path."""
    projects = list_projects(claude_dir)
    for project in projects:
        if project.name == name:
            return project

    needle = name.lower()
    for project in projects:
        if needle in project.path.lower() or needle in project.name.lower():
            return project
    return None


def project_dir(claude_dir: Path, project: ProjectInfo) -> Path:
    return projects_root(claude_dir) / project.encoded_path


def list_sessions(
    claude_dir: Path,
    project: ProjectInfo,
    *,
    days: int = 0,
    include_agent_types: bool = False,
    limit: int = 0,
) -> list[SessionInfo]:
    """Describe the main session files of a project, newest first."""
    directory = project_dir(claude_dir, project)
    if not directory.is_dir():
        return []

    cutoff = datetime.now(tz=UTC) - timedelta(days=days) if days > 0 else None
    sessions: list[SessionInfo] = []
    for path in sorted(directory.iterdir()):
        match = SESSION_FILE_PATTERN.match(path.name)
        if match is None or not path.is_file():
            continue
        if cutoff is not None and datetime.fromtimestamp(path.stat().st_mtime, tz=UTC) < cutoff:
            continue

        try:
            info = describe_session(path, match.group(1), project.name, include_agent_types=include_agent_types)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Skipping unreadable session file {file}: {error}", file=path, error=exc)
            continue
        if info is not None:
            sessions.append(info)

    oldest = datetime.min.replace(tzinfo=UTC)
    sessions.sort(key=lambda session: session.start_time or oldest, reverse=True)
    if limit > 0:
        sessions = sessions[:limit]
    return sessions


def describe_session(
    path: Path,
    session_id: str,
    project_name: str,
    *,
    include_agent_types: bool = False,
) -> SessionInfo | None:
    """Summarise one main session file without reconstructing it."""
    records = read_jsonl_file(path)
    if not records:
        return None

    info = SessionInfo(
        session_id=session_id,
        project=project_name,
        message_count=len(records),
        file_path=str(path),
    )
    for record in records:
        moment = parse_timestamp(record.timestamp)
        if moment is not None:
            if info.start_time is None or moment < info.start_time:
                info.start_time = moment
            if info.end_time is None or moment > info.end_time:
                info.end_time = moment
        if not info.cwd and record.cwd:
            info.cwd = record.cwd
        if not info.git_branch and record.git_branch:
            info.git_branch = record.git_branch

    for record in records:
        message = parse_message(record.message)
        if record.type == "user" or (message is not None and message.role == "user"):
            info.first_user_message = _first_text(message)
            break

    if include_agent_types:
        info.agent_types_used = extract_agent_types(records)
    return info


def _first_text(message: Message | None) -> str:
    if message is None or message.content is None:
        return ""
    if isinstance(message.content, str):
        return truncate(message.content, FIRST_MESSAGE_PREVIEW_LENGTH)
    for block in message.content:
        if isinstance(block, TextBlock):
            return truncate(block.text, FIRST_MESSAGE_PREVIEW_LENGTH)
    return ""


def iter_task_inputs(records: Iterable[RawRecord]) -> Iterator[dict[str, Any]]:
    """Yield the input object of every Task call in `records`."""
    for record in records:
        message = parse_message(record.message)
        if message is None or not isinstance(message.content, list):
            continue
        for block in message.content:
            if isinstance(block, ToolUseBlock) and block.name == TASK_TOOL_NAME and isinstance(block.input, dict):
                yield block.input


def extract_agent_types(records: list[RawRecord]) -> list[str]:
    """Sorted distinct `subagent_type` values of Task calls."""
    found: set[str] = set()
    for task_input in iter_task_inputs(records):
        subagent_type = task_input.get("subagent_type")
        if isinstance(subagent_type, str) and subagent_type:
            found.add(subagent_type)
    return sorted(found)


def agent_type_prompts(records: list[RawRecord], agent_type: str) -> list[str]:
    """Prompts of the Task calls that spawned `agent_type`, one per call."""
    wanted = agent_type.casefold()
    prompts: list[str] = []
    for task_input in iter_task_inputs(records):
        subagent_type = task_input.get("subagent_type")
        if not isinstance(subagent_type, str) or subagent_type.casefold() != wanted:
            continue
        prompt = task_input.get("prompt")
        prompts.append(truncate(prompt, FIRST_MESSAGE_PREVIEW_LENGTH) if isinstance(prompt, str) else "")
    return prompts


def find_session_file(
    claude_dir: Path,
    session_id: str,
    project: ProjectInfo | None = None,
) -> tuple[Path, ProjectInfo] | None:
    """Locate `<session_id>.jsonl`, in one project or across all of them."""
    if not is_safe_identifier(session_id):
        logger.warning("Rejecting unsafe session id {session}", session=session_id)
        return None
    candidates = [project] if project is not None else list_projects(claude_dir)
    for candidate in candidates:
        path = project_dir(claude_dir, candidate) / f"{session_id}.jsonl"
        if path.is_file():
            return path, candidate
    return None


def find_agent_file(directory: Path, session_id: str, agent_id: str) -> Path | None:
    """Locate `agent-<id>.jsonl` for a session.

    Looks in the project directory, then the session's `subagents` directory,
    then every other session's `subagents` directory.
    """
    if not is_safe_identifier(agent_id) or (session_id and not is_safe_identifier(session_id)):
        logger.warning("Rejecting unsafe agent lookup {session}/{agent}", session=session_id, agent=agent_id)
        return None
    file_name = f"agent-{agent_id}.jsonl"

    direct = directory / file_name
    if direct.is_file():
        return direct

    if session_id:
        nested = directory / session_id / SUBAGENTS_DIR_NAME / file_name
        if nested.is_file():
            return nested

    if not directory.is_dir():
        return None
    for session_dir in sorted(directory.iterdir()):
        if not session_dir.is_dir():
            continue
        candidate = session_dir / SUBAGENTS_DIR_NAME / file_name
        if candidate.is_file():
            return candidate
    return None
