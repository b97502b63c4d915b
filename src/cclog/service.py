"""Load and reconstruct sessions by id, agent id or file path."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from . import discovery
from .models import AgentSessions, AgentUsageInfo, ProcessedEntry, ProjectInfo, RawRecord, SessionInfo
from .parser import read_jsonl_file, read_session_file
from .processor import ProcessingContext, reconstruct

DEFAULT_AGENT_SESSIONS_LIMIT = 20
PER_PROJECT_SESSION_CAP = 50


class ProjectNotFoundError(LookupError):
    """Raised when no project matches the requested name."""


class SessionNotFoundError(LookupError):
    """Raised when a session file cannot be located."""


class AgentNotFoundError(LookupError):
    """Raised when a sub-agent log cannot be located for a session."""


class EntryNotFoundError(LookupError):
    """Raised when an entry id is not part of the reconstructed session."""


@dataclass(frozen=True, slots=True)
class LoadedSession:
    """A reconstructed session plus the identity it was loaded under."""

    session_id: str
    project: str
    context: ProcessingContext
    agent_id: str = ""
    include_sidechains: bool = False

    @classmethod
    def from_records(
        cls,
        records: Iterable[RawRecord],
        *,
        session_id: str,
        project: str,
        agent_id: str = "",
        include_sidechains: bool = False,
    ) -> LoadedSession:
        return cls(
            session_id=session_id,
            project=project,
            context=reconstruct(records),
            agent_id=agent_id,
            include_sidechains=include_sidechains,
        )

    @property
    def entries(self) -> list[ProcessedEntry]:
        """Top-level entries, without unattached sidechain entries unless requested."""
        if self.include_sidechains or self.agent_id:
            return list(self.context.roots)
        return [entry for entry in self.context.roots if not entry.is_sidechain]


def resolve_project(claude_dir: Path, name: str) -> ProjectInfo:
    project = discovery.find_project(claude_dir, name)
    if project is None:
        raise ProjectNotFoundError(f"project not found: {name}")
    return project


def list_project_sessions(
    claude_dir: Path,
    project_name: str,
    *,
    days: int = 0,
    include_agent_types: bool = False,
    limit: int = 0,
) -> list[SessionInfo]:
    project = resolve_project(claude_dir, project_name)
    return discovery.list_sessions(
        claude_dir,
        project,
        days=days,
        include_agent_types=include_agent_types,
        limit=limit,
    )


def load_session(
    claude_dir: Path,
    session_id: str,
    *,
    project: str | None = None,
    agent_id: str = "",
    include_sidechains: bool = False,
) -> LoadedSession:
    """Read and reconstruct a session, or a single sub-agent of it."""
    scope = resolve_project(claude_dir, project) if project else None
    if agent_id:
        return _load_agent(claude_dir, session_id, agent_id, scope)

    located = discovery.find_session_file(claude_dir, session_id, scope)
    if located is None:
        raise SessionNotFoundError(f"session not found: {session_id}")
    path, owner = located

    records = read_session_file(path)
    logger.debug("Loaded {count} records for session {session}", count=len(records), session=session_id)
    return LoadedSession.from_records(
        records,
        session_id=session_id,
        project=owner.name,
        include_sidechains=include_sidechains,
    )


def _load_agent(
    claude_dir: Path,
    session_id: str,
    agent_id: str,
    scope: ProjectInfo | None,
) -> LoadedSession:
    candidates = [scope] if scope is not None else discovery.list_projects(claude_dir)
    for candidate in candidates:
        path = discovery.find_agent_file(discovery.project_dir(claude_dir, candidate), session_id, agent_id)
        if path is None:
            continue
        records = read_jsonl_file(path)
        logger.debug("Loaded {count} records from agent file {file}", count=len(records), file=path)
        return LoadedSession.from_records(
            records,
            session_id=session_id,
            project=candidate.name,
            agent_id=agent_id,
            include_sidechains=True,
        )
    raise AgentNotFoundError(f"agent {agent_id} not found for session {session_id}")


def load_session_file(path: Path, *, include_sidechains: bool = False) -> LoadedSession:
    """Reconstruct a session straight from a JSONL path."""
    if not path.is_file():
        raise FileNotFoundError(f"file not found: {path}")
    return LoadedSession.from_records(
        read_session_file(path),
        session_id=path.stem,
        project=str(path.parent),
        include_sidechains=include_sidechains,
    )


def sessions_by_agent_type(
    claude_dir: Path,
    agent_type: str,
    *,
    project: str | None = None,
    days: int = 0,
    limit: int = DEFAULT_AGENT_SESSIONS_LIMIT,
) -> AgentSessions:
    """Sessions whose Task calls spawned `agent_type`, matched without regard to case.

    Across all projects only the newest sessions of each project are read:
    `PER_PROJECT_SESSION_CAP`, or five per requested result when that is less.
    """
    if project:
        projects = [resolve_project(claude_dir, project)]
    else:
        projects = discovery.list_projects(claude_dir)

    per_project = 0
    if len(projects) > 1:
        per_project = PER_PROJECT_SESSION_CAP
        if 0 < limit < PER_PROJECT_SESSION_CAP:
            per_project = min(per_project, limit * 5)

    wanted = agent_type.casefold()
    found: list[AgentUsageInfo] = []
    for candidate in projects:
        sessions = discovery.list_sessions(
            claude_dir,
            candidate,
            days=days,
            include_agent_types=True,
            limit=per_project,
        )
        for session in sessions:
            if wanted not in (used.casefold() for used in session.agent_types_used):
                continue
            prompts = discovery.agent_type_prompts(read_jsonl_file(Path(session.file_path)), agent_type)
            found.append(
                AgentUsageInfo(
                    session_id=session.session_id,
                    project=candidate.name,
                    timestamp=session.start_time,
                    usage_count=len(prompts),
                    prompts=[prompt for prompt in prompts if prompt],
                )
            )
        if limit > 0 and len(found) >= limit:
            found = found[:limit]
            break

    logger.debug("Agent type {agent} used in {count} sessions", agent=agent_type, count=len(found))
    return AgentSessions(agent_type=agent_type, sessions=found, count=len(found))
