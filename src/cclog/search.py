"""Linear-scan search over raw session records."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from . import discovery
from .models import Message, RawRecord, SearchResult, SearchResults, ToolUseBlock
from .parser import read_jsonl_file
from .service import resolve_project
from .text import truncate
from .transform import message_text, parse_message, parse_timestamp

DEFAULT_SEARCH_LIMIT = 50
SNIPPET_LENGTH = 200


@dataclass(frozen=True)
class SearchCriteria:
    query: str = ""
    tool_name: str = ""
    role: str = ""
    project: str = ""
    days: int = 0
    include_sidechains: bool = False
    limit: int = DEFAULT_SEARCH_LIMIT


def find_tool_name(message: Message, target: str) -> str:
    """Name of the first tool_use block matching `target`, ignoring case."""
    if not isinstance(message.content, list):
        return ""
    wanted = target.casefold()
    for block in message.content:
        if isinstance(block, ToolUseBlock) and block.name.casefold() == wanted:
            return block.name
    return ""


def search_records(
    records: Iterable[RawRecord],
    criteria: SearchCriteria,
    *,
    session_id: str,
    project: str,
) -> list[SearchResult]:
    results: list[SearchResult] = []
    query = criteria.query.casefold()

    for record in records:
        if record.is_sidechain and not criteria.include_sidechains:
            continue

        message = parse_message(record.message)
        if message is None:
            continue
        if criteria.role and message.role != criteria.role:
            continue

        tool_name = ""
        if criteria.tool_name:
            tool_name = find_tool_name(message, criteria.tool_name)
            if not tool_name:
                continue

        content = message_text(message, separator=" ")
        if query and query not in content.casefold():
            continue

        results.append(
            SearchResult(
                session_id=session_id,
                project=project,
                entry_uuid=record.uuid,
                timestamp=parse_timestamp(record.timestamp),
                role=message.role,
                content_snippet=truncate(content, SNIPPET_LENGTH),
                tool_name=tool_name,
                is_sidechain=record.is_sidechain,
            )
        )
    return results


def search_sessions(claude_dir: Path, criteria: SearchCriteria) -> SearchResults:
    """Search every session of one project, or of all projects, up to the limit."""
    if criteria.project:
        projects = [resolve_project(claude_dir, criteria.project)]
    else:
        projects = discovery.list_projects(claude_dir)

    limit = criteria.limit if criteria.limit > 0 else DEFAULT_SEARCH_LIMIT
    results: list[SearchResult] = []
    for project in projects:
        for session in discovery.list_sessions(claude_dir, project, days=criteria.days):
            if len(results) >= limit:
                break
            try:
                records = read_jsonl_file(Path(session.file_path))
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning("Skipping session {session}: {error}", session=session.session_id, error=exc)
                continue
            found = search_records(records, criteria, session_id=session.session_id, project=project.name)
            results.extend(found[: limit - len(results)])
        if len(results) >= limit:
            break

    logger.debug("Search matched {count} records across {projects} projects", count=len(results), projects=len(projects))
    return SearchResults(results=results, total_matches=len(results))
