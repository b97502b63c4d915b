"""CLI for inspecting Claude Code session logs."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

import typer
from loguru import logger
from pydantic import BaseModel

from . import reports
from .discovery import ProjectSort, default_claude_dir, list_projects
from .search import DEFAULT_SEARCH_LIMIT, SearchCriteria, search_sessions
from .service import (
    DEFAULT_AGENT_SESSIONS_LIMIT,
    LoadedSession,
    list_project_sessions,
    load_session,
    load_session_file,
    sessions_by_agent_type,
)

CLAUDE_DIR_ENVVAR = "CCLOG_CLAUDE_DIR"

T = TypeVar("T")


@dataclass
class CliState:
    claude_dir: Path


app = typer.Typer(
    help="Reconstruct Claude Code session logs and report on them as JSON.",
    pretty_exceptions_enable=True,
    no_args_is_help=True,
)


@app.callback()
def configure(
    ctx: typer.Context,
    claude_dir: Path = typer.Option(
        default_claude_dir(),
        "--claude-dir",
        envvar=CLAUDE_DIR_ENVVAR,
        help="Claude data directory containing projects/",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
) -> None:
    """Shared options for every command."""
    if verbose:
        logger.enable("cclog")
    else:
        logger.disable("cclog")
    ctx.obj = CliState(claude_dir=claude_dir.expanduser())


def _state(ctx: typer.Context) -> CliState:
    if isinstance(ctx.obj, CliState):
        return ctx.obj
    return CliState(claude_dir=default_claude_dir())


def _emit(payload: BaseModel | list[BaseModel]) -> None:
    if isinstance(payload, list):
        typer.echo(json.dumps([item.model_dump(mode="json") for item in payload], indent=2, ensure_ascii=False))
        return
    typer.echo(payload.model_dump_json(indent=2))


def _guard(action: Callable[[], T]) -> T:
    """Run `action`, turning lookup failures into a clean exit."""
    try:
        return action()
    except (LookupError, FileNotFoundError) as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=1)


def _load(
    ctx: typer.Context,
    session_id: str | None,
    file: Path | None,
    project: str | None,
    agent: str,
    include_sidechains: bool,
) -> LoadedSession:
    if file is not None:
        return _guard(lambda: load_session_file(file.expanduser(), include_sidechains=include_sidechains))
    if not session_id:
        raise typer.BadParameter("Provide a SESSION_ID or --file.")
    claude_dir = _state(ctx).claude_dir
    return _guard(
        lambda: load_session(
            claude_dir,
            session_id,
            project=project,
            agent_id=agent,
            include_sidechains=include_sidechains,
        )
    )


SESSION_ARGUMENT = typer.Argument(None, help="Session id (file stem of the session log)")
FILE_OPTION = typer.Option(None, "--file", "-f", help="Read a JSONL file directly instead of a session id")
PROJECT_OPTION = typer.Option(None, "--project", "-p", help="Project name or partial path")
AGENT_OPTION = typer.Option("", "--agent", "-a", help="Load a single sub-agent log by agent id")
SIDECHAINS_OPTION = typer.Option(
    False,
    "--include-sidechains/--no-include-sidechains",
    help="Keep unattached sidechain entries in the output",
)


@app.command()
def projects(
    ctx: typer.Context,
    sort: ProjectSort = typer.Option(ProjectSort.LAST_MODIFIED, "--sort", help="Sort order"),
) -> None:
    """List projects with session logs."""
    _emit(list_projects(_state(ctx).claude_dir, sort))


@app.command()
def sessions(
    ctx: typer.Context,
    project: str = typer.Argument(..., help="Project name or partial path"),
    days: int = typer.Option(0, "--days", help="Only sessions modified in the last N days"),
    limit: int = typer.Option(0, "--limit", help="Maximum sessions to list (0 = all)"),
    agent_types: bool = typer.Option(False, "--agent-types", help="Include sub-agent types used"),
) -> None:
    """List sessions of a project, newest first."""
    claude_dir = _state(ctx).claude_dir
    _emit(
        _guard(
            lambda: list_project_sessions(
                claude_dir,
                project,
                days=days,
                include_agent_types=agent_types,
                limit=limit,
            )
        )
    )


@app.command("agent-sessions")
def agent_sessions(
    ctx: typer.Context,
    agent_type: str = typer.Argument(..., help="Sub-agent type passed to Task as subagent_type"),
    project: str | None = PROJECT_OPTION,
    days: int = typer.Option(0, "--days", help="Only sessions modified in the last N days"),
    limit: int = typer.Option(DEFAULT_AGENT_SESSIONS_LIMIT, "--limit", help="Maximum sessions to return"),
) -> None:
    """Find sessions where a sub-agent type was used."""
    claude_dir = _state(ctx).claude_dir
    _emit(
        _guard(
            lambda: sessions_by_agent_type(claude_dir, agent_type, project=project, days=days, limit=limit)
        )
    )


@app.command()
def logs(
    ctx: typer.Context,
    session_id: str | None = SESSION_ARGUMENT,
    file: Path | None = FILE_OPTION,
    project: str | None = PROJECT_OPTION,
    agent: str = AGENT_OPTION,
    include_sidechains: bool = SIDECHAINS_OPTION,
) -> None:
    """Print the reconstructed entries of a session."""
    _emit(reports.session_logs(_load(ctx, session_id, file, project, agent, include_sidechains)))


@app.command()
def summary(
    ctx: typer.Context,
    session_id: str | None = SESSION_ARGUMENT,
    file: Path | None = FILE_OPTION,
    project: str | None = PROJECT_OPTION,
    agent: str = AGENT_OPTION,
    include_sidechains: bool = SIDECHAINS_OPTION,
) -> None:
    """Print message, token and tool counts for a session."""
    _emit(reports.session_summary(_load(ctx, session_id, file, project, agent, include_sidechains)))


@app.command()
def tools(
    ctx: typer.Context,
    session_id: str | None = SESSION_ARGUMENT,
    file: Path | None = FILE_OPTION,
    project: str | None = PROJECT_OPTION,
    agent: str = AGENT_OPTION,
    include_sidechains: bool = SIDECHAINS_OPTION,
) -> None:
    """Print per-tool usage statistics."""
    _emit(reports.tool_usage_stats(_load(ctx, session_id, file, project, agent, include_sidechains)))


@app.command()
def errors(
    ctx: typer.Context,
    session_id: str | None = SESSION_ARGUMENT,
    file: Path | None = FILE_OPTION,
    project: str | None = PROJECT_OPTION,
    agent: str = AGENT_OPTION,
    include_sidechains: bool = SIDECHAINS_OPTION,
    limit: int = typer.Option(0, "--limit", help="Maximum errors to return (0 = all)"),
) -> None:
    """Print errored entries and failed tool calls."""
    session = _load(ctx, session_id, file, project, agent, include_sidechains)
    _emit(reports.session_errors(session, limit=limit))


@app.command()
def timeline(
    ctx: typer.Context,
    session_id: str | None = SESSION_ARGUMENT,
    file: Path | None = FILE_OPTION,
    project: str | None = PROJECT_OPTION,
    agent: str = AGENT_OPTION,
    include_sidechains: bool = SIDECHAINS_OPTION,
    limit: int = typer.Option(0, "--limit", help="Maximum timeline steps (0 = all)"),
) -> None:
    """Print a condensed step-by-step timeline."""
    session = _load(ctx, session_id, file, project, agent, include_sidechains)
    _emit(reports.session_timeline(session, limit=limit))


@app.command()
def stats(
    ctx: typer.Context,
    session_id: str | None = SESSION_ARGUMENT,
    file: Path | None = FILE_OPTION,
    project: str | None = PROJECT_OPTION,
    agent: str = AGENT_OPTION,
    include_sidechains: bool = SIDECHAINS_OPTION,
    limit: int = typer.Option(0, "--limit", help="Maximum errors to include (0 = all)"),
) -> None:
    """Print summary, tool statistics and errors together."""
    session = _load(ctx, session_id, file, project, agent, include_sidechains)
    _emit(reports.session_stats(session, errors_limit=limit))


@app.command()
def sidechains(
    ctx: typer.Context,
    session_id: str | None = SESSION_ARGUMENT,
    file: Path | None = FILE_OPTION,
    project: str | None = PROJECT_OPTION,
) -> None:
    """Print what each sub-agent was asked and answered."""
    _emit(reports.sidechain_digests(_load(ctx, session_id, file, project, "", False)))


@app.command()
def around(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session id"),
    entry_uuid: str = typer.Argument(..., help="Target entry uuid"),
    offset: int = typer.Option(
        0,
        "--offset",
        help="Negative for entries before the target, positive for after (0 = -3)",
    ),
    project: str | None = PROJECT_OPTION,
    include_sidechains: bool = SIDECHAINS_OPTION,
) -> None:
    """Print the entries surrounding one entry."""
    session = _load(ctx, session_id, None, project, "", include_sidechains)
    _emit(_guard(lambda: reports.logs_around_entry(session, entry_uuid, offset=offset)))


@app.command()
def search(
    ctx: typer.Context,
    query: str = typer.Option("", "--query", "-q", help="Case-insensitive text to look for"),
    tool: str = typer.Option("", "--tool", help="Only records calling this tool"),
    role: str = typer.Option("", "--role", help="Only records with this role"),
    project: str = typer.Option("", "--project", "-p", help="Limit to one project"),
    days: int = typer.Option(0, "--days", help="Only sessions modified in the last N days"),
    include_sidechains: bool = SIDECHAINS_OPTION,
    limit: int = typer.Option(DEFAULT_SEARCH_LIMIT, "--limit", help="Maximum results"),
) -> None:
    """Search raw records across sessions."""
    criteria = SearchCriteria(
        query=query,
        tool_name=tool,
        role=role,
        project=project,
        days=days,
        include_sidechains=include_sidechains,
        limit=limit,
    )
    claude_dir = _state(ctx).claude_dir
    _emit(_guard(lambda: search_sessions(claude_dir, criteria)))


def main() -> None:
    """CLI entrypoint."""
    app()


if __name__ == "__main__":
    main()
