"""FastAPI application factory and routes for the log viewer."""

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from cclog import reports
from cclog.discovery import ProjectSort, list_projects
from cclog.models import (
    AgentSessions,
    LogsAroundEntry,
    ProjectInfo,
    SearchResults,
    SessionErrors,
    SessionInfo,
    SessionLogs,
    SessionSidechains,
    SessionStats,
    SessionSummary,
    SessionTimeline,
    ToolUsageStats,
)
from cclog.search import SearchCriteria, search_sessions
from cclog.service import (
    DEFAULT_AGENT_SESSIONS_LIMIT,
    LoadedSession,
    list_project_sessions,
    load_session,
    sessions_by_agent_type,
)

from .config import Settings
from .logging import configure_logging

# Global settings instance (set by create_app or overridden in tests)
_settings: Settings | None = None


def get_settings() -> Settings:
    """Dependency to get current settings."""
    if _settings is None:
        return Settings()
    return _settings


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings instance. If None, defaults are used.

    Returns:
        Configured FastAPI application.
    """
    global _settings
    _settings = settings or Settings()
    configure_logging(_settings.verbose)

    app = FastAPI(
        title="cclogview",
        description="Reconstructed Claude Code session logs, summaries and reports.",
        version="0.1.0",
    )

    @app.exception_handler(LookupError)
    async def lookup_error_handler(request: Request, exc: LookupError) -> JSONResponse:
        logger.info("{path} -> 404: {error}", path=request.url.path, error=exc)
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    def _session(
        settings: Settings,
        session_id: str,
        project: str | None,
        agent: str,
        include_sidechains: bool | None,
    ) -> LoadedSession:
        return load_session(
            settings.claude_dir,
            session_id,
            project=project,
            agent_id=agent,
            include_sidechains=settings.include_sidechains if include_sidechains is None else include_sidechains,
        )

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok"}

    @app.get("/projects", response_model=list[ProjectInfo])
    def projects(
        sort: ProjectSort = ProjectSort.LAST_MODIFIED,
        settings: Settings = Depends(get_settings),
    ) -> list[ProjectInfo]:
        return list_projects(settings.claude_dir, sort)

    @app.get("/projects/{project}/sessions", response_model=list[SessionInfo])
    def project_sessions(
        project: str,
        days: int = 0,
        limit: int = 0,
        agent_types: bool = False,
        settings: Settings = Depends(get_settings),
    ) -> list[SessionInfo]:
        return list_project_sessions(
            settings.claude_dir,
            project,
            days=days,
            include_agent_types=agent_types,
            limit=limit,
        )

    @app.get("/agents/{agent_type}/sessions", response_model=AgentSessions)
    def agent_sessions(
        agent_type: str,
        project: str | None = None,
        days: int = 0,
        limit: int = DEFAULT_AGENT_SESSIONS_LIMIT,
        settings: Settings = Depends(get_settings),
    ) -> AgentSessions:
        return sessions_by_agent_type(settings.claude_dir, agent_type, project=project, days=days, limit=limit)

    @app.get("/sessions/{session_id}/logs", response_model=SessionLogs)
    def session_logs(
        session_id: str,
        project: str | None = None,
        agent: str = "",
        include_sidechains: bool | None = None,
        settings: Settings = Depends(get_settings),
    ) -> SessionLogs:
        return reports.session_logs(_session(settings, session_id, project, agent, include_sidechains))

    @app.get("/sessions/{session_id}/summary", response_model=SessionSummary)
    def session_summary(
        session_id: str,
        project: str | None = None,
        agent: str = "",
        include_sidechains: bool | None = None,
        settings: Settings = Depends(get_settings),
    ) -> SessionSummary:
        return reports.session_summary(_session(settings, session_id, project, agent, include_sidechains))

    @app.get("/sessions/{session_id}/tools", response_model=ToolUsageStats)
    def session_tools(
        session_id: str,
        project: str | None = None,
        agent: str = "",
        include_sidechains: bool | None = None,
        settings: Settings = Depends(get_settings),
    ) -> ToolUsageStats:
        return reports.tool_usage_stats(_session(settings, session_id, project, agent, include_sidechains))

    @app.get("/sessions/{session_id}/errors", response_model=SessionErrors)
    def session_errors(
        session_id: str,
        project: str | None = None,
        agent: str = "",
        include_sidechains: bool | None = None,
        limit: int | None = None,
        settings: Settings = Depends(get_settings),
    ) -> SessionErrors:
        session = _session(settings, session_id, project, agent, include_sidechains)
        return reports.session_errors(session, limit=settings.default_limit if limit is None else limit)

    @app.get("/sessions/{session_id}/timeline", response_model=SessionTimeline)
    def session_timeline(
        session_id: str,
        project: str | None = None,
        agent: str = "",
        include_sidechains: bool | None = None,
        limit: int | None = None,
        settings: Settings = Depends(get_settings),
    ) -> SessionTimeline:
        session = _session(settings, session_id, project, agent, include_sidechains)
        return reports.session_timeline(session, limit=settings.default_limit if limit is None else limit)

    @app.get("/sessions/{session_id}/stats", response_model=SessionStats)
    def session_stats(
        session_id: str,
        project: str | None = None,
        agent: str = "",
        include_sidechains: bool | None = None,
        limit: int | None = None,
        settings: Settings = Depends(get_settings),
    ) -> SessionStats:
        session = _session(settings, session_id, project, agent, include_sidechains)
        return reports.session_stats(session, errors_limit=settings.default_limit if limit is None else limit)

    @app.get("/sessions/{session_id}/sidechains", response_model=SessionSidechains)
    def session_sidechains(
        session_id: str,
        project: str | None = None,
        settings: Settings = Depends(get_settings),
    ) -> SessionSidechains:
        return reports.sidechain_digests(_session(settings, session_id, project, "", None))

    @app.get("/sessions/{session_id}/entries/{entry_uuid}/around", response_model=LogsAroundEntry)
    def entry_context(
        session_id: str,
        entry_uuid: str,
        offset: int = 0,
        project: str | None = None,
        include_sidechains: bool | None = None,
        settings: Settings = Depends(get_settings),
    ) -> LogsAroundEntry:
        session = _session(settings, session_id, project, "", include_sidechains)
        return reports.logs_around_entry(session, entry_uuid, offset=offset)

    @app.get("/search", response_model=SearchResults)
    def search(
        query: str = "",
        tool: str = "",
        role: str = "",
        project: str = "",
        days: int = 0,
        include_sidechains: bool = False,
        limit: int | None = None,
        settings: Settings = Depends(get_settings),
    ) -> SearchResults:
        criteria = SearchCriteria(
            query=query,
            tool_name=tool,
            role=role,
            project=project,
            days=days,
            include_sidechains=include_sidechains,
            limit=settings.default_limit if limit is None else limit,
        )
        return search_sessions(settings.claude_dir, criteria)

    return app
