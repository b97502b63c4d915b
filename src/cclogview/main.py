"""CLI entrypoint for the log viewer service."""

import os
from pathlib import Path
from typing import Annotated

import typer
import uvicorn
from loguru import logger

from .config import Settings

app = typer.Typer(
    name="cclogview",
    help="cclogview - HTTP service over Claude Code session logs.",
)


@app.callback()
def cli() -> None:
    """Serve reconstructed session logs over HTTP."""


@app.command()
def serve(
    claude_dir: Annotated[
        Path,
        typer.Option(
            "--claude-dir", "-d",
            help="Claude data directory containing projects/.",
            envvar="CCLOG_CLAUDE_DIR",
        ),
    ] = Path.home() / ".claude",
    host: Annotated[
        str,
        typer.Option("--host", "-h", help="Host to bind the server to.", envvar="CCLOG_HOST"),
    ] = "127.0.0.1",
    port: Annotated[
        int,
        typer.Option("--port", "-p", help="Port to bind the server to.", envvar="CCLOG_PORT"),
    ] = 9100,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable DEBUG logging."),
    ] = False,
    reload: Annotated[
        bool,
        typer.Option("--reload", "-r", help="Enable auto-reload for development."),
    ] = False,
) -> None:
    """Start the session log viewer service."""
    settings = Settings(
        claude_dir=claude_dir.expanduser(),
        host=host,
        port=port,
        verbose=verbose,
    )

    logger.info("Starting viewer on {host}:{port}", host=settings.host, port=settings.port)
    logger.info("Reading projects from {path}", path=settings.projects_dir)
    if not settings.projects_dir.is_dir():
        logger.warning("Projects directory {path} does not exist yet", path=settings.projects_dir)

    # The app factory rebuilds Settings from the environment.
    os.environ["CCLOG_CLAUDE_DIR"] = str(settings.claude_dir)
    os.environ["CCLOG_HOST"] = settings.host
    os.environ["CCLOG_PORT"] = str(settings.port)
    os.environ["CCLOG_VERBOSE"] = "true" if settings.verbose else "false"

    uvicorn.run(
        "cclogview.app:create_app",
        host=settings.host,
        port=settings.port,
        reload=reload,
        factory=True,
    )


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
