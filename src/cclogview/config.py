"""Configuration for the log viewer service."""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Viewer settings with env/CLI override support."""

    claude_dir: Path = Path.home() / ".claude"
    host: str = "127.0.0.1"
    port: int = 9100
    verbose: bool = False
    default_limit: int = 50
    include_sidechains: bool = False

    model_config = {
        "env_prefix": "CCLOG_",
        "env_file": ".env",
        "extra": "ignore",
    }

    @property
    def projects_dir(self) -> Path:
        """Directory holding one sub-directory per encoded project path."""
        return self.claude_dir / "projects"
