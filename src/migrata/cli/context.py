"""CLI context management for database connections and shared state."""

import os
from dataclasses import dataclass, field

from migrata import Migrator

DEFAULT_DATABASE_URL = "sqlite:///./migrata.db"
DEFAULT_CHANGELOG = "changelog.yaml"


def get_database_url(url: str | None) -> str:
    """Resolve database URL from CLI arg, environment variable, or default.

    Priority:
    1. Explicit URL argument
    2. MIGRATA_URL environment variable
    3. Default: sqlite:///./migrata.db
    """
    if url:
        return url
    if env_url := os.getenv("MIGRATA_URL"):
        return env_url
    return DEFAULT_DATABASE_URL


def get_changelog_path(path: str | None) -> str:
    """Resolve change-log path from CLI arg, MIGRATA_CHANGELOG, or default."""
    if path:
        return path
    if env_path := os.getenv("MIGRATA_CHANGELOG"):
        return env_path
    return DEFAULT_CHANGELOG


@dataclass
class CLIContext:
    """Shared context for CLI commands.

    Manages the migrator lifecycle and output preferences.
    """

    database_url: str
    echo: bool
    json_output: bool
    _migrator: Migrator | None = field(default=None, init=False, repr=False)

    def get_migrator(self) -> Migrator:
        """Get or create the migrator (lazy initialization)."""
        if self._migrator is None:
            self._migrator = Migrator(self.database_url, echo=self.echo)
        return self._migrator

    def close(self) -> None:
        """Close database connection if open."""
        if self._migrator is not None:
            self._migrator.close()
            self._migrator = None
