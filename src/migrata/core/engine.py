"""Main Migrator facade."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

from migrata.changelog.loader import ChangeLogLoader
from migrata.core.connection import DatabaseConnection
from migrata.ledger.ledger import AppliedChangeLedger
from migrata.ledger.lock import ChangeLogLock
from migrata.runner import ChangeSetRunner

if TYPE_CHECKING:
    from collections.abc import Iterable

    from migrata.core.types import AppliedRecordInfo, ChangeSet, ChangeSetStatus, RunResult


def _context_set(contexts: Iterable[str] | None) -> set[str] | None:
    if not contexts:
        return None
    return {c.strip() for c in contexts if c.strip()} or None


class Migrator:
    """Applies change-logs to one database.

    Wires the connection, loader, ledger, lock and runner together. Every
    change-log is parsed in full before the database is touched, so a
    ParseError never leaves partial changes behind.

    Example:
        with Migrator("sqlite:///app.db") as migrator:
            result = migrator.update("db/changelog.yaml")
            print(result.applied)
    """

    def __init__(self, url: str, echo: bool = False, lock_holder: str | None = None) -> None:
        """Initialize the migrator.

        Args:
            url: Database connection URL
            echo: Whether to echo SQL statements (for debugging)
            lock_holder: Name recorded in the lock table (default: host and pid)
        """
        self._connection = DatabaseConnection(url, echo=echo)
        self._loader = ChangeLogLoader()
        self._ledger = AppliedChangeLedger(self._connection)
        self._lock = ChangeLogLock(self._connection, holder=lock_holder)
        self._runner = ChangeSetRunner(self._connection, self._ledger)

    @property
    def connection(self) -> DatabaseConnection:
        return self._connection

    @property
    def ledger(self) -> AppliedChangeLedger:
        return self._ledger

    @property
    def lock(self) -> ChangeLogLock:
        return self._lock

    def close(self) -> None:
        """Close the database connection."""
        self._connection.close()

    def __enter__(self) -> Migrator:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

    # === Change-log operations ===

    def load(self, changelog: str | Path) -> list[ChangeSet]:
        """Parse a change-log without touching the database."""
        return self._loader.load(changelog)

    def update(
        self, changelog: str | Path, contexts: Iterable[str] | None = None
    ) -> RunResult:
        """Apply all pending change-sets under the change-log lock."""
        change_sets = self.load(changelog)
        self._ledger.ensure_schema()
        with self._lock.hold():
            return self._runner.run(change_sets, _context_set(contexts))

    def update_sql(
        self, changelog: str | Path, contexts: Iterable[str] | None = None
    ) -> list[str]:
        """Render the SQL that update would execute."""
        change_sets = self.load(changelog)
        return self._runner.render_sql(change_sets, _context_set(contexts))

    def status(
        self, changelog: str | Path, contexts: Iterable[str] | None = None
    ) -> list[ChangeSetStatus]:
        """Report each change-set's state."""
        change_sets = self.load(changelog)
        return self._runner.status(change_sets, _context_set(contexts))

    def validate(self, changelog: str | Path) -> list[ChangeSet]:
        """Parse the change-log and check all checksums against the ledger.

        Returns:
            The parsed change-sets
        """
        change_sets = self.load(changelog)
        self._runner.validate(change_sets)
        return change_sets

    def rollback(self, changelog: str | Path, count: int = 1) -> list[str]:
        """Roll back the ``count`` most recently applied change-sets."""
        change_sets = self.load(changelog)
        self._ledger.ensure_schema()
        with self._lock.hold():
            return self._runner.rollback(change_sets, count)

    # === Ledger and lock ===

    def history(self, limit: int | None = None) -> list[AppliedRecordInfo]:
        """Ledger rows, newest first."""
        return self._ledger.history(limit)

    def lock_status(self) -> dict[str, Any]:
        self._ledger.ensure_schema()
        return self._lock.status()

    def release_locks(self) -> bool:
        """Force-release the change-log lock."""
        self._ledger.ensure_schema()
        return self._lock.force_release()
