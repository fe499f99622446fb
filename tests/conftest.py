"""Shared test fixtures for migrata."""

import json
import os
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
import yaml

from migrata import Migrator
from migrata.core.connection import DatabaseConnection
from migrata.ledger.ledger import AppliedChangeLedger


def _psycopg_available() -> bool:
    """Check if psycopg is installed."""
    try:
        import psycopg  # noqa: F401

        return True
    except ImportError:
        return False


def _postgresql_connectable(url: str) -> bool:
    """Check if we can connect to PostgreSQL."""
    if not _psycopg_available():
        return False
    try:
        conn = DatabaseConnection(url)
        result = conn.test_connection()
        conn.close()
        return result
    except Exception:
        return False


# Skip marker for tests requiring PostgreSQL
requires_postgresql = pytest.mark.skipif(
    not _psycopg_available(),
    reason="psycopg not installed (install with: pip install migrata[postgresql])",
)


@pytest.fixture
def postgresql_url() -> str:
    """Get PostgreSQL URL from environment or use default.

    Tests using this fixture should also use @requires_postgresql marker.
    """
    url = os.environ.get("TEST_DATABASE_URL")
    if not url:
        url = "postgresql://localhost/migrata_test"

    if not _psycopg_available():
        pytest.skip("psycopg not installed")

    if not _postgresql_connectable(url):
        pytest.skip(f"Cannot connect to PostgreSQL at {url}")

    return url


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    """URL of a fresh SQLite database file."""
    return f"sqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
def connection(sqlite_url: str) -> Generator[DatabaseConnection, None, None]:
    """A DatabaseConnection to a fresh SQLite file."""
    conn = DatabaseConnection(sqlite_url)
    yield conn
    conn.close()


@pytest.fixture
def ledger(connection: DatabaseConnection) -> AppliedChangeLedger:
    """A ledger with its tables created."""
    ledger = AppliedChangeLedger(connection)
    ledger.ensure_schema()
    return ledger


@pytest.fixture
def migrator(sqlite_url: str) -> Generator[Migrator, None, None]:
    """A Migrator over a fresh SQLite file."""
    with Migrator(sqlite_url, lock_holder="test-runner") as m:
        yield m


@pytest.fixture
def write_changelog(tmp_path: Path) -> Callable[..., Path]:
    """Write a change-log document and return its path.

    ``entries`` is the list under ``databaseChangeLog``; the suffix of
    ``name`` picks YAML or JSON.
    """

    def _write(entries: list[dict[str, Any]], name: str = "changelog.yaml") -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        document = {"databaseChangeLog": entries}
        if path.suffix == ".json":
            path.write_text(json.dumps(document, indent=2))
        else:
            path.write_text(yaml.safe_dump(document, sort_keys=False))
        return path

    return _write


# Re-export for use in test files
__all__ = ["requires_postgresql"]
