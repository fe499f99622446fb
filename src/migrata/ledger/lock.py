"""Change-log lock: keeps two runners off the same database."""

from __future__ import annotations

import logging
import os
import socket
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from migrata.exceptions import LockError
from migrata.ledger.models import LockRecord, utc_now

if TYPE_CHECKING:
    from migrata.core.connection import DatabaseConnection

logger = logging.getLogger(__name__)

LOCK_ID = 1


def default_holder() -> str:
    """Identify this process as ``host (pid)``."""
    return f"{socket.gethostname()} (pid {os.getpid()})"


class ChangeLogLock:
    """Row lock in ``migrata_changelog_lock``.

    Acquisition is a conditional UPDATE, so exactly one runner sees a row
    count of one.
    """

    def __init__(self, connection: DatabaseConnection, holder: str | None = None) -> None:
        self._connection = connection
        self._holder = holder or default_holder()

    @property
    def holder(self) -> str:
        return self._holder

    def _ensure_row(self) -> None:
        with self._connection.get_session() as session:
            if session.get(LockRecord, LOCK_ID) is not None:
                return
            session.add(LockRecord(id=LOCK_ID, locked=False))
            try:
                session.commit()
            except IntegrityError:
                # another runner inserted it first
                session.rollback()

    def acquire(self) -> None:
        """Take the lock.

        Raises:
            LockError: If another runner holds it
        """
        self._ensure_row()
        with self._connection.get_session() as session:
            result = session.execute(
                update(LockRecord)
                .where(LockRecord.id == LOCK_ID, LockRecord.locked.is_(False))
                .values(locked=True, locked_at=utc_now(), locked_by=self._holder)
                .execution_options(synchronize_session=False)
            )
            session.commit()
            if result.rowcount == 1:
                logger.debug(f"Change-log lock acquired by {self._holder}")
                return

            row = session.get(LockRecord, LOCK_ID)
            raise LockError(row.locked_by if row else None, row.locked_at if row else None)

    def release(self) -> None:
        """Release the lock if this runner holds it."""
        with self._connection.get_session() as session:
            session.execute(
                update(LockRecord)
                .where(LockRecord.id == LOCK_ID, LockRecord.locked_by == self._holder)
                .values(locked=False, locked_at=None, locked_by=None)
                .execution_options(synchronize_session=False)
            )
            session.commit()
        logger.debug(f"Change-log lock released by {self._holder}")

    def force_release(self) -> bool:
        """Release the lock whoever holds it.

        Returns:
            True if a held lock was released
        """
        self._ensure_row()
        with self._connection.get_session() as session:
            result = session.execute(
                update(LockRecord)
                .where(LockRecord.id == LOCK_ID, LockRecord.locked.is_(True))
                .values(locked=False, locked_at=None, locked_by=None)
                .execution_options(synchronize_session=False)
            )
            session.commit()
        released = result.rowcount == 1
        if released:
            logger.warning("Change-log lock was force-released")
        return released

    def status(self) -> dict[str, object]:
        """Current lock row as a dict."""
        self._ensure_row()
        with self._connection.get_session() as session:
            row = session.get(LockRecord, LOCK_ID)
            return {
                "locked": bool(row and row.locked),
                "locked_by": row.locked_by if row else None,
                "locked_at": row.locked_at.isoformat() if row and row.locked_at else None,
            }

    @contextmanager
    def hold(self) -> Iterator[None]:
        """Hold the lock for the duration of a block."""
        self.acquire()
        try:
            yield
        finally:
            self.release()
