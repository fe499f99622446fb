"""Change-set runner.

Applies pending change-sets strictly in change-log order. Each change-set's
operations and its ledger row are written in one transaction: a failure rolls
both back and halts the run, while change-sets committed earlier stay applied.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from migrata.core.types import (
    AppliedRecordInfo,
    ChangeSet,
    ChangeSetId,
    ChangeSetState,
    ChangeSetStatus,
    ExecType,
    Operation,
    RunResult,
)
from migrata.exceptions import ChecksumConflictError, OperationError, RollbackError
from migrata.operations.ddl import render_sql, statements_for

if TYPE_CHECKING:
    from sqlalchemy import Connection

    from migrata.core.connection import DatabaseConnection
    from migrata.ledger.ledger import AppliedChangeLedger

logger = logging.getLogger(__name__)


def _is_active(record: AppliedRecordInfo | None) -> bool:
    return record is not None and record.exec_type != ExecType.ROLLED_BACK


def _error_reason(error: SQLAlchemyError) -> str:
    orig = getattr(error, "orig", None)
    return str(orig) if orig is not None else str(error)


class ChangeSetRunner:
    """Applies, inspects and rolls back change-sets against one database."""

    def __init__(self, connection: DatabaseConnection, ledger: AppliedChangeLedger) -> None:
        """Initialize the runner.

        Args:
            connection: Database connection to the target store
            ledger: Ledger stored in the same database
        """
        self._connection = connection
        self._ledger = ledger

    # === Planning ===

    def _exec_type(self, change_set: ChangeSet, record: AppliedRecordInfo | None) -> ExecType | None:
        """Decide how (and whether) a change-set runs given its latest ledger row.

        Raises:
            ChecksumConflictError: If an applied change-set changed and is not runOnChange
        """
        if record is None or record.exec_type == ExecType.ROLLED_BACK:
            return ExecType.EXECUTED
        if record.checksum != change_set.checksum:
            if change_set.run_on_change or change_set.run_always:
                return ExecType.RERAN
            raise ChecksumConflictError(str(change_set.key), record.checksum, change_set.checksum)
        if change_set.run_always:
            return ExecType.RERAN
        return None

    def validate(
        self,
        change_sets: Sequence[ChangeSet],
        records: dict[ChangeSetId, AppliedRecordInfo] | None = None,
    ) -> None:
        """Check every change-set's checksum against the ledger.

        Runs before any mutation so a conflict leaves the store untouched.

        Raises:
            ChecksumConflictError: For the first edited change-set
        """
        if records is None:
            records = self._ledger.latest_records()
        for change_set in change_sets:
            self._exec_type(change_set, records.get(change_set.key))

    def status(
        self,
        change_sets: Sequence[ChangeSet],
        contexts: set[str] | None = None,
    ) -> list[ChangeSetStatus]:
        """Report each change-set's state relative to the ledger."""
        records = self._ledger.latest_records()
        statuses = []
        for change_set in change_sets:
            record = records.get(change_set.key)
            if not change_set.matches_contexts(contexts):
                state = ChangeSetState.EXCLUDED
            elif not _is_active(record):
                state = ChangeSetState.PENDING
            elif record is not None and record.checksum != change_set.checksum:
                state = (
                    ChangeSetState.CHANGED
                    if change_set.run_on_change or change_set.run_always
                    else ChangeSetState.CONFLICT
                )
            else:
                state = ChangeSetState.APPLIED

            statuses.append(
                ChangeSetStatus(
                    id=change_set.id,
                    author=change_set.author,
                    filename=change_set.filename,
                    state=state,
                    checksum=change_set.checksum,
                    recorded_checksum=record.checksum if record else None,
                    applied_at=record.applied_at if record and _is_active(record) else None,
                    description=change_set.description,
                )
            )
        return statuses

    # === Execution ===

    def _execute(self, conn: Connection, label: str, operations: Sequence[Operation]) -> None:
        for index, op in enumerate(operations):
            try:
                for statement in statements_for(op, conn.dialect):
                    conn.execute(statement)
            except SQLAlchemyError as e:
                logger.error(f"Change-set {label} failed at operation {index + 1}: {e}")
                raise OperationError(label, index, op.describe(), _error_reason(e)) from e

    def _apply(self, change_set: ChangeSet, deployment_id: str) -> ExecType | None:
        """Apply one change-set atomically. Returns None if it was skipped."""
        label = str(change_set.key)
        with self._connection.get_session() as session, session.begin():
            # re-check inside the transaction that will write the ledger row
            exec_type = self._exec_type(change_set, self._ledger.latest(session, change_set.key))
            if exec_type is None:
                return None

            logger.info(f"Applying change-set {label} ({exec_type.value})")
            self._execute(session.connection(), label, change_set.operations)
            self._ledger.record(
                session,
                change_set,
                exec_type,
                timestamp=datetime.now(UTC),
                deployment_id=deployment_id,
            )
        return exec_type

    def run(
        self,
        change_sets: Sequence[ChangeSet],
        contexts: set[str] | None = None,
    ) -> RunResult:
        """Apply every pending change-set in order.

        Raises:
            ChecksumConflictError: If an applied change-set was edited (nothing runs)
            OperationError: If a change-set fails (it is rolled back, the run halts)
        """
        start_time = datetime.now(UTC)
        self._ledger.ensure_schema()
        self.validate(change_sets, self._ledger.latest_records())

        result = RunResult(deployment_id=str(uuid4()))
        for change_set in change_sets:
            label = str(change_set.key)
            if not change_set.matches_contexts(contexts):
                result.excluded.append(label)
                continue

            exec_type = self._apply(change_set, result.deployment_id)
            if exec_type is None:
                result.skipped.append(label)
            elif exec_type == ExecType.RERAN:
                result.reran.append(label)
            else:
                result.applied.append(label)

        result.duration_seconds = (datetime.now(UTC) - start_time).total_seconds()
        if result.up_to_date:
            logger.info("Database is up to date")
        else:
            logger.info(
                f"Applied {len(result.applied)} change-sets, "
                f"reran {len(result.reran)} in {result.duration_seconds:.2f}s"
            )
        return result

    def render_sql(
        self,
        change_sets: Sequence[ChangeSet],
        contexts: set[str] | None = None,
    ) -> list[str]:
        """Render the SQL an update would execute, without executing it."""
        records = self._ledger.latest_records()
        self.validate(change_sets, records)

        dialect = self._connection.engine.dialect
        lines: list[str] = []
        for change_set in change_sets:
            if not change_set.matches_contexts(contexts):
                continue
            if self._exec_type(change_set, records.get(change_set.key)) is None:
                continue
            lines.append(f"-- Changeset {change_set.key} ({change_set.filename})")
            for op in change_set.operations:
                lines.extend(f"{render_sql(s, dialect)};" for s in statements_for(op, dialect))
        return lines

    # === Rollback ===

    def rollback(self, change_sets: Sequence[ChangeSet], count: int = 1) -> list[str]:
        """Roll back the ``count`` most recently applied change-sets, newest first.

        Every selected change-set is checked before anything executes.

        Raises:
            RollbackError: If a change-set is missing or can't be undone
            ChecksumConflictError: If a change-set was edited since it was applied
            OperationError: If an undo operation fails
        """
        if count < 1:
            raise ValueError("count must be at least 1")

        self._ledger.ensure_schema()
        by_key = {cs.key: cs for cs in change_sets}
        targets = list(reversed(self._ledger.applied_in_order()))[:count]

        plan: list[tuple[ChangeSet, list[Operation]]] = []
        for record in targets:
            change_set = by_key.get(record.key)
            if change_set is None:
                raise RollbackError(str(record.key), "it is not in the change-log")
            if record.checksum != change_set.checksum:
                raise ChecksumConflictError(
                    str(change_set.key), record.checksum, change_set.checksum
                )
            operations = change_set.rollback_operations()
            if operations is None:
                raise RollbackError(
                    str(change_set.key),
                    "it has no rollback block and its operations cannot be inverted "
                    "automatically. Add a 'rollback' section to the change-set",
                )
            plan.append((change_set, operations))

        deployment_id = str(uuid4())
        rolled_back: list[str] = []
        for change_set, operations in plan:
            label = str(change_set.key)
            with self._connection.get_session() as session, session.begin():
                if not self._ledger.has_applied(session, change_set.key):
                    continue
                logger.info(f"Rolling back change-set {label}")
                self._execute(session.connection(), label, operations)
                self._ledger.record(
                    session,
                    change_set,
                    ExecType.ROLLED_BACK,
                    timestamp=datetime.now(UTC),
                    deployment_id=deployment_id,
                )
            rolled_back.append(label)
        return rolled_back
