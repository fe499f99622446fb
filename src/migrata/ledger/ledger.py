"""The applied-change ledger."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, inspect, select
from sqlalchemy.orm import Session

from migrata.core.types import AppliedRecordInfo, ChangeSet, ChangeSetId, ExecType
from migrata.ledger.models import AppliedRecord, Base, utc_now

if TYPE_CHECKING:
    from migrata.core.connection import DatabaseConnection

logger = logging.getLogger(__name__)


def _to_info(record: AppliedRecord) -> AppliedRecordInfo:
    return AppliedRecordInfo(
        order_executed=record.order_executed,
        change_set_id=record.change_set_id,
        author=record.author,
        filename=record.filename,
        checksum=record.checksum,
        exec_type=ExecType(record.exec_type),
        applied_at=record.applied_at,
        description=record.description,
        comment=record.comment,
        contexts=record.contexts,
        deployment_id=record.deployment_id,
    )


class AppliedChangeLedger:
    """Persistent record of applied change-sets.

    Rows are only ever appended. Lookups that guard a change-set take the
    caller's session so the check, the operations and the new row share one
    transaction.
    """

    def __init__(self, connection: DatabaseConnection) -> None:
        self._connection = connection
        self._initialized = False

    def ensure_schema(self) -> None:
        """Create the ledger and lock tables if they don't exist."""
        if not self._initialized:
            Base.metadata.create_all(self._connection.engine)
            self._initialized = True

    def exists(self) -> bool:
        """Check whether the ledger table is present, without creating it."""
        if not self._initialized:
            self._initialized = inspect(self._connection.engine).has_table(
                AppliedRecord.__tablename__
            )
        return self._initialized

    def latest(self, session: Session, key: ChangeSetId) -> AppliedRecordInfo | None:
        """Return the newest ledger row for a change-set, if any."""
        stmt = (
            select(AppliedRecord)
            .where(AppliedRecord.author == key.author)
            .where(AppliedRecord.change_set_id == key.id)
            .order_by(AppliedRecord.order_executed.desc())
            .limit(1)
        )
        record = session.scalars(stmt).first()
        return _to_info(record) if record is not None else None

    def has_applied(self, session: Session, key: ChangeSetId) -> bool:
        """Check whether a change-set is currently applied."""
        record = self.latest(session, key)
        return record is not None and record.exec_type != ExecType.ROLLED_BACK

    def record(
        self,
        session: Session,
        change_set: ChangeSet,
        exec_type: ExecType = ExecType.EXECUTED,
        timestamp: datetime | None = None,
        deployment_id: str | None = None,
    ) -> None:
        """Append a ledger row inside the caller's transaction."""
        session.add(
            AppliedRecord(
                change_set_id=change_set.id,
                author=change_set.author,
                filename=change_set.filename,
                checksum=change_set.checksum,
                exec_type=exec_type.value,
                applied_at=timestamp or utc_now(),
                description=change_set.description,
                comment=change_set.comment,
                contexts=",".join(change_set.contexts) or None,
                deployment_id=deployment_id,
            )
        )
        session.flush()

    def latest_records(self) -> dict[ChangeSetId, AppliedRecordInfo]:
        """Return the newest row of every change-set ever recorded."""
        if not self.exists():
            return {}
        newest = select(func.max(AppliedRecord.order_executed)).group_by(
            AppliedRecord.author, AppliedRecord.change_set_id
        )
        stmt = select(AppliedRecord).where(AppliedRecord.order_executed.in_(newest))
        with self._connection.get_session() as session:
            records = [_to_info(r) for r in session.scalars(stmt)]
        return {r.key: r for r in records}

    def applied_in_order(self) -> list[AppliedRecordInfo]:
        """Currently applied change-sets, oldest first.

        Ordered by the row that last applied each change-set, so a rerun moves
        a change-set to the end.
        """
        active = [
            r for r in self.latest_records().values() if r.exec_type != ExecType.ROLLED_BACK
        ]
        return sorted(active, key=lambda r: r.order_executed)

    def history(self, limit: int | None = None) -> list[AppliedRecordInfo]:
        """All ledger rows, newest first."""
        if not self.exists():
            return []
        stmt = select(AppliedRecord).order_by(AppliedRecord.order_executed.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._connection.get_session() as session:
            return [_to_info(r) for r in session.scalars(stmt)]
