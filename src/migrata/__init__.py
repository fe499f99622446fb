"""migrata - Change-log driven schema migrations for SQLAlchemy databases.

Change-sets are read from a YAML or JSON change-log, applied in document
order, and recorded in a ledger table inside the target database. Each
change-set runs in its own transaction together with its ledger row, so a
failure never leaves a half-applied change-set behind.

Example:
    from migrata import Migrator

    with Migrator("sqlite:///app.db") as migrator:
        result = migrator.update("db/changelog.yaml")
        for change_set in migrator.status("db/changelog.yaml"):
            print(change_set.id, change_set.state)
"""

from migrata.changelog import ChangeLogLoader, compute_checksum
from migrata.core.engine import Migrator
from migrata.core.types import (
    AppliedRecordInfo,
    ChangeSet,
    ChangeSetId,
    ChangeSetState,
    ChangeSetStatus,
    ColumnSpec,
    ExecType,
    Operation,
    RunResult,
)
from migrata.exceptions import (
    ChecksumConflictError,
    ConnectionError,
    LockError,
    MigrataError,
    OperationError,
    ParseError,
    RollbackError,
)
from migrata.ledger import AppliedChangeLedger, ChangeLogLock
from migrata.runner import ChangeSetRunner

__version__ = "0.1.0"

__all__ = [
    # Main classes
    "Migrator",
    "ChangeLogLoader",
    "ChangeSetRunner",
    "AppliedChangeLedger",
    "ChangeLogLock",
    "compute_checksum",
    # Types
    "ChangeSet",
    "ChangeSetId",
    "ChangeSetState",
    "ChangeSetStatus",
    "ColumnSpec",
    "ExecType",
    "Operation",
    "AppliedRecordInfo",
    "RunResult",
    # Exceptions
    "MigrataError",
    "ConnectionError",
    "ParseError",
    "ChecksumConflictError",
    "OperationError",
    "LockError",
    "RollbackError",
]
