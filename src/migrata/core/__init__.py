"""Core components for migrata."""

from migrata.core.connection import DatabaseConnection
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

__all__ = [
    "DatabaseConnection",
    "ChangeSet",
    "ChangeSetId",
    "ChangeSetState",
    "ChangeSetStatus",
    "ColumnSpec",
    "ExecType",
    "Operation",
    "AppliedRecordInfo",
    "RunResult",
]
