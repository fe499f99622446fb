"""Custom exceptions for migrata.

Every error carries an actionable message plus a ``context`` dict so the CLI
can render it either as a rich panel or as JSON.
"""

from __future__ import annotations

from typing import Any


class MigrataError(Exception):
    """Base exception for all migrata errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Return error as JSON-serializable dict."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class ConnectionError(MigrataError):
    """Failed to connect to the database."""

    pass


class ParseError(MigrataError):
    """The change-log document is malformed or uses an unknown operation."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        change_set: str | None = None,
    ) -> None:
        prefix = f"{path}: " if path else ""
        where = f" (change-set '{change_set}')" if change_set else ""
        super().__init__(
            f"{prefix}{message}{where}",
            {"path": path, "change_set": change_set},
        )
        self.path = path
        self.change_set = change_set


class ChecksumConflictError(MigrataError):
    """An applied change-set was edited after it ran."""

    def __init__(self, change_set: str, recorded: str, current: str) -> None:
        message = (
            f"Change-set '{change_set}' was modified after it was applied "
            f"(recorded checksum {recorded}, current {current}). "
            "Revert the edit, or add a new change-set instead of changing this one."
        )
        super().__init__(
            message,
            {"change_set": change_set, "recorded_checksum": recorded, "current_checksum": current},
        )
        self.change_set = change_set
        self.recorded = recorded
        self.current = current


class OperationError(MigrataError):
    """A store operation failed while applying a change-set."""

    def __init__(
        self,
        change_set: str,
        operation_index: int,
        operation: str,
        reason: str,
    ) -> None:
        message = (
            f"Change-set '{change_set}' failed at operation {operation_index + 1} "
            f"({operation}): {reason}. The change-set was rolled back; "
            "earlier change-sets remain applied."
        )
        super().__init__(
            message,
            {
                "change_set": change_set,
                "operation_index": operation_index,
                "operation": operation,
                "reason": reason,
            },
        )
        self.change_set = change_set
        self.operation_index = operation_index
        self.operation = operation
        self.reason = reason


class LockError(MigrataError):
    """The change-log lock is held by another runner."""

    def __init__(self, locked_by: str | None, locked_at: Any = None) -> None:
        holder = locked_by or "unknown"
        message = (
            f"Change-log lock is held by {holder} since {locked_at}. "
            "Wait for the other run to finish, or use 'migrata release-locks' "
            "if it is known to be dead."
        )
        super().__init__(message, {"locked_by": locked_by, "locked_at": str(locked_at)})
        self.locked_by = locked_by
        self.locked_at = locked_at


class RollbackError(MigrataError):
    """A change-set cannot be rolled back."""

    def __init__(self, change_set: str, reason: str) -> None:
        message = f"Cannot roll back change-set '{change_set}': {reason}"
        super().__init__(message, {"change_set": change_set, "reason": reason})
        self.change_set = change_set
        self.reason = reason
