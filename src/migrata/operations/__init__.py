"""Translation of change-log operations into SQL statements."""

from migrata.operations.ddl import build_column, column_type, render_sql, statements_for

__all__ = [
    "build_column",
    "column_type",
    "render_sql",
    "statements_for",
]
