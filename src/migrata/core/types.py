"""Core types for migrata.

Operations are a pydantic discriminated union on ``type``. Change-log
documents use Liquibase-style camelCase keys, so every model accepts both the
camelCase alias and the snake_case field name.
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

_TYPE_RE = re.compile(r"^\s*([a-zA-Z_]+)\s*(?:\(\s*([0-9,\s]*)\s*\))?\s*$")

# Column type names accepted in change-logs, with the number of size arguments
# each one takes.
COLUMN_TYPE_ARITY: dict[str, int] = {
    "string": 1,
    "varchar": 1,
    "text": 0,
    "int": 0,
    "integer": 0,
    "bigint": 0,
    "smallint": 0,
    "float": 0,
    "decimal": 2,
    "numeric": 2,
    "bool": 0,
    "boolean": 0,
    "date": 0,
    "time": 0,
    "datetime": 0,
    "timestamp": 0,
    "uuid": 0,
    "json": 0,
    "blob": 0,
}

_REFERENCE_RE = re.compile(r"^\s*(\w+)\s*\(\s*(\w+)\s*\)\s*$")

# Quoted strings, quoted identifiers, dollar-quoted bodies and comments are
# consumed whole so that only a bare ';' ends a statement.
_SQL_TOKEN_RE = re.compile(
    r"""
    '(?:[^']|'')*'
    | "(?:[^"]|"")*"
    | (\$(?:[A-Za-z_][A-Za-z_0-9]*)?\$).*?\1
    | --[^\n]*
    | /\*.*?\*/
    | ;
    """,
    re.DOTALL | re.VERBOSE,
)


def parse_column_type(type_name: str) -> tuple[str, list[int]]:
    """Split a column type like ``decimal(10, 2)`` into name and size args.

    Raises:
        ValueError: If the type is unknown or has too many arguments
    """
    match = _TYPE_RE.match(type_name)
    if not match:
        raise ValueError(f"Invalid column type '{type_name}'")
    name = match.group(1).lower()
    if name not in COLUMN_TYPE_ARITY:
        raise ValueError(
            f"Unknown column type '{name}'. Valid types: {', '.join(COLUMN_TYPE_ARITY)}"
        )
    raw_args = match.group(2)
    args = [int(a) for a in raw_args.split(",") if a.strip()] if raw_args else []
    if len(args) > COLUMN_TYPE_ARITY[name]:
        raise ValueError(f"Column type '{name}' takes at most {COLUMN_TYPE_ARITY[name]} arguments")
    return name, args


def parse_reference(reference: str) -> tuple[str, str]:
    """Split ``table(column)`` into its parts."""
    match = _REFERENCE_RE.match(reference)
    if not match:
        raise ValueError(f"Invalid reference '{reference}'. Expected format: table(column)")
    return match.group(1), match.group(2)


class ExecType(StrEnum):
    """How a ledger row came to be written."""

    EXECUTED = "EXECUTED"
    RERAN = "RERAN"
    ROLLED_BACK = "ROLLED_BACK"


class ChangeSetState(StrEnum):
    """State of a change-set relative to the ledger."""

    PENDING = "pending"
    APPLIED = "applied"
    CHANGED = "changed"  # runOnChange change-set whose checksum moved
    CONFLICT = "conflict"
    EXCLUDED = "excluded"  # filtered out by contexts


class _DocumentModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


class ColumnSpec(_DocumentModel):
    """A column in createTable/addColumn."""

    name: str = Field(..., min_length=1)
    type: str = Field(..., description="Column type, e.g. 'varchar(255)' or 'int'")
    nullable: bool = True
    primary_key: bool = False
    unique: bool = False
    auto_increment: bool | None = None
    default_value: str | int | float | bool | None = None
    references: str | None = Field(default=None, description="Foreign key as 'table(column)'")

    @field_validator("type")
    @classmethod
    def _check_type(cls, value: str) -> str:
        parse_column_type(value)
        return value

    @field_validator("references")
    @classmethod
    def _check_references(cls, value: str | None) -> str | None:
        if value is not None:
            parse_reference(value)
        return value


class CreateTable(_DocumentModel):
    type: Literal["create_table"] = "create_table"
    table_name: str
    columns: list[ColumnSpec] = Field(..., min_length=1)

    def describe(self) -> str:
        return f"createTable tableName={self.table_name}"

    def inverse(self) -> list[Operation] | None:
        return [DropTable(table_name=self.table_name)]


class DropTable(_DocumentModel):
    type: Literal["drop_table"] = "drop_table"
    table_name: str

    def describe(self) -> str:
        return f"dropTable tableName={self.table_name}"

    def inverse(self) -> list[Operation] | None:
        return None


class RenameTable(_DocumentModel):
    type: Literal["rename_table"] = "rename_table"
    old_table_name: str
    new_table_name: str

    def describe(self) -> str:
        return f"renameTable {self.old_table_name} -> {self.new_table_name}"

    def inverse(self) -> list[Operation] | None:
        return [RenameTable(old_table_name=self.new_table_name, new_table_name=self.old_table_name)]


class AddColumn(_DocumentModel):
    type: Literal["add_column"] = "add_column"
    table_name: str
    columns: list[ColumnSpec] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _no_references(self) -> AddColumn:
        for column in self.columns:
            if column.references is not None:
                raise ValueError(
                    f"Column '{column.name}': references is only supported in createTable"
                )
        return self

    def describe(self) -> str:
        names = ", ".join(c.name for c in self.columns)
        return f"addColumn tableName={self.table_name} columns={names}"

    def inverse(self) -> list[Operation] | None:
        return [
            DropColumn(table_name=self.table_name, column_name=c.name)
            for c in reversed(self.columns)
        ]


class DropColumn(_DocumentModel):
    type: Literal["drop_column"] = "drop_column"
    table_name: str
    column_name: str

    def describe(self) -> str:
        return f"dropColumn tableName={self.table_name} columnName={self.column_name}"

    def inverse(self) -> list[Operation] | None:
        return None


class RenameColumn(_DocumentModel):
    type: Literal["rename_column"] = "rename_column"
    table_name: str
    old_column_name: str
    new_column_name: str

    def describe(self) -> str:
        return (
            f"renameColumn tableName={self.table_name} "
            f"{self.old_column_name} -> {self.new_column_name}"
        )

    def inverse(self) -> list[Operation] | None:
        return [
            RenameColumn(
                table_name=self.table_name,
                old_column_name=self.new_column_name,
                new_column_name=self.old_column_name,
            )
        ]


class CreateIndex(_DocumentModel):
    type: Literal["create_index"] = "create_index"
    index_name: str
    table_name: str
    columns: list[str] = Field(..., min_length=1)
    unique: bool = False

    @field_validator("columns", mode="before")
    @classmethod
    def _unwrap_columns(cls, value: Any) -> Any:
        # Liquibase nests index columns as [{column: {name: x}}]
        if isinstance(value, list):
            unwrapped = []
            for item in value:
                if isinstance(item, dict) and "column" in item:
                    item = item["column"]
                if isinstance(item, dict) and "name" in item:
                    item = item["name"]
                unwrapped.append(item)
            return unwrapped
        return value

    def describe(self) -> str:
        return f"createIndex indexName={self.index_name} tableName={self.table_name}"

    def inverse(self) -> list[Operation] | None:
        return [DropIndex(index_name=self.index_name, table_name=self.table_name)]


class DropIndex(_DocumentModel):
    type: Literal["drop_index"] = "drop_index"
    index_name: str
    table_name: str

    def describe(self) -> str:
        return f"dropIndex indexName={self.index_name}"

    def inverse(self) -> list[Operation] | None:
        return None


class Insert(_DocumentModel):
    type: Literal["insert"] = "insert"
    table_name: str
    values: dict[str, bool | int | float | str | None] = Field(..., min_length=1)

    def describe(self) -> str:
        return f"insert tableName={self.table_name}"

    def inverse(self) -> list[Operation] | None:
        return None


class Sql(_DocumentModel):
    type: Literal["sql"] = "sql"
    sql: str = Field(..., min_length=1)
    split_statements: bool = True

    def describe(self) -> str:
        first_line = self.sql.strip().splitlines()[0] if self.sql.strip() else ""
        return f"sql {first_line[:60]}"

    def inverse(self) -> list[Operation] | None:
        return None

    def statements(self) -> list[str]:
        """Return the individual SQL statements to execute."""
        if not self.split_statements:
            return [self.sql.strip()]
        parts = []
        start = 0
        for match in _SQL_TOKEN_RE.finditer(self.sql):
            if match.group(0) == ";":
                parts.append(self.sql[start : match.start()])
                start = match.end()
        parts.append(self.sql[start:])
        return [p.strip() for p in parts if p.strip()]


Operation = Annotated[
    CreateTable
    | DropTable
    | RenameTable
    | AddColumn
    | DropColumn
    | RenameColumn
    | CreateIndex
    | DropIndex
    | Insert
    | Sql,
    Field(discriminator="type"),
]

OPERATION_TYPES: tuple[str, ...] = (
    "create_table",
    "drop_table",
    "rename_table",
    "add_column",
    "drop_column",
    "rename_column",
    "create_index",
    "drop_index",
    "insert",
    "sql",
)


class ChangeSetId(BaseModel):
    """Identity of a change-set: unique by (author, id) within a change-log."""

    model_config = ConfigDict(frozen=True)

    author: str
    id: str

    def __str__(self) -> str:
        return f"{self.author}:{self.id}"


class ChangeSet(_DocumentModel):
    """A parsed change-set. The loader fills in ``checksum`` and ``filename``."""

    id: str
    author: str
    operations: list[Operation] = Field(default_factory=list)
    rollback: list[Operation] | None = None
    comment: str | None = None
    contexts: list[str] = Field(default_factory=list)
    run_on_change: bool = False
    run_always: bool = False
    filename: str = ""
    checksum: str = ""

    @property
    def key(self) -> ChangeSetId:
        return ChangeSetId(author=self.author, id=self.id)

    @property
    def description(self) -> str:
        return "; ".join(op.describe() for op in self.operations) or "empty"

    def matches_contexts(self, contexts: set[str] | None) -> bool:
        """Check whether the change-set runs under the given contexts.

        Change-sets without contexts always run, and so does everything when
        no contexts are requested.
        """
        if not contexts or not self.contexts:
            return True
        return bool(contexts.intersection(self.contexts))

    def rollback_operations(self) -> list[Operation] | None:
        """Operations that undo this change-set, or None if none are known."""
        if self.rollback is not None:
            return list(self.rollback)
        undo: list[Operation] = []
        for op in reversed(self.operations):
            inverse = op.inverse()
            if inverse is None:
                return None
            undo.extend(inverse)
        return undo


class AppliedRecordInfo(BaseModel):
    """A ledger row (output format)."""

    order_executed: int
    change_set_id: str
    author: str
    filename: str
    checksum: str
    exec_type: ExecType
    applied_at: datetime
    description: str | None = None
    comment: str | None = None
    contexts: str | None = None
    deployment_id: str | None = None

    model_config = {"use_enum_values": True}

    @property
    def key(self) -> ChangeSetId:
        return ChangeSetId(author=self.author, id=self.change_set_id)


class ChangeSetStatus(BaseModel):
    """Status of one change-set against the ledger."""

    id: str
    author: str
    filename: str
    state: ChangeSetState
    checksum: str
    recorded_checksum: str | None = None
    applied_at: datetime | None = None
    description: str | None = None

    model_config = {"use_enum_values": True}


class RunResult(BaseModel):
    """Outcome of an update run."""

    deployment_id: str
    applied: list[str] = Field(default_factory=list)
    reran: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    excluded: list[str] = Field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def up_to_date(self) -> bool:
        return not self.applied and not self.reran
