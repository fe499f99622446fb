"""Translate change-log operations into SQLAlchemy statements.

The same statements are executed by the runner and rendered by update-sql, so
translation never touches a connection.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    MetaData,
    Numeric,
    SmallInteger,
    String,
    Table,
    Text,
    Time,
    column,
    literal,
    null,
    table,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.schema import CreateColumn, CreateIndex, CreateTable, DropTable

from migrata.core.types import (
    AddColumn,
    ColumnSpec,
    CreateIndex as CreateIndexOp,
    CreateTable as CreateTableOp,
    DropColumn,
    DropIndex,
    DropTable as DropTableOp,
    Insert,
    Operation,
    RenameColumn,
    RenameTable,
    Sql,
    parse_column_type,
    parse_reference,
)

if TYPE_CHECKING:
    from sqlalchemy.engine import Dialect
    from sqlalchemy.sql.base import Executable
    from sqlalchemy.types import TypeEngine


def _string(args: list[int]) -> TypeEngine[Any]:
    return String(args[0] if args else 255)


def _numeric(args: list[int]) -> TypeEngine[Any]:
    return Numeric(*args) if args else Numeric()


# Mapping from change-log column types to SQLAlchemy column types
COLUMN_TYPE_MAP: dict[str, Callable[[list[int]], TypeEngine[Any]]] = {
    "string": _string,
    "varchar": _string,
    "text": lambda _: Text(),
    "int": lambda _: Integer(),
    "integer": lambda _: Integer(),
    "bigint": lambda _: BigInteger(),
    "smallint": lambda _: SmallInteger(),
    "float": lambda _: Float(),
    "decimal": _numeric,
    "numeric": _numeric,
    "bool": lambda _: Boolean(),
    "boolean": lambda _: Boolean(),
    "date": lambda _: Date(),
    "time": lambda _: Time(),
    "datetime": lambda _: DateTime(timezone=True),
    "timestamp": lambda _: DateTime(timezone=True),
    "uuid": lambda _: String(36),
    "json": lambda _: JSON().with_variant(JSONB(), "postgresql"),
    "blob": lambda _: LargeBinary(),
}


def column_type(type_name: str) -> TypeEngine[Any]:
    """Resolve a change-log column type to a SQLAlchemy type."""
    name, args = parse_column_type(type_name)
    return COLUMN_TYPE_MAP[name](args)


def _server_default(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def build_column(spec: ColumnSpec, metadata: MetaData | None = None) -> Column[Any]:
    """Build a SQLAlchemy Column from a column spec.

    When the column references another table, a stand-in for that table is
    registered on ``metadata`` so the foreign key can be compiled.
    """
    sa_type = column_type(spec.type)
    args: list[Any] = []
    if spec.references is not None:
        ref_table, ref_column = parse_reference(spec.references)
        if metadata is not None:
            stand_in = metadata.tables.get(ref_table)
            if stand_in is None:
                Table(ref_table, metadata, Column(ref_column, sa_type))
            elif ref_column not in stand_in.c:
                stand_in.append_column(Column(ref_column, sa_type))
        args.append(ForeignKey(f"{ref_table}.{ref_column}"))

    kwargs: dict[str, Any] = {
        "primary_key": spec.primary_key,
        "nullable": spec.nullable and not spec.primary_key,
        "unique": spec.unique or None,
        "server_default": _server_default(spec.default_value),
    }
    if spec.auto_increment is not None:
        kwargs["autoincrement"] = spec.auto_increment
    return Column(spec.name, sa_type, *args, **kwargs)


def _quote(dialect: Dialect, name: str) -> str:
    return dialect.identifier_preparer.quote(name)


def _create_table(op: CreateTableOp, dialect: Dialect) -> list[Executable]:
    metadata = MetaData()
    columns = [build_column(c, metadata) for c in op.columns]
    if op.table_name in metadata.tables:
        # self-referencing foreign key: drop the stand-in
        metadata.remove(metadata.tables[op.table_name])
    return [CreateTable(Table(op.table_name, metadata, *columns))]


def _drop_table(op: DropTableOp, dialect: Dialect) -> list[Executable]:
    return [DropTable(Table(op.table_name, MetaData()))]


def _rename_table(op: RenameTable, dialect: Dialect) -> list[Executable]:
    return [
        text(
            f"ALTER TABLE {_quote(dialect, op.old_table_name)} "
            f"RENAME TO {_quote(dialect, op.new_table_name)}"
        )
    ]


def _add_column(op: AddColumn, dialect: Dialect) -> list[Executable]:
    statements: list[Executable] = []
    for spec in op.columns:
        col = build_column(spec)
        Table(op.table_name, MetaData(), col)
        column_sql = str(CreateColumn(col).compile(dialect=dialect))
        statements.append(
            text(f"ALTER TABLE {_quote(dialect, op.table_name)} ADD COLUMN {column_sql}")
        )
    return statements


def _drop_column(op: DropColumn, dialect: Dialect) -> list[Executable]:
    return [
        text(
            f"ALTER TABLE {_quote(dialect, op.table_name)} "
            f"DROP COLUMN {_quote(dialect, op.column_name)}"
        )
    ]


def _rename_column(op: RenameColumn, dialect: Dialect) -> list[Executable]:
    return [
        text(
            f"ALTER TABLE {_quote(dialect, op.table_name)} "
            f"RENAME COLUMN {_quote(dialect, op.old_column_name)} "
            f"TO {_quote(dialect, op.new_column_name)}"
        )
    ]


def _create_index(op: CreateIndexOp, dialect: Dialect) -> list[Executable]:
    tbl = Table(op.table_name, MetaData(), *[Column(name) for name in op.columns])
    index = Index(op.index_name, *[tbl.c[name] for name in op.columns], unique=op.unique)
    return [CreateIndex(index)]


def _drop_index(op: DropIndex, dialect: Dialect) -> list[Executable]:
    return [text(f"DROP INDEX {_quote(dialect, op.index_name)}")]


def _insert(op: Insert, dialect: Dialect) -> list[Executable]:
    tbl = table(op.table_name, *[column(name) for name in op.values])
    values = {name: null() if v is None else literal(v) for name, v in op.values.items()}
    return [tbl.insert().values(values)]


def _sql(op: Sql, dialect: Dialect) -> list[Executable]:
    return [text(statement) for statement in op.statements()]


_TRANSLATORS: dict[type, Callable[[Any, Dialect], list[Executable]]] = {
    CreateTableOp: _create_table,
    DropTableOp: _drop_table,
    RenameTable: _rename_table,
    AddColumn: _add_column,
    DropColumn: _drop_column,
    RenameColumn: _rename_column,
    CreateIndexOp: _create_index,
    DropIndex: _drop_index,
    Insert: _insert,
    Sql: _sql,
}


def statements_for(op: Operation, dialect: Dialect) -> list[Executable]:
    """Build the statements that carry out one operation on ``dialect``."""
    return _TRANSLATORS[type(op)](op, dialect)


def render_sql(statement: Executable, dialect: Dialect) -> str:
    """Compile a statement to SQL text with values inlined."""
    compiled = statement.compile(dialect=dialect, compile_kwargs={"literal_binds": True})
    return str(compiled).strip()
