"""Change-log loading.

A change-log is a YAML or JSON document shaped like Liquibase's::

    databaseChangeLog:
      - changeSet:
          id: "1"
          author: alice
          changes:
            - createTable:
                tableName: person
                columns:
                  - column: {name: id, type: int, primaryKey: true}
      - include:
          file: more/changes.yaml

Entries come back in document order, with includes spliced in where they
appear.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from migrata.changelog.checksum import compute_checksum
from migrata.core.types import OPERATION_TYPES, ChangeSet, ChangeSetId, Operation
from migrata.exceptions import ParseError

logger = logging.getLogger(__name__)

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")

_operation_adapter: TypeAdapter[Operation] = TypeAdapter(Operation)

# changeSet keys that are handled here rather than passed to the model
_CHANGESET_KEYS = {
    "id",
    "author",
    "changes",
    "rollback",
    "comment",
    "context",
    "contexts",
    "runOnChange",
    "run_on_change",
    "runAlways",
    "run_always",
}


def _snake(name: str) -> str:
    return _CAMEL_RE.sub("_", name).lower()


def _format_validation_error(error: PydanticValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


def _single_key(entry: Any, what: str, path: str) -> tuple[str, Any]:
    if not isinstance(entry, dict) or len(entry) != 1:
        raise ParseError(f"Each {what} must be a mapping with exactly one key, got {entry!r}", path)
    ((key, value),) = entry.items()
    return str(key), value


def _normalize_column(column: Any) -> Any:
    """Flatten Liquibase's ``column:`` wrapper and ``constraints:`` block."""
    if isinstance(column, dict) and set(column) == {"column"}:
        column = column["column"]
    if isinstance(column, dict) and "constraints" in column:
        column = dict(column)
        constraints = column.pop("constraints") or {}
        if not isinstance(constraints, dict):
            raise ValueError(f"constraints must be a mapping, got {constraints!r}")
        column.update(constraints)
    return column


def _parse_contexts(raw: Any, path: str, change_set: str) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        return [c.strip() for c in raw.split(",") if c.strip()]
    if isinstance(raw, list) and all(isinstance(c, str) for c in raw):
        return [c.strip() for c in raw if c.strip()]
    raise ParseError(f"context must be a string or list of strings, got {raw!r}", path, change_set)


class ChangeLogLoader:
    """Reads change-log documents into ordered ChangeSet values."""

    SUFFIXES = {".yaml": "yaml", ".yml": "yaml", ".json": "json"}

    def load(self, path: str | Path) -> list[ChangeSet]:
        """Load a change-log and every file it includes.

        Raises:
            ParseError: If any document is malformed, an operation type is not
                recognized, or two change-sets share an (author, id)
        """
        root = Path(path)
        change_sets = self._load_file(root, stack=[])

        seen: dict[ChangeSetId, str] = {}
        for cs in change_sets:
            if cs.key in seen:
                raise ParseError(
                    f"Duplicate change-set identifier (also defined in {seen[cs.key]})",
                    cs.filename,
                    str(cs.key),
                )
            seen[cs.key] = cs.filename

        logger.debug(f"Loaded {len(change_sets)} change-sets from {root}")
        return change_sets

    def _read_document(self, path: Path) -> Any:
        fmt = self.SUFFIXES.get(path.suffix.lower())
        if fmt is None:
            raise ParseError(
                f"Unsupported change-log format '{path.suffix}'. "
                f"Use one of: {', '.join(self.SUFFIXES)}",
                str(path),
            )
        if not path.is_file():
            raise ParseError("Change-log file not found", str(path))

        try:
            with path.open("r", encoding="utf-8") as f:
                if fmt == "yaml":
                    return yaml.safe_load(f)
                return json.load(f)
        except yaml.YAMLError as e:
            raise ParseError(f"Invalid YAML: {e}", str(path)) from e
        except json.JSONDecodeError as e:
            raise ParseError(f"Invalid JSON on line {e.lineno}: {e.msg}", str(path)) from e

    def _load_file(self, path: Path, stack: list[Path]) -> list[ChangeSet]:
        resolved = path.resolve()
        if resolved in stack:
            chain = " -> ".join(str(p) for p in [*stack, resolved])
            raise ParseError(f"Circular include: {chain}", str(path))

        document = self._read_document(path)
        if isinstance(document, dict):
            if "databaseChangeLog" not in document:
                raise ParseError("Missing top-level 'databaseChangeLog' list", str(path))
            entries = document["databaseChangeLog"]
        else:
            entries = document

        if entries is None:
            entries = []
        if not isinstance(entries, list):
            raise ParseError("'databaseChangeLog' must be a list", str(path))

        change_sets: list[ChangeSet] = []
        for entry in entries:
            kind, body = _single_key(entry, "change-log entry", str(path))
            if kind == "changeSet":
                change_sets.append(self._parse_change_set(body, str(path)))
            elif kind == "include":
                if not isinstance(body, dict) or not isinstance(body.get("file"), str):
                    raise ParseError("include requires a 'file' string", str(path))
                included = path.parent / body["file"]
                change_sets.extend(self._load_file(included, [*stack, resolved]))
            else:
                raise ParseError(
                    f"Unknown change-log entry '{kind}'. Expected 'changeSet' or 'include'",
                    str(path),
                )
        return change_sets

    def _parse_change_set(self, body: Any, path: str) -> ChangeSet:
        if not isinstance(body, dict):
            raise ParseError(f"changeSet must be a mapping, got {body!r}", path)

        cs_id = body.get("id")
        author = body.get("author")
        if cs_id is None or author is None:
            raise ParseError("changeSet requires both 'id' and 'author'", path)
        label = f"{author}:{cs_id}"

        unknown = set(body) - _CHANGESET_KEYS
        if unknown:
            raise ParseError(
                f"Unknown changeSet keys: {', '.join(sorted(unknown))}", path, label
            )

        operations = self._parse_operations(body.get("changes"), "changes", path, label)
        rollback = None
        if "rollback" in body:
            rollback = self._parse_operations(body["rollback"], "rollback", path, label)

        data = {
            "id": str(cs_id),
            "author": str(author),
            "operations": operations,
            "rollback": rollback,
            "comment": body.get("comment"),
            "contexts": _parse_contexts(body.get("contexts", body.get("context")), path, label),
            "run_on_change": body.get("runOnChange", body.get("run_on_change", False)),
            "run_always": body.get("runAlways", body.get("run_always", False)),
            "filename": path,
            "checksum": compute_checksum(operations),
        }
        try:
            return ChangeSet.model_validate(data)
        except PydanticValidationError as e:
            raise ParseError(_format_validation_error(e), path, label) from e

    def _parse_operations(self, raw: Any, section: str, path: str, label: str) -> list[Operation]:
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise ParseError(f"'{section}' must be a list, got {raw!r}", path, label)

        operations: list[Operation] = []
        for entry in raw:
            kind, params = _single_key(entry, "change", path)
            op_type = _snake(kind)
            if op_type not in OPERATION_TYPES:
                raise ParseError(
                    f"Unrecognized operation type '{kind}'. "
                    f"Supported: {', '.join(OPERATION_TYPES)}",
                    path,
                    label,
                )
            if params is None:
                params = {}
            if op_type == "sql" and isinstance(params, str):
                params = {"sql": params}
            if not isinstance(params, dict):
                raise ParseError(f"Parameters of '{kind}' must be a mapping", path, label)

            if "type" in params:
                raise ParseError(f"Invalid '{kind}': unknown parameter 'type'", path, label)
            params = dict(params)
            params["type"] = op_type

            try:
                if isinstance(params.get("columns"), list) and op_type in ("create_table", "add_column"):
                    params["columns"] = [_normalize_column(c) for c in params["columns"]]
                operations.append(_operation_adapter.validate_python(params))
            except PydanticValidationError as e:
                raise ParseError(
                    f"Invalid '{kind}': {_format_validation_error(e)}", path, label
                ) from e
            except ValueError as e:
                raise ParseError(f"Invalid '{kind}': {e}", path, label) from e
        return operations
