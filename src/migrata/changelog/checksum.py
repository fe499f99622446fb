"""Checksums over change-set definitions."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Sequence

from pydantic import TypeAdapter

from migrata.core.types import Operation

CHECKSUM_PREFIX = "sha256:"

_operations_adapter: TypeAdapter[list[Operation]] = TypeAdapter(list[Operation])


def compute_checksum(operations: Sequence[Operation]) -> str:
    """Checksum the canonical JSON of a change-set's operations.

    Only the operations count: comments, contexts, run flags and rollback
    blocks can be edited without invalidating an applied change-set.
    """
    payload = _operations_adapter.dump_python(list(operations), mode="json")
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return CHECKSUM_PREFIX + hashlib.sha256(canonical.encode("utf-8")).hexdigest()
