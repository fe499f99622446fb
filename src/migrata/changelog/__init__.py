"""Change-log parsing for migrata."""

from migrata.changelog.checksum import compute_checksum
from migrata.changelog.loader import ChangeLogLoader

__all__ = [
    "ChangeLogLoader",
    "compute_checksum",
]
