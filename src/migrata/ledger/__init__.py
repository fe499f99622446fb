"""Applied-change ledger and change-log lock."""

from migrata.ledger.ledger import AppliedChangeLedger
from migrata.ledger.lock import ChangeLogLock
from migrata.ledger.models import AppliedRecord, LockRecord

__all__ = [
    "AppliedChangeLedger",
    "ChangeLogLock",
    "AppliedRecord",
    "LockRecord",
]
