"""Storage module for Dungeon Chronicle persistence.

Provides:
- Atomic JSON snapshot files (world state, story memory, summary)
- SQLite save slots holding snapshot documents
"""

from dungeon_chronicle.storage.database import SessionStore, SlotRecord
from dungeon_chronicle.storage.snapshot import (
    SessionSnapshot,
    read_snapshot,
    write_snapshot,
)

__all__ = [
    "SessionStore",
    "SlotRecord",
    "SessionSnapshot",
    "read_snapshot",
    "write_snapshot",
]
