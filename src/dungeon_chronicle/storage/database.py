"""SQLite save slots for Dungeon Chronicle.

Named save slots hold complete snapshot documents, so a table can keep
several save points per campaign ("before the dragon", "autosave") in one
file next to the plain JSON snapshots.

Storage location: ``settings.storage.database_path``
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Generator

from dungeon_chronicle.core.config import get_settings
from dungeon_chronicle.core.exceptions import PersistenceError, ValidationError
from dungeon_chronicle.core.logging import get_logger
from dungeon_chronicle.storage.snapshot import SessionSnapshot


logger = get_logger(__name__)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class SlotRecord:
    """Metadata of a saved slot.

    Attributes:
        name: Slot name (unique).
        session_id: Session the snapshot belongs to.
        campaign_name: Campaign name at save time.
        turn_number: Completed turns at save time.
        created_at: When the slot was first written.
        updated_at: When the slot was last written.
    """

    name: str
    session_id: str
    campaign_name: str
    turn_number: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: tuple[Any, ...]) -> SlotRecord:
        """Create from database row."""
        return cls(
            name=row[0],
            session_id=row[1],
            campaign_name=row[2],
            turn_number=row[3],
            created_at=datetime.fromisoformat(row[4]),
            updated_at=datetime.fromisoformat(row[5]),
        )


# =============================================================================
# Session Store
# =============================================================================


class SessionStore:
    """SQLite store of named snapshot slots."""

    SCHEMA_VERSION = 1

    def __init__(self, db_path: str | Path | None = None) -> None:
        """Initialize the store.

        Args:
            db_path: Path to database file. If None, uses the configured path.

        Raises:
            PersistenceError: If the database cannot be created.
        """
        self.db_path = Path(db_path) if db_path is not None else get_settings().storage.database_path
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_schema()
        except (OSError, sqlite3.Error) as exc:
            raise PersistenceError(
                f"Failed to open save database: {exc}", path=str(self.db_path)
            ) from exc

        logger.info("SessionStore initialized", path=str(self.db_path))

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection with proper cleanup."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS save_slots (
                    name TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    campaign_name TEXT NOT NULL,
                    turn_number INTEGER NOT NULL,
                    snapshot_json TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_save_slots_updated
                ON save_slots(updated_at DESC)
            """)

            cursor.execute("""
                INSERT OR REPLACE INTO schema_version (version) VALUES (?)
            """, (self.SCHEMA_VERSION,))

    # =========================================================================
    # Slot Operations
    # =========================================================================

    def save_slot(self, name: str, snapshot: SessionSnapshot) -> SlotRecord:
        """Write a snapshot into a named slot, replacing any previous one.

        Args:
            name: Slot name.
            snapshot: Snapshot to store.

        Returns:
            The slot metadata.

        Raises:
            ValidationError: If the name is empty.
            PersistenceError: If the write fails.
        """
        name = name.strip()
        if not name:
            raise ValidationError("Slot name cannot be empty", field_name="name")

        now = datetime.now()
        world = snapshot.world
        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT created_at FROM save_slots WHERE name = ?", (name,))
                row = cursor.fetchone()
                created_at = datetime.fromisoformat(row[0]) if row else now
                cursor.execute("""
                    INSERT OR REPLACE INTO save_slots
                    (name, session_id, campaign_name, turn_number, snapshot_json,
                     created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                """, (name, world.session_id, world.campaign_name, world.turn_number,
                      snapshot.to_json(), created_at.isoformat(), now.isoformat()))
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to save slot '{name}': {exc}", path=str(self.db_path)) from exc

        logger.info("Saved slot", slot=name, session_id=world.session_id, turn=world.turn_number)

        return SlotRecord(
            name=name,
            session_id=world.session_id,
            campaign_name=world.campaign_name,
            turn_number=world.turn_number,
            created_at=created_at,
            updated_at=now,
        )

    def get_slot(self, name: str) -> SessionSnapshot | None:
        """Load the snapshot stored in a slot.

        Returns:
            The snapshot, or None if the slot does not exist.

        Raises:
            SnapshotCorruptedError: If the stored document is invalid.
            PersistenceError: If the read fails.
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT snapshot_json FROM save_slots WHERE name = ?", (name,))
                row = cursor.fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to read slot '{name}': {exc}", path=str(self.db_path)) from exc

        if row is None:
            return None
        return SessionSnapshot.from_json(row[0], source=f"{self.db_path}#{name}")

    def list_slots(self) -> list[SlotRecord]:
        """Get all slots, most recently updated first."""
        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    SELECT name, session_id, campaign_name, turn_number, created_at, updated_at
                    FROM save_slots ORDER BY updated_at DESC, name
                """)
                return [SlotRecord.from_row(tuple(row)) for row in cursor.fetchall()]
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to list slots: {exc}", path=str(self.db_path)) from exc

    def delete_slot(self, name: str) -> bool:
        """Delete a slot.

        Returns:
            True if deleted, False if not found.
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("DELETE FROM save_slots WHERE name = ?", (name,))
                deleted = cursor.rowcount > 0
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to delete slot '{name}': {exc}", path=str(self.db_path)) from exc

        if deleted:
            logger.info("Deleted slot", slot=name)

        return deleted


__all__ = ["SlotRecord", "SessionStore"]
