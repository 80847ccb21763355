"""Session snapshots on disk.

A snapshot is one JSON document holding everything a session needs to
resume: world state (including the narrative log and the stored turn
counter), story memory and the running conversation summary. Writes are
atomic: the document goes to a temp file in the target directory, is
fsynced, then replaces the target in one rename.
"""

from __future__ import annotations

import os
import tempfile
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from dungeon_chronicle.core.constants import SNAPSHOT_FORMAT_VERSION
from dungeon_chronicle.core.exceptions import PersistenceError, SnapshotCorruptedError
from dungeon_chronicle.core.logging import get_logger
from dungeon_chronicle.dm.context import ConversationState
from dungeon_chronicle.dm.memory import StoryMemoryState
from dungeon_chronicle.models.world import WorldState


logger = get_logger(__name__)


class SessionSnapshot(BaseModel):
    """Everything persisted for a session.

    Attributes:
        format_version: Snapshot schema version.
        saved_at: When the snapshot was taken.
        world: Full world state.
        memory: Story memory contents.
        conversation: Running summary state.
    """

    format_version: int = SNAPSHOT_FORMAT_VERSION
    saved_at: datetime = Field(default_factory=datetime.now)
    world: WorldState
    memory: StoryMemoryState = Field(default_factory=StoryMemoryState)
    conversation: ConversationState = Field(default_factory=ConversationState)

    @model_validator(mode="after")
    def validate_summary_cursor(self) -> "SessionSnapshot":
        log_length = len(self.world.narrative_log)
        if self.conversation.summarized_through > log_length:
            raise ValueError(
                f"summary covers {self.conversation.summarized_through} entries "
                f"but the narrative log has {log_length}"
            )
        return self

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)

    @classmethod
    def from_json(cls, text: str, *, source: str = "<string>") -> SessionSnapshot:
        """Parse and validate a snapshot document.

        Raises:
            SnapshotCorruptedError: If the text is not a valid snapshot.
        """
        try:
            snapshot = cls.model_validate_json(text)
        except PydanticValidationError as exc:
            raise SnapshotCorruptedError(
                f"Snapshot is malformed: {exc.error_count()} validation error(s)",
                path=source,
                details={"errors": [err["msg"] for err in exc.errors()[:5]]},
            ) from exc
        if snapshot.format_version != SNAPSHOT_FORMAT_VERSION:
            raise SnapshotCorruptedError(
                f"Unsupported snapshot format version {snapshot.format_version}",
                path=source,
                details={"expected": SNAPSHOT_FORMAT_VERSION},
            )
        return snapshot


def write_snapshot(path: str | Path, snapshot: SessionSnapshot) -> Path:
    """Atomically write a snapshot.

    Either the previous file or the complete new one exists afterwards,
    never a partial document.

    Raises:
        PersistenceError: If the file cannot be written.
    """
    target = Path(path)
    data = snapshot.to_json()
    tmp_name: str | None = None
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{target.name}.", suffix=".tmp", dir=target.parent
        )
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, target)
        tmp_name = None
    except OSError as exc:
        raise PersistenceError(f"Failed to write snapshot: {exc}", path=str(target)) from exc
    finally:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)

    logger.info(
        "Snapshot written",
        path=str(target),
        turn=snapshot.world.turn_number,
        bytes=len(data),
    )
    return target


def read_snapshot(path: str | Path) -> SessionSnapshot:
    """Read and validate a snapshot.

    Raises:
        PersistenceError: If the file cannot be read.
        SnapshotCorruptedError: If the content is not a valid snapshot.
    """
    source = Path(path)
    try:
        text = source.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise SnapshotCorruptedError("Snapshot is not UTF-8 text", path=str(source)) from exc
    except OSError as exc:
        raise PersistenceError(f"Failed to read snapshot: {exc}", path=str(source)) from exc

    snapshot = SessionSnapshot.from_json(text, source=str(source))
    logger.info("Snapshot read", path=str(source), turn=snapshot.world.turn_number)
    return snapshot


__all__ = ["SessionSnapshot", "write_snapshot", "read_snapshot"]
