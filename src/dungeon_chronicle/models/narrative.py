"""Narrative log records.

The narrative log is the append-only source of truth for what has been
shown to the player and which tool calls changed the world.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from dungeon_chronicle.models.enums import NarrativeKind


class ToolCallRecord(BaseModel):
    """Audit record of one executed tool call.

    Attributes:
        call_id: Identifier the agent assigned to the call.
        tool_name: Catalog name of the tool.
        arguments: Validated arguments the tool ran with.
        success: Whether the call succeeded.
        mutated: Whether the call changed world state or memory.
        data: Structured result payload.
    """

    model_config = ConfigDict(frozen=True)

    call_id: str
    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    success: bool
    mutated: bool = False
    data: dict[str, Any] = Field(default_factory=dict)


class NarrativeEntry(BaseModel):
    """One record in the narrative log.

    Entries are frozen: once appended, nothing edits them.

    Attributes:
        sequence: Position in the log, starting at 0.
        kind: Player action, DM narration, tool result or system note.
        text: What was said or shown.
        timestamp: Wall-clock time the entry was recorded.
        turn: Player-turn number that produced the entry.
        game_time: In-world clock label at the time of the entry.
        tool_call: Audit record for tool-result entries.
    """

    model_config = ConfigDict(frozen=True)

    sequence: int = Field(ge=0)
    kind: NarrativeKind
    text: str
    timestamp: datetime = Field(default_factory=datetime.now)
    turn: int = Field(default=0, ge=0)
    game_time: str = ""
    tool_call: ToolCallRecord | None = None

    def to_message(self) -> dict[str, str]:
        """Render as a chat message for the narrating agent."""
        if self.kind is NarrativeKind.PLAYER_ACTION:
            return {"role": "user", "content": self.text}
        if self.kind is NarrativeKind.DM_NARRATION:
            return {"role": "assistant", "content": self.text}
        if self.kind is NarrativeKind.TOOL_RESULT:
            return {"role": "system", "content": f"[mechanics] {self.text}"}
        return {"role": "system", "content": f"[note] {self.text}"}

    def to_summary_line(self) -> str:
        labels = {
            NarrativeKind.PLAYER_ACTION: "Player",
            NarrativeKind.DM_NARRATION: "DM",
            NarrativeKind.TOOL_RESULT: "Mechanics",
            NarrativeKind.SYSTEM: "Note",
        }
        return f"{labels[self.kind]}: {self.text}"


__all__ = ["ToolCallRecord", "NarrativeEntry"]
