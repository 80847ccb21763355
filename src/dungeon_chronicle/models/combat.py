"""Combat session model.

A CombatSession exists on the world state only while combat is running.
Its presence is the single authority for "in combat"; there is no separate
flag to keep in sync.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from dungeon_chronicle.core.constants import FIRST_COMBAT_ROUND


if TYPE_CHECKING:
    from dungeon_chronicle.models.character import DeathSaves
    from dungeon_chronicle.models.world import WorldState


class InitiativeEntry(BaseModel):
    """A participant's place in the initiative order.

    Attributes:
        character_id: The participating character.
        initiative: Rolled initiative total.
        dexterity: Dexterity score, the first tie-breaker.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    character_id: str
    initiative: int
    dexterity: int

    @property
    def sort_key(self) -> tuple[int, int, str]:
        """Ordering key: initiative desc, dexterity desc, then id asc."""
        return (-self.initiative, -self.dexterity, self.character_id)


class CombatSession(BaseModel):
    """Initiative order, round counter and turn pointer.

    Attributes:
        id: Session identifier.
        participants: Initiative entries in turn order.
        round: Current round, starting at 1.
        turn_index: Index into ``participants`` of whose turn it is.
        started_at: Wall-clock start time, for the audit log.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    id: str = Field(default_factory=lambda: uuid4().hex[:12])
    participants: list[InitiativeEntry] = Field(min_length=1)
    round: int = Field(default=FIRST_COMBAT_ROUND, ge=FIRST_COMBAT_ROUND)
    turn_index: int = Field(default=0, ge=0)
    started_at: datetime = Field(default_factory=datetime.now)

    @model_validator(mode="after")
    def check_order(self) -> "CombatSession":
        if self.turn_index >= len(self.participants):
            raise ValueError(
                f"turn_index {self.turn_index} out of range for "
                f"{len(self.participants)} participants"
            )
        ids = [entry.character_id for entry in self.participants]
        if len(ids) != len(set(ids)):
            raise ValueError(f"duplicate combat participants: {ids}")
        if self.participants != sorted(self.participants, key=lambda e: e.sort_key):
            raise ValueError("participants are not in initiative order")
        return self

    @property
    def current(self) -> InitiativeEntry:
        return self.participants[self.turn_index]

    @property
    def participant_ids(self) -> list[str]:
        return [entry.character_id for entry in self.participants]

    def death_saves(self, world: WorldState) -> dict[str, DeathSaves]:
        """Death-save counters of incapacitated participants.

        The counters are stored on the characters; this is a read-only view.
        """
        view: dict[str, DeathSaves] = {}
        for character_id in self.participant_ids:
            character = world.characters.get(character_id)
            if character is not None and character.hp.current == 0 and not character.dead:
                view[character_id] = character.death_saves
        return view

    def order_line(self) -> str:
        """Initiative order for the narrator's state block."""
        entries = []
        for index, entry in enumerate(self.participants):
            marker = "->" if index == self.turn_index else "  "
            entries.append(f"{marker} {entry.character_id} ({entry.initiative})")
        return f"Round {self.round}: " + ", ".join(e.strip() for e in entries)


__all__ = ["InitiativeEntry", "CombatSession"]
