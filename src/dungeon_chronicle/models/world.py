"""Canonical world state.

WorldState is the serializable root of a session: characters, locations,
the optional combat session, the in-world clock, the narrative log and the
turn counter. Derived facts ("in combat") are properties over stored
fields, never stored a second time.
"""

from __future__ import annotations

from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from dungeon_chronicle.core.exceptions import StateInvariantViolation, UnknownEntityError
from dungeon_chronicle.models.character import Character
from dungeon_chronicle.models.clock import WorldClock
from dungeon_chronicle.models.combat import CombatSession
from dungeon_chronicle.models.enums import NarrativeKind
from dungeon_chronicle.models.narrative import NarrativeEntry, ToolCallRecord
from dungeon_chronicle.models.quest import Quest


class Location(BaseModel):
    """A place in the world.

    Attributes:
        id: Stable identifier.
        name: Display name.
        description: Descriptive state as last narrated.
        features: Notable features (exits, hazards, fixtures).
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    id: str = Field(default_factory=lambda: uuid4().hex[:12])
    name: str = Field(min_length=1)
    description: str = ""
    features: list[str] = Field(default_factory=list)


class WorldState(BaseModel):
    """The single source of truth for a running session.

    Attributes:
        session_id: Session identifier.
        campaign_name: Campaign name.
        characters: Characters keyed by id.
        locations: Locations keyed by id.
        current_location_id: Where the party is.
        combat: The active combat session, or None.
        clock: In-world date and time.
        narrative_log: Append-only log of everything shown and done.
        quests: Quest log keyed by quest id.
        turn_number: Completed player turns. Stored, never recomputed.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    session_id: str = Field(default_factory=lambda: uuid4().hex)
    campaign_name: str = "Untitled Campaign"
    characters: dict[str, Character] = Field(default_factory=dict)
    locations: dict[str, Location] = Field(default_factory=dict)
    current_location_id: str | None = None
    combat: CombatSession | None = None
    clock: WorldClock = Field(default_factory=WorldClock)
    narrative_log: list[NarrativeEntry] = Field(default_factory=list)
    quests: dict[str, Quest] = Field(default_factory=dict)
    turn_number: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def validate_on_load(self) -> "WorldState":
        problems = self.reference_problems()
        if problems:
            raise ValueError("; ".join(problems))
        return self

    # -------------------------------------------------------------------------
    # Derived queries
    # -------------------------------------------------------------------------

    @property
    def in_combat(self) -> bool:
        return self.combat is not None

    def is_in_combat(self) -> bool:
        return self.in_combat

    @property
    def current_location(self) -> Location | None:
        if self.current_location_id is None:
            return None
        return self.locations.get(self.current_location_id)

    @property
    def party(self) -> list[Character]:
        return [c for c in self.characters.values() if c.is_player]

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get_character(self, ref: str) -> Character:
        """Resolve a character by id, falling back to a case-insensitive name.

        Raises:
            UnknownEntityError: If nothing matches.
        """
        if ref in self.characters:
            return self.characters[ref]
        wanted = ref.strip().casefold()
        for character in self.characters.values():
            if character.name.casefold() == wanted:
                return character
        raise UnknownEntityError(f"No character '{ref}'", entity_id=ref)

    def find_location(self, ref: str) -> Location | None:
        if ref in self.locations:
            return self.locations[ref]
        wanted = ref.strip().casefold()
        for location in self.locations.values():
            if location.name.casefold() == wanted:
                return location
        return None

    def find_quest(self, ref: str) -> Quest | None:
        """Resolve a quest by id or case-insensitive name."""
        if ref in self.quests:
            return self.quests[ref]
        wanted = " ".join(ref.casefold().split())
        for quest in self.quests.values():
            if " ".join(quest.name.casefold().split()) == wanted:
                return quest
        return None

    # -------------------------------------------------------------------------
    # Invariants
    # -------------------------------------------------------------------------

    def reference_problems(self) -> list[str]:
        """List every dangling cross-entity reference."""
        problems: list[str] = []
        for key, character in self.characters.items():
            if key != character.id:
                problems.append(f"character key {key!r} does not match id {character.id!r}")
            if character.location_id is not None and character.location_id not in self.locations:
                problems.append(
                    f"character {character.id!r} is at unknown location {character.location_id!r}"
                )
        for key, location in self.locations.items():
            if key != location.id:
                problems.append(f"location key {key!r} does not match id {location.id!r}")
        if self.current_location_id is not None and self.current_location_id not in self.locations:
            problems.append(f"current location {self.current_location_id!r} does not exist")
        if self.combat is not None:
            for character_id in self.combat.participant_ids:
                if character_id not in self.characters:
                    problems.append(f"combat participant {character_id!r} does not exist")
        names: set[str] = set()
        for key, quest in self.quests.items():
            if key != quest.id:
                problems.append(f"quest key {key!r} does not match id {quest.id!r}")
            name = " ".join(quest.name.casefold().split())
            if name in names:
                problems.append(f"quest name {quest.name!r} is used twice")
            names.add(name)
        for index, entry in enumerate(self.narrative_log):
            if entry.sequence != index:
                problems.append(f"narrative entry {index} has sequence {entry.sequence}")
                break
        return problems

    def check_references(self) -> None:
        """Raise if any cross-entity reference is dangling.

        Raises:
            StateInvariantViolation: Listing every problem found.
        """
        problems = self.reference_problems()
        if problems:
            raise StateInvariantViolation(
                "World state has dangling references",
                details={"problems": problems},
            )

    # -------------------------------------------------------------------------
    # Narrative log
    # -------------------------------------------------------------------------

    def append_narrative(
        self,
        kind: NarrativeKind,
        text: str,
        *,
        tool_call: ToolCallRecord | None = None,
    ) -> NarrativeEntry:
        """Append an entry to the narrative log; the only way the log grows."""
        entry = NarrativeEntry(
            sequence=len(self.narrative_log),
            kind=kind,
            text=text,
            turn=self.turn_number,
            game_time=self.clock.label(),
            tool_call=tool_call,
        )
        self.narrative_log.append(entry)
        return entry

    # -------------------------------------------------------------------------
    # Narrator view
    # -------------------------------------------------------------------------

    def to_ai_context(self, *, party_only: bool = False) -> str:
        """Compact state block for the narrator's system prompt.

        Args:
            party_only: List only player characters and combatants. Used
                when the full block does not fit the context budget.
        """
        lines = [f"Time: {self.clock.label()}"]
        location = self.current_location
        if location is not None:
            lines.append(f"Location: {location.name} [{location.id}]")
            if location.description:
                lines.append(f"  {location.description}")
        lines.append("Characters:")
        fighting = set(self.combat.participant_ids) if self.combat is not None else set()
        for character in self.characters.values():
            if party_only and not character.is_player and character.id not in fighting:
                continue
            lines.append(f"  - {character.status_line()}")
        if self.combat is not None:
            lines.append(f"Combat: {self.combat.order_line()}")
        else:
            lines.append("Combat: none")
        active = [q for q in self.quests.values() if q.is_active]
        if active:
            lines.append("Quests:")
            lines.extend(f"  - {quest.status_line()}" for quest in active)
        return "\n".join(lines)

    def hp_status(self) -> dict[str, str]:
        """HP summary of the party, keyed by character name."""
        return {c.name: c.hp.describe() for c in self.party}


__all__ = ["Location", "WorldState"]
