"""Character model.

A Character is pure data plus read-only derived queries. All mutation goes
through ``dungeon_chronicle.engine.rules.RulesEngine``; the orchestrator and
the narrator never touch these fields directly.
"""

from __future__ import annotations

from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from dungeon_chronicle.core.constants import (
    DEFAULT_ABILITY_SCORE,
    DEFAULT_PROFICIENCY_BONUS,
    MAX_ABILITY_SCORE,
    MAX_DEATH_SAVES,
    MIN_ABILITY_SCORE,
)
from dungeon_chronicle.models.enums import (
    Ability,
    ActorKind,
    Condition,
    LifeState,
    ProficiencyLevel,
    Skill,
)


def _score_field() -> int:
    return Field(default=DEFAULT_ABILITY_SCORE, ge=MIN_ABILITY_SCORE, le=MAX_ABILITY_SCORE)


class StateModel(BaseModel):
    """Base class for world-state models.

    Assignments are validated so that a rules-engine bug surfaces as a
    pydantic error instead of an out-of-range value in the save file.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")


# =============================================================================
# Components
# =============================================================================


class AbilityScores(StateModel):
    """The six ability scores."""

    strength: int = _score_field()
    dexterity: int = _score_field()
    constitution: int = _score_field()
    intelligence: int = _score_field()
    wisdom: int = _score_field()
    charisma: int = _score_field()

    def score(self, ability: Ability) -> int:
        return getattr(self, ability.value)

    def modifier(self, ability: Ability) -> int:
        """Ability modifier, ``floor((score - 10) / 2)``."""
        return (self.score(ability) - 10) // 2


class HitPoints(StateModel):
    """Current, maximum and temporary hit points."""

    current: int = Field(default=10, ge=0)
    maximum: int = Field(default=10, ge=1)
    temporary: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def check_current_within_maximum(self) -> "HitPoints":
        if self.current > self.maximum:
            raise ValueError(f"current HP {self.current} exceeds maximum {self.maximum}")
        return self

    def describe(self) -> str:
        text = f"{self.current}/{self.maximum}"
        if self.temporary:
            text += f" (+{self.temporary} temp)"
        return text


class DeathSaves(StateModel):
    """Death saving throw progress, each counter capped at three."""

    successes: int = Field(default=0, ge=0, le=MAX_DEATH_SAVES)
    failures: int = Field(default=0, ge=0, le=MAX_DEATH_SAVES)

    def reset(self) -> None:
        self.successes = 0
        self.failures = 0


class ActiveCondition(StateModel):
    """A condition on a character.

    Attributes:
        condition: Which condition.
        source: What imposed it (spell, monster, rule).
        duration_rounds: Remaining rounds, or None for indefinite.
    """

    condition: Condition
    source: str = ""
    duration_rounds: int | None = Field(default=None, ge=0)


# =============================================================================
# Character
# =============================================================================


class Character(StateModel):
    """A player character, NPC or monster.

    Attributes:
        id: Stable identifier used by tools and the combat session.
        name: Display name.
        kind: Who controls the character.
        abilities: Ability scores.
        proficiency_bonus: Proficiency bonus.
        hp: Hit points.
        skills: Skill records; a missing skill means no record at all.
        save_proficiencies: Abilities with saving throw proficiency.
        features: Active features (class features, traits).
        conditions: Active conditions, at most one per condition.
        death_saves: Death saving throw progress.
        stable: Stabilized at 0 HP.
        dead: Dead; set only by the rules engine.
        location_id: Where the character is.
    """

    id: str = Field(default_factory=lambda: uuid4().hex[:12])
    name: str = Field(min_length=1)
    kind: ActorKind = ActorKind.NPC
    abilities: AbilityScores = Field(default_factory=AbilityScores)
    proficiency_bonus: int = Field(default=DEFAULT_PROFICIENCY_BONUS, ge=0, le=9)
    hp: HitPoints = Field(default_factory=HitPoints)
    skills: dict[Skill, ProficiencyLevel] = Field(default_factory=dict)
    save_proficiencies: list[Ability] = Field(default_factory=list)
    features: list[str] = Field(default_factory=list)
    conditions: list[ActiveCondition] = Field(default_factory=list)
    death_saves: DeathSaves = Field(default_factory=DeathSaves)
    stable: bool = False
    dead: bool = False
    location_id: str | None = None

    @model_validator(mode="after")
    def check_unique_conditions(self) -> "Character":
        seen = [active.condition for active in self.conditions]
        if len(seen) != len(set(seen)):
            raise ValueError(f"duplicate conditions on {self.name}: {seen}")
        return self

    # -------------------------------------------------------------------------
    # Derived state
    # -------------------------------------------------------------------------

    @property
    def life_state(self) -> LifeState:
        if self.dead:
            return LifeState.DEAD
        if self.hp.current > 0:
            return LifeState.CONSCIOUS
        if self.stable:
            return LifeState.STABLE
        return LifeState.DYING

    @property
    def is_dying(self) -> bool:
        return self.life_state is LifeState.DYING

    @property
    def is_conscious(self) -> bool:
        return self.life_state is LifeState.CONSCIOUS and not self.has_condition(
            Condition.UNCONSCIOUS
        )

    @property
    def is_player(self) -> bool:
        return self.kind is ActorKind.PLAYER

    def has_condition(self, condition: Condition) -> bool:
        return any(active.condition == condition for active in self.conditions)

    def get_condition(self, condition: Condition) -> ActiveCondition | None:
        for active in self.conditions:
            if active.condition == condition:
                return active
        return None

    # -------------------------------------------------------------------------
    # Modifiers
    # -------------------------------------------------------------------------

    def ability_modifier(self, ability: Ability) -> int:
        return self.abilities.modifier(ability)

    def skill_modifier(self, skill: Skill) -> int:
        """Total modifier for a skill the character has a record for.

        Raises:
            KeyError: If the character has no record for the skill.
        """
        level = self.skills[skill]
        return self.ability_modifier(skill.ability) + self.proficiency_bonus * level.multiplier

    def save_modifier(self, ability: Ability) -> int:
        bonus = self.proficiency_bonus if ability in self.save_proficiencies else 0
        return self.ability_modifier(ability) + bonus

    def status_line(self) -> str:
        """One-line summary for the narrator's state block."""
        parts = [f"{self.name} [{self.id}] HP {self.hp.describe()}"]
        if self.life_state is not LifeState.CONSCIOUS:
            parts.append(self.life_state.value.upper())
        if self.conditions:
            parts.append("conditions: " + ", ".join(c.condition.value for c in self.conditions))
        return " | ".join(parts)


__all__ = [
    "StateModel",
    "AbilityScores",
    "HitPoints",
    "DeathSaves",
    "ActiveCondition",
    "Character",
]
