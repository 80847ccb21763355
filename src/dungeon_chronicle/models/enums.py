"""Enumeration types for Dungeon Chronicle.

This module defines the enumeration types shared by the world state, the
rules engine and the tool catalog: ability scores, skills, damage types,
conditions, and the small state machines (life state, damage transitions).
"""

from __future__ import annotations

from enum import StrEnum


class Ability(StrEnum):
    """The six core ability scores."""

    STR = "strength"
    DEX = "dexterity"
    CON = "constitution"
    INT = "intelligence"
    WIS = "wisdom"
    CHA = "charisma"

    @property
    def abbreviation(self) -> str:
        """Get the three-letter abbreviation.

        Returns:
            Three-letter abbreviation (e.g., 'STR').
        """
        return self.name


class Skill(StrEnum):
    """Skills and their associated abilities.

    Each skill is linked to a primary ability score used
    for skill checks.
    """

    # Strength skills
    ATHLETICS = "athletics"

    # Dexterity skills
    ACROBATICS = "acrobatics"
    SLEIGHT_OF_HAND = "sleight_of_hand"
    STEALTH = "stealth"

    # Intelligence skills
    ARCANA = "arcana"
    HISTORY = "history"
    INVESTIGATION = "investigation"
    NATURE = "nature"
    RELIGION = "religion"

    # Wisdom skills
    ANIMAL_HANDLING = "animal_handling"
    INSIGHT = "insight"
    MEDICINE = "medicine"
    PERCEPTION = "perception"
    SURVIVAL = "survival"

    # Charisma skills
    DECEPTION = "deception"
    INTIMIDATION = "intimidation"
    PERFORMANCE = "performance"
    PERSUASION = "persuasion"

    @property
    def ability(self) -> Ability:
        """Get the primary ability score for this skill.

        Returns:
            The Ability enum value associated with this skill.
        """
        return _SKILL_ABILITIES[self]


_SKILL_ABILITIES: dict[Skill, Ability] = {
    Skill.ATHLETICS: Ability.STR,
    Skill.ACROBATICS: Ability.DEX,
    Skill.SLEIGHT_OF_HAND: Ability.DEX,
    Skill.STEALTH: Ability.DEX,
    Skill.ARCANA: Ability.INT,
    Skill.HISTORY: Ability.INT,
    Skill.INVESTIGATION: Ability.INT,
    Skill.NATURE: Ability.INT,
    Skill.RELIGION: Ability.INT,
    Skill.ANIMAL_HANDLING: Ability.WIS,
    Skill.INSIGHT: Ability.WIS,
    Skill.MEDICINE: Ability.WIS,
    Skill.PERCEPTION: Ability.WIS,
    Skill.SURVIVAL: Ability.WIS,
    Skill.DECEPTION: Ability.CHA,
    Skill.INTIMIDATION: Ability.CHA,
    Skill.PERFORMANCE: Ability.CHA,
    Skill.PERSUASION: Ability.CHA,
}


class ProficiencyLevel(StrEnum):
    """How well a character knows a skill.

    A skill listed as NONE is still a known record (the character is
    untrained); a skill missing from the character entirely is not.
    """

    NONE = "none"
    PROFICIENT = "proficient"
    EXPERTISE = "expertise"

    @property
    def multiplier(self) -> int:
        """Multiplier applied to the proficiency bonus."""
        return {"none": 0, "proficient": 1, "expertise": 2}[self.value]


class DamageType(StrEnum):
    """Types of damage."""

    ACID = "acid"
    BLUDGEONING = "bludgeoning"
    COLD = "cold"
    FIRE = "fire"
    FORCE = "force"
    LIGHTNING = "lightning"
    NECROTIC = "necrotic"
    PIERCING = "piercing"
    POISON = "poison"
    PSYCHIC = "psychic"
    RADIANT = "radiant"
    SLASHING = "slashing"
    THUNDER = "thunder"


class Condition(StrEnum):
    """Standard conditions."""

    BLINDED = "blinded"
    CHARMED = "charmed"
    DEAFENED = "deafened"
    EXHAUSTION = "exhaustion"
    FRIGHTENED = "frightened"
    GRAPPLED = "grappled"
    INCAPACITATED = "incapacitated"
    INVISIBLE = "invisible"
    PARALYZED = "paralyzed"
    PETRIFIED = "petrified"
    POISONED = "poisoned"
    PRONE = "prone"
    RESTRAINED = "restrained"
    STUNNED = "stunned"
    UNCONSCIOUS = "unconscious"


class ActorKind(StrEnum):
    """Who controls a character."""

    PLAYER = "player"
    NPC = "npc"
    MONSTER = "monster"


class AdvantageState(StrEnum):
    """Roll mode for a d20 test."""

    NORMAL = "normal"
    ADVANTAGE = "advantage"
    DISADVANTAGE = "disadvantage"


class LifeState(StrEnum):
    """Derived vital state of a character."""

    CONSCIOUS = "conscious"
    DYING = "dying"
    STABLE = "stable"
    DEAD = "dead"


class DamageTransition(StrEnum):
    """State change caused by a single damage application."""

    NONE = "none"
    UNCONSCIOUS = "unconscious"
    DEAD = "dead"


class NarrativeKind(StrEnum):
    """Kinds of narrative log entries."""

    PLAYER_ACTION = "player_action"
    DM_NARRATION = "dm_narration"
    TOOL_RESULT = "tool_result"
    SYSTEM = "system"


class EntityKind(StrEnum):
    """Kinds of story memory entities."""

    CHARACTER = "character"
    LOCATION = "location"
    ITEM = "item"
    FACTION = "faction"
    OTHER = "other"


class QuestStatus(StrEnum):
    """Lifecycle of a quest. Only active quests can change."""

    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class ConsequenceSeverity(StrEnum):
    """How hard a pending consequence lands."""

    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    CRITICAL = "critical"


class ConsequenceStatus(StrEnum):
    """Whether a consequence is still waiting for its trigger."""

    PENDING = "pending"
    RESOLVED = "resolved"


__all__ = [
    "Ability",
    "Skill",
    "ProficiencyLevel",
    "DamageType",
    "Condition",
    "ActorKind",
    "AdvantageState",
    "LifeState",
    "DamageTransition",
    "NarrativeKind",
    "EntityKind",
    "QuestStatus",
    "ConsequenceSeverity",
    "ConsequenceStatus",
]
