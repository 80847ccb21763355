"""World-state models for Dungeon Chronicle.

All models are pydantic v2 models and round-trip through JSON losslessly.
"""

from __future__ import annotations

from dungeon_chronicle.models.character import (
    AbilityScores,
    ActiveCondition,
    Character,
    DeathSaves,
    HitPoints,
)
from dungeon_chronicle.models.clock import WorldClock
from dungeon_chronicle.models.combat import CombatSession, InitiativeEntry
from dungeon_chronicle.models.enums import (
    Ability,
    ActorKind,
    AdvantageState,
    Condition,
    ConsequenceSeverity,
    ConsequenceStatus,
    DamageTransition,
    DamageType,
    EntityKind,
    LifeState,
    NarrativeKind,
    ProficiencyLevel,
    QuestStatus,
    Skill,
)
from dungeon_chronicle.models.narrative import NarrativeEntry, ToolCallRecord
from dungeon_chronicle.models.quest import Quest, QuestObjective
from dungeon_chronicle.models.world import Location, WorldState


__all__ = [
    # Enums
    "Ability",
    "ActorKind",
    "AdvantageState",
    "Condition",
    "ConsequenceSeverity",
    "ConsequenceStatus",
    "DamageTransition",
    "DamageType",
    "EntityKind",
    "LifeState",
    "NarrativeKind",
    "ProficiencyLevel",
    "QuestStatus",
    "Skill",
    # Character
    "AbilityScores",
    "ActiveCondition",
    "Character",
    "DeathSaves",
    "HitPoints",
    # World
    "CombatSession",
    "InitiativeEntry",
    "Location",
    "NarrativeEntry",
    "Quest",
    "QuestObjective",
    "ToolCallRecord",
    "WorldClock",
    "WorldState",
]
