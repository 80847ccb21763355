"""Game engine module for Dungeon Chronicle.

This module owns every mechanical change to the world: damage, healing,
checks, death saves, conditions, the combat state machine, rests, travel
and the world clock.

Submodules:
    dice: Dice rolling via the d20 library
    combat: Initiative ordering and turn-pointer arithmetic
    rules: RulesEngine, the sole mutator of world state
    results: Typed results of rules operations

Example:
    >>> from dungeon_chronicle.engine import RulesEngine, DiceEvaluator
    >>> engine = RulesEngine(world, DiceEvaluator(seed=7))
    >>> engine.start_combat(["hero", "goblin-1"]).round
    1
"""

from __future__ import annotations

# =============================================================================
# Dice Rolling
# =============================================================================
from dungeon_chronicle.engine.dice import DiceEvaluator, DiceResult

# =============================================================================
# Rules
# =============================================================================
from dungeon_chronicle.engine.results import (
    CheckKind,
    CheckResult,
    CombatEndResult,
    CombatStartResult,
    ConditionResult,
    DamageResult,
    DeathSaveOutcome,
    DeathSaveResult,
    HealingResult,
    LocationChangeResult,
    RestResult,
    RuleResult,
    TimeAdvanceResult,
    TurnAdvanceResult,
    TurnStartEffects,
)
from dungeon_chronicle.engine.rules import RulesEngine


__all__ = [
    # Dice Rolling
    "DiceEvaluator",
    "DiceResult",
    # Rules
    "RulesEngine",
    "RuleResult",
    "DamageResult",
    "HealingResult",
    "CheckKind",
    "CheckResult",
    "DeathSaveOutcome",
    "DeathSaveResult",
    "ConditionResult",
    "TurnStartEffects",
    "CombatStartResult",
    "TurnAdvanceResult",
    "CombatEndResult",
    "RestResult",
    "LocationChangeResult",
    "TimeAdvanceResult",
]
