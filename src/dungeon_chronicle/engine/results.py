"""Typed results of rules engine operations.

Every successful rules engine operation returns one of these models. The
tool layer turns them into tool output for the narrating agent via
``describe()`` and ``model_dump(mode="json")``.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from dungeon_chronicle.models.combat import InitiativeEntry
from dungeon_chronicle.models.enums import (
    AdvantageState,
    Condition,
    DamageTransition,
    DamageType,
    LifeState,
    QuestStatus,
)


class RuleResult(BaseModel):
    """Base class for rules engine results."""

    model_config = ConfigDict(frozen=True)

    def describe(self) -> str:
        raise NotImplementedError


# =============================================================================
# Hit Points
# =============================================================================


class DamageResult(RuleResult):
    """Outcome of ``apply_damage``."""

    target_id: str
    target_name: str
    amount: int
    damage_type: DamageType
    temp_absorbed: int = 0
    hp_before: int
    hp_after: int
    hp_max: int
    transition: DamageTransition = DamageTransition.NONE
    life_state: LifeState
    death_save_failures: int = 0

    def describe(self) -> str:
        text = (
            f"{self.target_name} takes {self.amount} {self.damage_type.value} damage "
            f"(HP {self.hp_before} -> {self.hp_after}/{self.hp_max})"
        )
        if self.temp_absorbed:
            text += f", {self.temp_absorbed} absorbed by temporary HP"
        if self.transition is DamageTransition.UNCONSCIOUS:
            text += ". Falls unconscious and is dying"
        elif self.transition is DamageTransition.DEAD:
            text += ". Killed outright"
        return text + "."


class HealingResult(RuleResult):
    """Outcome of ``apply_healing`` and ``grant_temporary_hp``."""

    target_id: str
    target_name: str
    amount: int
    hp_before: int
    hp_after: int
    hp_max: int
    temporary: int = 0
    revived: bool = False

    def describe(self) -> str:
        if self.temporary and self.hp_before == self.hp_after:
            return f"{self.target_name} has {self.temporary} temporary HP."
        text = (
            f"{self.target_name} regains {self.hp_after - self.hp_before} HP "
            f"(HP {self.hp_before} -> {self.hp_after}/{self.hp_max})"
        )
        if self.revived:
            text += " and regains consciousness"
        return text + "."


# =============================================================================
# Checks
# =============================================================================


class CheckKind(StrEnum):
    SKILL = "skill"
    ABILITY = "ability"
    SAVE = "saving_throw"


class CheckResult(RuleResult):
    """Outcome of a skill check, ability check or saving throw.

    ``natural_roll`` is None when the check failed automatically
    without rolling (an unconscious creature's Strength or Dexterity test).
    """

    actor_id: str
    actor_name: str
    kind: CheckKind
    check: str
    dc: int
    advantage: AdvantageState = AdvantageState.NORMAL
    natural_roll: int | None = None
    modifier: int = 0
    total: int = 0
    success: bool
    critical: bool = False
    fumble: bool = False
    auto_failed: bool = False

    def describe(self) -> str:
        label = self.check.replace("_", " ")
        kind = "saving throw" if self.kind is CheckKind.SAVE else "check"
        verdict = "succeeds" if self.success else "fails"
        if self.auto_failed:
            return f"{self.actor_name} automatically fails the {label} {kind} (DC {self.dc})."
        text = (
            f"{self.actor_name} {verdict} a {label} {kind}: rolled {self.natural_roll}"
            f"{self.modifier:+d} = {self.total} vs DC {self.dc}"
        )
        if self.critical:
            text += " (natural 20)"
        elif self.fumble:
            text += " (natural 1)"
        return text + "."


class DeathSaveOutcome(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"
    STABILIZED = "stabilized"
    DEAD = "dead"


class DeathSaveResult(RuleResult):
    """Outcome of one death saving throw."""

    target_id: str
    target_name: str
    natural_roll: int
    dc: int
    successes: int
    failures: int
    outcome: DeathSaveOutcome
    life_state: LifeState

    def describe(self) -> str:
        tally = f"{self.successes} successes, {self.failures} failures"
        if self.outcome is DeathSaveOutcome.STABILIZED:
            return f"{self.target_name} rolls {self.natural_roll} on a death save and stabilizes."
        if self.outcome is DeathSaveOutcome.DEAD:
            return f"{self.target_name} rolls {self.natural_roll} on a death save and dies."
        return f"{self.target_name} rolls {self.natural_roll} on a death save ({tally})."


# =============================================================================
# Conditions
# =============================================================================


class ConditionResult(RuleResult):
    """Outcome of ``apply_condition`` / ``remove_condition``."""

    target_id: str
    target_name: str
    condition: Condition
    active: bool
    changed: bool
    duration_rounds: int | None = None

    def describe(self) -> str:
        name = self.condition.value
        if not self.changed:
            state = "already" if self.active else "is not"
            suffix = f" {name}" if self.active else f" {name}; nothing to remove"
            return f"{self.target_name} {state}{suffix}."
        if self.active:
            duration = (
                f" for {self.duration_rounds} rounds" if self.duration_rounds is not None else ""
            )
            return f"{self.target_name} is now {name}{duration}."
        return f"{self.target_name} is no longer {name}."


# =============================================================================
# Combat
# =============================================================================


class TurnStartEffects(RuleResult):
    """What happened at the start of a participant's turn."""

    character_id: str
    expired_conditions: list[Condition] = Field(default_factory=list)
    death_save: DeathSaveResult | None = None

    def describe(self) -> str:
        parts: list[str] = []
        if self.expired_conditions:
            names = ", ".join(c.value for c in self.expired_conditions)
            parts.append(f"Expired on {self.character_id}: {names}.")
        if self.death_save is not None:
            parts.append(self.death_save.describe())
        return " ".join(parts)


class CombatStartResult(RuleResult):
    """Outcome of ``start_combat``."""

    session_id: str
    order: list[InitiativeEntry]
    round: int
    current_id: str
    turn_start: TurnStartEffects

    def describe(self) -> str:
        order = ", ".join(f"{e.character_id} ({e.initiative})" for e in self.order)
        text = f"Combat begins. Initiative: {order}. {self.current_id} acts first."
        extra = self.turn_start.describe()
        return f"{text} {extra}" if extra else text


class TurnAdvanceResult(RuleResult):
    """Outcome of ``advance_turn``."""

    round: int
    turn_index: int
    current_id: str
    new_round: bool
    skipped: list[str] = Field(default_factory=list)
    turn_start: TurnStartEffects

    def describe(self) -> str:
        text = f"Round {self.round}: it is {self.current_id}'s turn."
        if self.new_round:
            text = f"A new round begins. {text}"
        if self.skipped:
            text += f" Skipped (dead): {', '.join(self.skipped)}."
        extra = self.turn_start.describe()
        return f"{text} {extra}" if extra else text


class CombatEndResult(RuleResult):
    """Outcome of ``end_combat``."""

    session_id: str
    rounds: int
    participants: list[str]

    def describe(self) -> str:
        return f"Combat ends after {self.rounds} round(s)."


# =============================================================================
# World
# =============================================================================


class RestResult(RuleResult):
    """Outcome of a short or long rest."""

    kind: str
    hours: int
    restored: list[str] = Field(default_factory=list)
    clock: str

    def describe(self) -> str:
        text = f"The party takes a {self.kind.replace('_', ' ')} ({self.hours}h). It is now {self.clock}."
        if self.restored:
            text += f" Fully restored: {', '.join(self.restored)}."
        return text


class LocationChangeResult(RuleResult):
    """Outcome of ``change_location``."""

    location_id: str
    name: str
    created: bool
    moved: list[str] = Field(default_factory=list)

    def describe(self) -> str:
        verb = "arrives at newly discovered" if self.created else "moves to"
        return f"The party {verb} {self.name}."


class TimeAdvanceResult(RuleResult):
    """Outcome of ``advance_time``."""

    minutes: int
    clock: str

    def describe(self) -> str:
        return f"{self.minutes} minutes pass. It is now {self.clock}."


# =============================================================================
# Quests
# =============================================================================


class QuestChange(StrEnum):
    """What a quest operation did."""

    CREATED = "created"
    OBJECTIVE_ADDED = "objective_added"
    OBJECTIVE_COMPLETED = "objective_completed"
    COMPLETED = "completed"
    FAILED = "failed"


class QuestResult(RuleResult):
    """Outcome of a quest operation."""

    quest_id: str
    name: str
    change: QuestChange
    status: QuestStatus
    objective: str | None = None
    completed_objectives: int = 0
    total_objectives: int = 0
    note: str = ""

    def describe(self) -> str:
        if self.change is QuestChange.CREATED:
            text = f"New quest: {self.name}."
            if self.total_objectives:
                text += f" {self.total_objectives} objective(s)."
            return text
        if self.change is QuestChange.OBJECTIVE_ADDED:
            return f"Quest {self.name}: new objective \"{self.objective}\"."
        if self.change is QuestChange.OBJECTIVE_COMPLETED:
            text = (
                f"Quest {self.name}: \"{self.objective}\" done "
                f"({self.completed_objectives}/{self.total_objectives})."
            )
            if self.status is QuestStatus.COMPLETED:
                text += " The quest is complete!"
            return text
        verb = "completed" if self.change is QuestChange.COMPLETED else "failed"
        text = f"Quest {self.name} {verb}."
        if self.note:
            text += f" {self.note}"
        return text


__all__ = [
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
    "QuestChange",
    "QuestResult",
]
