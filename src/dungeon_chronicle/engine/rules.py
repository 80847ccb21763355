"""Rules engine: the sole mutator of world state.

Every change to characters, combat, locations or the clock is a named
operation here. Each operation validates all of its preconditions before
touching state, applies the change, re-checks cross-entity references and
returns a typed result. Invalid requests raise typed exceptions from
``dungeon_chronicle.core.exceptions``; nothing is silently coerced.

Example:
    >>> engine = RulesEngine(world, DiceEvaluator())
    >>> result = engine.apply_damage("goblin-1", 7, DamageType.SLASHING)
    >>> result.transition
    <DamageTransition.UNCONSCIOUS: 'unconscious'>
"""

from __future__ import annotations

import math
import re

from dungeon_chronicle.core.config import RulesSettings, get_settings
from dungeon_chronicle.core.constants import (
    D20_MAX_FACE,
    D20_MIN_FACE,
    LONG_REST_HOURS,
    MAX_DEATH_SAVES,
    SHORT_REST_HOURS,
)
from dungeon_chronicle.core.exceptions import (
    CombatAlreadyActive,
    InvalidActor,
    NoActiveCombat,
    StateInvariantViolation,
    UnknownEntityError,
    ValidationError,
)
from dungeon_chronicle.core.logging import get_logger
from dungeon_chronicle.engine.combat import next_turn, roll_initiative
from dungeon_chronicle.engine.dice import DiceEvaluator
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
    QuestChange,
    QuestResult,
    RestResult,
    TimeAdvanceResult,
    TurnAdvanceResult,
    TurnStartEffects,
)
from dungeon_chronicle.models.character import ActiveCondition, Character
from dungeon_chronicle.models.combat import CombatSession
from dungeon_chronicle.models.enums import (
    Ability,
    AdvantageState,
    Condition,
    DamageTransition,
    DamageType,
    QuestStatus,
    Skill,
)
from dungeon_chronicle.models.quest import Quest, QuestObjective
from dungeon_chronicle.models.world import Location, WorldState


logger = get_logger(__name__)

_AUTO_FAIL_WHEN_UNCONSCIOUS = frozenset({Ability.STR, Ability.DEX})
_UNCONSCIOUS_SOURCE = "dropped to 0 hit points"


class RulesEngine:
    """Validated, named mutations over a WorldState.

    Attributes:
        world: The world state this engine mutates.
        dice: Dice evaluator used for every roll.
        settings: Ruleset policy constants.
    """

    def __init__(
        self,
        world: WorldState,
        dice: DiceEvaluator | None = None,
        settings: RulesSettings | None = None,
    ) -> None:
        """Initialize the rules engine.

        Args:
            world: World state to operate on.
            dice: Dice evaluator; a fresh unseeded one when omitted.
            settings: Ruleset settings; the application settings when omitted.
        """
        self.world = world
        self.dice = dice or DiceEvaluator()
        self.settings = settings or get_settings().rules

    # =========================================================================
    # Setup
    # =========================================================================

    def add_location(self, location: Location) -> Location:
        """Register a location.

        Raises:
            ValidationError: If the id is already taken.
        """
        if location.id in self.world.locations:
            raise ValidationError(
                f"Location id '{location.id}' already exists",
                field_name="location.id",
                invalid_value=location.id,
            )
        self.world.locations[location.id] = location
        if self.world.current_location_id is None:
            self.world.current_location_id = location.id
        self._commit()
        return location

    def add_character(self, character: Character) -> Character:
        """Register a character.

        Raises:
            ValidationError: If the id is taken or the location is unknown.
        """
        if character.id in self.world.characters:
            raise ValidationError(
                f"Character id '{character.id}' already exists",
                field_name="character.id",
                invalid_value=character.id,
            )
        if character.location_id is not None and character.location_id not in self.world.locations:
            raise ValidationError(
                f"Unknown location '{character.location_id}' for {character.name}",
                field_name="character.location_id",
                invalid_value=character.location_id,
            )
        self.world.characters[character.id] = character
        self._commit()
        logger.info("Character added", character_id=character.id, name=character.name)
        return character

    # =========================================================================
    # Hit Points
    # =========================================================================

    def apply_damage(self, target: str, amount: int, damage_type: DamageType) -> DamageResult:
        """Apply damage to a character.

        Temporary hit points absorb damage first. Current HP is floored at
        0. Dropping to 0 makes the character unconscious and dying, unless
        the damage left over after reaching 0 meets the overkill threshold,
        in which case the character dies outright. Damage taken while
        already at 0 never lowers HP further and only kills through the
        overkill threshold (or, when enabled, the third death-save
        failure).

        Args:
            target: Character id or name.
            amount: Damage amount, non-negative.
            damage_type: Type of damage.

        Returns:
            DamageResult with the new HP and the state transition.

        Raises:
            ValidationError: If the amount is negative.
            UnknownEntityError: If the target does not exist.
            StateInvariantViolation: If the target is already dead.
        """
        if amount < 0:
            raise ValidationError(
                "Damage amount cannot be negative", field_name="amount", invalid_value=amount
            )
        character = self.world.get_character(target)
        if character.dead:
            raise StateInvariantViolation(
                f"{character.name} is already dead",
                current_state="dead",
                expected_states=["conscious", "dying", "stable"],
            )

        hp = character.hp
        hp_before = hp.current
        remaining = amount

        absorbed = min(hp.temporary, remaining)
        hp.temporary -= absorbed
        remaining -= absorbed

        overflow = max(0, remaining - hp_before)
        hp.current = max(0, hp_before - remaining)

        transition = DamageTransition.NONE
        overkill = overflow >= math.ceil(self.settings.overkill_threshold_ratio * hp.maximum)

        if hp.current == 0 and remaining > 0:
            if overkill:
                character.dead = True
                transition = DamageTransition.DEAD
            elif hp_before > 0:
                self._fall_unconscious(character)
                transition = DamageTransition.UNCONSCIOUS
            else:
                # Already at 0: a stabilized character starts dying again
                character.stable = False
                if self.settings.damage_at_zero_adds_failure:
                    failures = min(MAX_DEATH_SAVES, character.death_saves.failures + 1)
                    character.death_saves.failures = failures
                    if failures >= MAX_DEATH_SAVES:
                        character.dead = True
                        transition = DamageTransition.DEAD

        self._commit()

        result = DamageResult(
            target_id=character.id,
            target_name=character.name,
            amount=amount,
            damage_type=damage_type,
            temp_absorbed=absorbed,
            hp_before=hp_before,
            hp_after=hp.current,
            hp_max=hp.maximum,
            transition=transition,
            life_state=character.life_state,
            death_save_failures=character.death_saves.failures,
        )
        logger.info(
            "Damage applied",
            target=character.id,
            amount=amount,
            damage_type=damage_type.value,
            hp_after=hp.current,
            transition=transition.value,
        )
        return result

    def apply_healing(self, target: str, amount: int) -> HealingResult:
        """Restore hit points, capped at maximum.

        Healing a character at 0 HP clears death saves, stability and
        the unconscious condition.

        Raises:
            ValidationError: If the amount is negative.
            UnknownEntityError: If the target does not exist.
            StateInvariantViolation: If the target is dead.
        """
        if amount < 0:
            raise ValidationError(
                "Healing amount cannot be negative", field_name="amount", invalid_value=amount
            )
        character = self.world.get_character(target)
        if character.dead:
            raise StateInvariantViolation(
                f"{character.name} is dead and cannot be healed",
                current_state="dead",
                expected_states=["conscious", "dying", "stable"],
            )

        hp = character.hp
        hp_before = hp.current
        hp.current = min(hp.maximum, hp.current + amount)

        revived = hp_before == 0 and hp.current > 0
        if revived:
            character.death_saves.reset()
            character.stable = False
            self._drop_condition(character, Condition.UNCONSCIOUS)

        self._commit()
        logger.info("Healing applied", target=character.id, amount=amount, hp_after=hp.current)
        return HealingResult(
            target_id=character.id,
            target_name=character.name,
            amount=amount,
            hp_before=hp_before,
            hp_after=hp.current,
            hp_max=hp.maximum,
            temporary=hp.temporary,
            revived=revived,
        )

    def grant_temporary_hp(self, target: str, amount: int) -> HealingResult:
        """Grant temporary hit points. They do not stack; the higher value is kept."""
        if amount < 0:
            raise ValidationError(
                "Temporary HP cannot be negative", field_name="amount", invalid_value=amount
            )
        character = self.world.get_character(target)
        if character.dead:
            raise StateInvariantViolation(
                f"{character.name} is dead",
                current_state="dead",
                expected_states=["conscious", "dying", "stable"],
            )
        character.hp.temporary = max(character.hp.temporary, amount)
        self._commit()
        return HealingResult(
            target_id=character.id,
            target_name=character.name,
            amount=amount,
            hp_before=character.hp.current,
            hp_after=character.hp.current,
            hp_max=character.hp.maximum,
            temporary=character.hp.temporary,
        )

    # =========================================================================
    # Checks
    # =========================================================================

    def resolve_skill_check(
        self,
        actor: str,
        skill: Skill,
        dc: int,
        advantage: AdvantageState = AdvantageState.NORMAL,
    ) -> CheckResult:
        """Roll a skill check against a DC.

        Raises:
            UnknownEntityError: If the actor does not exist.
            InvalidActor: If the actor is dead or has no record for the skill.
            ValidationError: If the DC is below 1.
        """
        character = self._check_actor(actor, dc)
        if skill not in character.skills:
            raise InvalidActor(
                f"{character.name} has no record for skill '{skill.value}'",
                actor_id=character.id,
                details={"skill": skill.value},
            )
        return self._roll_check(
            character,
            kind=CheckKind.SKILL,
            check=skill.value,
            ability=skill.ability,
            modifier=character.skill_modifier(skill),
            dc=dc,
            advantage=advantage,
        )

    def resolve_ability_check(
        self,
        actor: str,
        ability: Ability,
        dc: int,
        advantage: AdvantageState = AdvantageState.NORMAL,
    ) -> CheckResult:
        """Roll a raw ability check against a DC."""
        character = self._check_actor(actor, dc)
        return self._roll_check(
            character,
            kind=CheckKind.ABILITY,
            check=ability.value,
            ability=ability,
            modifier=character.ability_modifier(ability),
            dc=dc,
            advantage=advantage,
        )

    def resolve_saving_throw(
        self,
        actor: str,
        ability: Ability,
        dc: int,
        advantage: AdvantageState = AdvantageState.NORMAL,
    ) -> CheckResult:
        """Roll a saving throw; natural 20 always succeeds, natural 1 always fails."""
        character = self._check_actor(actor, dc)
        return self._roll_check(
            character,
            kind=CheckKind.SAVE,
            check=ability.value,
            ability=ability,
            modifier=character.save_modifier(ability),
            dc=dc,
            advantage=advantage,
        )

    def _check_actor(self, actor: str, dc: int) -> Character:
        if dc < 1:
            raise ValidationError("DC must be at least 1", field_name="dc", invalid_value=dc)
        character = self.world.get_character(actor)
        if character.dead:
            raise InvalidActor(f"{character.name} is dead", actor_id=character.id)
        return character

    def _roll_check(
        self,
        character: Character,
        *,
        kind: CheckKind,
        check: str,
        ability: Ability,
        modifier: int,
        dc: int,
        advantage: AdvantageState,
    ) -> CheckResult:
        if (
            ability in _AUTO_FAIL_WHEN_UNCONSCIOUS
            and character.has_condition(Condition.UNCONSCIOUS)
        ):
            logger.info("Check auto-failed", actor=character.id, check=check, kind=kind.value)
            return CheckResult(
                actor_id=character.id,
                actor_name=character.name,
                kind=kind,
                check=check,
                dc=dc,
                advantage=advantage,
                modifier=modifier,
                success=False,
                auto_failed=True,
            )

        roll = self.dice.roll_d20(modifier, advantage)
        if kind is CheckKind.SAVE and roll.is_critical:
            success = True
        elif kind is CheckKind.SAVE and roll.is_fumble:
            success = False
        else:
            success = roll.total >= dc

        logger.info(
            "Check resolved",
            actor=character.id,
            kind=kind.value,
            check=check,
            natural=roll.natural_roll,
            total=roll.total,
            dc=dc,
            success=success,
        )
        return CheckResult(
            actor_id=character.id,
            actor_name=character.name,
            kind=kind,
            check=check,
            dc=dc,
            advantage=advantage,
            natural_roll=roll.natural_roll,
            modifier=modifier,
            total=roll.total,
            success=success,
            critical=roll.is_critical,
            fumble=roll.is_fumble,
        )

    # =========================================================================
    # Death Saves
    # =========================================================================

    def resolve_death_save(self, target: str) -> DeathSaveResult:
        """Roll a death saving throw for a dying character.

        A natural 20 counts as two successes and a natural 1 as two
        failures. Counters never exceed three. Three successes stabilize
        the character at unchanged HP; three failures kill.

        Raises:
            UnknownEntityError: If the target does not exist.
            StateInvariantViolation: If the target is not dying.
        """
        character = self.world.get_character(target)
        if not character.is_dying:
            raise StateInvariantViolation(
                f"{character.name} is not dying",
                current_state=character.life_state.value,
                expected_states=["dying"],
            )

        dc = self.settings.death_save_dc
        natural = self.dice.roll_d20(0).natural_roll or D20_MIN_FACE
        saves = character.death_saves

        if natural == D20_MAX_FACE:
            saves.successes = min(MAX_DEATH_SAVES, saves.successes + 2)
            outcome = DeathSaveOutcome.SUCCESS
        elif natural == D20_MIN_FACE:
            saves.failures = min(MAX_DEATH_SAVES, saves.failures + 2)
            outcome = DeathSaveOutcome.FAILURE
        elif natural >= dc:
            saves.successes = min(MAX_DEATH_SAVES, saves.successes + 1)
            outcome = DeathSaveOutcome.SUCCESS
        else:
            saves.failures = min(MAX_DEATH_SAVES, saves.failures + 1)
            outcome = DeathSaveOutcome.FAILURE

        successes, failures = saves.successes, saves.failures
        if failures >= MAX_DEATH_SAVES:
            character.dead = True
            outcome = DeathSaveOutcome.DEAD
        elif successes >= MAX_DEATH_SAVES:
            character.stable = True
            saves.reset()
            outcome = DeathSaveOutcome.STABILIZED

        self._commit()
        logger.info(
            "Death save resolved",
            target=character.id,
            natural=natural,
            successes=successes,
            failures=failures,
            outcome=outcome.value,
        )
        return DeathSaveResult(
            target_id=character.id,
            target_name=character.name,
            natural_roll=natural,
            dc=dc,
            successes=successes,
            failures=failures,
            outcome=outcome,
            life_state=character.life_state,
        )

    # =========================================================================
    # Conditions
    # =========================================================================

    def apply_condition(
        self,
        target: str,
        condition: Condition,
        duration_rounds: int | None = None,
        source: str = "",
    ) -> ConditionResult:
        """Apply a condition; applying an active condition is a successful no-op."""
        if duration_rounds is not None and duration_rounds < 1:
            raise ValidationError(
                "Condition duration must be at least 1 round",
                field_name="duration_rounds",
                invalid_value=duration_rounds,
            )
        character = self.world.get_character(target)
        changed = not character.has_condition(condition)
        if changed:
            character.conditions = [
                *character.conditions,
                ActiveCondition(condition=condition, source=source, duration_rounds=duration_rounds),
            ]
            self._commit()
            logger.info("Condition applied", target=character.id, condition=condition.value)
        active = character.get_condition(condition)
        return ConditionResult(
            target_id=character.id,
            target_name=character.name,
            condition=condition,
            active=True,
            changed=changed,
            duration_rounds=active.duration_rounds if active else duration_rounds,
        )

    def remove_condition(self, target: str, condition: Condition) -> ConditionResult:
        """Remove a condition; removing an absent condition is a successful no-op."""
        character = self.world.get_character(target)
        changed = self._drop_condition(character, condition)
        if changed:
            self._commit()
            logger.info("Condition removed", target=character.id, condition=condition.value)
        return ConditionResult(
            target_id=character.id,
            target_name=character.name,
            condition=condition,
            active=False,
            changed=changed,
        )

    # =========================================================================
    # Combat
    # =========================================================================

    def start_combat(self, participants: list[str]) -> CombatStartResult:
        """Roll initiative and open a combat session at round 1.

        Raises:
            CombatAlreadyActive: If a combat session exists.
            ValidationError: If the list is empty, has duplicates or dead characters.
            UnknownEntityError: If a participant does not exist.
        """
        if self.world.combat is not None:
            raise CombatAlreadyActive(round_number=self.world.combat.round)
        if not participants:
            raise ValidationError("Combat needs at least one participant", field_name="participants")

        characters = [self.world.get_character(ref) for ref in participants]
        ids = [c.id for c in characters]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValidationError(
                "Duplicate combat participants",
                field_name="participants",
                invalid_value=duplicates,
            )
        dead = [c.id for c in characters if c.dead]
        if dead:
            raise ValidationError(
                "Dead characters cannot join combat",
                field_name="participants",
                invalid_value=dead,
            )

        order, _ = roll_initiative(characters, self.dice)
        session = CombatSession(participants=order)
        self.world.combat = session
        turn_start = self._begin_turn(session.current.character_id)
        self._commit()

        logger.info(
            "Combat started",
            session_id=session.id,
            participants=len(order),
            first=session.current.character_id,
        )
        return CombatStartResult(
            session_id=session.id,
            order=order,
            round=session.round,
            current_id=session.current.character_id,
            turn_start=turn_start,
        )

    def advance_turn(self) -> TurnAdvanceResult:
        """Move the turn pointer to the next living participant.

        Wrapping past the last participant starts a new round. Turn-start
        effects (condition durations, death saves) are applied to the
        participant whose turn begins.

        Raises:
            NoActiveCombat: If no combat session exists.
        """
        session = self.world.combat
        if session is None:
            raise NoActiveCombat()

        pointer = next_turn(session, self.world)
        new_round = pointer.round != session.round
        session.turn_index = pointer.turn_index
        session.round = pointer.round
        turn_start = self._begin_turn(session.current.character_id)
        self._commit()

        logger.info(
            "Turn advanced",
            round=session.round,
            current=session.current.character_id,
            new_round=new_round,
        )
        return TurnAdvanceResult(
            round=session.round,
            turn_index=session.turn_index,
            current_id=session.current.character_id,
            new_round=new_round,
            skipped=pointer.skipped,
            turn_start=turn_start,
        )

    def end_combat(self) -> CombatEndResult:
        """Close the combat session.

        "In combat" is derived from the session's presence, so clearing the
        session is the whole transition.

        Raises:
            NoActiveCombat: If no combat session exists.
        """
        session = self.world.combat
        if session is None:
            raise NoActiveCombat()
        self.world.combat = None
        self._commit()
        logger.info("Combat ended", session_id=session.id, rounds=session.round)
        return CombatEndResult(
            session_id=session.id,
            rounds=session.round,
            participants=session.participant_ids,
        )

    def is_in_combat(self) -> bool:
        return self.world.in_combat

    def _begin_turn(self, character_id: str) -> TurnStartEffects:
        character = self.world.characters[character_id]
        expired: list[Condition] = []
        kept: list[ActiveCondition] = []
        for active in character.conditions:
            if active.duration_rounds is None:
                kept.append(active)
                continue
            remaining = active.duration_rounds - 1
            if remaining <= 0:
                expired.append(active.condition)
            else:
                kept.append(active.model_copy(update={"duration_rounds": remaining}))
        if character.conditions != kept:
            character.conditions = kept

        death_save = None
        if character.is_dying:
            death_save = self.resolve_death_save(character.id)
        return TurnStartEffects(
            character_id=character.id,
            expired_conditions=expired,
            death_save=death_save,
        )

    # =========================================================================
    # World
    # =========================================================================

    def short_rest(self) -> RestResult:
        """Take a short rest; the clock advances one hour."""
        self._require_peace("short rest")
        self.world.clock.advance(hours=SHORT_REST_HOURS)
        self._commit()
        logger.info("Short rest taken", clock=self.world.clock.label())
        return RestResult(kind="short_rest", hours=SHORT_REST_HOURS, clock=self.world.clock.label())

    def long_rest(self) -> RestResult:
        """Take a long rest; living characters are fully restored."""
        self._require_peace("long rest")
        self.world.clock.advance(hours=LONG_REST_HOURS)
        restored: list[str] = []
        for character in self.world.characters.values():
            if character.dead:
                continue
            character.hp.temporary = 0
            character.hp.current = character.hp.maximum
            character.death_saves.reset()
            character.stable = False
            self._drop_condition(character, Condition.UNCONSCIOUS)
            restored.append(character.name)
        self._commit()
        logger.info("Long rest taken", restored=len(restored), clock=self.world.clock.label())
        return RestResult(
            kind="long_rest",
            hours=LONG_REST_HOURS,
            restored=restored,
            clock=self.world.clock.label(),
        )

    def change_location(self, location: str, description: str = "") -> LocationChangeResult:
        """Move the party, creating the location the first time it is named."""
        name = location.strip()
        if not name:
            raise ValidationError("Location name cannot be empty", field_name="location")

        target = self.world.find_location(name)
        created = target is None
        if target is None:
            target = Location(id=self._location_id(name), name=name, description=description)
            self.world.locations[target.id] = target
        elif description:
            target.description = description

        self.world.current_location_id = target.id
        moved: list[str] = []
        for character in self.world.party:
            character.location_id = target.id
            moved.append(character.id)
        self._commit()
        logger.info("Location changed", location_id=target.id, created=created)
        return LocationChangeResult(
            location_id=target.id,
            name=target.name,
            created=created,
            moved=moved,
        )

    def advance_time(self, minutes: int) -> TimeAdvanceResult:
        """Advance the world clock by a number of minutes."""
        if minutes < 1:
            raise ValidationError(
                "Time can only move forward", field_name="minutes", invalid_value=minutes
            )
        self.world.clock.advance(minutes=minutes)
        self._commit()
        return TimeAdvanceResult(minutes=minutes, clock=self.world.clock.label())

    # =========================================================================
    # Quests
    # =========================================================================

    def create_quest(
        self,
        name: str,
        description: str = "",
        *,
        giver: str | None = None,
        objectives: list[tuple[str, bool]] | None = None,
        rewards: list[str] | None = None,
    ) -> QuestResult:
        """Add a quest to the quest log.

        Args:
            name: Quest name; must not clash with an existing quest.
            description: What the quest is about.
            giver: Who handed it out.
            objectives: ``(description, optional)`` pairs in order.
            rewards: Promised rewards.

        Raises:
            ValidationError: If the name or an objective is blank.
            StateInvariantViolation: If a quest with that name exists.
        """
        name = " ".join(name.split())
        if not name:
            raise ValidationError("Quest name cannot be empty", field_name="name")
        if self.world.find_quest(name) is not None:
            raise StateInvariantViolation(
                f"A quest named '{name}' already exists",
                details={"quest": name},
            )
        steps: list[QuestObjective] = []
        for text, optional in objectives or []:
            text = text.strip()
            if not text:
                raise ValidationError("Objective cannot be empty", field_name="objectives")
            steps.append(QuestObjective(description=text, optional=optional))

        quest = Quest(
            name=name,
            description=description.strip(),
            giver=giver.strip() if giver else None,
            objectives=steps,
            rewards=[r.strip() for r in rewards or [] if r.strip()],
            started_turn=self.world.turn_number,
        )
        self.world.quests[quest.id] = quest
        self._commit()
        logger.info("Quest created", quest_id=quest.id, objectives=len(steps))
        return self._quest_result(quest, QuestChange.CREATED)

    def add_quest_objective(
        self, quest: str, objective: str, optional: bool = False
    ) -> QuestResult:
        """Append an objective to an active quest.

        Raises:
            UnknownEntityError: If the quest does not exist.
            StateInvariantViolation: If the quest is no longer active.
            ValidationError: If the objective is blank.
        """
        record = self._active_quest(quest)
        text = objective.strip()
        if not text:
            raise ValidationError("Objective cannot be empty", field_name="objective")
        added = QuestObjective(description=text, optional=optional)
        record.objectives = [*record.objectives, added]
        self._commit()
        logger.info("Quest objective added", quest_id=record.id, optional=optional)
        return self._quest_result(record, QuestChange.OBJECTIVE_ADDED, objective=text)

    def complete_objective(self, quest: str, objective: str) -> QuestResult:
        """Tick off an objective, matched by (partial) description.

        Completing the last required objective completes the quest.

        Raises:
            UnknownEntityError: If the quest or objective does not exist.
            StateInvariantViolation: If the quest is no longer active or the
                objective is already done.
        """
        record = self._active_quest(quest)
        step = record.find_objective(objective)
        if step is None:
            raise UnknownEntityError(
                f"Quest '{record.name}' has no objective matching '{objective}'",
                entity_id=objective,
            )
        if step.completed:
            raise StateInvariantViolation(
                f"Objective '{step.description}' is already complete",
                current_state="completed",
                expected_states=["open"],
            )
        step.completed = True
        if record.required_done:
            record.status = QuestStatus.COMPLETED
        self._commit()
        logger.info("Quest objective completed", quest_id=record.id, status=record.status.value)
        return self._quest_result(
            record, QuestChange.OBJECTIVE_COMPLETED, objective=step.description
        )

    def complete_quest(self, quest: str, note: str = "") -> QuestResult:
        """Mark an active quest completed, whatever its objectives say."""
        record = self._active_quest(quest)
        record.status = QuestStatus.COMPLETED
        record.note = note.strip()
        self._commit()
        logger.info("Quest completed", quest_id=record.id)
        return self._quest_result(record, QuestChange.COMPLETED)

    def fail_quest(self, quest: str, reason: str) -> QuestResult:
        """Mark an active quest failed.

        Raises:
            ValidationError: If no reason is given.
        """
        record = self._active_quest(quest)
        reason = reason.strip()
        if not reason:
            raise ValidationError("A failed quest needs a reason", field_name="reason")
        record.status = QuestStatus.FAILED
        record.note = reason
        self._commit()
        logger.info("Quest failed", quest_id=record.id)
        return self._quest_result(record, QuestChange.FAILED)

    def _active_quest(self, ref: str) -> Quest:
        quest = self.world.find_quest(ref)
        if quest is None:
            raise UnknownEntityError(f"No quest '{ref}'", entity_id=ref)
        if not quest.is_active:
            raise StateInvariantViolation(
                f"Quest '{quest.name}' is already {quest.status.value}",
                current_state=quest.status.value,
                expected_states=[QuestStatus.ACTIVE.value],
            )
        return quest

    @staticmethod
    def _quest_result(
        quest: Quest, change: QuestChange, objective: str | None = None
    ) -> QuestResult:
        done, total = quest.progress()
        return QuestResult(
            quest_id=quest.id,
            name=quest.name,
            change=change,
            status=quest.status,
            objective=objective,
            completed_objectives=done,
            total_objectives=total,
            note=quest.note,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _commit(self) -> None:
        self.world.check_references()

    def _require_peace(self, activity: str) -> None:
        if self.world.combat is not None:
            raise StateInvariantViolation(
                f"Cannot take a {activity} during combat",
                current_state="in_combat",
                expected_states=["out_of_combat"],
            )

    def _fall_unconscious(self, character: Character) -> None:
        character.stable = False
        character.death_saves.reset()
        if not character.has_condition(Condition.UNCONSCIOUS):
            character.conditions = [
                *character.conditions,
                ActiveCondition(condition=Condition.UNCONSCIOUS, source=_UNCONSCIOUS_SOURCE),
            ]

    @staticmethod
    def _drop_condition(character: Character, condition: Condition) -> bool:
        kept = [active for active in character.conditions if active.condition != condition]
        if len(kept) == len(character.conditions):
            return False
        character.conditions = kept
        return True

    def _location_id(self, name: str) -> str:
        base = re.sub(r"[^a-z0-9]+", "-", name.casefold()).strip("-") or "location"
        candidate = base
        suffix = 2
        while candidate in self.world.locations:
            candidate = f"{base}-{suffix}"
            suffix += 1
        return candidate


__all__ = ["RulesEngine"]
