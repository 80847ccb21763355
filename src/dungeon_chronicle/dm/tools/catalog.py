"""The DM tool catalog.

Each tool is a closed argument model tagged with a ``Literal`` tool name.
The models form one discriminated union, so a call either validates into
exactly one known variant or is rejected before anything runs:

- unknown tool name  -> UnknownToolError
- malformed argument -> ValidationError (with pydantic's error list)

``DMToolbox`` binds each variant to a handler over the rules engine or the
story memory. Handlers raise on failure; the orchestrator owns rollback and
turns the exception into a failed tool result for the agent.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from dungeon_chronicle.core.exceptions import (
    StateInvariantViolation,
    UnknownToolError,
    ValidationError,
)
from dungeon_chronicle.core.logging import get_logger
from dungeon_chronicle.dm.agent import ToolCall
from dungeon_chronicle.dm.memory import StoryMemory
from dungeon_chronicle.dm.tools.base import DMTool, ToolArgs, ToolResult
from dungeon_chronicle.engine.rules import RulesEngine
from dungeon_chronicle.models.enums import (
    Ability,
    AdvantageState,
    Condition,
    ConsequenceSeverity,
    DamageType,
    EntityKind,
    Skill,
)


logger = get_logger(__name__)


# =============================================================================
# Argument Models
# =============================================================================


class RollDiceArgs(ToolArgs):
    tool: Literal["roll_dice"] = "roll_dice"
    expression: str = Field(description="Dice expression like '1d20+5', '2d6+3' or '4d6kh3'")
    reason: str = Field(default="", description="What the roll is for")


class SkillCheckArgs(ToolArgs):
    tool: Literal["skill_check"] = "skill_check"
    actor: str = Field(description="Id or name of the character making the check")
    skill: Skill
    dc: int = Field(description="Difficulty class")
    advantage: AdvantageState = AdvantageState.NORMAL


class AbilityCheckArgs(ToolArgs):
    tool: Literal["ability_check"] = "ability_check"
    actor: str = Field(description="Id or name of the character making the check")
    ability: Ability
    dc: int = Field(description="Difficulty class")
    advantage: AdvantageState = AdvantageState.NORMAL


class SavingThrowArgs(ToolArgs):
    tool: Literal["saving_throw"] = "saving_throw"
    actor: str = Field(description="Id or name of the character making the save")
    ability: Ability
    dc: int = Field(description="Difficulty class")
    advantage: AdvantageState = AdvantageState.NORMAL


class ApplyDamageArgs(ToolArgs):
    tool: Literal["apply_damage"] = "apply_damage"
    target: str = Field(description="Id or name of the character taking damage")
    amount: int = Field(description="Damage dealt, already rolled")
    damage_type: DamageType


class ApplyHealingArgs(ToolArgs):
    tool: Literal["apply_healing"] = "apply_healing"
    target: str = Field(description="Id or name of the character being healed")
    amount: int = Field(description="Hit points restored")
    temporary: bool = Field(default=False, description="Grant temporary hit points instead")


class StartCombatArgs(ToolArgs):
    tool: Literal["start_combat"] = "start_combat"
    participants: list[str] = Field(description="Ids or names of everyone in the fight")


class AdvanceTurnArgs(ToolArgs):
    tool: Literal["advance_turn"] = "advance_turn"


class EndCombatArgs(ToolArgs):
    tool: Literal["end_combat"] = "end_combat"


class ApplyConditionArgs(ToolArgs):
    tool: Literal["apply_condition"] = "apply_condition"
    target: str
    condition: Condition
    duration_rounds: int | None = Field(
        default=None, description="Rounds until it expires; omit for until removed"
    )
    source: str = ""


class RemoveConditionArgs(ToolArgs):
    tool: Literal["remove_condition"] = "remove_condition"
    target: str
    condition: Condition


class RememberFactArgs(ToolArgs):
    tool: Literal["remember_fact"] = "remember_fact"
    subject: str = Field(description="Person, place, item or faction the fact is about")
    fact: str = Field(description="One short statement worth remembering")
    subject_kind: EntityKind = EntityKind.OTHER
    topic: str | None = Field(
        default=None, description="Short topic key; a newer fact on the same topic supersedes"
    )
    weight: float = Field(default=1.0, ge=0.0, le=10.0, description="Relevance weight")
    related_to: str | None = Field(default=None, description="Another entity this links to")
    relation: str | None = Field(default=None, description="Relationship label, e.g. 'ally'")
    bidirectional: bool = False


class DeathSaveArgs(ToolArgs):
    tool: Literal["death_save"] = "death_save"
    target: str


class ShortRestArgs(ToolArgs):
    tool: Literal["short_rest"] = "short_rest"


class LongRestArgs(ToolArgs):
    tool: Literal["long_rest"] = "long_rest"


class ChangeLocationArgs(ToolArgs):
    tool: Literal["change_location"] = "change_location"
    location: str = Field(description="Name of the destination")
    description: str = Field(default="", description="What the place looks like now")


class AdvanceTimeArgs(ToolArgs):
    tool: Literal["advance_time"] = "advance_time"
    minutes: int = Field(description="Minutes that pass")


class ObjectiveSpec(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    description: str = Field(description="What has to be done")
    optional: bool = False


class CreateQuestArgs(ToolArgs):
    tool: Literal["create_quest"] = "create_quest"
    name: str = Field(description="Quest name, e.g. 'The Missing Merchant'")
    description: str = Field(description="The goal and why it matters")
    giver: str | None = Field(default=None, description="Who gave the quest")
    objectives: list[ObjectiveSpec] = Field(default_factory=list)
    rewards: list[str] = Field(default_factory=list, description="Promised rewards")


class AddQuestObjectiveArgs(ToolArgs):
    tool: Literal["add_quest_objective"] = "add_quest_objective"
    quest: str = Field(description="Quest name or id")
    objective: str = Field(description="The new step")
    optional: bool = False


class CompleteObjectiveArgs(ToolArgs):
    tool: Literal["complete_objective"] = "complete_objective"
    quest: str = Field(description="Quest name or id")
    objective: str = Field(description="Objective description; a unique part is enough")


class CompleteQuestArgs(ToolArgs):
    tool: Literal["complete_quest"] = "complete_quest"
    quest: str = Field(description="Quest name or id")
    note: str = Field(default="", description="How it was completed")


class FailQuestArgs(ToolArgs):
    tool: Literal["fail_quest"] = "fail_quest"
    quest: str = Field(description="Quest name or id")
    reason: str = Field(description="Why it can no longer be completed")


class RememberConsequenceArgs(ToolArgs):
    tool: Literal["remember_consequence"] = "remember_consequence"
    trigger: str = Field(description="What the players would have to do, e.g. 'enter Riverside'")
    consequence: str = Field(description="What happens then")
    severity: ConsequenceSeverity = ConsequenceSeverity.MODERATE
    importance: float = Field(default=0.5, ge=0.0, le=1.0)
    related_to: list[str] = Field(
        default_factory=list, description="People, places or factions involved"
    )
    expires_in_turns: int | None = Field(
        default=None, ge=1, description="Turns it stays possible; omit for no limit"
    )


class ResolveConsequenceArgs(ToolArgs):
    tool: Literal["resolve_consequence"] = "resolve_consequence"
    consequence_id: str = Field(description="Id shown next to the consequence")


ToolArguments = Annotated[
    Union[
        RollDiceArgs,
        SkillCheckArgs,
        AbilityCheckArgs,
        SavingThrowArgs,
        ApplyDamageArgs,
        ApplyHealingArgs,
        StartCombatArgs,
        AdvanceTurnArgs,
        EndCombatArgs,
        ApplyConditionArgs,
        RemoveConditionArgs,
        RememberFactArgs,
        DeathSaveArgs,
        ShortRestArgs,
        LongRestArgs,
        ChangeLocationArgs,
        AdvanceTimeArgs,
        CreateQuestArgs,
        AddQuestObjectiveArgs,
        CompleteObjectiveArgs,
        CompleteQuestArgs,
        FailQuestArgs,
        RememberConsequenceArgs,
        ResolveConsequenceArgs,
    ],
    Field(discriminator="tool"),
]

_ARGUMENTS_ADAPTER: TypeAdapter[ToolArguments] = TypeAdapter(ToolArguments)

TOOL_NAMES: tuple[str, ...] = (
    "roll_dice",
    "skill_check",
    "ability_check",
    "saving_throw",
    "apply_damage",
    "apply_healing",
    "start_combat",
    "advance_turn",
    "end_combat",
    "apply_condition",
    "remove_condition",
    "remember_fact",
    "death_save",
    "short_rest",
    "long_rest",
    "change_location",
    "advance_time",
    "create_quest",
    "add_quest_objective",
    "complete_objective",
    "complete_quest",
    "fail_quest",
    "remember_consequence",
    "resolve_consequence",
)


def parse_tool_arguments(tool_name: str, arguments: dict) -> ToolArgs:
    """Validate raw agent arguments into the matching variant.

    Raises:
        UnknownToolError: If the name is not in the catalog.
        ValidationError: If the arguments do not fit the variant.
    """
    if tool_name not in TOOL_NAMES:
        raise UnknownToolError(f"Unknown tool '{tool_name}'", tool_name=tool_name)
    try:
        return _ARGUMENTS_ADAPTER.validate_python({**arguments, "tool": tool_name})
    except PydanticValidationError as exc:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"][1:]), "error": err["msg"]}
            for err in exc.errors()
        ]
        raise ValidationError(
            f"Invalid arguments for {tool_name}",
            field_name=errors[0]["field"] if errors else None,
            details={"errors": errors},
        ) from None


# =============================================================================
# Toolbox
# =============================================================================


class DMToolbox:
    """The catalog bound to a rules engine and a story memory.

    Attributes:
        engine: Rules engine every mechanical tool goes through.
        memory: Story memory written by ``remember_fact`` and ``remember_consequence``.
        tools: Tools keyed by name.
    """

    def __init__(self, engine: RulesEngine, memory: StoryMemory) -> None:
        self.engine = engine
        self.memory = memory
        self.tools: dict[str, DMTool] = {tool.name: tool for tool in self._build()}

    def schemas(self) -> list[dict]:
        return [tool.to_openai_schema() for tool in self.tools.values()]

    def get(self, name: str) -> DMTool:
        try:
            return self.tools[name]
        except KeyError:
            raise UnknownToolError(f"Unknown tool '{name}'", tool_name=name) from None

    def parse(self, call: ToolCall) -> tuple[DMTool, ToolArgs]:
        """Resolve and validate one call without executing it."""
        tool = self.get(call.tool_name)
        if call.argument_error:
            raise ValidationError(
                f"Invalid arguments for {call.tool_name}: {call.argument_error}",
                field_name="arguments",
            )
        return tool, parse_tool_arguments(call.tool_name, call.arguments)

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    def _roll_dice(self, args: RollDiceArgs) -> ToolResult:
        rolled = self.engine.dice.roll(args.expression)
        text = f"{rolled.details} = {rolled.total}"
        if rolled.is_critical:
            text += " (natural 20)"
        elif rolled.is_fumble:
            text += " (natural 1)"
        if args.reason:
            text = f"{args.reason}: {text}"
        return ToolResult(
            tool_name="roll_dice",
            success=True,
            result=text,
            data=rolled.to_dict(),
        )

    def _skill_check(self, args: SkillCheckArgs) -> ToolResult:
        outcome = self.engine.resolve_skill_check(args.actor, args.skill, args.dc, args.advantage)
        return ToolResult.from_rule("skill_check", outcome, mutated=False)

    def _ability_check(self, args: AbilityCheckArgs) -> ToolResult:
        outcome = self.engine.resolve_ability_check(args.actor, args.ability, args.dc, args.advantage)
        return ToolResult.from_rule("ability_check", outcome, mutated=False)

    def _saving_throw(self, args: SavingThrowArgs) -> ToolResult:
        outcome = self.engine.resolve_saving_throw(args.actor, args.ability, args.dc, args.advantage)
        return ToolResult.from_rule("saving_throw", outcome, mutated=False)

    def _apply_damage(self, args: ApplyDamageArgs) -> ToolResult:
        outcome = self.engine.apply_damage(args.target, args.amount, args.damage_type)
        return ToolResult.from_rule("apply_damage", outcome, mutated=True)

    def _apply_healing(self, args: ApplyHealingArgs) -> ToolResult:
        if args.temporary:
            outcome = self.engine.grant_temporary_hp(args.target, args.amount)
        else:
            outcome = self.engine.apply_healing(args.target, args.amount)
        return ToolResult.from_rule("apply_healing", outcome, mutated=True)

    def _start_combat(self, args: StartCombatArgs) -> ToolResult:
        outcome = self.engine.start_combat(args.participants)
        return ToolResult.from_rule("start_combat", outcome, mutated=True)

    def _advance_turn(self, args: AdvanceTurnArgs) -> ToolResult:
        return ToolResult.from_rule("advance_turn", self.engine.advance_turn(), mutated=True)

    def _end_combat(self, args: EndCombatArgs) -> ToolResult:
        return ToolResult.from_rule("end_combat", self.engine.end_combat(), mutated=True)

    def _apply_condition(self, args: ApplyConditionArgs) -> ToolResult:
        outcome = self.engine.apply_condition(
            args.target, args.condition, args.duration_rounds, args.source
        )
        return ToolResult.from_rule("apply_condition", outcome, mutated=outcome.changed)

    def _remove_condition(self, args: RemoveConditionArgs) -> ToolResult:
        outcome = self.engine.remove_condition(args.target, args.condition)
        return ToolResult.from_rule("remove_condition", outcome, mutated=outcome.changed)

    def _remember_fact(self, args: RememberFactArgs) -> ToolResult:
        turn = self.engine.world.turn_number
        entity, entity_created = self.memory.upsert_entity(
            args.subject, kind=args.subject_kind, turn=turn
        )
        fact, fact_created = self.memory.add_fact(
            entity.id, args.fact, turn=turn, topic=args.topic, weight=args.weight
        )
        data: dict = {
            "entity_id": entity.id,
            "entity_name": entity.name,
            "fact_id": fact.id,
            "duplicate": not fact_created,
        }
        mutated = entity_created or fact_created
        text = f"Remembered about {entity.name}: {fact.text}"
        if not fact_created:
            text = f"Already known about {entity.name}: {fact.text}"

        if args.related_to:
            other, other_created = self.memory.upsert_entity(args.related_to, turn=turn)
            relationship, rel_created = self.memory.add_relationship(
                entity.id,
                other.id,
                args.relation or "related-to",
                turn=turn,
                bidirectional=args.bidirectional,
            )
            mutated = mutated or other_created or rel_created
            data["relationship"] = relationship.model_dump(mode="json")
            text += f" ({entity.name} --{relationship.label}--> {other.name})"

        return ToolResult(
            tool_name="remember_fact",
            success=True,
            result=text,
            data=data,
            mutated=mutated,
        )

    def _death_save(self, args: DeathSaveArgs) -> ToolResult:
        if self.engine.is_in_combat():
            raise StateInvariantViolation(
                "Death saves roll automatically at the start of the character's turn in combat",
                current_state="in_combat",
                expected_states=["out_of_combat"],
            )
        outcome = self.engine.resolve_death_save(args.target)
        return ToolResult.from_rule("death_save", outcome, mutated=True)

    def _short_rest(self, args: ShortRestArgs) -> ToolResult:
        return ToolResult.from_rule("short_rest", self.engine.short_rest(), mutated=True)

    def _long_rest(self, args: LongRestArgs) -> ToolResult:
        return ToolResult.from_rule("long_rest", self.engine.long_rest(), mutated=True)

    def _change_location(self, args: ChangeLocationArgs) -> ToolResult:
        outcome = self.engine.change_location(args.location, args.description)
        return ToolResult.from_rule("change_location", outcome, mutated=True)

    def _advance_time(self, args: AdvanceTimeArgs) -> ToolResult:
        outcome = self.engine.advance_time(args.minutes)
        return ToolResult.from_rule("advance_time", outcome, mutated=True)

    def _create_quest(self, args: CreateQuestArgs) -> ToolResult:
        outcome = self.engine.create_quest(
            args.name,
            args.description,
            giver=args.giver,
            objectives=[(o.description, o.optional) for o in args.objectives],
            rewards=args.rewards,
        )
        return ToolResult.from_rule("create_quest", outcome, mutated=True)

    def _add_quest_objective(self, args: AddQuestObjectiveArgs) -> ToolResult:
        outcome = self.engine.add_quest_objective(args.quest, args.objective, args.optional)
        return ToolResult.from_rule("add_quest_objective", outcome, mutated=True)

    def _complete_objective(self, args: CompleteObjectiveArgs) -> ToolResult:
        outcome = self.engine.complete_objective(args.quest, args.objective)
        return ToolResult.from_rule("complete_objective", outcome, mutated=True)

    def _complete_quest(self, args: CompleteQuestArgs) -> ToolResult:
        outcome = self.engine.complete_quest(args.quest, args.note)
        return ToolResult.from_rule("complete_quest", outcome, mutated=True)

    def _fail_quest(self, args: FailQuestArgs) -> ToolResult:
        outcome = self.engine.fail_quest(args.quest, args.reason)
        return ToolResult.from_rule("fail_quest", outcome, mutated=True)

    def _remember_consequence(self, args: RememberConsequenceArgs) -> ToolResult:
        turn = self.engine.world.turn_number
        entity_ids: list[str] = []
        created_entity = False
        for name in args.related_to:
            entity, created = self.memory.upsert_entity(name, turn=turn)
            created_entity = created_entity or created
            if entity.id not in entity_ids:
                entity_ids.append(entity.id)
        consequence, created = self.memory.add_consequence(
            args.trigger,
            args.consequence,
            severity=args.severity,
            importance=args.importance,
            entity_ids=entity_ids,
            turn=turn,
            expires_in_turns=args.expires_in_turns,
        )
        if created:
            text = f"Consequence {consequence.id} waits for: {consequence.trigger}"
        else:
            text = f"Already waiting as {consequence.id}: {consequence.trigger}"
        return ToolResult(
            tool_name="remember_consequence",
            success=True,
            result=text,
            data={**consequence.model_dump(mode="json"), "duplicate": not created},
            mutated=created or created_entity,
        )

    def _resolve_consequence(self, args: ResolveConsequenceArgs) -> ToolResult:
        consequence = self.memory.resolve_consequence(
            args.consequence_id, turn=self.engine.world.turn_number
        )
        return ToolResult(
            tool_name="resolve_consequence",
            success=True,
            result=f"Consequence {consequence.id} resolved: {consequence.effect}",
            data=consequence.model_dump(mode="json"),
            mutated=True,
        )

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    def _build(self) -> list[DMTool]:
        return [
            DMTool(
                "roll_dice",
                "Roll dice using standard notation (e.g. '1d20+5', '2d6+3', '4d6kh3'). "
                "Use this for any random outcome that is not a check or save.",
                RollDiceArgs,
                self._roll_dice,
            ),
            DMTool(
                "skill_check",
                "Roll a skill check for a character against a DC.",
                SkillCheckArgs,
                self._skill_check,
            ),
            DMTool(
                "ability_check",
                "Roll a raw ability check (no skill) for a character against a DC.",
                AbilityCheckArgs,
                self._ability_check,
            ),
            DMTool(
                "saving_throw",
                "Roll a saving throw for a character against a DC.",
                SavingThrowArgs,
                self._saving_throw,
            ),
            DMTool(
                "apply_damage",
                "Apply damage to a character. Handles temporary HP, dropping to 0, "
                "massive damage and death saves.",
                ApplyDamageArgs,
                self._apply_damage,
                mutates=True,
            ),
            DMTool(
                "apply_healing",
                "Heal a character, or grant temporary hit points with temporary=true.",
                ApplyHealingArgs,
                self._apply_healing,
                mutates=True,
            ),
            DMTool(
                "start_combat",
                "Start combat: rolls initiative for every participant.",
                StartCombatArgs,
                self._start_combat,
                mutates=True,
            ),
            DMTool(
                "advance_turn",
                "End the current combatant's turn and move to the next one.",
                AdvanceTurnArgs,
                self._advance_turn,
                mutates=True,
            ),
            DMTool(
                "end_combat",
                "End the current combat.",
                EndCombatArgs,
                self._end_combat,
                mutates=True,
            ),
            DMTool(
                "apply_condition",
                "Apply a condition such as poisoned or prone to a character.",
                ApplyConditionArgs,
                self._apply_condition,
                mutates=True,
            ),
            DMTool(
                "remove_condition",
                "Remove a condition from a character.",
                RemoveConditionArgs,
                self._remove_condition,
                mutates=True,
            ),
            DMTool(
                "remember_fact",
                "Record a fact about a person, place, item or faction so it is "
                "remembered later, optionally linking it to another entity.",
                RememberFactArgs,
                self._remember_fact,
                mutates=True,
            ),
            DMTool(
                "death_save",
                "Roll a death saving throw for a dying character outside combat.",
                DeathSaveArgs,
                self._death_save,
                mutates=True,
            ),
            DMTool(
                "short_rest",
                "The party takes a one-hour short rest.",
                ShortRestArgs,
                self._short_rest,
                mutates=True,
            ),
            DMTool(
                "long_rest",
                "The party takes an eight-hour long rest and is fully restored.",
                LongRestArgs,
                self._long_rest,
                mutates=True,
            ),
            DMTool(
                "change_location",
                "Move the party to a location, creating it the first time it is visited.",
                ChangeLocationArgs,
                self._change_location,
                mutates=True,
            ),
            DMTool(
                "advance_time",
                "Advance the in-world clock by some minutes.",
                AdvanceTimeArgs,
                self._advance_time,
                mutates=True,
            ),
            DMTool(
                "create_quest",
                "Start tracking a quest the party has taken on, with its objectives "
                "and promised rewards.",
                CreateQuestArgs,
                self._create_quest,
                mutates=True,
            ),
            DMTool(
                "add_quest_objective",
                "Add a new objective to an active quest.",
                AddQuestObjectiveArgs,
                self._add_quest_objective,
                mutates=True,
            ),
            DMTool(
                "complete_objective",
                "Mark a quest objective done. Finishing the last required objective "
                "completes the quest.",
                CompleteObjectiveArgs,
                self._complete_objective,
                mutates=True,
            ),
            DMTool(
                "complete_quest",
                "Mark an active quest as completed.",
                CompleteQuestArgs,
                self._complete_quest,
                mutates=True,
            ),
            DMTool(
                "fail_quest",
                "Mark an active quest as failed, with the reason.",
                FailQuestArgs,
                self._fail_quest,
                mutates=True,
            ),
            DMTool(
                "remember_consequence",
                "Record something that will happen later if the players do something, "
                "e.g. guards hunt them if they return to town.",
                RememberConsequenceArgs,
                self._remember_consequence,
                mutates=True,
            ),
            DMTool(
                "resolve_consequence",
                "Mark a consequence as played out once it has happened.",
                ResolveConsequenceArgs,
                self._resolve_consequence,
                mutates=True,
            ),
        ]


__all__ = [
    "RollDiceArgs",
    "SkillCheckArgs",
    "AbilityCheckArgs",
    "SavingThrowArgs",
    "ApplyDamageArgs",
    "ApplyHealingArgs",
    "StartCombatArgs",
    "AdvanceTurnArgs",
    "EndCombatArgs",
    "ApplyConditionArgs",
    "RemoveConditionArgs",
    "RememberFactArgs",
    "DeathSaveArgs",
    "ShortRestArgs",
    "LongRestArgs",
    "ChangeLocationArgs",
    "AdvanceTimeArgs",
    "ObjectiveSpec",
    "CreateQuestArgs",
    "AddQuestObjectiveArgs",
    "CompleteObjectiveArgs",
    "CompleteQuestArgs",
    "FailQuestArgs",
    "RememberConsequenceArgs",
    "ResolveConsequenceArgs",
    "ToolArguments",
    "TOOL_NAMES",
    "parse_tool_arguments",
    "DMToolbox",
]
