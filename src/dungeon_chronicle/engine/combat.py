"""Combat state machine helpers.

Pure functions over the world state used by the rules engine: initiative
ordering and turn-pointer movement. They never assign to the world; the
rules engine applies what they compute.

State machine:

    OUT_OF_COMBAT --start_combat--> IN_COMBAT(round=1, turn_index=0)
    IN_COMBAT     --advance_turn--> IN_COMBAT(next living participant,
                                              round+1 on wrap)
    IN_COMBAT     --end_combat----> OUT_OF_COMBAT
"""

from __future__ import annotations

from dataclasses import dataclass, field

from dungeon_chronicle.engine.dice import DiceEvaluator, DiceResult
from dungeon_chronicle.models.character import Character
from dungeon_chronicle.models.combat import CombatSession, InitiativeEntry
from dungeon_chronicle.models.enums import Ability
from dungeon_chronicle.models.world import WorldState


@dataclass(frozen=True)
class TurnPointer:
    """Where the turn pointer lands after an advance.

    Attributes:
        turn_index: New index into the initiative order.
        round: New round number.
        skipped: Participants passed over because they are dead.
    """

    turn_index: int
    round: int
    skipped: list[str] = field(default_factory=list)


def roll_initiative(
    participants: list[Character],
    dice: DiceEvaluator,
) -> tuple[list[InitiativeEntry], dict[str, DiceResult]]:
    """Roll initiative for each participant and sort the order.

    Ties break on dexterity score (higher first), then character id.

    Args:
        participants: Characters entering combat.
        dice: Dice evaluator.

    Returns:
        The sorted initiative entries and the raw rolls by character id.
    """
    entries: list[InitiativeEntry] = []
    rolls: dict[str, DiceResult] = {}
    for character in participants:
        result = dice.roll_d20(character.ability_modifier(Ability.DEX))
        rolls[character.id] = result
        entries.append(
            InitiativeEntry(
                character_id=character.id,
                initiative=result.total,
                dexterity=character.abilities.dexterity,
            )
        )
    entries.sort(key=lambda entry: entry.sort_key)
    return entries, rolls


def next_turn(session: CombatSession, world: WorldState) -> TurnPointer:
    """Compute the next turn pointer, skipping dead participants.

    Wrapping past the last participant increments the round. If every
    participant is dead the pointer moves by exactly one step.
    """
    count = len(session.participants)
    index = session.turn_index
    round_number = session.round
    skipped: list[str] = []

    for _ in range(count):
        index += 1
        if index >= count:
            index = 0
            round_number += 1
        character_id = session.participants[index].character_id
        character = world.characters.get(character_id)
        if character is None or not character.dead:
            return TurnPointer(turn_index=index, round=round_number, skipped=skipped)
        skipped.append(character_id)

    # Everyone is dead: take a single step
    index = session.turn_index + 1
    round_number = session.round
    if index >= count:
        index = 0
        round_number += 1
    return TurnPointer(turn_index=index, round=round_number, skipped=[])


__all__ = ["TurnPointer", "roll_initiative", "next_turn"]
