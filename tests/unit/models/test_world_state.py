"""Tests for WorldState and Character models."""

from __future__ import annotations

import pydantic
import pytest

from conftest import make_fighter, make_goblin
from dungeon_chronicle.core.exceptions import StateInvariantViolation, UnknownEntityError
from dungeon_chronicle.models import (
    Ability,
    ActiveCondition,
    CombatSession,
    Condition,
    HitPoints,
    InitiativeEntry,
    LifeState,
    Location,
    NarrativeKind,
    Quest,
    QuestObjective,
    Skill,
    WorldState,
)


class TestCharacter:
    """Tests for Character derived state."""

    def test_modifiers(self) -> None:
        """Test ability, skill and save modifiers."""
        hero = make_fighter()

        assert hero.ability_modifier(Ability.STR) == 3
        assert hero.skill_modifier(Skill.ATHLETICS) == 5
        assert hero.save_modifier(Ability.CON) == 4
        assert hero.save_modifier(Ability.WIS) == 1

    def test_missing_skill_raises_key_error(self) -> None:
        """Test a skill without a record has no modifier."""
        with pytest.raises(KeyError):
            make_fighter().skill_modifier(Skill.ARCANA)

    def test_life_states(self) -> None:
        """Test life state derives from HP, stability and death."""
        assert make_fighter().life_state is LifeState.CONSCIOUS
        assert make_fighter(hp=HitPoints(current=0, maximum=9)).life_state is LifeState.DYING
        stable = make_fighter(hp=HitPoints(current=0, maximum=9), stable=True)
        assert stable.life_state is LifeState.STABLE
        assert make_fighter(dead=True).life_state is LifeState.DEAD

    def test_current_hp_cannot_exceed_maximum(self) -> None:
        """Test HP validation rejects current above maximum."""
        with pytest.raises(pydantic.ValidationError):
            HitPoints(current=12, maximum=9)

    def test_duplicate_conditions_rejected(self) -> None:
        """Test a condition can only be active once."""
        with pytest.raises(pydantic.ValidationError):
            make_fighter(
                conditions=[
                    ActiveCondition(condition=Condition.PRONE),
                    ActiveCondition(condition=Condition.PRONE),
                ]
            )


class TestWorldState:
    """Tests for WorldState queries and invariants."""

    def test_in_combat_is_derived(self, world: WorldState) -> None:
        """Test in_combat follows the combat session's presence."""
        assert not world.in_combat

        world.combat = CombatSession(
            participants=[InitiativeEntry(character_id="hero", initiative=12, dexterity=14)]
        )

        assert world.in_combat
        assert world.is_in_combat()

    def test_get_character_by_id_or_name(self, world: WorldState) -> None:
        """Test lookup by id and by case-insensitive name."""
        assert world.get_character("hero").name == "Aldric"
        assert world.get_character(" aldric ").id == "hero"

    def test_get_character_unknown(self, world: WorldState) -> None:
        """Test unknown references raise UnknownEntityError."""
        with pytest.raises(UnknownEntityError):
            world.get_character("dragon")

    def test_hp_status_lists_party_only(self, world: WorldState) -> None:
        """Test hp_status covers player characters only."""
        assert world.hp_status() == {"Aldric": "9/9"}

    def test_append_narrative_sequences(self, world: WorldState) -> None:
        """Test entries are numbered and stamped with turn and game time."""
        world.turn_number = 4

        first = world.append_narrative(NarrativeKind.PLAYER_ACTION, "I open the door.")
        second = world.append_narrative(NarrativeKind.DM_NARRATION, "It creaks.")

        assert (first.sequence, second.sequence) == (0, 1)
        assert first.turn == 4
        assert first.game_time == world.clock.label()

    def test_narrative_entries_frozen(self, world: WorldState) -> None:
        """Test log entries cannot be edited once appended."""
        entry = world.append_narrative(NarrativeKind.SYSTEM, "Session started.")

        with pytest.raises(pydantic.ValidationError):
            entry.text = "Rewritten."

    def test_dangling_location_rejected_on_load(self) -> None:
        """Test validation catches characters at unknown locations."""
        with pytest.raises(pydantic.ValidationError):
            WorldState(characters={"hero": make_fighter()})

    def test_dangling_combat_participant(self, world: WorldState) -> None:
        """Test check_references reports missing combat participants."""
        world.combat = CombatSession(
            participants=[InitiativeEntry(character_id="hero", initiative=12, dexterity=14)]
        )
        del world.characters["hero"]

        with pytest.raises(StateInvariantViolation) as exc_info:
            world.check_references()

        assert any("hero" in problem for problem in exc_info.value.details["problems"])

    def test_json_round_trip(self, world: WorldState) -> None:
        """Test a world with log and combat survives JSON serialization."""
        world.append_narrative(NarrativeKind.PLAYER_ACTION, "I draw my sword.")
        world.combat = CombatSession(
            participants=[
                InitiativeEntry(character_id="goblin", initiative=15, dexterity=14),
                InitiativeEntry(character_id="hero", initiative=9, dexterity=14),
            ]
        )
        world.turn_number = 3

        restored = WorldState.model_validate_json(world.model_dump_json())

        assert restored == world
        assert restored.in_combat
        assert restored.turn_number == 3

    def test_current_location_unset(self) -> None:
        """Test a world without a current location reports none."""
        tavern = Location(id="tavern", name="Tavern")
        world = WorldState(
            locations={"tavern": tavern},
            characters={"hero": make_fighter(), "goblin": make_goblin()},
        )

        assert world.current_location is None

    def test_to_ai_context(self, world: WorldState) -> None:
        """Test the narrator state block lists location and characters."""
        text = world.to_ai_context()

        assert "The Gilded Goose [tavern]" in text
        assert "Aldric [hero] HP 9/9" in text
        assert "Combat: none" in text

    def test_party_only_context(self, world: WorldState) -> None:
        """Test the party-only block drops bystanders but keeps combatants."""
        assert "Goblin [goblin]" not in world.to_ai_context(party_only=True)

        world.combat = CombatSession(
            participants=[
                InitiativeEntry(character_id="goblin", initiative=15, dexterity=14),
                InitiativeEntry(character_id="hero", initiative=9, dexterity=14),
            ]
        )

        assert "Goblin [goblin]" in world.to_ai_context(party_only=True)

    def test_find_quest(self, world: WorldState) -> None:
        """Test quests resolve by id or by name in any case and spacing."""
        quest = Quest(name="The Missing Merchant")
        world.quests[quest.id] = quest

        assert world.find_quest(quest.id) is quest
        assert world.find_quest("the  MISSING merchant") is quest
        assert world.find_quest("Rat Problem") is None

    def test_duplicate_quest_names_rejected(self, world: WorldState) -> None:
        """Test two quests may not share a name."""
        for quest in (Quest(name="Rat Problem"), Quest(name="rat problem")):
            world.quests[quest.id] = quest

        with pytest.raises(StateInvariantViolation) as exc_info:
            world.check_references()

        assert any("used twice" in problem for problem in exc_info.value.details["problems"])


class TestQuest:
    """Tests for quest progress."""

    def test_optional_objectives_do_not_block(self) -> None:
        """Test required_done ignores optional objectives."""
        quest = Quest(
            name="Rat Problem",
            objectives=[
                QuestObjective(description="Clear the cellar", completed=True),
                QuestObjective(description="Find the nest", optional=True),
            ],
        )

        assert quest.required_done
        assert quest.progress() == (1, 2)
        assert quest.status_line() == "Rat Problem [active] 1/2 objectives"

    def test_no_objectives_never_done(self) -> None:
        """Test a quest without required objectives is never auto-complete."""
        assert not Quest(name="Wander").required_done

    def test_exact_objective_match_wins(self) -> None:
        """Test an exact description beats an earlier partial match."""
        quest = Quest(
            name="Errands",
            objectives=[
                QuestObjective(description="Buy rope and torches"),
                QuestObjective(description="Buy rope"),
            ],
        )

        found = quest.find_objective("buy rope")

        assert found is not None
        assert found.description == "Buy rope"


class TestCombatSession:
    """Tests for CombatSession validation."""

    def test_requires_participants(self) -> None:
        """Test an empty combat session is invalid."""
        with pytest.raises(pydantic.ValidationError):
            CombatSession(participants=[])

    def test_rejects_unsorted_order(self) -> None:
        """Test the stored order must be initiative order."""
        with pytest.raises(pydantic.ValidationError):
            CombatSession(
                participants=[
                    InitiativeEntry(character_id="hero", initiative=5, dexterity=14),
                    InitiativeEntry(character_id="goblin", initiative=15, dexterity=14),
                ]
            )

    def test_turn_index_in_range(self) -> None:
        """Test the turn pointer must point at a participant."""
        with pytest.raises(pydantic.ValidationError):
            CombatSession(
                participants=[InitiativeEntry(character_id="hero", initiative=5, dexterity=14)],
                turn_index=1,
            )

