"""Tests for the quest log."""

from __future__ import annotations

import pytest

from dungeon_chronicle.core.exceptions import (
    StateInvariantViolation,
    UnknownEntityError,
    ValidationError,
)
from dungeon_chronicle.engine.results import QuestChange
from dungeon_chronicle.engine.rules import RulesEngine
from dungeon_chronicle.models import QuestStatus, WorldState


def _missing_merchant(engine: RulesEngine) -> str:
    result = engine.create_quest(
        "The Missing Merchant",
        "Find Oswin, who never reached Riverside.",
        giver="Mira",
        objectives=[
            ("Search the north road", False),
            ("Question the ferryman", True),
            ("Bring Oswin home", False),
        ],
        rewards=["50 gold", "  "],
    )
    return result.quest_id


class TestCreateQuest:
    """Tests for starting quests."""

    def test_create(self, engine: RulesEngine, world: WorldState) -> None:
        """Test a new quest is stored active with its objectives."""
        quest_id = _missing_merchant(engine)

        quest = world.quests[quest_id]
        assert quest.status is QuestStatus.ACTIVE
        assert quest.giver == "Mira"
        assert quest.rewards == ["50 gold"]
        assert [o.optional for o in quest.objectives] == [False, True, False]
        assert quest.progress() == (0, 3)

    def test_describe(self, engine: RulesEngine) -> None:
        """Test the result reads as a short announcement."""
        result = engine.create_quest("Rat Problem", objectives=[("Clear the cellar", False)])

        assert result.change is QuestChange.CREATED
        assert result.describe() == "New quest: Rat Problem. 1 objective(s)."

    def test_duplicate_name_rejected(self, engine: RulesEngine) -> None:
        """Test quest names are unique regardless of case and spacing."""
        _missing_merchant(engine)

        with pytest.raises(StateInvariantViolation):
            engine.create_quest("the  missing merchant")

    def test_blank_name_rejected(self, engine: RulesEngine) -> None:
        """Test a quest needs a name."""
        with pytest.raises(ValidationError) as exc_info:
            engine.create_quest("   ")

        assert exc_info.value.details["field_name"] == "name"

    def test_blank_objective_rejected(self, engine: RulesEngine, world: WorldState) -> None:
        """Test blank objectives fail before anything is stored."""
        with pytest.raises(ValidationError):
            engine.create_quest(
                "Rat Problem", objectives=[("Clear the cellar", False), (" ", False)]
            )

        assert world.quests == {}

    def test_listed_in_state_block(self, engine: RulesEngine, world: WorldState) -> None:
        """Test active quests appear in the narrator's state block."""
        _missing_merchant(engine)

        assert "The Missing Merchant [active] 0/3 objectives" in world.to_ai_context()


class TestObjectives:
    """Tests for adding and completing objectives."""

    def test_add_objective(self, engine: RulesEngine, world: WorldState) -> None:
        """Test objectives are appended to an active quest."""
        quest_id = _missing_merchant(engine)

        result = engine.add_quest_objective("the missing merchant", "Pay the ferryman", True)

        assert result.change is QuestChange.OBJECTIVE_ADDED
        assert world.quests[quest_id].objectives[-1].description == "Pay the ferryman"
        assert world.quests[quest_id].objectives[-1].optional

    def test_complete_by_partial_match(self, engine: RulesEngine, world: WorldState) -> None:
        """Test an objective can be named by part of its description."""
        quest_id = _missing_merchant(engine)

        result = engine.complete_objective(quest_id, "north road")

        assert result.objective == "Search the north road"
        assert result.completed_objectives == 1
        assert world.quests[quest_id].is_active

    def test_required_objectives_complete_quest(
        self, engine: RulesEngine, world: WorldState
    ) -> None:
        """Test finishing every required objective completes the quest."""
        quest_id = _missing_merchant(engine)
        engine.complete_objective(quest_id, "north road")

        result = engine.complete_objective(quest_id, "Bring Oswin home")

        assert world.quests[quest_id].status is QuestStatus.COMPLETED
        assert result.describe().endswith("The quest is complete!")
        assert "Quests:" not in world.to_ai_context()

    def test_objective_completed_twice(self, engine: RulesEngine) -> None:
        """Test an objective cannot be ticked off twice."""
        quest_id = _missing_merchant(engine)
        engine.complete_objective(quest_id, "ferryman")

        with pytest.raises(StateInvariantViolation):
            engine.complete_objective(quest_id, "ferryman")

    def test_unknown_objective(self, engine: RulesEngine) -> None:
        """Test an unmatched objective raises UnknownEntityError."""
        quest_id = _missing_merchant(engine)

        with pytest.raises(UnknownEntityError):
            engine.complete_objective(quest_id, "slay the dragon")


class TestQuestOutcome:
    """Tests for completing and failing quests."""

    def test_complete_quest(self, engine: RulesEngine, world: WorldState) -> None:
        """Test a quest can be completed directly with a note."""
        quest_id = _missing_merchant(engine)

        result = engine.complete_quest("The Missing Merchant", "Oswin was found alive.")

        assert world.quests[quest_id].status is QuestStatus.COMPLETED
        assert result.describe() == "Quest The Missing Merchant completed. Oswin was found alive."

    def test_fail_quest_needs_reason(self, engine: RulesEngine) -> None:
        """Test failing a quest requires a reason."""
        _missing_merchant(engine)

        with pytest.raises(ValidationError):
            engine.fail_quest("The Missing Merchant", "  ")

    def test_finished_quest_is_closed(self, engine: RulesEngine) -> None:
        """Test a failed quest accepts no further changes."""
        _missing_merchant(engine)
        engine.fail_quest("The Missing Merchant", "Oswin drowned.")

        with pytest.raises(StateInvariantViolation) as exc_info:
            engine.add_quest_objective("The Missing Merchant", "Mourn Oswin")

        assert exc_info.value.details["current_state"] == "failed"

    def test_unknown_quest(self, engine: RulesEngine) -> None:
        """Test unknown quests raise UnknownEntityError."""
        with pytest.raises(UnknownEntityError):
            engine.complete_quest("The Lost Crown")
