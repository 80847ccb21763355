"""Tests for conditions, rests, travel and the world clock."""

from __future__ import annotations

import pytest

from dungeon_chronicle.core.exceptions import (
    StateInvariantViolation,
    UnknownEntityError,
    ValidationError,
)
from dungeon_chronicle.engine.dice import DiceEvaluator
from dungeon_chronicle.engine.rules import RulesEngine
from dungeon_chronicle.models import Character, Condition, DamageType, Location, WorldState


class TestConditions:
    """Tests for applying and removing conditions."""

    def test_apply_condition(self, engine: RulesEngine, world: WorldState) -> None:
        """Test applying a new condition."""
        result = engine.apply_condition("goblin", Condition.POISONED, 3, "spider bite")

        active = world.characters["goblin"].get_condition(Condition.POISONED)
        assert result.changed
        assert active is not None
        assert active.duration_rounds == 3
        assert active.source == "spider bite"

    def test_reapply_is_noop(self, engine: RulesEngine, world: WorldState) -> None:
        """Test applying an active condition changes nothing."""
        engine.apply_condition("goblin", Condition.PRONE)

        result = engine.apply_condition("goblin", Condition.PRONE)

        assert not result.changed
        assert len(world.characters["goblin"].conditions) == 1

    def test_remove_absent_is_noop(self, engine: RulesEngine) -> None:
        """Test removing a condition that is not there succeeds without change."""
        result = engine.remove_condition("goblin", Condition.BLINDED)

        assert not result.changed
        assert not result.active

    def test_zero_duration_rejected(self, engine: RulesEngine) -> None:
        """Test durations must be at least one round."""
        with pytest.raises(ValidationError):
            engine.apply_condition("goblin", Condition.STUNNED, 0)

    def test_unknown_target(self, engine: RulesEngine) -> None:
        """Test conditions on unknown characters raise UnknownEntityError."""
        with pytest.raises(UnknownEntityError):
            engine.apply_condition("nobody", Condition.STUNNED)


class TestRests:
    """Tests for short and long rests."""

    def test_short_rest_advances_clock(self, engine: RulesEngine, world: WorldState) -> None:
        """Test a short rest takes one hour."""
        result = engine.short_rest()

        assert result.hours == 1
        assert world.clock.hour == 11

    def test_long_rest_restores_living(self, engine: RulesEngine, world: WorldState) -> None:
        """Test a long rest heals the living and leaves the dead alone."""
        engine.apply_damage("hero", 9, DamageType.SLASHING)
        engine.apply_damage("goblin", 20, DamageType.SLASHING)

        result = engine.long_rest()

        hero = world.characters["hero"]
        assert result.restored == ["Aldric"]
        assert hero.hp.current == 9
        assert not hero.has_condition(Condition.UNCONSCIOUS)
        assert world.characters["goblin"].dead
        assert world.clock.hour == 18

    def test_rest_blocked_in_combat(self, engine: RulesEngine, world: WorldState) -> None:
        """Test rests are not allowed while combat is active."""
        engine.start_combat(["hero", "goblin"])
        before = world.clock.label()

        with pytest.raises(StateInvariantViolation):
            engine.long_rest()

        assert world.clock.label() == before


class TestTravelAndTime:
    """Tests for change_location and advance_time."""

    def test_new_location_created(self, engine: RulesEngine, world: WorldState) -> None:
        """Test naming an unknown location creates it and moves the party."""
        result = engine.change_location("Old Mill", "A ruined watermill.")

        assert result.created
        assert result.location_id == "old-mill"
        assert world.current_location_id == "old-mill"
        assert world.characters["hero"].location_id == "old-mill"
        assert world.characters["goblin"].location_id == "tavern"

    def test_existing_location_by_name(self, engine: RulesEngine, world: WorldState) -> None:
        """Test an existing location is found by name, not duplicated."""
        engine.change_location("Old Mill")

        result = engine.change_location("the gilded goose")

        assert not result.created
        assert result.location_id == "tavern"
        assert len(world.locations) == 2

    def test_empty_location_rejected(self, engine: RulesEngine) -> None:
        """Test a blank location name is rejected."""
        with pytest.raises(ValidationError):
            engine.change_location("   ")

    def test_advance_time(self, engine: RulesEngine, world: WorldState) -> None:
        """Test the clock moves forward by minutes."""
        result = engine.advance_time(90)

        assert result.minutes == 90
        assert (world.clock.hour, world.clock.minute) == (11, 30)

    def test_time_cannot_go_backwards(self, engine: RulesEngine) -> None:
        """Test zero or negative minutes are rejected."""
        with pytest.raises(ValidationError):
            engine.advance_time(0)


class TestSetup:
    """Tests for registering characters and locations."""

    def test_add_character(self, engine: RulesEngine, world: WorldState) -> None:
        """Test a new character is registered."""
        engine.add_character(Character(id="mira", name="Mira", location_id="tavern"))

        assert world.get_character("mira").name == "Mira"

    def test_duplicate_character_id(self, engine: RulesEngine) -> None:
        """Test character ids are unique."""
        with pytest.raises(ValidationError):
            engine.add_character(Character(id="hero", name="Impostor"))

    def test_character_at_unknown_location(self, engine: RulesEngine) -> None:
        """Test a character cannot be placed somewhere that does not exist."""
        with pytest.raises(ValidationError):
            engine.add_character(Character(id="mira", name="Mira", location_id="moon"))

    def test_first_location_becomes_current(self, dice: DiceEvaluator) -> None:
        """Test the first registered location becomes the party's location."""
        engine = RulesEngine(WorldState(), dice)

        engine.add_location(Location(id="gate", name="City Gate"))

        assert engine.world.current_location_id == "gate"
