"""Tests for dice evaluation."""

from __future__ import annotations

import random

import pytest

from dungeon_chronicle.core.exceptions import DiceRollError
from dungeon_chronicle.engine.dice import DiceEvaluator
from dungeon_chronicle.models import AdvantageState


@pytest.fixture
def evaluator() -> DiceEvaluator:
    """Seeded evaluator for reproducible rolls."""
    return DiceEvaluator(seed=42)


class TestDiceEvaluator:
    """Tests for the DiceEvaluator class."""

    def test_simple_d20_roll(self, evaluator: DiceEvaluator) -> None:
        """Test a d20 roll records its natural face."""
        result = evaluator.roll("1d20")

        assert 1 <= result.total <= 20
        assert result.natural_roll == result.total
        assert len(result.dice) == 1

    def test_roll_with_modifier(self, evaluator: DiceEvaluator) -> None:
        """Test a flat modifier is included in the total."""
        result = evaluator.roll("1d20+5")

        assert result.natural_roll is not None
        assert result.total == result.natural_roll + 5

    def test_multiple_dice(self, evaluator: DiceEvaluator) -> None:
        """Test rolling several dice keeps every face."""
        result = evaluator.roll("3d6")

        assert 3 <= result.total <= 18
        assert len(result.dice) == 3
        assert result.natural_roll is None

    def test_keep_highest(self, evaluator: DiceEvaluator) -> None:
        """Test dropped dice are not reported as kept faces."""
        result = evaluator.roll("4d6kh3")

        assert len(result.dice) == 3
        assert result.total == sum(result.dice)

    def test_invalid_expression(self, evaluator: DiceEvaluator) -> None:
        """Test malformed notation raises DiceRollError."""
        with pytest.raises(DiceRollError) as exc_info:
            evaluator.roll("1d20+")

        assert exc_info.value.details["expression"] == "1d20+"

    def test_empty_expression(self, evaluator: DiceEvaluator) -> None:
        """Test an empty expression raises DiceRollError."""
        with pytest.raises(DiceRollError):
            evaluator.roll("   ")

    def test_expression_too_long(self, evaluator: DiceEvaluator) -> None:
        """Test oversized expressions are refused before evaluation."""
        with pytest.raises(DiceRollError):
            evaluator.roll("+".join(["1d6"] * 30))


class TestD20Tests:
    """Tests for DiceEvaluator.roll_d20."""

    def test_modifier_applied(self, evaluator: DiceEvaluator) -> None:
        """Test the modifier is added to the kept face."""
        result = evaluator.roll_d20(3)

        assert result.natural_roll is not None
        assert result.total == result.natural_roll + 3
        assert result.expression == "1d20+3"

    def test_negative_modifier(self, evaluator: DiceEvaluator) -> None:
        """Test negative modifiers render and apply correctly."""
        result = evaluator.roll_d20(-2)

        assert result.expression == "1d20-2"
        assert result.natural_roll is not None
        assert result.total == result.natural_roll - 2

    @pytest.mark.parametrize(
        ("advantage", "base"),
        [
            (AdvantageState.ADVANTAGE, "2d20kh1"),
            (AdvantageState.DISADVANTAGE, "2d20kl1"),
        ],
    )
    def test_advantage_modes(
        self,
        evaluator: DiceEvaluator,
        advantage: AdvantageState,
        base: str,
    ) -> None:
        """Test advantage and disadvantage roll two dice and keep one."""
        result = evaluator.roll_d20(0, advantage)

        assert result.expression.startswith(base)
        assert len(result.dice) == 1
        assert 1 <= (result.natural_roll or 0) <= 20

    def test_critical_flags(self) -> None:
        """Test is_critical and is_fumble follow the natural face."""
        evaluator = DiceEvaluator(seed=1)
        for _ in range(200):
            result = evaluator.roll_d20(0)
            assert result.is_critical == (result.natural_roll == 20)
            assert result.is_fumble == (result.natural_roll == 1)

    def test_to_dict(self, evaluator: DiceEvaluator) -> None:
        """Test the serialized form carries the flags."""
        data = evaluator.roll("1d20").to_dict()

        assert set(data) == {"expression", "total", "details", "natural_roll", "critical", "fumble"}


class TestSeeding:
    """Tests for the evaluator's effect on the shared random generator."""

    def test_unseeded_leaves_generator_alone(self) -> None:
        """Test constructing without a seed does not reseed ``random``."""
        random.seed(123)
        state = random.getstate()

        DiceEvaluator()

        assert random.getstate() == state

    def test_same_seed_same_rolls(self) -> None:
        """Test a seed makes the following rolls reproducible."""
        first = [DiceEvaluator(seed=9).roll("3d6").total]
        second = [DiceEvaluator(seed=9).roll("3d6").total]

        assert first == second
