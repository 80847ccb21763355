"""Dice evaluation backed by the d20 library.

This module is the only place randomness enters the game. The narrating
agent never supplies numbers; it asks for a roll and gets the result back.

Example:
    >>> dice = DiceEvaluator(seed=7)
    >>> dice.roll("2d6+3").total
    10
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Any

import d20

from dungeon_chronicle.core.constants import D20_MAX_FACE, D20_MIN_FACE
from dungeon_chronicle.core.exceptions import DiceRollError
from dungeon_chronicle.core.logging import get_logger
from dungeon_chronicle.models.enums import AdvantageState


logger = get_logger(__name__)

_MAX_EXPRESSION_LENGTH = 64


# =============================================================================
# Dice Result
# =============================================================================


@dataclass(frozen=True)
class DiceResult:
    """Outcome of a roll.

    Attributes:
        expression: The expression that was rolled.
        total: Final total including modifiers.
        details: d20's rendering of the individual dice.
        natural_roll: The kept d20 face, when a d20 was involved.
        dice: Kept individual die faces.
    """

    expression: str
    total: int
    details: str
    natural_roll: int | None = None
    dice: list[int] = field(default_factory=list)

    @property
    def is_critical(self) -> bool:
        return self.natural_roll == D20_MAX_FACE

    @property
    def is_fumble(self) -> bool:
        return self.natural_roll == D20_MIN_FACE

    def to_dict(self) -> dict[str, Any]:
        return {
            "expression": self.expression,
            "total": self.total,
            "details": self.details,
            "natural_roll": self.natural_roll,
            "critical": self.is_critical,
            "fumble": self.is_fumble,
        }


# =============================================================================
# Dice Evaluator
# =============================================================================


class DiceEvaluator:
    """Stateless roll evaluation.

    Subclass and override ``roll`` / ``roll_d20`` to script outcomes
    (tests do this); everything in the rules engine goes through these
    two methods.
    """

    def __init__(self, *, seed: int | None = None) -> None:
        """Initialize the evaluator.

        d20 draws from the module-level ``random`` generator, so a seed
        reseeds that generator for the whole process. Leave it unset
        outside tests and scripts.

        Args:
            seed: Optional random seed for reproducible rolls.
        """
        self._seed = seed
        if seed is not None:
            random.seed(seed)
        logger.debug("DiceEvaluator initialized", seed=seed)

    def roll(self, expression: str) -> DiceResult:
        """Roll an arbitrary dice expression.

        Args:
            expression: Dice notation (e.g. ``"1d20+5"``, ``"2d6+3"``, ``"4d6kh3"``).

        Returns:
            DiceResult with the total and the kept faces.

        Raises:
            DiceRollError: If the expression is empty, too long, or invalid.
        """
        expression = expression.strip()
        if not expression:
            raise DiceRollError("Empty dice expression", expression=expression)
        if len(expression) > _MAX_EXPRESSION_LENGTH:
            raise DiceRollError("Dice expression is too long", expression=expression[:32])

        try:
            result = d20.roll(expression)
        except d20.RollError as exc:
            raise DiceRollError(f"Invalid dice expression: {exc}", expression=expression) from exc

        faces = _kept_faces(result.expr)
        natural = _natural_d20(result.expr)

        logger.debug("Dice rolled", expression=expression, total=result.total, natural=natural)
        return DiceResult(
            expression=expression,
            total=result.total,
            details=str(result),
            natural_roll=natural,
            dice=faces,
        )

    def roll_d20(
        self,
        modifier: int = 0,
        advantage: AdvantageState = AdvantageState.NORMAL,
    ) -> DiceResult:
        """Roll a d20 test.

        Args:
            modifier: Flat modifier added to the kept face.
            advantage: Roll mode.

        Returns:
            DiceResult whose ``natural_roll`` is the kept face.
        """
        if advantage is AdvantageState.ADVANTAGE:
            base = "2d20kh1"
        elif advantage is AdvantageState.DISADVANTAGE:
            base = "2d20kl1"
        else:
            base = "1d20"

        rolled = self.roll(base)
        natural = rolled.total
        sign = "+" if modifier >= 0 else "-"
        return DiceResult(
            expression=f"{base}{sign}{abs(modifier)}",
            total=natural + modifier,
            details=f"{rolled.details} {sign} {abs(modifier)}",
            natural_roll=natural,
            dice=rolled.dice,
        )


# =============================================================================
# Expression tree helpers
# =============================================================================


def _kept_faces(node: Any) -> list[int]:
    faces: list[int] = []

    def traverse(current: Any) -> None:
        if isinstance(current, d20.Dice):
            for die in current.values:
                if die.kept:
                    faces.append(die.number)
        elif hasattr(current, "children"):
            for child in current.children:
                traverse(child)

    traverse(node)
    return faces


def _natural_d20(node: Any) -> int | None:
    """First kept d20 face in the expression tree, if any."""
    if isinstance(node, d20.Dice):
        if node.size == 20:
            for die in node.values:
                if die.kept:
                    return die.number
        return None
    for child in getattr(node, "children", []):
        found = _natural_d20(child)
        if found is not None:
            return found
    return None


__all__ = ["DiceResult", "DiceEvaluator"]
