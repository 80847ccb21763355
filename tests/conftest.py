"""Pytest configuration and shared fixtures.

This module provides common fixtures and configuration for all tests
in the Dungeon Chronicle test suite: scripted dice, a scripted narrating
agent, and a small sample world (a fighter and a goblin in a tavern).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest

from dungeon_chronicle.core.config import (
    ContextSettings,
    OrchestratorSettings,
    RulesSettings,
    Settings,
    StorageSettings,
)
from dungeon_chronicle.dm.agent import AgentReply, ToolCall
from dungeon_chronicle.dm.context import ContextManager
from dungeon_chronicle.dm.memory import StoryMemory
from dungeon_chronicle.engine.dice import DiceEvaluator, DiceResult
from dungeon_chronicle.engine.rules import RulesEngine
from dungeon_chronicle.models import (
    Ability,
    AbilityScores,
    ActorKind,
    AdvantageState,
    Character,
    HitPoints,
    Location,
    ProficiencyLevel,
    Skill,
    WorldState,
)


if TYPE_CHECKING:
    from collections.abc import Generator


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Reset the settings cache before and after each test."""
    from dungeon_chronicle.core.config import clear_settings_cache

    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def mock_env_vars(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set up mock environment variables for testing.

    Returns:
        Dictionary of environment variables that were set.
    """
    env_vars = {
        "CHRONICLE_OPENROUTER_API_KEY": "test-openrouter-key",
        "CHRONICLE_DEBUG": "true",
        "CHRONICLE_LOG_LEVEL": "DEBUG",
        "CHRONICLE_RULES_DEATH_SAVE_DC": "12",
        "CHRONICLE_ORCHESTRATOR_MAX_ROUND_TRIPS": "5",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars


@pytest.fixture
def rules_settings() -> RulesSettings:
    return RulesSettings(death_save_dc=10, overkill_threshold_ratio=1.0)


@pytest.fixture
def context_settings() -> ContextSettings:
    return ContextSettings(
        budget_chars=3000,
        summary_max_chars=300,
        memory_max_facts=3,
        memory_max_chars=300,
        max_player_input_chars=500,
        header_reserve_chars=1600,
    )


@pytest.fixture
def orchestrator_settings() -> OrchestratorSettings:
    return OrchestratorSettings(max_round_trips=3, tool_result_max_chars=400)


@pytest.fixture
def app_settings(
    tmp_path: Path,
    rules_settings: RulesSettings,
    context_settings: ContextSettings,
    orchestrator_settings: OrchestratorSettings,
) -> Settings:
    """Application settings with small budgets and storage under tmp_path."""
    return Settings(
        rules=rules_settings,
        context=context_settings,
        orchestrator=orchestrator_settings,
        storage=StorageSettings(
            save_dir=tmp_path / "saves",
            database_path=tmp_path / "chronicle.db",
        ),
    )


# =============================================================================
# Dice Fixtures
# =============================================================================


class ScriptedDice(DiceEvaluator):
    """DiceEvaluator that returns queued natural d20 faces.

    When the queue is empty it falls back to real rolls, made repeatable
    by reseeding the shared generator.
    """

    def __init__(self, naturals: list[int] | None = None) -> None:
        super().__init__(seed=7)
        self.naturals: list[int] = list(naturals or [])

    def queue(self, *naturals: int) -> None:
        self.naturals.extend(naturals)

    def roll_d20(
        self,
        modifier: int = 0,
        advantage: AdvantageState = AdvantageState.NORMAL,
    ) -> DiceResult:
        if not self.naturals:
            return super().roll_d20(modifier, advantage)
        natural = self.naturals.pop(0)
        return DiceResult(
            expression=f"1d20{modifier:+d}",
            total=natural + modifier,
            details=f"1d20 ({natural}) {modifier:+d}",
            natural_roll=natural,
            dice=[natural],
        )


@pytest.fixture
def dice() -> ScriptedDice:
    """Scripted dice with an empty queue."""
    return ScriptedDice()


# =============================================================================
# World Fixtures
# =============================================================================


def make_fighter(**overrides: Any) -> Character:
    data: dict[str, Any] = {
        "id": "hero",
        "name": "Aldric",
        "kind": ActorKind.PLAYER,
        "abilities": AbilityScores(strength=16, dexterity=14, constitution=14, wisdom=12),
        "hp": HitPoints(current=9, maximum=9),
        "skills": {Skill.ATHLETICS: ProficiencyLevel.PROFICIENT, Skill.PERCEPTION: ProficiencyLevel.NONE},
        "save_proficiencies": [Ability.STR, Ability.CON],
        "location_id": "tavern",
    }
    data.update(overrides)
    return Character(**data)


def make_goblin(**overrides: Any) -> Character:
    data: dict[str, Any] = {
        "id": "goblin",
        "name": "Goblin",
        "kind": ActorKind.MONSTER,
        "abilities": AbilityScores(strength=8, dexterity=14),
        "hp": HitPoints(current=7, maximum=7),
        "location_id": "tavern",
    }
    data.update(overrides)
    return Character(**data)


@pytest.fixture
def world() -> WorldState:
    """A tavern with a 9/9 HP fighter and a 7/7 HP goblin."""
    tavern = Location(id="tavern", name="The Gilded Goose", description="A smoky common room.")
    return WorldState(
        campaign_name="Test Campaign",
        locations={tavern.id: tavern},
        current_location_id=tavern.id,
        characters={"hero": make_fighter(), "goblin": make_goblin()},
    )


@pytest.fixture
def engine(world: WorldState, dice: ScriptedDice, rules_settings: RulesSettings) -> RulesEngine:
    return RulesEngine(world, dice, rules_settings)


@pytest.fixture
def memory() -> StoryMemory:
    return StoryMemory()


@pytest.fixture
def context_manager(context_settings: ContextSettings) -> ContextManager:
    return ContextManager(context_settings)


# =============================================================================
# Agent Fixtures
# =============================================================================


def tool_call(tool_name: str, call_id: str, **arguments: Any) -> ToolCall:
    """Build a tool call as the agent would send it."""
    return ToolCall.from_raw(call_id, tool_name, json.dumps(arguments))


class ScriptedAgent:
    """NarratorAgent that replays queued replies.

    Queued exceptions are raised instead of returned. Every request's
    messages are recorded for inspection.
    """

    def __init__(self, replies: list[AgentReply | BaseException] | None = None) -> None:
        self.replies: list[AgentReply | BaseException] = list(replies or [])
        self.requests: list[list[dict[str, Any]]] = []
        self.tools_seen: list[list[dict[str, Any]]] = []

    def respond(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> AgentReply:
        self.requests.append([dict(message) for message in messages])
        self.tools_seen.append(tools)
        if not self.replies:
            return AgentReply(text="The story continues.")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply


class AlwaysCallingAgent:
    """NarratorAgent that requests another mutating tool call every time."""

    def __init__(self) -> None:
        self.calls = 0

    def respond(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> AgentReply:
        self.calls += 1
        return AgentReply(
            text="",
            tool_calls=[tool_call("advance_time", f"call-{self.calls}", minutes=10)],
        )


@pytest.fixture
def scripted_agent() -> ScriptedAgent:
    return ScriptedAgent()


@pytest.fixture
def always_calling_agent() -> AlwaysCallingAgent:
    return AlwaysCallingAgent()


@pytest.fixture
def call() -> Any:
    """Factory for agent tool calls: ``call("roll_dice", "c1", expression="1d6")``."""
    return tool_call
