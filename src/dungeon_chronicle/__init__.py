"""Dungeon Chronicle - the rules-and-memory core of an AI Dungeon Master.

NEURO-SYMBOLIC ARCHITECTURE:
- Python owns TRUTH (WorldState, dice rolls via d20, rule validation)
- The LLM handles INTERFACE (narrative, deciding which tool to call)
- The LLM NEVER directly mutates state or generates random numbers

Example:
    >>> from dungeon_chronicle import GameSession, WorldState, Character
    >>>
    >>> world = WorldState(campaign_name="Lost Mines")
    >>> session = GameSession(world)
    >>> session.engine.add_character(Character(id="thorin", name="Thorin", kind="player"))
    >>>
    >>> outcome = session.submit_player_action("I search the room for traps")
    >>> print(outcome.narration)

Modules:
    core: Configuration, logging, and base exceptions.
    models: Pydantic V2 world-state models.
    engine: Rules engine, combat state machine and dice.
    dm: Tool-execution loop, context manager and story memory.
    storage: Atomic snapshots and SQLite save slots.
"""

from __future__ import annotations

# Core
from dungeon_chronicle.core.config import Settings, get_settings
from dungeon_chronicle.core.exceptions import ChronicleError
from dungeon_chronicle.core.logging import configure_logging, get_logger

# World state (the source of truth)
from dungeon_chronicle.models import (
    Character,
    CombatSession,
    Location,
    NarrativeEntry,
    WorldClock,
    WorldState,
)

# Rules
from dungeon_chronicle.engine import DiceEvaluator, RulesEngine

# DM
from dungeon_chronicle.dm import (
    ContextManager,
    DMOrchestrator,
    OpenAINarrator,
    StoryMemory,
    TurnResult,
)

# Persistence
from dungeon_chronicle.storage import SessionSnapshot, SessionStore, read_snapshot, write_snapshot

# Session
from dungeon_chronicle.session import GameSession, OperationResult, TurnOutcome


__version__ = "0.1.0"
__all__ = [
    # Version info
    "__version__",
    # Core
    "ChronicleError",
    "Settings",
    "get_settings",
    "configure_logging",
    "get_logger",
    # World state
    "Character",
    "CombatSession",
    "Location",
    "NarrativeEntry",
    "WorldClock",
    "WorldState",
    # Rules
    "DiceEvaluator",
    "RulesEngine",
    # DM
    "ContextManager",
    "DMOrchestrator",
    "OpenAINarrator",
    "StoryMemory",
    "TurnResult",
    # Persistence
    "SessionSnapshot",
    "SessionStore",
    "read_snapshot",
    "write_snapshot",
    # Session
    "GameSession",
    "OperationResult",
    "TurnOutcome",
]
