"""Core module providing configuration, logging, and base exceptions.

Exports:
    Exceptions:
        ChronicleError: Base exception for all application errors.
        ValidationError: Bad tool arguments or unknown ids.
        StateInvariantViolation: World-state preconditions that do not hold.
        PersistenceError: Snapshot I/O and format errors.

    Configuration:
        Settings: Main application settings class.
        get_settings: Get the settings singleton.
        clear_settings_cache: Force settings reload.

    Logging:
        configure_logging: Set up application logging.
        get_logger: Get a configured logger instance.
        turn_context: Bind session and turn context for a block.
"""

from __future__ import annotations

from dungeon_chronicle.core.config import (
    AIProviderSettings,
    ContextSettings,
    OrchestratorSettings,
    RulesSettings,
    Settings,
    StorageSettings,
    clear_settings_cache,
    get_settings,
)
from dungeon_chronicle.core.exceptions import (
    AIConnectionError,
    AIControlError,
    AIRateLimitError,
    AIResponseError,
    ChronicleError,
    CombatAlreadyActive,
    CombatError,
    ConfigurationError,
    DiceRollError,
    GameEngineError,
    InvalidActor,
    NoActiveCombat,
    OrchestrationError,
    PersistenceError,
    RoundTripExhausted,
    SessionBusyError,
    SnapshotCorruptedError,
    StateInvariantViolation,
    UnknownEntityError,
    UnknownToolError,
    ValidationError,
)
from dungeon_chronicle.core.logging import (
    configure_logging,
    get_logger,
    turn_context,
)


__all__ = [
    # Base exception
    "ChronicleError",
    # Configuration & validation exceptions
    "ConfigurationError",
    "ValidationError",
    "UnknownEntityError",
    "InvalidActor",
    "UnknownToolError",
    # Game engine exceptions
    "GameEngineError",
    "StateInvariantViolation",
    "CombatError",
    "CombatAlreadyActive",
    "NoActiveCombat",
    "DiceRollError",
    # Orchestration exceptions
    "OrchestrationError",
    "RoundTripExhausted",
    "SessionBusyError",
    # AI control exceptions
    "AIControlError",
    "AIConnectionError",
    "AIResponseError",
    "AIRateLimitError",
    # Persistence exceptions
    "PersistenceError",
    "SnapshotCorruptedError",
    # Configuration
    "Settings",
    "AIProviderSettings",
    "RulesSettings",
    "ContextSettings",
    "OrchestratorSettings",
    "StorageSettings",
    "get_settings",
    "clear_settings_cache",
    # Logging
    "configure_logging",
    "get_logger",
    "turn_context",
]
