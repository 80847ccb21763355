"""Custom exception hierarchy for Dungeon Chronicle.

This module defines the exception hierarchy used across the rules engine,
the tool-execution loop, and persistence. All exceptions inherit from
ChronicleError, enabling unified error handling at the session boundary
while preserving domain-specific context.

Errors fall into four families that the orchestrator treats differently:

- ValidationError: bad tool arguments or unknown ids. Reported back to the
  narrating agent as a failed tool result, never fatal to the session.
- StateInvariantViolation: a precondition on world state does not hold
  (e.g. starting combat while one is active). Reported, the turn continues.
- OrchestrationError: the turn itself cannot complete normally.
- PersistenceError: save/load failures, surfaced to the caller.

Example:
    >>> from dungeon_chronicle.core.exceptions import CombatAlreadyActive
    >>> raise CombatAlreadyActive("Combat is already running", round_number=2)
"""

from __future__ import annotations

from typing import Any


class ChronicleError(Exception):
    """Base exception for all Dungeon Chronicle errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary containing additional error context.
    """

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        """Initialize the base exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary containing additional error context.
        """
        self.message = message
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the exception message with optional details.

        Returns:
            Formatted error message including any provided details.
        """
        if self.details:
            detail_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} [{detail_str}]"
        return self.message

    def __repr__(self) -> str:
        """Return a detailed string representation of the exception.

        Returns:
            String representation suitable for debugging.
        """
        return f"{self.__class__.__name__}(message={self.message!r}, details={self.details!r})"


# =============================================================================
# Configuration & Validation Exceptions
# =============================================================================


class ConfigurationError(ChronicleError):
    """Raised when application configuration is invalid.

    This includes missing required settings, invalid values, or
    incompatible configuration combinations.
    """

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize configuration error with config key context.

        Args:
            message: Human-readable error description.
            config_key: The configuration key that caused the error.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if config_key:
            combined_details["config_key"] = config_key
        super().__init__(message, details=combined_details)


class ValidationError(ChronicleError):
    """Raised when tool arguments or referenced ids fail validation.

    Inside the tool loop this is reported back to the narrating agent
    as a failed tool result so it can adjust its narration.
    """

    def __init__(
        self,
        message: str,
        *,
        field_name: str | None = None,
        invalid_value: Any | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize validation error with field context.

        Args:
            message: Human-readable error description.
            field_name: Name of the field that failed validation.
            invalid_value: The value that failed validation.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if field_name:
            combined_details["field_name"] = field_name
        if invalid_value is not None:
            combined_details["invalid_value"] = invalid_value
        super().__init__(message, details=combined_details)


class UnknownEntityError(ValidationError):
    """Raised when an id or name does not resolve to a live entity."""

    def __init__(
        self,
        message: str,
        *,
        entity_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize unknown entity error.

        Args:
            message: Human-readable error description.
            entity_id: The identifier that failed to resolve.
            details: Optional dictionary containing additional error context.
        """
        super().__init__(message, field_name="target", invalid_value=entity_id, details=details)
        self.entity_id = entity_id


class InvalidActor(ValidationError):
    """Raised when an actor cannot perform the requested check.

    For example, a skill check against a skill the actor has no
    proficiency record for.
    """

    def __init__(
        self,
        message: str,
        *,
        actor_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize invalid actor error.

        Args:
            message: Human-readable error description.
            actor_id: Identifier of the offending actor.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if actor_id:
            combined_details["actor_id"] = actor_id
        super().__init__(message, details=combined_details)


class UnknownToolError(ValidationError):
    """Raised when the agent calls a tool that is not in the catalog."""

    def __init__(
        self,
        message: str,
        *,
        tool_name: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize unknown tool error.

        Args:
            message: Human-readable error description.
            tool_name: The tool name the agent asked for.
            details: Optional dictionary containing additional error context.
        """
        super().__init__(message, field_name="tool_name", invalid_value=tool_name, details=details)
        self.tool_name = tool_name


# =============================================================================
# Game Engine Domain Exceptions
# =============================================================================


class GameEngineError(ChronicleError):
    """Base exception for all rules engine errors."""


class StateInvariantViolation(GameEngineError):
    """Raised when an operation's precondition on world state does not hold.

    Also raised when a mutation would leave cross-entity references
    dangling (e.g. a combat session pointing at a missing character).
    """

    def __init__(
        self,
        message: str,
        *,
        current_state: str | None = None,
        expected_states: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize invariant violation with state context.

        Args:
            message: Human-readable error description.
            current_state: The current state identifier.
            expected_states: List of valid states that were expected.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if current_state:
            combined_details["current_state"] = current_state
        if expected_states:
            combined_details["expected_states"] = expected_states
        super().__init__(message, details=combined_details)


class CombatError(StateInvariantViolation):
    """Raised when a combat transition is not allowed in the current state."""

    def __init__(
        self,
        message: str,
        *,
        combatant_id: str | None = None,
        round_number: int | None = None,
        current_state: str | None = None,
        expected_states: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize combat error with combat context.

        Args:
            message: Human-readable error description.
            combatant_id: Identifier of the combatant involved.
            round_number: Current combat round when error occurred.
            current_state: The current combat state identifier.
            expected_states: Combat states the operation requires.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if combatant_id:
            combined_details["combatant_id"] = combatant_id
        if round_number is not None:
            combined_details["round_number"] = round_number
        super().__init__(
            message,
            current_state=current_state,
            expected_states=expected_states,
            details=combined_details,
        )


class CombatAlreadyActive(CombatError):
    """Raised by start_combat when a combat session already exists."""

    def __init__(self, message: str = "Combat is already active", **kwargs: Any) -> None:
        kwargs.setdefault("current_state", "in_combat")
        kwargs.setdefault("expected_states", ["out_of_combat"])
        super().__init__(message, **kwargs)


class NoActiveCombat(CombatError):
    """Raised by combat operations when no combat session exists."""

    def __init__(self, message: str = "No combat is active", **kwargs: Any) -> None:
        kwargs.setdefault("current_state", "out_of_combat")
        kwargs.setdefault("expected_states", ["in_combat"])
        super().__init__(message, **kwargs)


class DiceRollError(GameEngineError):
    """Raised when a dice expression cannot be evaluated."""

    def __init__(
        self,
        message: str,
        *,
        expression: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize dice roll error with expression context.

        Args:
            message: Human-readable error description.
            expression: The dice expression that caused the error.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if expression:
            combined_details["expression"] = expression
        super().__init__(message, details=combined_details)


# =============================================================================
# Orchestration Exceptions
# =============================================================================


class OrchestrationError(ChronicleError):
    """Base exception for failures of the turn protocol itself."""


class RoundTripExhausted(OrchestrationError):
    """Raised when the agent keeps requesting tools past the round-trip cap."""

    def __init__(
        self,
        message: str,
        *,
        max_round_trips: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize round-trip exhaustion error.

        Args:
            message: Human-readable error description.
            max_round_trips: The configured cap that was hit.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if max_round_trips is not None:
            combined_details["max_round_trips"] = max_round_trips
        super().__init__(message, details=combined_details)


class SessionBusyError(OrchestrationError):
    """Raised when save/load is attempted while a turn is in progress."""


# =============================================================================
# AI Control Domain Exceptions
# =============================================================================


class AIControlError(ChronicleError):
    """Base exception for all narrating-agent errors.

    Raised when there are issues with model interactions, including
    API calls and response parsing.
    """

    def __init__(
        self,
        message: str,
        *,
        model: str | None = None,
        provider: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize AI control error with model context.

        Args:
            message: Human-readable error description.
            model: Name of the AI model involved.
            provider: Name of the AI provider (e.g., 'openrouter', 'openai').
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if model:
            combined_details["model"] = model
        if provider:
            combined_details["provider"] = provider
        super().__init__(message, details=combined_details)


class AIConnectionError(AIControlError):
    """Raised when connection to an AI service fails."""


class AIResponseError(AIControlError):
    """Raised when an AI response cannot be processed."""


class AIRateLimitError(AIControlError):
    """Raised when AI API rate limits are exceeded.

    This exception includes retry timing information when available.
    """

    def __init__(
        self,
        message: str,
        *,
        retry_after_seconds: float | None = None,
        model: str | None = None,
        provider: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize rate limit error with retry context.

        Args:
            message: Human-readable error description.
            retry_after_seconds: Seconds to wait before retrying.
            model: Name of the AI model involved.
            provider: Name of the AI provider.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if retry_after_seconds is not None:
            combined_details["retry_after_seconds"] = retry_after_seconds
        super().__init__(message, model=model, provider=provider, details=combined_details)


# =============================================================================
# Persistence Exceptions
# =============================================================================


class PersistenceError(ChronicleError):
    """Raised when a snapshot cannot be written or read."""

    def __init__(
        self,
        message: str,
        *,
        path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize persistence error with path context.

        Args:
            message: Human-readable error description.
            path: Filesystem path involved.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if path:
            combined_details["path"] = path
        super().__init__(message, details=combined_details)


class SnapshotCorruptedError(PersistenceError):
    """Raised when a snapshot exists but is malformed or fails validation."""


__all__ = [
    # Base exception
    "ChronicleError",
    # Configuration & validation
    "ConfigurationError",
    "ValidationError",
    "UnknownEntityError",
    "InvalidActor",
    "UnknownToolError",
    # Game engine
    "GameEngineError",
    "StateInvariantViolation",
    "CombatError",
    "CombatAlreadyActive",
    "NoActiveCombat",
    "DiceRollError",
    # Orchestration
    "OrchestrationError",
    "RoundTripExhausted",
    "SessionBusyError",
    # AI control
    "AIControlError",
    "AIConnectionError",
    "AIResponseError",
    "AIRateLimitError",
    # Persistence
    "PersistenceError",
    "SnapshotCorruptedError",
]
