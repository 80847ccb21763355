"""Configuration management for Dungeon Chronicle.

This module provides centralized configuration management using pydantic-settings,
supporting environment variables, .env files, and runtime configuration overrides.
All sensitive values (API keys) are handled securely using SecretStr.

Ruleset policy constants (death-save DC, overkill threshold) live here as
configuration rather than in the rules engine, so a table can pick its own
numbers without touching code.

Example:
    >>> from dungeon_chronicle.core.config import get_settings
    >>> settings = get_settings()
    >>> settings.orchestrator.max_round_trips
    8

Environment Variables:
    CHRONICLE_OPENROUTER_API_KEY: OpenRouter API key
    CHRONICLE_OPENAI_API_KEY: OpenAI API key
    CHRONICLE_RULES_DEATH_SAVE_DC: Death saving throw DC
    CHRONICLE_CONTEXT_BUDGET_CHARS: Size budget of the narrator payload
    CHRONICLE_ORCHESTRATOR_MAX_ROUND_TRIPS: Tool round-trip cap per turn
    CHRONICLE_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dungeon_chronicle.core.exceptions import ConfigurationError


class AIProviderSettings(BaseSettings):
    """Configuration for the narrating agent's model provider.

    Attributes:
        openrouter_api_key: OpenRouter API key (primary).
        openai_api_key: OpenAI API key, used when no OpenRouter key is set.
        base_url: Base URL of the OpenAI-compatible endpoint.
        model: Model identifier used for narration.
        summary_model: Model identifier used for conversation summaries.
        temperature: Sampling temperature for narration.
        max_tokens: Maximum tokens per narration response.
        max_retries: Maximum number of API retry attempts.
        timeout_seconds: API request timeout in seconds.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHRONICLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    openrouter_api_key: SecretStr | None = Field(
        default=None,
        description="OpenRouter API key (primary)",
    )
    openai_api_key: SecretStr | None = Field(
        default=None,
        description="OpenAI API key",
    )
    base_url: str = Field(
        default="https://openrouter.ai/api/v1",
        description="OpenAI-compatible endpoint",
    )
    model: str = Field(
        default="google/gemini-2.0-flash-001",
        description="Narration model",
    )
    summary_model: str = Field(
        default="google/gemini-2.0-flash-001",
        description="Summarization model",
    )
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Narration temperature",
    )
    max_tokens: int = Field(
        default=1200,
        ge=64,
        le=16000,
        description="Maximum tokens per response",
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum API retry attempts",
    )
    timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        le=300,
        description="API request timeout",
    )

    def resolve_api_key(self) -> str | None:
        """Return the first configured API key as plain text."""
        for key in (self.openrouter_api_key, self.openai_api_key):
            if key is not None:
                return key.get_secret_value()
        return None


class RulesSettings(BaseSettings):
    """Ruleset policy constants consumed by the rules engine.

    Attributes:
        death_save_dc: DC a death saving throw must meet or beat.
        overkill_threshold_ratio: Fraction of max HP that leftover damage
            must reach for a character to die outright.
        damage_at_zero_adds_failure: Whether damage taken while already at
            0 HP records a death-save failure.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHRONICLE_RULES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    death_save_dc: int = Field(
        default=10,
        ge=2,
        le=20,
        description="Death saving throw DC",
    )
    overkill_threshold_ratio: float = Field(
        default=1.0,
        gt=0.0,
        le=10.0,
        description="Leftover damage / max HP ratio that kills outright",
    )
    damage_at_zero_adds_failure: bool = Field(
        default=False,
        description="Damage at 0 HP records a death-save failure",
    )


class ContextSettings(BaseSettings):
    """Size budget for the payload sent to the narrating agent.

    Sizes are measured in characters of message content.

    Attributes:
        budget_chars: Hard cap on the assembled payload.
        summary_max_chars: Cap on the rolling conversation summary.
        memory_max_facts: Maximum number of memory facts in the excerpt.
        memory_max_chars: Cap on the memory excerpt.
        max_player_input_chars: Longest player input accepted per turn.
        header_reserve_chars: Room kept for the system prompt and the
            world-state block.
        memory_decay: Per-turn decay applied to fact relevance weights.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHRONICLE_CONTEXT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    budget_chars: int = Field(
        default=12000,
        ge=1000,
        le=500000,
        description="Payload size budget",
    )
    summary_max_chars: int = Field(
        default=1500,
        ge=0,
        description="Conversation summary cap",
    )
    memory_max_facts: int = Field(
        default=8,
        ge=0,
        le=100,
        description="Memory excerpt fact cap",
    )
    memory_max_chars: int = Field(
        default=1500,
        ge=0,
        description="Memory excerpt size cap",
    )
    max_player_input_chars: int = Field(
        default=2000,
        ge=1,
        description="Maximum player input length",
    )
    header_reserve_chars: int = Field(
        default=2000,
        ge=0,
        description="Room kept for the system prompt and world state",
    )
    memory_decay: float = Field(
        default=0.9,
        gt=0.0,
        le=1.0,
        description="Per-turn fact weight decay",
    )

    @model_validator(mode="after")
    def validate_reservations(self) -> "ContextSettings":
        """Ensure fixed reservations leave room for recent dialogue.

        Returns:
            Self if validation passes.

        Raises:
            ConfigurationError: If the header reserve, summary, memory and
                one player input cannot fit together in the budget.
        """
        reserved = (
            self.header_reserve_chars
            + self.summary_max_chars
            + self.memory_max_chars
            + self.max_player_input_chars
        )
        if reserved >= self.budget_chars:
            raise ConfigurationError(
                f"header_reserve_chars + summary_max_chars + memory_max_chars + "
                f"max_player_input_chars "
                f"({reserved}) must be less than budget_chars ({self.budget_chars})",
                config_key="budget_chars",
            )
        return self


class OrchestratorSettings(BaseSettings):
    """Configuration for the tool-execution loop.

    Attributes:
        max_round_trips: Maximum agent round-trips per player turn.
        tool_result_max_chars: Truncation length of tool output sent back.
        fallback_narration: Narration used when a turn is aborted.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHRONICLE_ORCHESTRATOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    max_round_trips: int = Field(
        default=8,
        ge=1,
        le=32,
        description="Round-trip cap per turn",
    )
    tool_result_max_chars: int = Field(
        default=600,
        ge=50,
        description="Tool output truncation length",
    )
    fallback_narration: str = Field(
        default="The DM pauses to think, and the moment passes. What do you do?",
        description="Narration used when a turn is aborted",
    )


class StorageSettings(BaseSettings):
    """Configuration for snapshot storage paths.

    Attributes:
        save_dir: Directory for snapshot files.
        database_path: Path to the SQLite save-slot database.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHRONICLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    save_dir: Path = Field(
        default=Path("data/saves"),
        description="Directory for snapshot files",
    )
    database_path: Path = Field(
        default=Path("data/chronicle.db"),
        description="Path to SQLite database",
    )


class Settings(BaseSettings):
    """Main application settings aggregating all configuration domains.

    Attributes:
        app_name: Application name.
        app_version: Application version string.
        debug: Enable debug mode.
        log_level: Application logging level.
        log_json: Emit JSON logs instead of console output.
        ai: Narrating agent provider settings.
        rules: Ruleset policy constants.
        context: Payload budget settings.
        orchestrator: Tool loop settings.
        storage: Snapshot storage settings.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHRONICLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # Application metadata
    app_name: str = Field(
        default="Dungeon Chronicle",
        description="Application name",
    )
    app_version: str = Field(
        default="0.1.0",
        description="Application version",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_json: bool = Field(
        default=False,
        description="Emit JSON logs",
    )

    # Nested settings - using Field with default_factory
    ai: AIProviderSettings = Field(default_factory=AIProviderSettings)
    rules: RulesSettings = Field(default_factory=RulesSettings)
    context: ContextSettings = Field(default_factory=ContextSettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The application Settings instance.

    Raises:
        ConfigurationError: If required configuration is missing or invalid.
    """
    try:
        return Settings()
    except ConfigurationError:
        raise
    except Exception as exc:
        raise ConfigurationError(
            f"Failed to load application settings: {exc}",
            details={"original_error": str(exc)},
        ) from exc


def clear_settings_cache() -> None:
    """Clear the settings cache, forcing a reload on next access.

    This is primarily useful for testing or when environment variables
    have changed at runtime.
    """
    get_settings.cache_clear()


__all__ = [
    "AIProviderSettings",
    "RulesSettings",
    "ContextSettings",
    "OrchestratorSettings",
    "StorageSettings",
    "Settings",
    "get_settings",
    "clear_settings_cache",
]
