"""Application-wide constants for Dungeon Chronicle.

Mechanical constants that are fixed by the shape of the game rather than
by table policy. Policy numbers (death-save DC, overkill threshold) are
configuration, see ``dungeon_chronicle.core.config.RulesSettings``.
"""

from __future__ import annotations

# =============================================================================
# Ability Scores
# =============================================================================

MIN_ABILITY_SCORE = 1
"""Minimum ability score (1 is barely functioning)."""

MAX_ABILITY_SCORE = 30
"""Maximum ability score (monsters and deities)."""

DEFAULT_ABILITY_SCORE = 10
"""Ability score of an unremarkable creature."""

DEFAULT_PROFICIENCY_BONUS = 2
"""Proficiency bonus of a level 1 character."""

# =============================================================================
# Combat Constants
# =============================================================================

MAX_DEATH_SAVES = 3
"""Death saving throws (3 successes = stable, 3 failures = dead)."""

D20_MAX_FACE = 20
"""Natural roll counted as a critical (two successes on a death save)."""

D20_MIN_FACE = 1
"""Natural roll counted as a fumble (two failures on a death save)."""

FIRST_COMBAT_ROUND = 1
"""Round number of a freshly started combat."""

# =============================================================================
# World Clock
# =============================================================================

DAYS_PER_MONTH = 30
"""Days in every in-world month."""

MONTHS_PER_YEAR = 12
"""Months in an in-world year."""

SHORT_REST_HOURS = 1
"""In-world duration of a short rest."""

LONG_REST_HOURS = 8
"""In-world duration of a long rest."""

# =============================================================================
# Persistence
# =============================================================================

SNAPSHOT_FORMAT_VERSION = 1
"""Version tag written into every session snapshot."""

# =============================================================================
# Logging
# =============================================================================

LOG_VALUE_MAX_CHARS = 200
"""Longest string value rendered in a log entry before clipping."""


__all__ = [
    # Ability scores
    "MIN_ABILITY_SCORE",
    "MAX_ABILITY_SCORE",
    "DEFAULT_ABILITY_SCORE",
    "DEFAULT_PROFICIENCY_BONUS",
    # Combat
    "MAX_DEATH_SAVES",
    "D20_MAX_FACE",
    "D20_MIN_FACE",
    "FIRST_COMBAT_ROUND",
    # Clock
    "DAYS_PER_MONTH",
    "MONTHS_PER_YEAR",
    "SHORT_REST_HOURS",
    "LONG_REST_HOURS",
    # Persistence
    "SNAPSHOT_FORMAT_VERSION",
    # Logging
    "LOG_VALUE_MAX_CHARS",
]
