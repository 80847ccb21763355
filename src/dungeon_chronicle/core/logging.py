"""Structured logging for Dungeon Chronicle.

Every module logs through structlog with key/value context. Turns are
logged with the session id and turn number bound for their duration, so
one grep pulls out everything a single player turn did: the request, each
tool call, rollbacks and the final narration.

Player input, narration and tool output can be long, so string values are
clipped before rendering. Anything that looks like a credential is masked.

Example:
    >>> from dungeon_chronicle.core.logging import get_logger, turn_context
    >>> logger = get_logger(__name__)
    >>> with turn_context(session_id="abc123", turn=4):
    ...     logger.info("Tool executed", tool="apply_damage", mutated=True)
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import Processor

from dungeon_chronicle.core.constants import LOG_VALUE_MAX_CHARS


if TYPE_CHECKING:
    from collections.abc import Iterator

    from structlog.types import EventDict, WrappedLogger

    from dungeon_chronicle.core.config import Settings


_SECRET_MARKERS = ("api_key", "secret", "password", "authorization")
_NOISY_LIBRARIES = ("httpx", "httpcore", "openai")


# =============================================================================
# Processors
# =============================================================================


def add_app_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    event_dict["app"] = "dungeon_chronicle"
    return event_dict


def mask_secrets(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Replace values of credential-like keys with a fixed mask."""
    for key in event_dict:
        if any(marker in key.lower() for marker in _SECRET_MARKERS):
            event_dict[key] = "***"
    return event_dict


def clip_long_values(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Clip string values to ``LOG_VALUE_MAX_CHARS``.

    The event message itself is left alone.
    """
    for key, value in event_dict.items():
        if key == "event" or not isinstance(value, str):
            continue
        overflow = len(value) - LOG_VALUE_MAX_CHARS
        if overflow > 0:
            event_dict[key] = f"{value[:LOG_VALUE_MAX_CHARS]}... (+{overflow})"
    return event_dict


# =============================================================================
# Setup
# =============================================================================


def configure_logging(
    settings: Settings | None = None,
    *,
    log_file: str | None = None,
) -> None:
    """Configure structlog and the standard library root logger.

    Args:
        settings: Application settings; ``log_level`` and ``log_json`` are
            read from here. Loaded with ``get_settings`` when omitted.
        log_file: Optional file that also receives standard library logs.
    """
    if settings is None:
        from dungeon_chronicle.core.config import get_settings

        settings = get_settings()

    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_app_context,
        mask_secrets,
        clip_long_values,
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.log_json:
        renderer: list[Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderer = [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]

    structlog.configure(
        processors=[*shared_processors, *renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        level=level,
        stream=sys.stdout,
        force=True,
    )
    for name in _NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        logging.getLogger().addHandler(file_handler)


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def turn_context(**kwargs: Any) -> Iterator[None]:
    """Bind context (session id, turn number) to every log entry inside the block.

    Values bound before entering are restored on exit.

    Example:
        >>> with turn_context(session_id="abc123", turn=4):
        ...     run_turn()
    """
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield


__all__ = [
    "add_app_context",
    "mask_secrets",
    "clip_long_values",
    "configure_logging",
    "get_logger",
    "turn_context",
]
