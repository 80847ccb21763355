"""Bounded context assembly for the narrating agent.

Long sessions would overflow any model's context window, so every request
is assembled in tiers within a fixed character budget:

1. Header: system prompt plus a compact world-state block.
2. Story so far: a running summary of entries that fell out of the
   window. It is rewritten from (previous summary + evicted entries) each
   time, never appended to, so it stays bounded.
3. Remembered facts: pending consequences the window sets off, then
   story memory facts about entities mentioned in the window, ranked
   and capped.
4. Recent entries verbatim, newest first, until the budget runs out.
   The newest entry is always included.

The canonical narrative log is never truncated; only the payload is.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from openai import OpenAI
from pydantic import BaseModel, Field

from dungeon_chronicle.core.config import ContextSettings, get_settings
from dungeon_chronicle.core.logging import get_logger
from dungeon_chronicle.dm.agent import create_openai_client
from dungeon_chronicle.dm.memory import StoryMemory
from dungeon_chronicle.dm.prompts import (
    MEMORY_HEADING,
    STATE_HEADING,
    SUMMARY_HEADING,
    SUMMARY_SYSTEM_PROMPT,
    SUMMARY_USER_PROMPT,
    build_system_prompt,
)
from dungeon_chronicle.models.narrative import NarrativeEntry
from dungeon_chronicle.models.world import WorldState


logger = get_logger(__name__)

_SECTION_GAP = "\n\n"
_EXTRACT_LINE_CHARS = 160


# =============================================================================
# Data Models
# =============================================================================


class ConversationState(BaseModel):
    """Persisted summary state.

    Attributes:
        summary: Running summary of entries before ``summarized_through``.
        summarized_through: Number of log entries folded into the summary.
    """

    summary: str = ""
    summarized_through: int = Field(default=0, ge=0)


@dataclass
class ContextPayload:
    """The assembled request for the narrating agent.

    Attributes:
        system: System message (prompt, state, summary, memory excerpt).
        messages: Recent narrative entries rendered as chat messages.
        summary: The summary included in ``system``.
        memory_excerpt: The memory excerpt included in ``system``.
        window_start: Sequence number of the oldest verbatim entry.
    """

    system: str
    messages: list[dict[str, str]] = field(default_factory=list)
    summary: str = ""
    memory_excerpt: str = ""
    window_start: int = 0

    @property
    def size(self) -> int:
        return len(self.system) + sum(len(m["content"]) for m in self.messages)

    def to_messages(self) -> list[dict[str, str]]:
        return [{"role": "system", "content": self.system}, *self.messages]


# =============================================================================
# Summarizers
# =============================================================================


class Summarizer(Protocol):
    """Rewrites the running summary to cover newly evicted entries."""

    def summarize(self, previous: str, evicted: list[NarrativeEntry], max_chars: int) -> str: ...


def _first_sentence(text: str, limit: int) -> str:
    text = " ".join(text.split())
    for mark in (". ", "! ", "? "):
        index = text.find(mark)
        if 0 <= index < limit:
            return text[: index + 1]
    return text if len(text) <= limit else text[: limit - 3].rstrip() + "..."


class ExtractiveSummarizer:
    """Deterministic summarizer: one compressed line per entry, oldest lines dropped first."""

    def summarize(self, previous: str, evicted: list[NarrativeEntry], max_chars: int) -> str:
        if max_chars <= 0:
            return ""
        lines = [line for line in previous.splitlines() if line.strip()]
        for entry in evicted:
            line = _first_sentence(entry.to_summary_line(), _EXTRACT_LINE_CHARS)
            lines.append(f"[turn {entry.turn}] {line}")

        while lines and len("\n".join(lines)) > max_chars:
            lines.pop(0)
        if not lines:
            return ""
        return "\n".join(lines)[-max_chars:]


class LLMSummarizer:
    """Summarizer that asks a model to rewrite the summary.

    Falls back to the extractive summarizer when the request fails, so a
    flaky endpoint never blocks a turn.
    """

    def __init__(
        self,
        *,
        client: OpenAI | None = None,
        model: str | None = None,
        fallback: Summarizer | None = None,
    ) -> None:
        settings = get_settings().ai
        self._client = client
        self.model = model or settings.summary_model
        self.fallback = fallback or ExtractiveSummarizer()

    def _get_client(self) -> OpenAI:
        if self._client is None:
            self._client = create_openai_client()
        return self._client

    def summarize(self, previous: str, evicted: list[NarrativeEntry], max_chars: int) -> str:
        events = "\n".join(entry.to_summary_line() for entry in evicted)
        try:
            response = self._get_client().chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SUMMARY_SYSTEM_PROMPT.format(max_chars=max_chars)},
                    {
                        "role": "user",
                        "content": SUMMARY_USER_PROMPT.format(
                            previous=previous or "(none)", events=events[:8000]
                        ),
                    },
                ],
                temperature=0.2,
                max_tokens=max(64, max_chars // 3),
            )
            text = (response.choices[0].message.content or "").strip()
        except Exception:
            logger.exception("Summary request failed, using extractive summary")
            return self.fallback.summarize(previous, evicted, max_chars)

        if not text:
            return self.fallback.summarize(previous, evicted, max_chars)
        return text[:max_chars]


# =============================================================================
# Context Manager
# =============================================================================


class ContextManager:
    """Assembles bounded payloads and owns the running summary.

    Attributes:
        settings: Budget settings.
        summarizer: Summary rewriter.
        state: Persisted summary state.
    """

    def __init__(
        self,
        settings: ContextSettings | None = None,
        summarizer: Summarizer | None = None,
        state: ConversationState | None = None,
    ) -> None:
        self.settings = settings or get_settings().context
        self.summarizer = summarizer or ExtractiveSummarizer()
        self.state = state or ConversationState()

    def restore(self, state: ConversationState) -> None:
        self.state = state

    def snapshot(self) -> ConversationState:
        return self.state.model_copy(deep=True)

    # -------------------------------------------------------------------------
    # Assembly
    # -------------------------------------------------------------------------

    def build(self, world: WorldState, memory: StoryMemory) -> ContextPayload:
        """Assemble the payload for the next request.

        May fold entries that no longer fit the verbatim window into the
        running summary (this advances ``state``).

        Args:
            world: Current world state, including the narrative log.
            memory: Story memory to draw the excerpt from.

        Returns:
            A payload whose ``size`` never exceeds ``budget_chars`` unless
            the newest entry alone is larger than the budget.
        """
        budget = self.settings.budget_chars
        header = self._header(world)
        log = world.narrative_log

        cursor = self.state.summarized_through
        if log and cursor > len(log) - 1:
            logger.warning(
                "Summary cursor past the newest entry, clamping",
                summarized_through=cursor,
                log_length=len(log),
            )
            cursor = len(log) - 1
            self.state.summarized_through = cursor

        summary_reserve = self.settings.summary_max_chars + len(SUMMARY_HEADING) + len(_SECTION_GAP) + 1
        memory_reserve = self.settings.memory_max_chars + len(MEMORY_HEADING) + len(_SECTION_GAP) + 1
        allowance = budget - len(header) - summary_reserve - memory_reserve

        window = self._select_window(log[cursor:], allowance)
        window_start = window[0].sequence if window else len(log)

        evicted = log[cursor:window_start]
        if evicted:
            self._fold(evicted)
            self.state.summarized_through = window_start

        mention_text = "\n".join(entry.text for entry in window)
        memory_excerpt = self._memory_excerpt(memory, mention_text, world.turn_number)

        payload = self._assemble(header, self.state.summary, memory_excerpt, window)
        if payload.size > budget:
            # Only reachable when the header or the newest entry overruns its share
            payload = self._assemble(header, self.state.summary, "", window)
        if payload.size > budget:
            payload = self._assemble(header, "", "", window)
        if payload.size > budget:
            header = self._header(world, party_only=True)
            payload = self._assemble(header, "", "", window)
        if payload.size > budget:
            room = max(0, budget - sum(len(m["content"]) for m in payload.messages))
            payload = self._assemble(self._cut_header(world, room), "", "", window)
            logger.warning(
                "Context budget too small for the header and newest entry",
                budget=budget,
                size=payload.size,
            )

        logger.debug(
            "Context assembled",
            size=payload.size,
            budget=budget,
            window=len(window),
            summarized_through=self.state.summarized_through,
        )
        return payload

    def _header(self, world: WorldState, *, party_only: bool = False) -> str:
        return (
            f"{build_system_prompt(world.campaign_name)}"
            f"{_SECTION_GAP}{STATE_HEADING}\n{world.to_ai_context(party_only=party_only)}"
        )

    def _cut_header(self, world: WorldState, room: int) -> str:
        """Fit the header into ``room`` characters, cutting the state block first."""
        prompt = build_system_prompt(world.campaign_name)
        if len(prompt) >= room:
            return prompt[:room]
        return self._header(world, party_only=True)[:room]

    @staticmethod
    def _select_window(pending: list[NarrativeEntry], allowance: int) -> list[NarrativeEntry]:
        window: list[NarrativeEntry] = []
        used = 0
        for entry in reversed(pending):
            size = len(entry.to_message()["content"])
            if window and used + size > allowance:
                break
            window.append(entry)
            used += size
        window.reverse()
        return window

    def _fold(self, evicted: list[NarrativeEntry]) -> None:
        max_chars = self.settings.summary_max_chars
        summary = self.summarizer.summarize(self.state.summary, evicted, max_chars)
        self.state.summary = summary[:max_chars]
        logger.info(
            "Conversation summary regenerated",
            evicted=len(evicted),
            summary_chars=len(self.state.summary),
        )

    def _memory_excerpt(self, memory: StoryMemory, text: str, current_turn: int) -> str:
        """Triggered consequences first, then ranked facts, within the caps."""
        limit = self.settings.memory_max_facts
        candidates = [
            f"- [consequence {c.id}] If {c.trigger}: {c.effect} ({c.severity.value})"
            for c in memory.triggered_consequences(text, current_turn=current_turn, limit=limit)
        ]
        ranked = memory.relevant_facts(
            text,
            current_turn=current_turn,
            limit=limit,
            decay=self.settings.memory_decay,
        )
        candidates.extend(f"- {entity.name}: {fact.text}" for entity, fact in ranked)

        lines: list[str] = []
        used = 0
        for line in candidates[:limit]:
            cost = len(line) + (1 if lines else 0)
            if used + cost > self.settings.memory_max_chars:
                break
            lines.append(line)
            used += cost
        return "\n".join(lines)

    @staticmethod
    def _assemble(
        header: str,
        summary: str,
        memory_excerpt: str,
        window: list[NarrativeEntry],
    ) -> ContextPayload:
        system = header
        if summary:
            system += f"{_SECTION_GAP}{SUMMARY_HEADING}\n{summary}"
        if memory_excerpt:
            system += f"{_SECTION_GAP}{MEMORY_HEADING}\n{memory_excerpt}"
        return ContextPayload(
            system=system,
            messages=[entry.to_message() for entry in window],
            summary=summary,
            memory_excerpt=memory_excerpt,
            window_start=window[0].sequence if window else 0,
        )


__all__ = [
    "ConversationState",
    "ContextPayload",
    "Summarizer",
    "ExtractiveSummarizer",
    "LLMSummarizer",
    "ContextManager",
]
