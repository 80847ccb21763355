"""Tests for bounded context assembly."""

from __future__ import annotations

from typing import Any

from conftest import make_goblin
from dungeon_chronicle.core.config import ContextSettings
from dungeon_chronicle.dm.context import (
    ContextManager,
    ConversationState,
    ExtractiveSummarizer,
    LLMSummarizer,
)
from dungeon_chronicle.dm.memory import StoryMemory
from dungeon_chronicle.dm.prompts import MEMORY_HEADING, SUMMARY_HEADING, build_system_prompt
from dungeon_chronicle.models import (
    ConsequenceSeverity,
    EntityKind,
    NarrativeEntry,
    NarrativeKind,
    WorldState,
)


def _fill_log(world: WorldState, count: int, size: int = 200) -> None:
    for index in range(count):
        kind = NarrativeKind.PLAYER_ACTION if index % 2 == 0 else NarrativeKind.DM_NARRATION
        text = f"Entry {index}. " + "x" * (size - 12)
        world.append_narrative(kind, text[:size])


class RecordingSummarizer:
    """Summarizer that records every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, list[NarrativeEntry], int]] = []

    def summarize(self, previous: str, evicted: list[NarrativeEntry], max_chars: int) -> str:
        self.calls.append((previous, list(evicted), max_chars))
        return f"summary of {len(evicted)} entries"


class TestContextBudget:
    """Tests for the payload size budget."""

    def test_small_log_fits_verbatim(
        self, context_manager: ContextManager, world: WorldState, memory: StoryMemory
    ) -> None:
        """Test a short log is sent in full with no summary."""
        _fill_log(world, 3)

        payload = context_manager.build(world, memory)

        assert len(payload.messages) == 3
        assert payload.summary == ""
        assert SUMMARY_HEADING not in payload.system
        assert payload.to_messages()[0]["role"] == "system"

    def test_budget_never_exceeded(
        self, context_manager: ContextManager, world: WorldState, memory: StoryMemory
    ) -> None:
        """Test long logs are windowed to stay within the budget."""
        _fill_log(world, 40)

        payload = context_manager.build(world, memory)

        assert payload.size <= context_manager.settings.budget_chars
        assert len(payload.messages) < 40
        assert len(world.narrative_log) == 40

    def test_newest_entry_always_included(
        self, context_manager: ContextManager, world: WorldState, memory: StoryMemory
    ) -> None:
        """Test the newest entry is kept whole even when it crowds out the header."""
        _fill_log(world, 5)
        huge = "A" * 2900
        world.append_narrative(NarrativeKind.PLAYER_ACTION, huge)

        payload = context_manager.build(world, memory)

        assert payload.messages[-1]["content"] == huge
        assert len(payload.messages) == 1
        assert payload.size <= context_manager.settings.budget_chars
        assert payload.memory_excerpt == ""

    def test_window_is_contiguous_and_newest_last(
        self, context_manager: ContextManager, world: WorldState, memory: StoryMemory
    ) -> None:
        """Test the verbatim window is a suffix of the log in order."""
        _fill_log(world, 30)

        payload = context_manager.build(world, memory)

        expected = [e.to_message() for e in world.narrative_log[payload.window_start :]]
        assert payload.messages == expected


class TestSummaryFolding:
    """Tests for the running summary."""

    def test_evicted_entries_are_folded(
        self, context_settings: ContextSettings, world: WorldState
    ) -> None:
        """Test entries leaving the window are summarized exactly once."""
        summarizer = RecordingSummarizer()
        manager = ContextManager(context_settings, summarizer)
        _fill_log(world, 30)

        payload = manager.build(world, StoryMemory())

        assert len(summarizer.calls) == 1
        _, evicted, max_chars = summarizer.calls[0]
        assert [e.sequence for e in evicted] == list(range(payload.window_start))
        assert max_chars == context_settings.summary_max_chars
        assert manager.state.summarized_through == payload.window_start
        assert f"{SUMMARY_HEADING}\nsummary of {payload.window_start} entries" in payload.system

    def test_no_refold_without_new_evictions(
        self, context_settings: ContextSettings, world: WorldState
    ) -> None:
        """Test rebuilding with an unchanged log does not call the summarizer again."""
        summarizer = RecordingSummarizer()
        manager = ContextManager(context_settings, summarizer)
        _fill_log(world, 30)

        manager.build(world, StoryMemory())
        manager.build(world, StoryMemory())

        assert len(summarizer.calls) == 1

    def test_previous_summary_passed_on(
        self, context_settings: ContextSettings, world: WorldState
    ) -> None:
        """Test later folds receive the earlier summary."""
        summarizer = RecordingSummarizer()
        manager = ContextManager(context_settings, summarizer)
        _fill_log(world, 30)
        manager.build(world, StoryMemory())

        _fill_log(world, 10)
        manager.build(world, StoryMemory())

        assert len(summarizer.calls) == 2
        assert summarizer.calls[1][0].startswith("summary of")

    def test_summary_capped(self, context_settings: ContextSettings, world: WorldState) -> None:
        """Test the stored summary never exceeds its cap."""
        manager = ContextManager(context_settings)
        _fill_log(world, 80)

        manager.build(world, StoryMemory())

        assert 0 < len(manager.state.summary) <= context_settings.summary_max_chars

    def test_snapshot_and_restore(self, context_manager: ContextManager) -> None:
        """Test the conversation state round-trips."""
        context_manager.restore(ConversationState(summary="Earlier.", summarized_through=4))

        saved = context_manager.snapshot()
        context_manager.state.summary = "Changed."

        assert saved.summary == "Earlier."
        assert saved.summarized_through == 4


class TestMemoryExcerpt:
    """Tests for the remembered-facts section."""

    def test_mentioned_entity_facts_included(
        self, context_manager: ContextManager, world: WorldState, memory: StoryMemory
    ) -> None:
        """Test facts about entities named in the window are included."""
        mira, _ = memory.upsert_entity("Mira", kind=EntityKind.CHARACTER)
        memory.add_fact(mira.id, "Mira hides a key under the bar.")
        tomas, _ = memory.upsert_entity("Tomas")
        memory.add_fact(tomas.id, "Tomas is afraid of rats.")
        world.append_narrative(NarrativeKind.PLAYER_ACTION, "I ask Mira about the cellar.")

        payload = context_manager.build(world, memory)

        assert payload.memory_excerpt == "- Mira: Mira hides a key under the bar."
        assert MEMORY_HEADING in payload.system
        assert "Tomas" not in payload.memory_excerpt

    def test_fact_count_capped(
        self, context_manager: ContextManager, world: WorldState, memory: StoryMemory
    ) -> None:
        """Test at most memory_max_facts facts are included."""
        mira, _ = memory.upsert_entity("Mira")
        for index in range(6):
            memory.add_fact(mira.id, f"Mira detail number {index}.")
        world.append_narrative(NarrativeKind.PLAYER_ACTION, "Mira?")

        payload = context_manager.build(world, memory)

        assert len(payload.memory_excerpt.splitlines()) == 3
        assert len(payload.memory_excerpt) <= context_manager.settings.memory_max_chars


class TestSummarizers:
    """Tests for the summarizer implementations."""

    def test_extractive_respects_cap(self, world: WorldState) -> None:
        """Test the extractive summary drops the oldest lines to fit."""
        _fill_log(world, 20)

        summary = ExtractiveSummarizer().summarize("", world.narrative_log, 250)

        assert 0 < len(summary) <= 250
        assert "Entry 19." in summary
        assert "Entry 0." not in summary

    def test_extractive_zero_cap(self, world: WorldState) -> None:
        """Test a zero cap yields an empty summary."""
        _fill_log(world, 2)

        assert ExtractiveSummarizer().summarize("old", world.narrative_log, 0) == ""

    def test_llm_summarizer_falls_back(self, world: WorldState) -> None:
        """Test a failing summary request falls back to the extractive summary."""

        class _Completions:
            def create(self, **kwargs: Any) -> Any:
                raise RuntimeError("endpoint down")

        class _Chat:
            completions = _Completions()

        class _Client:
            chat = _Chat()

        _fill_log(world, 2)
        summarizer = LLMSummarizer(client=_Client(), model="test-model")  # type: ignore[arg-type]

        summary = summarizer.summarize("", world.narrative_log, 300)

        assert summary == ExtractiveSummarizer().summarize("", world.narrative_log, 300)


class TestOversizedState:
    """Tests for recovering from cursors and headers that do not fit."""

    def test_cursor_past_log_is_clamped(
        self, context_settings: ContextSettings, world: WorldState, memory: StoryMemory
    ) -> None:
        """Test a summary cursor beyond the log still sends the newest entry."""
        _fill_log(world, 3)
        manager = ContextManager(
            context_settings, state=ConversationState(summary="Old.", summarized_through=50)
        )

        payload = manager.build(world, memory)

        assert payload.messages == [world.narrative_log[-1].to_message()]
        assert manager.state.summarized_through == 2

    def test_crowded_scene_keeps_system_prompt(
        self, context_manager: ContextManager, world: WorldState, memory: StoryMemory
    ) -> None:
        """Test non-party characters are dropped before the system prompt is cut."""
        for index in range(40):
            bandit = make_goblin(id=f"bandit-{index}", name=f"Bandit Cutthroat {index}")
            world.characters[bandit.id] = bandit
        world.append_narrative(NarrativeKind.PLAYER_ACTION, "I draw my sword.")

        payload = context_manager.build(world, memory)

        assert payload.system.startswith(build_system_prompt(world.campaign_name))
        assert "Aldric [hero]" in payload.system
        assert "Bandit Cutthroat" not in payload.system
        assert payload.size <= context_manager.settings.budget_chars

    def test_tight_budget_cuts_state_before_prompt(
        self, context_manager: ContextManager, world: WorldState, memory: StoryMemory
    ) -> None:
        """Test a header that cannot fit keeps the whole prompt and cuts the state block."""
        prompt = build_system_prompt(world.campaign_name)
        room = len(prompt) + 20
        world.append_narrative(
            NarrativeKind.PLAYER_ACTION, "B" * (context_manager.settings.budget_chars - room)
        )

        payload = context_manager.build(world, memory)

        assert payload.system.startswith(prompt)
        assert len(payload.system) == room
        assert payload.size == context_manager.settings.budget_chars


class TestConsequenceExcerpt:
    """Tests for pending consequences in the remembered-facts section."""

    def test_triggered_consequence_listed_first(
        self, context_manager: ContextManager, world: WorldState, memory: StoryMemory
    ) -> None:
        """Test a consequence the window sets off leads the excerpt."""
        mira, _ = memory.upsert_entity("Mira")
        memory.add_fact(mira.id, "Mira runs the inn.")
        consequence, _ = memory.add_consequence(
            "The party returns to Riverside",
            "The guard captain arrests them",
            severity=ConsequenceSeverity.MAJOR,
        )
        world.append_narrative(
            NarrativeKind.PLAYER_ACTION, "We say goodbye to Mira and return to Riverside."
        )

        payload = context_manager.build(world, memory)

        lines = payload.memory_excerpt.splitlines()
        assert lines[0] == (
            f"- [consequence {consequence.id}] If The party returns to Riverside: "
            "The guard captain arrests them (major)"
        )
        assert lines[1] == "- Mira: Mira runs the inn."

    def test_untriggered_consequence_omitted(
        self, context_manager: ContextManager, world: WorldState, memory: StoryMemory
    ) -> None:
        """Test consequences stay out of the excerpt until their trigger comes up."""
        memory.add_consequence("The party returns to Riverside", "The guard captain arrests them")
        world.append_narrative(NarrativeKind.PLAYER_ACTION, "We camp in the forest.")

        payload = context_manager.build(world, memory)

        assert payload.memory_excerpt == ""
