"""DM Orchestrator: the tool-execution loop.

ARCHITECTURE:
1. Player input -> appended to the narrative log
2. Context manager -> bounded payload (state + summary + memory + recent log)
3. Narrating agent -> narration and/or tool calls
4. Python execution -> results back to the agent
5. Repeat until the agent narrates without calling tools, or the
   round-trip cap is hit

CRITICAL: the agent never changes the world directly. Every change goes
through a validated tool call into the rules engine or story memory.

Guarantees per turn:
- Each mutating call is atomic: a checkpoint of world and memory is taken
  before it runs and restored if it raises.
- A call id executed once in a turn is never applied again.
- Hitting the round-trip cap ends the turn with a fallback narration; the
  calls of the reply that hit the cap are not executed.
- Any exception escaping the agent (including KeyboardInterrupt) restores
  the state from before the turn and propagates.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from dungeon_chronicle.core.config import OrchestratorSettings, get_settings
from dungeon_chronicle.core.exceptions import (
    GameEngineError,
    RoundTripExhausted,
    ValidationError,
)
from dungeon_chronicle.core.logging import get_logger
from dungeon_chronicle.dm.agent import NarratorAgent, ToolCall
from dungeon_chronicle.dm.context import ContextManager, ConversationState
from dungeon_chronicle.dm.memory import StoryMemory, StoryMemoryState
from dungeon_chronicle.dm.tools import DMTool, DMToolbox, ToolArgs, ToolResult
from dungeon_chronicle.engine.dice import DiceEvaluator
from dungeon_chronicle.engine.rules import RulesEngine
from dungeon_chronicle.models.enums import NarrativeKind
from dungeon_chronicle.models.narrative import ToolCallRecord
from dungeon_chronicle.models.world import WorldState


logger = get_logger(__name__)


# =============================================================================
# Response Types
# =============================================================================


@dataclass
class TurnResult:
    """Result of one player turn."""

    narration: str
    """Narration shown to the player."""

    turn_number: int
    """Completed turns after this one."""

    tool_results: list[ToolResult] = field(default_factory=list)
    """Results of every call answered this turn, in order."""

    round_trips: int = 0
    """Agent requests made this turn."""

    fallback: bool = False
    """Whether the narration is the fallback text."""


@dataclass
class _Checkpoint:
    world: WorldState
    memory: StoryMemoryState
    conversation: ConversationState | None = None


# =============================================================================
# DM Orchestrator
# =============================================================================


class DMOrchestrator:
    """Drives the agent/tool round-trip for one session.

    Attributes:
        agent: The narrating agent.
        engine: Rules engine; owns the world state reference.
        memory: Story memory.
        context: Context manager owning the running summary.
        toolbox: Tool catalog bound to the engine and memory.
        settings: Loop settings.
    """

    def __init__(
        self,
        world: WorldState,
        agent: NarratorAgent,
        *,
        memory: StoryMemory | None = None,
        context: ContextManager | None = None,
        dice: DiceEvaluator | None = None,
        engine: RulesEngine | None = None,
        settings: OrchestratorSettings | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            world: World state to drive.
            agent: Narrating agent.
            memory: Story memory; empty when omitted.
            context: Context manager; default budget when omitted.
            dice: Dice evaluator for a new rules engine.
            engine: Preconfigured rules engine over ``world``.
            settings: Loop settings; application settings when omitted.
        """
        self.agent = agent
        self.engine = engine or RulesEngine(world, dice)
        self.engine.world = world
        self.memory = memory if memory is not None else StoryMemory()
        self.context = context or ContextManager()
        self.toolbox = DMToolbox(self.engine, self.memory)
        self.settings = settings or get_settings().orchestrator

        logger.info(
            "DMOrchestrator initialized",
            tools=len(self.toolbox.tools),
            max_round_trips=self.settings.max_round_trips,
        )

    @property
    def world(self) -> WorldState:
        return self.engine.world

    # -------------------------------------------------------------------------
    # Checkpoints
    # -------------------------------------------------------------------------

    def _checkpoint(self, *, include_conversation: bool = False) -> _Checkpoint:
        return _Checkpoint(
            world=self.world.model_copy(deep=True),
            memory=self.memory.snapshot(),
            conversation=self.context.snapshot() if include_conversation else None,
        )

    def _restore(self, checkpoint: _Checkpoint) -> None:
        self.engine.world = checkpoint.world
        self.memory.restore(checkpoint.memory)
        if checkpoint.conversation is not None:
            self.context.restore(checkpoint.conversation)

    def replace_state(
        self,
        world: WorldState,
        memory: StoryMemoryState,
        conversation: ConversationState,
    ) -> None:
        """Swap in fully built state (used by load)."""
        self._restore(_Checkpoint(world=world, memory=memory, conversation=conversation))

    # -------------------------------------------------------------------------
    # Turn protocol
    # -------------------------------------------------------------------------

    def run_turn(self, player_input: str) -> TurnResult:
        """Resolve one player turn.

        Args:
            player_input: The player's action or speech.

        Returns:
            TurnResult with the narration and every tool result.

        Raises:
            AIControlError: If the agent fails; state is restored first.
        """
        checkpoint = self._checkpoint(include_conversation=True)
        try:
            return self._run_turn(player_input)
        except BaseException:
            self._restore(checkpoint)
            logger.warning("Turn aborted, state restored", turn=self.world.turn_number)
            raise

    def _run_turn(self, player_input: str) -> TurnResult:
        logger.info("Processing player input", input_preview=player_input[:100])
        self.world.append_narrative(NarrativeKind.PLAYER_ACTION, player_input)

        payload = self.context.build(self.world, self.memory)
        messages: list[dict[str, Any]] = payload.to_messages()
        schemas = self.toolbox.schemas()
        executed: dict[str, ToolResult] = {}
        results: list[ToolResult] = []
        round_trips = 0

        try:
            while True:
                reply = self.agent.respond(messages, schemas)
                round_trips += 1
                if not reply.tool_calls:
                    break
                if round_trips >= self.settings.max_round_trips:
                    raise RoundTripExhausted(
                        "Agent kept calling tools past the round-trip cap",
                        max_round_trips=self.settings.max_round_trips,
                        details={"pending_calls": len(reply.tool_calls)},
                    )
                messages.append(reply.to_assistant_message())
                for call in reply.tool_calls:
                    result = self._answer_call(call, executed)
                    results.append(result)
                    messages.append(
                        {
                            "role": "tool",
                            "tool_call_id": call.call_id,
                            "content": result.to_tool_output(self.settings.tool_result_max_chars),
                        }
                    )
        except RoundTripExhausted as exc:
            logger.warning("Round-trip cap reached, using fallback narration", error=str(exc))
            return self._finish(self.settings.fallback_narration, results, round_trips, fallback=True)

        narration = reply.text.strip()
        if not narration:
            logger.warning("Agent returned empty narration, using fallback")
            return self._finish(self.settings.fallback_narration, results, round_trips, fallback=True)
        return self._finish(narration, results, round_trips, fallback=False)

    def _finish(
        self,
        narration: str,
        results: list[ToolResult],
        round_trips: int,
        *,
        fallback: bool,
    ) -> TurnResult:
        self.world.append_narrative(NarrativeKind.DM_NARRATION, narration)
        self.world.turn_number += 1
        logger.info(
            "Turn complete",
            turn=self.world.turn_number,
            round_trips=round_trips,
            tool_calls=len(results),
            fallback=fallback,
        )
        return TurnResult(
            narration=narration,
            turn_number=self.world.turn_number,
            tool_results=results,
            round_trips=round_trips,
            fallback=fallback,
        )

    # -------------------------------------------------------------------------
    # Tool calls
    # -------------------------------------------------------------------------

    def _answer_call(self, call: ToolCall, executed: dict[str, ToolResult]) -> ToolResult:
        previous = executed.get(call.call_id)
        if previous is not None:
            logger.info("Duplicate tool call ignored", call_id=call.call_id, tool=call.tool_name)
            return previous.model_copy(
                update={
                    "result": f"Duplicate call {call.call_id}; already applied: {previous.result}",
                    "mutated": False,
                }
            )

        args: ToolArgs | None = None
        try:
            tool, args = self.toolbox.parse(call)
        except ValidationError as exc:
            logger.info("Tool call rejected", tool=call.tool_name, error=exc.message)
            result = ToolResult.failure(call.tool_name, call.call_id, exc)
        else:
            result = self._execute(call, tool, args)

        executed[call.call_id] = result
        self._record(call, args, result)
        return result

    def _execute(self, call: ToolCall, tool: DMTool, args: ToolArgs) -> ToolResult:
        checkpoint = self._checkpoint() if tool.mutates else None
        try:
            return tool.execute(args, call_id=call.call_id)
        except (ValidationError, GameEngineError) as exc:
            logger.info("Tool call failed", tool=call.tool_name, error=exc.message)
            failure = exc
        except Exception as exc:
            logger.exception("Tool handler crashed", tool=call.tool_name, call_id=call.call_id)
            failure = exc
        if checkpoint is not None:
            self._restore(checkpoint)
        return ToolResult.failure(call.tool_name, call.call_id, failure)

    def _record(self, call: ToolCall, args: ToolArgs | None, result: ToolResult) -> None:
        arguments = (
            args.model_dump(mode="json", exclude={"tool"}) if args is not None else call.arguments
        )
        record = ToolCallRecord(
            call_id=call.call_id,
            tool_name=call.tool_name,
            arguments=json.loads(json.dumps(arguments, default=str)),
            success=result.success,
            mutated=result.mutated,
            data=result.data,
        )
        self.world.append_narrative(NarrativeKind.TOOL_RESULT, result.result, tool_call=record)


__all__ = ["TurnResult", "DMOrchestrator"]
