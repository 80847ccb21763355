"""Caller-facing session API.

``GameSession`` is what a UI or CLI talks to. It serializes access to one
session: turns queue behind each other, while save and load attempted in
the middle of a turn are rejected with an error result instead of waiting,
so a snapshot never captures (or overwrites) a half-resolved turn.

Example:
    >>> session = GameSession(world, agent=OpenAINarrator())
    >>> outcome = session.submit_player_action("I kick open the cellar door")
    >>> outcome.narration
    'The door splinters inward...'
    >>> session.save("data/saves/cellar.json").ok
    True
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path

from dungeon_chronicle.core.config import Settings, get_settings
from dungeon_chronicle.core.exceptions import (
    PersistenceError,
    SessionBusyError,
    ValidationError,
)
from dungeon_chronicle.core.logging import get_logger, turn_context
from dungeon_chronicle.dm.agent import NarratorAgent, OpenAINarrator
from dungeon_chronicle.dm.context import ContextManager, Summarizer
from dungeon_chronicle.dm.memory import StoryMemory
from dungeon_chronicle.dm.orchestrator import DMOrchestrator
from dungeon_chronicle.engine.dice import DiceEvaluator
from dungeon_chronicle.engine.rules import RulesEngine
from dungeon_chronicle.models.world import WorldState
from dungeon_chronicle.storage.database import SessionStore
from dungeon_chronicle.storage.snapshot import SessionSnapshot, read_snapshot, write_snapshot


logger = get_logger(__name__)


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class TurnOutcome:
    """What the player sees after a turn.

    Attributes:
        narration: The DM's narration.
        hp_status: Party HP keyed by character name.
        in_combat: Whether a combat session is active.
        location: Name of the party's location, if any.
        turn_number: Completed turns.
        fallback: Whether the narration is the fallback text.
    """

    narration: str
    hp_status: dict[str, str] = field(default_factory=dict)
    in_combat: bool = False
    location: str | None = None
    turn_number: int = 0
    fallback: bool = False


@dataclass
class OperationResult:
    """Outcome of save or load.

    Attributes:
        ok: Whether the operation succeeded.
        message: Human-readable summary.
        error: Exception class name on failure.
    """

    ok: bool
    message: str
    error: str | None = None

    @classmethod
    def failed(cls, exc: Exception) -> OperationResult:
        return cls(ok=False, message=getattr(exc, "message", str(exc)), error=type(exc).__name__)


# =============================================================================
# Game Session
# =============================================================================


class GameSession:
    """One running game: world, memory, summary and the DM loop."""

    def __init__(
        self,
        world: WorldState,
        agent: NarratorAgent | None = None,
        *,
        memory: StoryMemory | None = None,
        summarizer: Summarizer | None = None,
        dice: DiceEvaluator | None = None,
        store: SessionStore | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            world: World state to play in.
            agent: Narrating agent; an OpenAINarrator when omitted.
            memory: Story memory; empty when omitted.
            summarizer: Summary rewriter; extractive when omitted.
            dice: Dice evaluator.
            store: Save-slot store; created lazily from settings when needed.
            settings: Application settings.
        """
        self.settings = settings or get_settings()
        engine = RulesEngine(world, dice, self.settings.rules)
        self.orchestrator = DMOrchestrator(
            world,
            agent or OpenAINarrator(settings=self.settings.ai),
            memory=memory,
            context=ContextManager(self.settings.context, summarizer),
            engine=engine,
            settings=self.settings.orchestrator,
        )
        self._store = store
        self._lock = threading.Lock()

        logger.info("GameSession created", session_id=world.session_id, campaign=world.campaign_name)

    @classmethod
    def from_snapshot(
        cls,
        snapshot: SessionSnapshot,
        agent: NarratorAgent | None = None,
        **kwargs,
    ) -> GameSession:
        session = cls(snapshot.world, agent, memory=StoryMemory(snapshot.memory), **kwargs)
        session.orchestrator.context.restore(snapshot.conversation)
        return session

    @property
    def world(self) -> WorldState:
        return self.orchestrator.world

    @property
    def memory(self) -> StoryMemory:
        return self.orchestrator.memory

    @property
    def engine(self) -> RulesEngine:
        return self.orchestrator.engine

    @property
    def store(self) -> SessionStore:
        if self._store is None:
            self._store = SessionStore(self.settings.storage.database_path)
        return self._store

    # -------------------------------------------------------------------------
    # Turns
    # -------------------------------------------------------------------------

    def submit_player_action(self, text: str) -> TurnOutcome:
        """Resolve one player turn; waits for any turn already in progress.

        Raises:
            ValidationError: If the input is empty or too long.
            AIControlError: If the narrating agent fails (state is unchanged).
        """
        text = text.strip()
        if not text:
            raise ValidationError("Player input cannot be empty", field_name="player_input")
        limit = self.settings.context.max_player_input_chars
        if len(text) > limit:
            raise ValidationError(
                f"Player input exceeds {limit} characters",
                field_name="player_input",
                details={"length": len(text)},
            )

        with self._lock, turn_context(
            session_id=self.world.session_id, turn=self.world.turn_number + 1
        ):
            result = self.orchestrator.run_turn(text)

        world = self.world
        location = world.current_location
        return TurnOutcome(
            narration=result.narration,
            hp_status=world.hp_status(),
            in_combat=world.in_combat,
            location=location.name if location else None,
            turn_number=result.turn_number,
            fallback=result.fallback,
        )

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            world=self.world.model_copy(deep=True),
            memory=self.memory.to_state(),
            conversation=self.orchestrator.context.snapshot(),
        )

    def save(self, path: str | Path) -> OperationResult:
        """Write a snapshot file. Rejected while a turn is in progress."""
        if not self._lock.acquire(blocking=False):
            return self._busy("save")
        try:
            target = write_snapshot(path, self.snapshot())
        except PersistenceError as exc:
            logger.error("Save failed", path=str(path), error=exc.message)
            return OperationResult.failed(exc)
        finally:
            self._lock.release()
        return OperationResult(ok=True, message=f"Saved turn {self.world.turn_number} to {target}")

    def load(self, path: str | Path) -> OperationResult:
        """Replace the session state from a snapshot file.

        The live state is untouched unless the whole snapshot loads.
        """
        if not self._lock.acquire(blocking=False):
            return self._busy("load")
        try:
            snapshot = read_snapshot(path)
            self._apply(snapshot)
        except PersistenceError as exc:
            logger.error("Load failed", path=str(path), error=exc.message)
            return OperationResult.failed(exc)
        finally:
            self._lock.release()
        return OperationResult(ok=True, message=f"Loaded turn {self.world.turn_number} from {path}")

    def save_slot(self, name: str) -> OperationResult:
        """Write a snapshot into a named save slot."""
        if not self._lock.acquire(blocking=False):
            return self._busy("save")
        try:
            record = self.store.save_slot(name, self.snapshot())
        except (PersistenceError, ValidationError) as exc:
            logger.error("Slot save failed", slot=name, error=exc.message)
            return OperationResult.failed(exc)
        finally:
            self._lock.release()
        return OperationResult(ok=True, message=f"Saved turn {record.turn_number} to slot '{record.name}'")

    def load_slot(self, name: str) -> OperationResult:
        """Replace the session state from a named save slot."""
        if not self._lock.acquire(blocking=False):
            return self._busy("load")
        try:
            snapshot = self.store.get_slot(name)
            if snapshot is None:
                raise PersistenceError(f"No save slot named '{name}'")
            self._apply(snapshot)
        except PersistenceError as exc:
            logger.error("Slot load failed", slot=name, error=exc.message)
            return OperationResult.failed(exc)
        finally:
            self._lock.release()
        return OperationResult(ok=True, message=f"Loaded turn {self.world.turn_number} from slot '{name}'")

    def _apply(self, snapshot: SessionSnapshot) -> None:
        # Everything is parsed and validated before any live reference is swapped
        world = snapshot.world.model_copy(deep=True)
        memory = snapshot.memory.model_copy(deep=True)
        conversation = snapshot.conversation.model_copy(deep=True)
        self.orchestrator.replace_state(world, memory, conversation)
        logger.info("Session state replaced", session_id=world.session_id, turn=world.turn_number)

    def _busy(self, operation: str) -> OperationResult:
        exc = SessionBusyError(f"Cannot {operation} while a turn is in progress")
        logger.warning("Operation rejected, session busy", operation=operation)
        return OperationResult.failed(exc)


__all__ = ["TurnOutcome", "OperationResult", "GameSession"]
