"""Quest log models.

A quest is a named goal with an ordered list of objectives. Objectives are
only ever added or ticked off; a quest whose required objectives are all
done completes itself.
"""

from __future__ import annotations

from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from dungeon_chronicle.models.enums import QuestStatus


class QuestObjective(BaseModel):
    """One step of a quest.

    Attributes:
        description: What has to be done.
        completed: Whether it is done.
        optional: Optional objectives never block completion.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    description: str = Field(min_length=1)
    completed: bool = False
    optional: bool = False


class Quest(BaseModel):
    """A goal the party has taken on.

    Attributes:
        id: Stable identifier.
        name: Display name, unique among quests (case-insensitive).
        description: What the quest is about.
        status: Active, completed or failed.
        objectives: Steps in the order they were added.
        rewards: Promised rewards, as free text.
        giver: Who handed out the quest, if anyone.
        note: How the quest ended, once it has.
        started_turn: Turn the quest was created.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    id: str = Field(default_factory=lambda: uuid4().hex[:12])
    name: str = Field(min_length=1)
    description: str = ""
    status: QuestStatus = QuestStatus.ACTIVE
    objectives: list[QuestObjective] = Field(default_factory=list)
    rewards: list[str] = Field(default_factory=list)
    giver: str | None = None
    note: str = ""
    started_turn: int = Field(default=0, ge=0)

    @property
    def is_active(self) -> bool:
        return self.status is QuestStatus.ACTIVE

    @property
    def required_done(self) -> bool:
        """True when there are required objectives and all of them are done."""
        required = [o for o in self.objectives if not o.optional]
        return bool(required) and all(o.completed for o in required)

    def progress(self) -> tuple[int, int]:
        """Completed and total objective counts."""
        return sum(1 for o in self.objectives if o.completed), len(self.objectives)

    def find_objective(self, text: str) -> QuestObjective | None:
        """First objective whose description contains the text (case-insensitive).

        An exact match wins over a partial one.
        """
        wanted = " ".join(text.casefold().split())
        if not wanted:
            return None
        partial: QuestObjective | None = None
        for objective in self.objectives:
            have = " ".join(objective.description.casefold().split())
            if have == wanted:
                return objective
            if partial is None and wanted in have:
                partial = objective
        return partial

    def status_line(self) -> str:
        done, total = self.progress()
        line = f"{self.name} [{self.status.value}]"
        if total:
            line += f" {done}/{total} objectives"
        return line


__all__ = ["QuestObjective", "Quest"]
