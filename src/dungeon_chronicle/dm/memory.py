"""Story memory: what the world knows.

An incremental knowledge base kept alongside the raw narrative log:

1. Entities: people, places, items and factions, deduplicated by a
   normalized name (with aliases) so "the Old Mill" and "old mill" are
   one entity.
2. Facts: short statements about one entity, tagged with the turn that
   produced them and a relevance weight. Facts are never edited; newer
   information is a newer fact, and lookups prefer the latest fact per
   topic.
3. Relationships: typed links between two entities (ally, enemy,
   owes-debt), deduplicated like facts.
4. Consequences: "if the players do X, then Y happens". They stay
   pending until the narrator resolves them or they expire, and surface
   in the context whenever the recent conversation sets them off.

The narrator writes through the ``remember_fact`` and
``remember_consequence`` tools; the context manager reads through
``relevant_facts`` and ``triggered_consequences``.
"""

from __future__ import annotations

import re
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from dungeon_chronicle.core.exceptions import UnknownEntityError, ValidationError
from dungeon_chronicle.core.logging import get_logger
from dungeon_chronicle.models.enums import ConsequenceSeverity, ConsequenceStatus, EntityKind


logger = get_logger(__name__)

_ARTICLES = ("the ", "a ", "an ")
_SEVERITY_ORDER = list(ConsequenceSeverity)
_MIN_KEYWORD_CHARS = 4
_STEM_CHARS = 5
_STOPWORDS = frozenset(
    {
        "that", "this", "with", "from", "into", "they",
        "them", "their", "when", "then", "will", "have",
    }
)


def normalize_name(name: str) -> str:
    """Normalize an entity name for deduplication and lookup.

    Example:
        >>> normalize_name("  The Old-Mill! ")
        'old mill'
    """
    text = re.sub(r"[^\w\s]", " ", name.casefold())
    text = " ".join(text.split())
    for article in _ARTICLES:
        if text.startswith(article) and len(text) > len(article):
            text = text[len(article):]
            break
    return text


def _new_id() -> str:
    return uuid4().hex[:12]


def _stems(text: str) -> set[str]:
    return {
        word[:_STEM_CHARS]
        for word in normalize_name(text).split()
        if len(word) >= _MIN_KEYWORD_CHARS and word not in _STOPWORDS
    }


# =============================================================================
# Data Models
# =============================================================================


class MemoryEntity(BaseModel):
    """Something the story has mentioned.

    Attributes:
        id: Stable identifier referenced by facts and relationships.
        name: Display name as first recorded.
        normalized_name: Deduplication key.
        kind: Character, location, item, faction or other.
        aliases: Other normalized names that resolve to this entity.
        description: Latest one-line description.
        first_seen_turn: Turn the entity was first recorded.
        last_seen_turn: Turn the entity was last mentioned.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=_new_id)
    name: str = Field(min_length=1)
    normalized_name: str = Field(min_length=1)
    kind: EntityKind = EntityKind.OTHER
    aliases: list[str] = Field(default_factory=list)
    description: str = ""
    first_seen_turn: int = Field(default=0, ge=0)
    last_seen_turn: int = Field(default=0, ge=0)

    @property
    def all_names(self) -> list[str]:
        return [self.normalized_name, *self.aliases]


class MemoryFact(BaseModel):
    """A statement about one entity.

    Attributes:
        id: Fact identifier.
        entity_id: The entity the fact is about.
        text: The statement.
        topic: Optional topic; a newer fact with the same topic supersedes.
        turn: Turn that produced the fact.
        weight: Relevance weight used for ranking.
        sequence: Insertion order across all facts and relationships.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    entity_id: str
    text: str = Field(min_length=1)
    topic: str | None = None
    turn: int = Field(default=0, ge=0)
    weight: float = Field(default=1.0, ge=0.0, le=10.0)
    sequence: int = Field(ge=0)

    def score(self, current_turn: int, decay: float) -> float:
        """Weight decayed by the number of turns since the fact was recorded."""
        age = max(0, current_turn - self.turn)
        return self.weight * (decay**age)


class Relationship(BaseModel):
    """A typed link between two entities."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    source_id: str
    target_id: str
    label: str = Field(min_length=1)
    bidirectional: bool = False
    turn: int = Field(default=0, ge=0)
    sequence: int = Field(ge=0)

    @property
    def key(self) -> tuple[str, str, str]:
        if self.bidirectional:
            first, second = sorted((self.source_id, self.target_id))
            return (first, second, self.label)
        return (self.source_id, self.target_id, self.label)


class Consequence(BaseModel):
    """Something that will happen once the players do something.

    Attributes:
        id: Consequence identifier.
        trigger: The player action or situation that sets it off.
        effect: What happens then.
        severity: How hard it lands; ranks triggered consequences.
        importance: Tie-break rank within a severity, 0 to 1.
        entity_ids: Entities whose mention also sets it off.
        created_turn: Turn it was recorded.
        expires_turn: Last turn it can still trigger, or None.
        status: Pending until the narrator resolves it.
        resolved_turn: Turn it was resolved.
        sequence: Insertion order across all memory records.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    trigger: str = Field(min_length=1)
    effect: str = Field(min_length=1)
    severity: ConsequenceSeverity = ConsequenceSeverity.MODERATE
    importance: float = Field(default=0.5, ge=0.0, le=1.0)
    entity_ids: list[str] = Field(default_factory=list)
    created_turn: int = Field(default=0, ge=0)
    expires_turn: int | None = Field(default=None, ge=0)
    status: ConsequenceStatus = ConsequenceStatus.PENDING
    resolved_turn: int | None = None
    sequence: int = Field(ge=0)

    def is_pending(self, current_turn: int) -> bool:
        if self.status is not ConsequenceStatus.PENDING:
            return False
        return self.expires_turn is None or current_turn <= self.expires_turn

    @property
    def rank(self) -> tuple[int, float, int]:
        """Sort key: most severe first, then most important, then oldest."""
        return (-_SEVERITY_ORDER.index(self.severity), -self.importance, self.sequence)


class StoryMemoryState(BaseModel):
    """Serializable contents of the story memory.

    Every fact, relationship and consequence must point at stored
    entities, and ``next_sequence`` must be past every stored sequence.
    """

    entities: dict[str, MemoryEntity] = Field(default_factory=dict)
    facts: list[MemoryFact] = Field(default_factory=list)
    relationships: list[Relationship] = Field(default_factory=list)
    consequences: list[Consequence] = Field(default_factory=list)
    next_sequence: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def validate_references(self) -> "StoryMemoryState":
        problems = self.reference_problems()
        if problems:
            raise ValueError("; ".join(problems))
        return self

    def reference_problems(self) -> list[str]:
        """List orphaned entity references and sequence clashes."""
        problems: list[str] = []
        for key, entity in self.entities.items():
            if key != entity.id:
                problems.append(f"entity key {key!r} does not match id {entity.id!r}")
        for fact in self.facts:
            if fact.entity_id not in self.entities:
                problems.append(f"fact {fact.id!r} is about unknown entity {fact.entity_id!r}")
        for rel in self.relationships:
            for end in (rel.source_id, rel.target_id):
                if end not in self.entities:
                    problems.append(f"relationship {rel.id!r} links unknown entity {end!r}")
        for consequence in self.consequences:
            for entity_id in consequence.entity_ids:
                if entity_id not in self.entities:
                    problems.append(
                        f"consequence {consequence.id!r} names unknown entity {entity_id!r}"
                    )
        sequences = [
            *(f.sequence for f in self.facts),
            *(r.sequence for r in self.relationships),
            *(c.sequence for c in self.consequences),
        ]
        if sequences and self.next_sequence <= max(sequences):
            problems.append(
                f"next_sequence {self.next_sequence} is not past stored sequence {max(sequences)}"
            )
        return problems


class KnowledgeSummary(BaseModel):
    """Answer to "what does the world know about X"."""

    entity: MemoryEntity
    facts: list[MemoryFact]
    relationships: list[Relationship]

    def to_text(self, names: dict[str, str] | None = None) -> str:
        names = names or {}
        lines = [f"{self.entity.name} ({self.entity.kind.value})"]
        if self.entity.description:
            lines.append(f"  {self.entity.description}")
        lines.extend(f"  - {fact.text}" for fact in self.facts)
        for rel in self.relationships:
            source = names.get(rel.source_id, rel.source_id)
            target = names.get(rel.target_id, rel.target_id)
            lines.append(f"  * {source} --{rel.label}--> {target}")
        return "\n".join(lines)


# =============================================================================
# Story Memory
# =============================================================================


class StoryMemory:
    """Entity/fact/relationship store with a normalized-name index.

    Usage:
        >>> memory = StoryMemory()
        >>> mira, _ = memory.upsert_entity("Mira", kind=EntityKind.CHARACTER, turn=1)
        >>> memory.add_fact(mira.id, "Mira runs the Gilded Goose", turn=1, topic="job")
        >>> memory.what_is_known("mira").facts[0].text
        'Mira runs the Gilded Goose'
    """

    def __init__(self, state: StoryMemoryState | None = None) -> None:
        self.state = state or StoryMemoryState()
        self._name_index: dict[str, str] = {}
        self._rebuild_index()

    def _rebuild_index(self) -> None:
        self._name_index = {}
        for entity in self.state.entities.values():
            for name in entity.all_names:
                self._name_index.setdefault(name, entity.id)

    def restore(self, state: StoryMemoryState) -> None:
        """Replace the contents wholesale (used by load and rollback)."""
        self.state = state
        self._rebuild_index()

    def snapshot(self) -> StoryMemoryState:
        return self.state.model_copy(deep=True)

    def to_state(self) -> StoryMemoryState:
        """Detached copy of the contents for persistence."""
        return self.snapshot()

    @classmethod
    def from_state(cls, state: StoryMemoryState) -> StoryMemory:
        return cls(state.model_copy(deep=True))

    def _next_sequence(self) -> int:
        sequence = self.state.next_sequence
        self.state.next_sequence = sequence + 1
        return sequence

    # -------------------------------------------------------------------------
    # Entities
    # -------------------------------------------------------------------------

    def find_entity(self, name: str) -> MemoryEntity | None:
        """Resolve a name or alias to an entity."""
        entity_id = self._name_index.get(normalize_name(name))
        if entity_id is None:
            return None
        return self.state.entities[entity_id]

    def get_entity(self, entity_id: str) -> MemoryEntity:
        try:
            return self.state.entities[entity_id]
        except KeyError:
            raise UnknownEntityError(
                f"No memory entity '{entity_id}'", entity_id=entity_id
            ) from None

    def upsert_entity(
        self,
        name: str,
        *,
        kind: EntityKind = EntityKind.OTHER,
        description: str = "",
        aliases: list[str] | None = None,
        turn: int = 0,
    ) -> tuple[MemoryEntity, bool]:
        """Insert an entity, or update the existing one with the same name.

        Args:
            name: Display name.
            kind: Entity kind; upgrades an existing OTHER entity.
            description: Replaces the stored description when given.
            aliases: Extra names that should resolve to this entity.
            turn: Turn of the mention.

        Returns:
            The entity and whether it was newly created.

        Raises:
            ValidationError: If the name normalizes to nothing.
        """
        normalized = normalize_name(name)
        if not normalized:
            raise ValidationError("Entity name is empty", field_name="name", invalid_value=name)
        alias_keys = [normalize_name(a) for a in aliases or []]
        alias_keys = [a for a in alias_keys if a and a != normalized]

        existing = self.find_entity(name)
        if existing is None:
            for alias in alias_keys:
                existing = self.find_entity(alias)
                if existing is not None:
                    break

        if existing is None:
            entity = MemoryEntity(
                name=name.strip(),
                normalized_name=normalized,
                kind=kind,
                aliases=sorted(set(alias_keys)),
                description=description,
                first_seen_turn=turn,
                last_seen_turn=turn,
            )
            self.state.entities[entity.id] = entity
            for key in entity.all_names:
                self._name_index.setdefault(key, entity.id)
            logger.info("Memory entity created", entity_id=entity.id, name=entity.name)
            return entity, True

        new_aliases = [
            key
            for key in [normalized, *alias_keys]
            if key not in existing.all_names and key not in self._name_index
        ]
        if new_aliases:
            existing.aliases = sorted({*existing.aliases, *new_aliases})
            for key in new_aliases:
                self._name_index[key] = existing.id
        if description:
            existing.description = description
        if existing.kind is EntityKind.OTHER and kind is not EntityKind.OTHER:
            existing.kind = kind
        existing.last_seen_turn = max(existing.last_seen_turn, turn)
        return existing, False

    # -------------------------------------------------------------------------
    # Facts & relationships
    # -------------------------------------------------------------------------

    def add_fact(
        self,
        entity_id: str,
        text: str,
        *,
        turn: int = 0,
        topic: str | None = None,
        weight: float = 1.0,
    ) -> tuple[MemoryFact, bool]:
        """Append a fact about an entity.

        An identical fact (same entity, topic and normalized text) is not
        stored twice; the existing one is returned instead.

        Returns:
            The fact and whether it was newly appended.

        Raises:
            UnknownEntityError: If the entity does not exist.
            ValidationError: If the text is empty.
        """
        entity = self.get_entity(entity_id)
        text = text.strip()
        if not text:
            raise ValidationError("Fact text is empty", field_name="fact")
        topic_key = normalize_name(topic) if topic else None

        wanted = normalize_name(text)
        for fact in self.state.facts:
            if (
                fact.entity_id == entity.id
                and fact.topic == topic_key
                and normalize_name(fact.text) == wanted
            ):
                return fact, False

        fact = MemoryFact(
            entity_id=entity.id,
            text=text,
            topic=topic_key,
            turn=turn,
            weight=weight,
            sequence=self._next_sequence(),
        )
        self.state.facts.append(fact)
        entity.last_seen_turn = max(entity.last_seen_turn, turn)
        logger.info("Memory fact added", entity_id=entity.id, topic=topic_key, turn=turn)
        return fact, True

    def add_relationship(
        self,
        source_id: str,
        target_id: str,
        label: str,
        *,
        turn: int = 0,
        bidirectional: bool = False,
    ) -> tuple[Relationship, bool]:
        """Link two entities with a typed label.

        Raises:
            UnknownEntityError: If either entity does not exist.
            ValidationError: If the label is empty or both ends are the same.
        """
        source = self.get_entity(source_id)
        target = self.get_entity(target_id)
        if source.id == target.id:
            raise ValidationError(
                "An entity cannot have a relationship with itself",
                field_name="related_to",
                invalid_value=source.name,
            )
        label_key = normalize_name(label).replace(" ", "-")
        if not label_key:
            raise ValidationError("Relationship label is empty", field_name="relation")

        candidate = Relationship(
            source_id=source.id,
            target_id=target.id,
            label=label_key,
            bidirectional=bidirectional,
            turn=turn,
            sequence=self.state.next_sequence,
        )
        for existing in self.state.relationships:
            if existing.key == candidate.key:
                return existing, False

        self._next_sequence()
        self.state.relationships.append(candidate)
        logger.info(
            "Memory relationship added",
            source=source.id,
            target=target.id,
            label=label_key,
        )
        return candidate, True

    # -------------------------------------------------------------------------
    # Consequences
    # -------------------------------------------------------------------------

    def add_consequence(
        self,
        trigger: str,
        effect: str,
        *,
        severity: ConsequenceSeverity = ConsequenceSeverity.MODERATE,
        importance: float = 0.5,
        entity_ids: list[str] | None = None,
        turn: int = 0,
        expires_in_turns: int | None = None,
    ) -> tuple[Consequence, bool]:
        """Record a consequence waiting for its trigger.

        A pending consequence with the same trigger and effect is not stored
        twice.

        Returns:
            The consequence and whether it was newly recorded.

        Raises:
            UnknownEntityError: If a related entity does not exist.
            ValidationError: If trigger or effect is empty.
        """
        trigger = trigger.strip()
        effect = effect.strip()
        if not trigger:
            raise ValidationError("Consequence trigger is empty", field_name="trigger")
        if not effect:
            raise ValidationError("Consequence effect is empty", field_name="consequence")
        related = list(dict.fromkeys(self.get_entity(eid).id for eid in entity_ids or []))

        wanted = (normalize_name(trigger), normalize_name(effect))
        for existing in self.state.consequences:
            if (
                existing.status is ConsequenceStatus.PENDING
                and (normalize_name(existing.trigger), normalize_name(existing.effect)) == wanted
            ):
                return existing, False

        consequence = Consequence(
            trigger=trigger,
            effect=effect,
            severity=severity,
            importance=importance,
            entity_ids=related,
            created_turn=turn,
            expires_turn=turn + expires_in_turns if expires_in_turns is not None else None,
            sequence=self._next_sequence(),
        )
        self.state.consequences.append(consequence)
        logger.info(
            "Consequence recorded",
            consequence_id=consequence.id,
            severity=severity.value,
            expires_turn=consequence.expires_turn,
        )
        return consequence, True

    def get_consequence(self, consequence_id: str) -> Consequence:
        for consequence in self.state.consequences:
            if consequence.id == consequence_id:
                return consequence
        raise UnknownEntityError(
            f"No consequence '{consequence_id}'", entity_id=consequence_id
        )

    def resolve_consequence(self, consequence_id: str, *, turn: int = 0) -> Consequence:
        """Mark a consequence as played out so it stops surfacing.

        Raises:
            UnknownEntityError: If the consequence does not exist.
            ValidationError: If it was already resolved.
        """
        consequence = self.get_consequence(consequence_id)
        if consequence.status is ConsequenceStatus.RESOLVED:
            raise ValidationError(
                "Consequence is already resolved",
                field_name="consequence_id",
                invalid_value=consequence_id,
            )
        resolved = consequence.model_copy(
            update={"status": ConsequenceStatus.RESOLVED, "resolved_turn": turn}
        )
        self.state.consequences = [
            resolved if c.id == consequence_id else c for c in self.state.consequences
        ]
        logger.info("Consequence resolved", consequence_id=consequence_id, turn=turn)
        return resolved

    def pending_consequences(self, current_turn: int) -> list[Consequence]:
        """Unresolved, unexpired consequences, most severe first."""
        pending = [c for c in self.state.consequences if c.is_pending(current_turn)]
        return sorted(pending, key=lambda c: c.rank)

    def triggered_consequences(
        self,
        text: str,
        *,
        current_turn: int,
        limit: int,
    ) -> list[Consequence]:
        """Pending consequences the text sets off, most severe first.

        A consequence fires when the text mentions one of its entities, or
        contains at least half of the keywords of its trigger. Keywords are
        words of four or more letters, compared on their first five letters
        so "enters" matches "enter".
        """
        if limit <= 0:
            return []
        words = _stems(text)
        mentioned = {entity.id for entity in self.mentioned_entities(text)}
        fired: list[Consequence] = []
        for consequence in self.pending_consequences(current_turn):
            if mentioned.intersection(consequence.entity_ids):
                fired.append(consequence)
                continue
            keywords = _stems(consequence.trigger)
            if keywords and len(keywords & words) * 2 >= len(keywords):
                fired.append(consequence)
        return fired[:limit]

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def facts_about(self, entity_id: str) -> list[MemoryFact]:
        """Current facts about an entity in insertion order.

        For each topic only the most recent fact (latest turn, then latest
        insertion) is returned; facts without a topic are all returned.
        """
        latest: dict[str, MemoryFact] = {}
        untopical: list[MemoryFact] = []
        for fact in self.state.facts:
            if fact.entity_id != entity_id:
                continue
            if fact.topic is None:
                untopical.append(fact)
                continue
            current = latest.get(fact.topic)
            if current is None or (fact.turn, fact.sequence) >= (current.turn, current.sequence):
                latest[fact.topic] = fact
        return sorted([*untopical, *latest.values()], key=lambda f: f.sequence)

    def latest_fact(self, entity_id: str, topic: str) -> MemoryFact | None:
        topic_key = normalize_name(topic)
        for fact in self.facts_about(entity_id):
            if fact.topic == topic_key:
                return fact
        return None

    def relationships_of(self, entity_id: str) -> list[Relationship]:
        return [
            rel
            for rel in self.state.relationships
            if rel.source_id == entity_id or rel.target_id == entity_id
        ]

    def what_is_known(self, name: str) -> KnowledgeSummary | None:
        """Everything current about the entity with this name or alias."""
        entity = self.find_entity(name)
        if entity is None:
            return None
        return KnowledgeSummary(
            entity=entity,
            facts=self.facts_about(entity.id),
            relationships=self.relationships_of(entity.id),
        )

    def search(self, query: str) -> list[MemoryEntity]:
        """Entities whose names, aliases or fact topics contain the query."""
        needle = normalize_name(query)
        if not needle:
            return []
        topic_hits = {f.entity_id for f in self.state.facts if f.topic and needle in f.topic}
        return [
            entity
            for entity in self.state.entities.values()
            if entity.id in topic_hits or any(needle in name for name in entity.all_names)
        ]

    def mentioned_entities(self, text: str) -> list[MemoryEntity]:
        """Entities whose name or an alias occurs as whole words in the text."""
        haystack = f" {normalize_name(text)} "
        found: dict[str, MemoryEntity] = {}
        for key, entity_id in self._name_index.items():
            if f" {key} " in haystack:
                found[entity_id] = self.state.entities[entity_id]
        return list(found.values())

    def relevant_facts(
        self,
        text: str,
        *,
        current_turn: int,
        limit: int,
        decay: float = 0.9,
    ) -> list[tuple[MemoryEntity, MemoryFact]]:
        """Rank current facts about entities mentioned in the text.

        Ranked by decayed relevance weight, then recency (turn), ties broken
        by insertion order.
        """
        if limit <= 0:
            return []
        ranked: list[tuple[MemoryEntity, MemoryFact]] = []
        for entity in self.mentioned_entities(text):
            ranked.extend((entity, fact) for fact in self.facts_about(entity.id))
        ranked.sort(
            key=lambda pair: (
                -pair[1].score(current_turn, decay),
                -pair[1].turn,
                pair[1].sequence,
            )
        )
        return ranked[:limit]

    def entity_names(self) -> dict[str, str]:
        return {entity.id: entity.name for entity in self.state.entities.values()}

    def __len__(self) -> int:
        return len(self.state.entities)


__all__ = [
    "normalize_name",
    "MemoryEntity",
    "MemoryFact",
    "Relationship",
    "Consequence",
    "StoryMemoryState",
    "KnowledgeSummary",
    "StoryMemory",
]
