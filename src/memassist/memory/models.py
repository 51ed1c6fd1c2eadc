"""Data models for the knowledge store."""

from dataclasses import dataclass, field
from enum import Enum


class FactCategory(Enum):
    """Fixed set of categories a memory fact can belong to."""

    PREFERENCE = "preference"
    DECISION = "decision"
    PERSONAL = "personal"
    TECHNICAL = "technical"
    PROJECT = "project"
    WORKFLOW = "workflow"

    @classmethod
    def values(cls) -> list[str]:
        return [c.value for c in cls]


class EntityType(Enum):
    """Kinds of entity the extractor may propose."""

    PERSON = "person"
    PROJECT = "project"
    TECHNOLOGY = "technology"
    CONCEPT = "concept"
    ORGANIZATION = "organization"

    @classmethod
    def values(cls) -> list[str]:
        return [t.value for t in cls]


class Role(Enum):
    """Author of a session message."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class MemoryFact:
    """A short fact about the user.

    Attributes:
        id: Database ID.
        category: One of the fixed categories.
        content: The fact itself.
        created_at: ISO timestamp when created.
    """

    id: int
    category: FactCategory
    content: str
    created_at: str


@dataclass(frozen=True)
class KnowledgeDocument:
    """A longer piece of saved content: article, note, bookmark."""

    id: int
    title: str
    content: str
    created_at: str
    source: str | None = None
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class DocumentHit:
    """A ranked document search result with a highlighted snippet."""

    id: int
    title: str
    snippet: str
    source: str | None = None
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class Entity:
    """A named thing mentioned across documents."""

    id: int
    name: str
    type: EntityType


@dataclass(frozen=True)
class EntityMention:
    """Link from an entity to the document or fact that mentions it.

    Exactly one of ``document_id`` and ``fact_id`` is set.
    """

    id: int
    entity_id: int
    context: str
    created_at: str
    document_id: int | None = None
    fact_id: int | None = None

    @property
    def source_label(self) -> str:
        if self.document_id is not None:
            return f"document #{self.document_id}"
        return f"fact #{self.fact_id}"


@dataclass(frozen=True)
class EntityHit:
    """An entity together with its most recent mentions."""

    entity: Entity
    mentions: list[EntityMention] = field(default_factory=list)


@dataclass(frozen=True)
class Session:
    """A conversation thread for one user."""

    id: str
    user_id: int
    created_at: str
    last_active_at: str
    superseded_at: str | None = None

    @property
    def is_active(self) -> bool:
        return self.superseded_at is None


@dataclass(frozen=True)
class SessionMessage:
    """One persisted message in a session."""

    id: int
    session_id: str
    role: Role
    content: str
    turn_index: int
    created_at: str

    def to_llm(self) -> dict[str, str]:
        """Return the message in chat-completions format."""
        return {"role": self.role.value, "content": self.content}
