"""Knowledge store, entity extraction and memory tools."""

from .extractor import EntityExtractor, ExtractionResult, ExtractionStatus
from .manager import MemoryManager
from .models import (
    DocumentHit,
    Entity,
    EntityHit,
    EntityMention,
    EntityType,
    FactCategory,
    KnowledgeDocument,
    MemoryFact,
    Role,
    Session,
    SessionMessage,
)
from .store import KnowledgeStore
from .tools import register_memory_tools

__all__ = [
    "DocumentHit",
    "Entity",
    "EntityExtractor",
    "EntityHit",
    "EntityMention",
    "EntityType",
    "ExtractionResult",
    "ExtractionStatus",
    "FactCategory",
    "KnowledgeDocument",
    "KnowledgeStore",
    "MemoryFact",
    "MemoryManager",
    "Role",
    "Session",
    "SessionMessage",
    "register_memory_tools",
]
