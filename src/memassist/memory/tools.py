"""Tools for facts, documents and the entity graph."""

from typing import Any

from ..tools.base import Tool, ToolKind, ToolResult
from ..tools.registry import ToolRegistry
from .extractor import ExtractionStatus, describe
from .manager import MemoryManager
from .models import EntityType, FactCategory, MemoryFact
from .store import KnowledgeStore

MAX_SEARCH_LIMIT = 50


def _format_fact(fact: MemoryFact) -> str:
    return f"[{fact.id}] [{fact.category.value}] {fact.content}"


def _fact_data(fact: MemoryFact) -> dict[str, Any]:
    return {
        "id": fact.id,
        "category": fact.category.value,
        "content": fact.content,
        "created_at": fact.created_at,
    }


def _limit_schema(default: int) -> dict[str, Any]:
    return {
        "type": "integer",
        "minimum": 1,
        "maximum": MAX_SEARCH_LIMIT,
        "description": f"Maximum number of results (default {default})",
    }


class MemorySaveTool(Tool):
    """Tool for saving a short fact about the user."""

    def __init__(self, store: KnowledgeStore) -> None:
        self.store = store

    @property
    def kind(self) -> ToolKind:
        return ToolKind.MEMORY_SAVE

    @property
    def description(self) -> str:
        return (
            "Save an important short fact (preference, decision, personal info) "
            "to long-term memory for future conversations."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "category": {
                    "type": "string",
                    "enum": FactCategory.values(),
                    "description": "Category of the fact",
                },
                "content": {
                    "type": "string",
                    "minLength": 1,
                    "description": "The fact to remember, one or two sentences",
                },
            },
            "required": ["category", "content"],
        }

    async def execute(self, user_id: int, **kwargs: Any) -> ToolResult:
        category = kwargs["category"]
        content = kwargs["content"]
        fact_id = self.store.save_fact(user_id, category, content)
        return ToolResult(
            success=True,
            output=f'Saved (ID: {fact_id}): "{content.strip()}" [{category}]',
            data={"id": fact_id},
        )


class MemorySearchTool(Tool):
    """Full-text search over saved facts."""

    def __init__(self, store: KnowledgeStore) -> None:
        self.store = store

    @property
    def kind(self) -> ToolKind:
        return ToolKind.MEMORY_SEARCH

    @property
    def description(self) -> str:
        return (
            "Search long-term memory for previously saved facts. "
            "Search before answering questions that could relate to saved data."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {"type": "string", "minLength": 1, "description": "Keywords to search for"},
                "limit": _limit_schema(20),
            },
            "required": ["query"],
        }

    async def execute(self, user_id: int, **kwargs: Any) -> ToolResult:
        facts = self.store.search_facts(
            user_id, kwargs["query"], limit=kwargs.get("limit") or 20
        )
        output = "\n".join(_format_fact(f) for f in facts) if facts else "No facts found."
        return ToolResult(
            success=True, output=output, data={"facts": [_fact_data(f) for f in facts]}
        )


class MemoryListTool(Tool):
    """Lists all saved facts, newest first."""

    def __init__(self, store: KnowledgeStore) -> None:
        self.store = store

    @property
    def kind(self) -> ToolKind:
        return ToolKind.MEMORY_LIST

    @property
    def description(self) -> str:
        return "List saved facts from long-term memory, newest first."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "category": {
                    "type": "string",
                    "enum": FactCategory.values(),
                    "description": "Only list facts in this category (optional)",
                },
            },
        }

    async def execute(self, user_id: int, **kwargs: Any) -> ToolResult:
        facts = self.store.list_facts(user_id, category=kwargs.get("category"))
        output = "\n".join(_format_fact(f) for f in facts) if facts else "No facts saved yet."
        return ToolResult(
            success=True, output=output, data={"facts": [_fact_data(f) for f in facts]}
        )


class MemoryDeleteTool(Tool):
    """Deletes one fact by id."""

    def __init__(self, store: KnowledgeStore) -> None:
        self.store = store

    @property
    def kind(self) -> ToolKind:
        return ToolKind.MEMORY_DELETE

    @property
    def description(self) -> str:
        return "Delete a specific memory fact by its ID. Use for outdated or wrong facts."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "id": {"type": "integer", "minimum": 1, "description": "The fact ID to delete"},
            },
            "required": ["id"],
        }

    async def execute(self, user_id: int, **kwargs: Any) -> ToolResult:
        fact_id = kwargs["id"]
        self.store.delete_fact(user_id, fact_id)
        return ToolResult(
            success=True, output=f"Deleted memory ID: {fact_id}", data={"id": fact_id}
        )


class KnowledgeSaveTool(Tool):
    """Saves a document and links the entities found in it."""

    def __init__(self, manager: MemoryManager) -> None:
        self.manager = manager

    @property
    def kind(self) -> ToolKind:
        return ToolKind.KNOWLEDGE_SAVE

    @property
    def description(self) -> str:
        return (
            "Save a document, article, note or bookmark to the knowledge base. "
            "Entities (people, projects, technologies) are extracted automatically."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "title": {"type": "string", "minLength": 1, "description": "Title of the document"},
                "content": {
                    "type": "string",
                    "minLength": 1,
                    "description": "Full text of the document",
                },
                "source": {"type": "string", "description": "Source URL or reference (optional)"},
                "tags": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Tags (optional)",
                },
            },
            "required": ["title", "content"],
        }

    async def execute(self, user_id: int, **kwargs: Any) -> ToolResult:
        title = kwargs["title"]
        document_id, extraction = await self.manager.save_document(
            user_id,
            title,
            kwargs["content"],
            source=kwargs.get("source"),
            tags=kwargs.get("tags"),
        )

        lines = [f'Saved document (ID: {document_id}): "{title.strip()}"']
        data: dict[str, Any] = {"id": document_id, "extraction": None}
        if extraction is not None:
            data["extraction"] = describe(extraction)
            if extraction.status is ExtractionStatus.EXTRACTED:
                names = ", ".join(e.name for e in extraction.entities)
                lines.append(f"Extracted {len(extraction.entities)} entities: {names}")
            elif extraction.status is ExtractionStatus.FAILED:
                lines.append("Entity extraction was skipped.")
        return ToolResult(success=True, output="\n".join(lines), data=data)


class KnowledgeSearchTool(Tool):
    """Full-text search over saved documents."""

    def __init__(self, store: KnowledgeStore) -> None:
        self.store = store

    @property
    def kind(self) -> ToolKind:
        return ToolKind.KNOWLEDGE_SEARCH

    @property
    def description(self) -> str:
        return "Search the knowledge base for documents using full-text search."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {"type": "string", "minLength": 1, "description": "Search query"},
                "limit": _limit_schema(10),
            },
            "required": ["query"],
        }

    async def execute(self, user_id: int, **kwargs: Any) -> ToolResult:
        hits = self.store.search_documents(
            user_id, kwargs["query"], limit=kwargs.get("limit") or 10
        )
        if not hits:
            return ToolResult(success=True, output="No documents found.", data={"documents": []})

        blocks = [
            f"[{h.id}] {h.title}\n  {h.snippet}\n  Source: {h.source or 'no source'}"
            for h in hits
        ]
        return ToolResult(
            success=True,
            output="\n\n".join(blocks),
            data={
                "documents": [
                    {"id": h.id, "title": h.title, "snippet": h.snippet, "source": h.source}
                    for h in hits
                ]
            },
        )


class EntitySearchTool(Tool):
    """Looks up entities and where they are mentioned."""

    def __init__(self, store: KnowledgeStore) -> None:
        self.store = store

    @property
    def kind(self) -> ToolKind:
        return ToolKind.ENTITY_SEARCH

    @property
    def description(self) -> str:
        return (
            "Search the knowledge graph for entities ("
            + ", ".join(EntityType.values())
            + ") and see which documents mention them."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {"type": "string", "minLength": 1, "description": "Entity name to search for"},
            },
            "required": ["query"],
        }

    async def execute(self, user_id: int, **kwargs: Any) -> ToolResult:
        hits = self.store.search_entities(user_id, kwargs["query"])
        if not hits:
            return ToolResult(success=True, output="No entities found.", data={"entities": []})

        blocks = []
        for hit in hits:
            line = f"{hit.entity.name} [{hit.entity.type.value}]"
            if not hit.mentions:
                line += " - no mentions"
            for m in hit.mentions:
                line += f"\n  - {m.source_label}: {m.context}"
            blocks.append(line)

        return ToolResult(
            success=True,
            output="\n\n".join(blocks),
            data={
                "entities": [
                    {
                        "id": hit.entity.id,
                        "name": hit.entity.name,
                        "type": hit.entity.type.value,
                        "mentions": [
                            {
                                "document_id": m.document_id,
                                "fact_id": m.fact_id,
                                "context": m.context,
                            }
                            for m in hit.mentions
                        ],
                    }
                    for hit in hits
                ]
            },
        )


def register_memory_tools(registry: ToolRegistry, manager: MemoryManager) -> None:
    """Register every fact, document and entity tool."""
    store = manager.store
    registry.register(MemorySaveTool(store))
    registry.register(MemorySearchTool(store))
    registry.register(MemoryListTool(store))
    registry.register(MemoryDeleteTool(store))
    registry.register(KnowledgeSaveTool(manager))
    registry.register(KnowledgeSearchTool(store))
    registry.register(EntitySearchTool(store))
