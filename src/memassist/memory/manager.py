"""Memory manager for orchestrating storage, extraction and prompt context."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from .models import FactCategory, MemoryFact
from .store import KnowledgeStore

if TYPE_CHECKING:
    from ..logging import JSONLLogger
    from .extractor import EntityExtractor, ExtractionResult

logger = logging.getLogger(__name__)

PROMPT_FACT_LIMIT = 30


class MemoryManager:
    """Orchestrates memory operations: document ingestion and prompt context.

    This is the main interface the tools and the agent use, coordinating
    between the store and the extractor.
    """

    def __init__(
        self,
        store: KnowledgeStore,
        extractor: EntityExtractor | None = None,
        event_log: JSONLLogger | None = None,
    ) -> None:
        """Initialize the manager with a store and optional extractor.

        Args:
            store: The KnowledgeStore for persistence.
            extractor: Optional EntityExtractor run after each document save.
            event_log: Optional structured event log.
        """
        self.store = store
        self.extractor = extractor
        self.event_log = event_log

    async def save_document(
        self,
        user_id: int,
        title: str,
        content: str,
        source: str | None = None,
        tags: Iterable[str] | None = None,
    ) -> tuple[int, ExtractionResult | None]:
        """Save a user's document, then try to extract entities from it.

        The document is committed before extraction starts. Extraction
        failures are reported in the result, never raised.

        Returns:
            The document id and the extraction result (None without extractor).
        """
        document_id = self.store.save_document(
            user_id, title, content, source=source, tags=tags
        )
        if self.extractor is None:
            return document_id, None

        result = await self.extractor.extract_for_document(
            user_id, document_id, f"{title.strip()}\n\n{content.strip()}"
        )
        logger.info(
            "Document %d saved, extraction %s (%d entities)",
            document_id,
            result.status.value,
            len(result.entities),
        )
        if self.event_log:
            self.event_log.log(
                "extraction",
                user_id=user_id,
                document_id=document_id,
                status=result.status.value,
                entities=len(result.entities),
            )
        return document_id, result

    def recent_facts(self, user_id: int, limit: int = PROMPT_FACT_LIMIT) -> list[MemoryFact]:
        return self.store.list_facts(user_id, limit=limit)

    def format_for_prompt(self, facts: list[MemoryFact]) -> str:
        """Format facts as a block for injection into the system prompt.

        Args:
            facts: List of facts to format.

        Returns:
            Memory block grouped by category, or empty string if no facts.
        """
        if not facts:
            return ""

        grouped: dict[FactCategory, list[MemoryFact]] = {}
        for fact in facts:
            grouped.setdefault(fact.category, []).append(fact)

        lines = ["<memory>", "What you know about the user:"]
        for category in FactCategory:
            if category not in grouped:
                continue
            lines.append(f"[{category.value}]")
            lines.extend(f"- ({fact.id}) {fact.content}" for fact in grouped[category])
        lines.append("</memory>")
        return "\n".join(lines)
