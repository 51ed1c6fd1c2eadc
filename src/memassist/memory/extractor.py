"""Entity extraction from documents using the LLM."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..errors import EntityExtractionError, MemassistError
from .models import Entity, EntityType
from .store import MAX_CONTEXT_LENGTH, KnowledgeStore

if TYPE_CHECKING:
    from ..llm import ModelClient

logger = logging.getLogger(__name__)

MAX_INPUT_CHARS = 3000
SNIPPET_RADIUS = 30

EXTRACTION_PROMPT = """Extract named entities from the following text. Return ONLY a JSON array of objects with "name", "type" and "context" fields.

Valid types: person, project, technology, concept, organization

Rules:
- Only extract clearly named entities (proper nouns, specific names)
- Normalize names (capitalize properly)
- Skip generic terms
- "context" is the short phrase from the text where the entity appears
- Return an empty array [] if no entities are found
- Return ONLY the JSON array, no other text

Text:
"""


class ExtractionStatus(Enum):
    """Outcome of extraction for one document."""

    EXTRACTED = "extracted"
    NONE_FOUND = "none_found"
    FAILED = "failed"


@dataclass
class ExtractionResult:
    """Entities linked to a document, or why none were."""

    status: ExtractionStatus
    entities: list[Entity] = field(default_factory=list)


@dataclass(frozen=True)
class Candidate:
    """An entity proposed by the model, before it touches the store."""

    name: str
    type: EntityType
    context: str = ""


def build_context_snippet(text: str, name: str, radius: int = SNIPPET_RADIUS) -> str | None:
    """Return the text around the first case-insensitive occurrence of name."""
    pos = text.lower().find(name.lower())
    if pos < 0:
        return None
    start = max(0, pos - radius)
    end = min(len(text), pos + len(name) + radius)
    return text[start:end].strip()


def parse_candidates(content: str) -> list[Candidate]:
    """Parse the model response into candidates.

    Raises:
        EntityExtractionError: If no JSON array can be read from the response.
    """
    text = content.strip()
    start = text.find("[")
    end = text.rfind("]")
    if start < 0 or end < start:
        raise EntityExtractionError("No JSON array in extraction response")

    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError as e:
        raise EntityExtractionError(f"Unparseable extraction response: {e}") from e

    if not isinstance(data, list):
        raise EntityExtractionError("Extraction response is not a list")

    candidates: dict[tuple[str, EntityType], Candidate] = {}
    for item in data:
        if not isinstance(item, dict):
            logger.debug("Skipping non-object entity item: %r", item)
            continue
        name = str(item.get("name") or "").strip()
        raw_type = str(item.get("type") or "").strip().lower()
        if not name or raw_type not in EntityType.values():
            logger.debug("Skipping invalid entity item: %r", item)
            continue
        etype = EntityType(raw_type)
        key = (name.casefold(), etype)
        if key not in candidates:
            candidates[key] = Candidate(
                name=name, type=etype, context=str(item.get("context") or "").strip()
            )
    return list(candidates.values())


class EntityExtractor:
    """Extracts entities from a document and links them in the store.

    Extraction is a single exchange with no tools. Every failure mode ends in
    ``ExtractionStatus.FAILED``; nothing is raised to the caller.
    """

    def __init__(self, client: ModelClient, store: KnowledgeStore) -> None:
        """Initialize the extractor.

        Args:
            client: Model client used for the extraction request.
            store: Store the entities and mentions are written to.
        """
        self.client = client
        self.store = store

    async def extract_for_document(
        self, user_id: int, document_id: int, text: str
    ) -> ExtractionResult:
        """Extract entities from a user's document and link them to it."""
        try:
            candidates = await self._request_candidates(text)
        except MemassistError as e:
            logger.warning("Entity extraction for document %d skipped: %s", document_id, e)
            return ExtractionResult(status=ExtractionStatus.FAILED)
        except Exception:
            logger.exception("Entity extraction for document %d failed", document_id)
            return ExtractionResult(status=ExtractionStatus.FAILED)

        if not candidates:
            return ExtractionResult(status=ExtractionStatus.NONE_FOUND)

        linked: list[Entity] = []
        for candidate in candidates:
            try:
                entity = self.store.upsert_entity(user_id, candidate.name, candidate.type)
                self.store.add_mention(
                    entity.id,
                    self._context_for(candidate, text),
                    document_id=document_id,
                )
            except MemassistError as e:
                logger.warning("Failed to link entity %r: %s", candidate.name, e)
                return ExtractionResult(status=ExtractionStatus.FAILED, entities=linked)
            linked.append(entity)

        logger.debug("Linked %d entities to document %d", len(linked), document_id)
        return ExtractionResult(status=ExtractionStatus.EXTRACTED, entities=linked)

    async def _request_candidates(self, text: str) -> list[Candidate]:
        prompt = EXTRACTION_PROMPT + text[:MAX_INPUT_CHARS]
        content = await self.client.complete(prompt, temperature=0.1)
        return parse_candidates(content)

    def _context_for(self, candidate: Candidate, text: str) -> str:
        context = candidate.context or build_context_snippet(text, candidate.name) or candidate.name
        return context[:MAX_CONTEXT_LENGTH]


def describe(result: ExtractionResult) -> dict[str, Any]:
    """Structured summary used in tool output."""
    return {
        "status": result.status.value,
        "entities": [{"name": e.name, "type": e.type.value} for e in result.entities],
    }
