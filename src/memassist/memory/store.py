"""SQLite storage for facts, documents, the entity graph and sessions."""

from __future__ import annotations

import json
import re
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator

from ..errors import InvalidCategory, NotFoundError, StoreError, ValidationError
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

MAX_CONTEXT_LENGTH = 200
MENTIONS_PER_ENTITY = 10

SCHEMA = """
CREATE TABLE IF NOT EXISTS memory_facts (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id     INTEGER NOT NULL,
    category    TEXT NOT NULL,
    content     TEXT NOT NULL,
    created_at  TEXT NOT NULL
);

CREATE VIRTUAL TABLE IF NOT EXISTS memory_facts_fts USING fts5(content);

CREATE TRIGGER IF NOT EXISTS memory_facts_ai AFTER INSERT ON memory_facts BEGIN
    INSERT INTO memory_facts_fts(rowid, content) VALUES (new.id, new.content);
END;

CREATE TRIGGER IF NOT EXISTS memory_facts_ad AFTER DELETE ON memory_facts BEGIN
    DELETE FROM memory_facts_fts WHERE rowid = old.id;
END;

CREATE TRIGGER IF NOT EXISTS memory_facts_au AFTER UPDATE OF content ON memory_facts BEGIN
    UPDATE memory_facts_fts SET content = new.content WHERE rowid = old.id;
END;

CREATE TABLE IF NOT EXISTS knowledge_documents (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id     INTEGER NOT NULL,
    title       TEXT NOT NULL,
    content     TEXT NOT NULL,
    source      TEXT,
    tags        TEXT NOT NULL DEFAULT '[]',
    created_at  TEXT NOT NULL
);

CREATE VIRTUAL TABLE IF NOT EXISTS knowledge_documents_fts USING fts5(title, content);

CREATE TRIGGER IF NOT EXISTS knowledge_documents_ai AFTER INSERT ON knowledge_documents BEGIN
    INSERT INTO knowledge_documents_fts(rowid, title, content)
    VALUES (new.id, new.title, new.content);
END;

CREATE TRIGGER IF NOT EXISTS knowledge_documents_ad AFTER DELETE ON knowledge_documents BEGIN
    DELETE FROM knowledge_documents_fts WHERE rowid = old.id;
END;

CREATE TRIGGER IF NOT EXISTS knowledge_documents_au
AFTER UPDATE OF title, content ON knowledge_documents BEGIN
    UPDATE knowledge_documents_fts SET title = new.title, content = new.content
    WHERE rowid = old.id;
END;

CREATE TABLE IF NOT EXISTS entities (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id     INTEGER NOT NULL,
    name        TEXT NOT NULL,
    name_key    TEXT NOT NULL,
    entity_type TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    UNIQUE(user_id, name_key, entity_type)
);

CREATE TABLE IF NOT EXISTS entity_mentions (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    entity_id   INTEGER NOT NULL REFERENCES entities(id),
    document_id INTEGER REFERENCES knowledge_documents(id),
    fact_id     INTEGER REFERENCES memory_facts(id),
    context     TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    CHECK ((document_id IS NULL) <> (fact_id IS NULL))
);

CREATE INDEX IF NOT EXISTS idx_facts_user ON memory_facts(user_id);
CREATE INDEX IF NOT EXISTS idx_documents_user ON knowledge_documents(user_id);

CREATE INDEX IF NOT EXISTS idx_mentions_entity ON entity_mentions(entity_id);
CREATE INDEX IF NOT EXISTS idx_mentions_document ON entity_mentions(document_id);
CREATE INDEX IF NOT EXISTS idx_mentions_fact ON entity_mentions(fact_id);

CREATE TABLE IF NOT EXISTS sessions (
    id              TEXT PRIMARY KEY,
    user_id         INTEGER NOT NULL,
    created_at      TEXT NOT NULL,
    last_active_at  TEXT NOT NULL,
    superseded_at   TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_sessions_active
    ON sessions(user_id) WHERE superseded_at IS NULL;

CREATE TABLE IF NOT EXISTS session_messages (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id  TEXT NOT NULL REFERENCES sessions(id),
    role        TEXT NOT NULL CHECK (role IN ('user', 'assistant', 'tool')),
    content     TEXT NOT NULL,
    turn_index  INTEGER NOT NULL,
    created_at  TEXT NOT NULL,
    UNIQUE(session_id, turn_index)
);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def _rollback(conn: sqlite3.Connection) -> None:
    if conn.in_transaction:
        conn.execute("ROLLBACK")


def _fts_terms(query: str) -> list[str]:
    """Split a free-text query into FTS-safe word terms."""
    cleaned = re.sub(r"[^\w\s]", " ", query or "", flags=re.UNICODE)
    return [t for t in cleaned.split() if t]


def _fts_query(terms: list[str]) -> str:
    # Quoted prefix terms, implicitly ANDed
    return " ".join(f'"{t}"*' for t in terms)


def _like_pattern(query: str) -> str:
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _merge_hits(
    ranked: list[sqlite3.Row], extra: list[sqlite3.Row], limit: int
) -> list[sqlite3.Row]:
    """Ranked rows first, then extra rows not already present, up to limit."""
    seen = {row["id"] for row in ranked}
    merged = list(ranked)
    for row in extra:
        if len(merged) >= limit:
            break
        if row["id"] not in seen:
            seen.add(row["id"])
            merged.append(row)
    return merged


def normalize_tags(tags: Iterable[str] | None) -> tuple[str, ...]:
    """Strip, drop blanks and de-duplicate while keeping order."""
    seen: dict[str, None] = {}
    for tag in tags or ():
        tag = str(tag).strip()
        if tag and tag not in seen:
            seen[tag] = None
    return tuple(seen)


class KnowledgeStore:
    """Persistent storage for the assistant using SQLite.

    Facts and documents are mirrored into FTS5 tables by triggers, so every
    write reaches the primary table and its index in the same transaction.
    Facts, documents and entities belong to one user; every lookup is
    filtered by that user. All access goes through one connection guarded
    by a lock.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Initialize the store with a database path.

        Args:
            db_path: Path to the SQLite database file, or ``":memory:"``.
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                self.db_path, isolation_level=None, check_same_thread=False
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA busy_timeout=5000")
            conn.execute("PRAGMA foreign_keys=ON")
            self._conn = conn
        return self._conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block in one write transaction; roll back on any error."""
        with self._lock:
            conn = self._get_connection()
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StoreError(f"Could not start transaction: {e}") from e
            try:
                yield conn
            except sqlite3.Error as e:
                _rollback(conn)
                raise StoreError(str(e)) from e
            except BaseException:
                _rollback(conn)
                raise
            else:
                try:
                    conn.execute("COMMIT")
                except sqlite3.Error as e:
                    _rollback(conn)
                    raise StoreError(f"Commit failed: {e}") from e

    @contextmanager
    def _read(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._get_connection()
            except sqlite3.Error as e:
                raise StoreError(str(e)) from e

    def init_db(self) -> None:
        """Create tables, indexes and triggers if they don't exist."""
        with self._lock:
            try:
                self._get_connection().executescript(SCHEMA)
            except sqlite3.Error as e:
                raise StoreError(f"Schema initialization failed: {e}") from e

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    # --- Facts ---

    def save_fact(self, user_id: int, category: str | FactCategory, content: str) -> int:
        """Save a fact for a user and index it.

        Raises:
            InvalidCategory: If category is outside the fixed set.
            ValidationError: If content is blank.
        """
        try:
            cat = FactCategory(category)
        except ValueError:
            raise InvalidCategory(
                f"Invalid category {category!r}; expected one of "
                f"{', '.join(FactCategory.values())}"
            ) from None
        content = (content or "").strip()
        if not content:
            raise ValidationError("Fact content cannot be empty")

        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO memory_facts (user_id, category, content, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (user_id, cat.value, content, _now()),
            )
            return int(cursor.lastrowid)

    def get_fact(self, user_id: int, fact_id: int) -> MemoryFact | None:
        with self._read() as conn:
            row = conn.execute(
                """
                SELECT id, category, content, created_at FROM memory_facts
                WHERE id = ? AND user_id = ?
                """,
                (fact_id, user_id),
            ).fetchone()
        return self._row_to_fact(row) if row else None

    def search_facts(self, user_id: int, query: str, limit: int = 20) -> list[MemoryFact]:
        """Ranked full-text search over a user's facts.

        Index hits come first in rank order, followed by substring matches
        the index missed (partial words, punctuation-only queries).
        """
        pattern = (query or "").strip()
        if not pattern:
            return []
        terms = _fts_terms(pattern)

        with self._read() as conn:
            rows = []
            if terms:
                rows = conn.execute(
                    """
                    SELECT f.id, f.category, f.content, f.created_at
                    FROM memory_facts_fts
                    JOIN memory_facts f ON f.id = memory_facts_fts.rowid
                    WHERE memory_facts_fts MATCH ? AND f.user_id = ?
                    ORDER BY memory_facts_fts.rank
                    LIMIT ?
                    """,
                    (_fts_query(terms), user_id, limit),
                ).fetchall()
            if len(rows) < limit:
                substring_rows = conn.execute(
                    """
                    SELECT id, category, content, created_at FROM memory_facts
                    WHERE user_id = ? AND content LIKE ? ESCAPE '\\'
                    ORDER BY id DESC
                    LIMIT ?
                    """,
                    (user_id, _like_pattern(pattern), limit),
                ).fetchall()
                rows = _merge_hits(rows, substring_rows, limit)
        return [self._row_to_fact(row) for row in rows]

    def list_facts(
        self,
        user_id: int,
        category: str | FactCategory | None = None,
        limit: int | None = None,
    ) -> list[MemoryFact]:
        """List a user's facts, newest first, optionally filtered by category."""
        sql = "SELECT id, category, content, created_at FROM memory_facts WHERE user_id = ?"
        params: list[object] = [user_id]
        if category is not None:
            try:
                cat = FactCategory(category)
            except ValueError:
                raise InvalidCategory(f"Invalid category {category!r}") from None
            sql += " AND category = ?"
            params.append(cat.value)
        sql += " ORDER BY id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        with self._read() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_fact(row) for row in rows]

    def delete_fact(self, user_id: int, fact_id: int) -> None:
        """Delete a user's fact, its index row, its mentions and orphaned entities.

        Raises:
            NotFoundError: If the user has no fact with this id.
        """
        with self._transaction() as conn:
            conn.execute(
                """
                DELETE FROM entity_mentions WHERE fact_id IN (
                    SELECT id FROM memory_facts WHERE id = ? AND user_id = ?
                )
                """,
                (fact_id, user_id),
            )
            cursor = conn.execute(
                "DELETE FROM memory_facts WHERE id = ? AND user_id = ?", (fact_id, user_id)
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Fact {fact_id} not found")
            self._prune_entities(conn)

    # --- Documents ---

    def save_document(
        self,
        user_id: int,
        title: str,
        content: str,
        source: str | None = None,
        tags: Iterable[str] | None = None,
    ) -> int:
        """Save a document for a user and index it.

        Entity extraction is not part of this transaction; the document is
        committed first so it survives any extraction failure.
        """
        title = (title or "").strip()
        content = (content or "").strip()
        if not title or not content:
            raise ValidationError("Title and content are required")
        source = (source or "").strip() or None

        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO knowledge_documents
                    (user_id, title, content, source, tags, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    title,
                    content,
                    source,
                    json.dumps(list(normalize_tags(tags))),
                    _now(),
                ),
            )
            return int(cursor.lastrowid)

    def get_document(self, user_id: int, document_id: int) -> KnowledgeDocument | None:
        with self._read() as conn:
            row = conn.execute(
                """
                SELECT id, title, content, source, tags, created_at
                FROM knowledge_documents WHERE id = ? AND user_id = ?
                """,
                (document_id, user_id),
            ).fetchone()
        if row is None:
            return None
        return KnowledgeDocument(
            id=row["id"],
            title=row["title"],
            content=row["content"],
            source=row["source"],
            tags=tuple(json.loads(row["tags"] or "[]")),
            created_at=row["created_at"],
        )

    def delete_document(self, user_id: int, document_id: int) -> None:
        """Delete a user's document with the same cascade as ``delete_fact``."""
        with self._transaction() as conn:
            conn.execute(
                """
                DELETE FROM entity_mentions WHERE document_id IN (
                    SELECT id FROM knowledge_documents WHERE id = ? AND user_id = ?
                )
                """,
                (document_id, user_id),
            )
            cursor = conn.execute(
                "DELETE FROM knowledge_documents WHERE id = ? AND user_id = ?",
                (document_id, user_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Document {document_id} not found")
            self._prune_entities(conn)

    def search_documents(self, user_id: int, query: str, limit: int = 10) -> list[DocumentHit]:
        """Ranked full-text search over a user's documents, with snippets.

        As with facts, substring matches on title or content follow the
        index hits.
        """
        pattern = (query or "").strip()
        if not pattern:
            return []
        terms = _fts_terms(pattern)

        with self._read() as conn:
            rows = []
            if terms:
                rows = conn.execute(
                    """
                    SELECT d.id, d.title, d.source, d.tags,
                           snippet(knowledge_documents_fts, -1, '**', '**', '...', 40) AS snippet
                    FROM knowledge_documents_fts
                    JOIN knowledge_documents d ON d.id = knowledge_documents_fts.rowid
                    WHERE knowledge_documents_fts MATCH ? AND d.user_id = ?
                    ORDER BY knowledge_documents_fts.rank
                    LIMIT ?
                    """,
                    (_fts_query(terms), user_id, limit),
                ).fetchall()
            if len(rows) < limit:
                like = _like_pattern(pattern)
                substring_rows = conn.execute(
                    """
                    SELECT id, title, source, tags, substr(content, 1, 200) AS snippet
                    FROM knowledge_documents
                    WHERE user_id = ?
                      AND (title LIKE ? ESCAPE '\\' OR content LIKE ? ESCAPE '\\')
                    ORDER BY id DESC
                    LIMIT ?
                    """,
                    (user_id, like, like, limit),
                ).fetchall()
                rows = _merge_hits(rows, substring_rows, limit)
        return [
            DocumentHit(
                id=row["id"],
                title=row["title"],
                snippet=row["snippet"] or "",
                source=row["source"],
                tags=tuple(json.loads(row["tags"] or "[]")),
            )
            for row in rows
        ]

    # --- Entity graph ---

    def upsert_entity(self, user_id: int, name: str, entity_type: str | EntityType) -> Entity:
        """Return the user's entity matching name (case-insensitive) and type, creating it if absent.

        The first spelling seen is kept as the display name.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Entity name cannot be empty")
        try:
            etype = EntityType(entity_type)
        except ValueError:
            raise ValidationError(f"Invalid entity type {entity_type!r}") from None

        with self._transaction() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO entities (user_id, name, name_key, entity_type, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user_id, name, name.casefold(), etype.value, _now()),
            )
            row = conn.execute(
                """
                SELECT id, name, entity_type FROM entities
                WHERE user_id = ? AND name_key = ? AND entity_type = ?
                """,
                (user_id, name.casefold(), etype.value),
            ).fetchone()
        return self._row_to_entity(row)

    def add_mention(
        self,
        entity_id: int,
        context: str,
        *,
        document_id: int | None = None,
        fact_id: int | None = None,
    ) -> int:
        """Link an entity to exactly one document or fact."""
        if (document_id is None) == (fact_id is None):
            raise ValidationError("A mention needs exactly one of document_id or fact_id")

        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO entity_mentions (entity_id, document_id, fact_id, context, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (entity_id, document_id, fact_id, (context or "")[:MAX_CONTEXT_LENGTH], _now()),
            )
            return int(cursor.lastrowid)

    def search_entities(self, user_id: int, query: str, limit: int = 20) -> list[EntityHit]:
        """Find a user's entities whose name contains the query, with recent mentions."""
        query = (query or "").strip()
        if not query:
            return []

        with self._read() as conn:
            entity_rows = conn.execute(
                """
                SELECT id, name, entity_type FROM entities
                WHERE user_id = ? AND name LIKE ? ESCAPE '\\'
                ORDER BY name_key = ? DESC, name
                LIMIT ?
                """,
                (user_id, _like_pattern(query), query.casefold(), limit),
            ).fetchall()

            hits = []
            for row in entity_rows:
                mention_rows = conn.execute(
                    """
                    SELECT id, entity_id, document_id, fact_id, context, created_at
                    FROM entity_mentions
                    WHERE entity_id = ?
                    ORDER BY id DESC
                    LIMIT ?
                    """,
                    (row["id"], MENTIONS_PER_ENTITY),
                ).fetchall()
                hits.append(
                    EntityHit(
                        entity=self._row_to_entity(row),
                        mentions=[self._row_to_mention(m) for m in mention_rows],
                    )
                )
        return hits

    def mentions_for_document(self, document_id: int) -> list[EntityMention]:
        with self._read() as conn:
            rows = conn.execute(
                """
                SELECT id, entity_id, document_id, fact_id, context, created_at
                FROM entity_mentions WHERE document_id = ? ORDER BY id
                """,
                (document_id,),
            ).fetchall()
        return [self._row_to_mention(row) for row in rows]

    def _prune_entities(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            DELETE FROM entities
            WHERE NOT EXISTS (
                SELECT 1 FROM entity_mentions m WHERE m.entity_id = entities.id
            )
            """
        )

    # --- Consistency probes ---

    def _ids(self, sql: str) -> set[int]:
        with self._read() as conn:
            return {int(row[0]) for row in conn.execute(sql).fetchall()}

    def fact_ids(self) -> set[int]:
        return self._ids("SELECT id FROM memory_facts")

    def fact_index_ids(self) -> set[int]:
        return self._ids("SELECT rowid FROM memory_facts_fts")

    def document_ids(self) -> set[int]:
        return self._ids("SELECT id FROM knowledge_documents")

    def document_index_ids(self) -> set[int]:
        return self._ids("SELECT rowid FROM knowledge_documents_fts")

    def count_entities(self) -> int:
        return len(self._ids("SELECT id FROM entities"))

    def count_mentions(self) -> int:
        return len(self._ids("SELECT id FROM entity_mentions"))

    # --- Sessions ---

    def get_active_session(self, user_id: int) -> Session | None:
        with self._read() as conn:
            row = conn.execute(
                """
                SELECT id, user_id, created_at, last_active_at, superseded_at
                FROM sessions WHERE user_id = ? AND superseded_at IS NULL
                """,
                (user_id,),
            ).fetchone()
        return self._row_to_session(row) if row else None

    def get_session(self, session_id: str) -> Session | None:
        with self._read() as conn:
            row = conn.execute(
                """
                SELECT id, user_id, created_at, last_active_at, superseded_at
                FROM sessions WHERE id = ?
                """,
                (session_id,),
            ).fetchone()
        return self._row_to_session(row) if row else None

    def list_sessions(self, user_id: int) -> list[Session]:
        """All sessions for a user, oldest first."""
        with self._read() as conn:
            rows = conn.execute(
                """
                SELECT id, user_id, created_at, last_active_at, superseded_at
                FROM sessions WHERE user_id = ? ORDER BY rowid
                """,
                (user_id,),
            ).fetchall()
        return [self._row_to_session(row) for row in rows]

    def create_session(self, user_id: int) -> Session:
        """Create a new active session, superseding the current one."""
        now = _now()
        session_id = uuid.uuid4().hex
        with self._transaction() as conn:
            conn.execute(
                """
                UPDATE sessions SET superseded_at = ?
                WHERE user_id = ? AND superseded_at IS NULL
                """,
                (now, user_id),
            )
            conn.execute(
                """
                INSERT INTO sessions (id, user_id, created_at, last_active_at)
                VALUES (?, ?, ?, ?)
                """,
                (session_id, user_id, now, now),
            )
        return Session(id=session_id, user_id=user_id, created_at=now, last_active_at=now)

    def touch_session(self, session_id: str) -> None:
        """Mark a session as active now.

        Raises:
            NotFoundError: If the session does not exist.
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE sessions SET last_active_at = ? WHERE id = ?", (_now(), session_id)
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Session {session_id} not found")

    def append_session_messages(
        self, session_id: str, messages: Iterable[tuple[Role, str]]
    ) -> list[SessionMessage]:
        """Append messages in order, assigning consecutive turn indexes.

        Raises:
            NotFoundError: If the session does not exist.
        """
        now = _now()
        saved: list[SessionMessage] = []
        with self._transaction() as conn:
            if conn.execute("SELECT 1 FROM sessions WHERE id = ?", (session_id,)).fetchone() is None:
                raise NotFoundError(f"Session {session_id} not found")
            next_index = conn.execute(
                "SELECT COALESCE(MAX(turn_index) + 1, 0) FROM session_messages WHERE session_id = ?",
                (session_id,),
            ).fetchone()[0]
            for role, content in messages:
                role = Role(role)
                cursor = conn.execute(
                    """
                    INSERT INTO session_messages (session_id, role, content, turn_index, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (session_id, role.value, content, next_index, now),
                )
                saved.append(
                    SessionMessage(
                        id=int(cursor.lastrowid),
                        session_id=session_id,
                        role=role,
                        content=content,
                        turn_index=next_index,
                        created_at=now,
                    )
                )
                next_index += 1
            conn.execute(
                "UPDATE sessions SET last_active_at = ? WHERE id = ?", (now, session_id)
            )
        return saved

    def recent_session_messages(self, session_id: str, limit: int) -> list[SessionMessage]:
        """The newest ``limit`` messages of a session, oldest first."""
        if limit <= 0:
            return []
        with self._read() as conn:
            rows = conn.execute(
                """
                SELECT id, session_id, role, content, turn_index, created_at
                FROM session_messages
                WHERE session_id = ?
                ORDER BY turn_index DESC
                LIMIT ?
                """,
                (session_id, limit),
            ).fetchall()
        return [self._row_to_message(row) for row in reversed(rows)]

    # --- Row mapping ---

    def _row_to_fact(self, row: sqlite3.Row) -> MemoryFact:
        return MemoryFact(
            id=row["id"],
            category=FactCategory(row["category"]),
            content=row["content"],
            created_at=row["created_at"],
        )

    def _row_to_entity(self, row: sqlite3.Row) -> Entity:
        return Entity(id=row["id"], name=row["name"], type=EntityType(row["entity_type"]))

    def _row_to_mention(self, row: sqlite3.Row) -> EntityMention:
        return EntityMention(
            id=row["id"],
            entity_id=row["entity_id"],
            document_id=row["document_id"],
            fact_id=row["fact_id"],
            context=row["context"],
            created_at=row["created_at"],
        )

    def _row_to_session(self, row: sqlite3.Row) -> Session:
        return Session(
            id=row["id"],
            user_id=row["user_id"],
            created_at=row["created_at"],
            last_active_at=row["last_active_at"],
            superseded_at=row["superseded_at"],
        )

    def _row_to_message(self, row: sqlite3.Row) -> SessionMessage:
        return SessionMessage(
            id=row["id"],
            session_id=row["session_id"],
            role=Role(row["role"]),
            content=row["content"],
            turn_index=row["turn_index"],
            created_at=row["created_at"],
        )
