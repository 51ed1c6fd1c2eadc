"""Session manager for per-user conversation history and concurrency control."""

import asyncio
import logging

from ..memory.models import Role, Session, SessionMessage
from ..memory.store import KnowledgeStore

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 20


class SessionManager:
    """Manages active sessions, their history, and per-user locks.

    Sessions and messages live in the knowledge store. Only the locks are
    held in memory.
    """

    def __init__(self, store: KnowledgeStore, history_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self.store = store
        self.history_limit = history_limit
        self._locks: dict[int, asyncio.Lock] = {}

    def lock(self, user_id: int) -> asyncio.Lock:
        """Get the lock that serializes work on a user's active session."""
        if user_id not in self._locks:
            self._locks[user_id] = asyncio.Lock()
        return self._locks[user_id]

    def get_or_create_session(self, user_id: int) -> Session:
        """Return the user's active session, creating one if none exists."""
        session = self.store.get_active_session(user_id)
        if session is None:
            session = self.store.create_session(user_id)
            logger.info("Created session %s for user %d", session.id, user_id)
        return session

    def new_session(self, user_id: int) -> Session:
        """Start a fresh conversation.

        The previous session keeps its messages but is no longer loaded
        as context.
        """
        session = self.store.create_session(user_id)
        logger.info("Started new session %s for user %d", session.id, user_id)
        return session

    async def start_new_conversation(self, user_id: int) -> Session:
        """Create a new session while holding the user's lock."""
        async with self.lock(user_id):
            return self.new_session(user_id)

    def touch(self, session_id: str) -> None:
        """Record activity on a session."""
        self.store.touch_session(session_id)

    def append_message(self, session_id: str, role: Role | str, content: str) -> SessionMessage:
        """Append one message with the next turn index."""
        return self.store.append_session_messages(session_id, [(Role(role), content)])[0]

    def record_exchange(
        self, session_id: str, user_text: str, assistant_text: str
    ) -> list[SessionMessage]:
        """Persist a completed user/assistant exchange in one transaction."""
        return self.store.append_session_messages(
            session_id,
            [(Role.USER, user_text), (Role.ASSISTANT, assistant_text)],
        )

    def load_context(self, session_id: str, limit: int | None = None) -> list[SessionMessage]:
        """Get the most recent messages of a session, oldest first.

        Args:
            session_id: The session identifier.
            limit: Maximum number of messages (defaults to ``history_limit``).
        """
        if limit is None:
            limit = self.history_limit
        return self.store.recent_session_messages(session_id, limit)
