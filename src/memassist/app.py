"""Wiring of the assistant's components from settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .agent import AgentConfig, AgentLoop
from .config import Settings
from .llm import KeyRotationManager, ModelClient
from .logging import JSONLLogger
from .memory import EntityExtractor, KnowledgeStore, MemoryManager, register_memory_tools
from .session import SessionManager
from .tools import DateTimeTool, ToolRegistry

logger = logging.getLogger(__name__)


@dataclass
class Assistant:
    """The assembled core shared by the Telegram bot and the CLI."""

    settings: Settings
    store: KnowledgeStore
    keys: KeyRotationManager
    memory: MemoryManager
    sessions: SessionManager
    registry: ToolRegistry
    agent: AgentLoop
    event_log: JSONLLogger

    @classmethod
    def from_settings(cls, settings: Settings) -> Assistant:
        """Open the store and build every component.

        Every ``ToolKind`` gets a handler; a missing one is a wiring bug
        and fails here rather than at dispatch time.
        """
        event_log = JSONLLogger(settings.log_dir)

        settings.db_path.parent.mkdir(parents=True, exist_ok=True)
        store = KnowledgeStore(settings.db_path)
        store.init_db()

        keys = KeyRotationManager(settings.api_keys)
        client = ModelClient(
            keys,
            model=settings.model,
            timeout=settings.request_timeout,
            event_log=event_log,
        )
        memory = MemoryManager(store, EntityExtractor(client, store), event_log=event_log)
        sessions = SessionManager(store, history_limit=settings.history_limit)

        registry = ToolRegistry()
        register_memory_tools(registry, memory)
        registry.register(DateTimeTool())
        missing = registry.missing()
        if missing:
            raise RuntimeError(f"No handler registered for: {[k.value for k in missing]}")

        agent = AgentLoop(
            registry,
            client,
            sessions=sessions,
            memory=memory,
            config=AgentConfig(
                max_turns=settings.max_agent_turns,
                history_limit=settings.history_limit,
            ),
            event_log=event_log,
        )
        logger.info(
            "Assistant ready: %d key(s), model %s, db %s",
            len(keys),
            settings.model,
            settings.db_path,
        )
        return cls(
            settings=settings,
            store=store,
            keys=keys,
            memory=memory,
            sessions=sessions,
            registry=registry,
            agent=agent,
            event_log=event_log,
        )

    def close(self) -> None:
        self.store.close()
