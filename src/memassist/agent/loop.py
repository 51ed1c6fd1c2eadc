"""Agent loop implementation."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..errors import ExhaustedKeysError, UnrecoverableApiError
from ..tools import ToolRegistry, ToolResult
from .prompt import build_system_prompt, format_tool_result

if TYPE_CHECKING:
    from ..llm import ModelClient
    from ..logging import JSONLLogger
    from ..memory import MemoryManager
    from ..session import SessionManager

logger = logging.getLogger(__name__)

TURN_LIMIT_NOTICE = (
    "I couldn't finish this request within the allowed number of steps. "
    "Please try rephrasing or splitting it into smaller requests."
)
FAILURE_NOTICE = "Sorry, something went wrong while processing your message. Please try again later."


class AgentState(Enum):
    """States of a single agent run."""

    INIT = "init"
    AWAITING_MODEL = "awaiting_model"
    TOOL_CALL_PENDING = "tool_call_pending"
    DISPATCHING = "dispatching"
    COMPLETED = "completed"
    ABORTED = "aborted"


class StopReason(Enum):
    """Reasons for stopping the agent loop."""

    COMPLETE = "complete"
    MAX_TURNS = "max_turns"
    EXHAUSTED_KEYS = "exhausted_keys"
    ERROR = "error"


@dataclass
class AgentConfig:
    """Configuration for the agent loop."""

    max_turns: int = 5
    history_limit: int = 20


@dataclass
class AgentResult:
    """Result from running the agent loop."""

    response: str
    stop_reason: StopReason
    turns: int
    state: AgentState
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    session_id: str | None = None

    @property
    def aborted(self) -> bool:
        return self.state is AgentState.ABORTED


def _parse_arguments(raw: str | None) -> dict[str, Any] | None:
    try:
        args = json.loads(raw or "{}")
    except json.JSONDecodeError:
        return None
    return args if isinstance(args, dict) else None


class AgentLoop:
    """Drives model exchanges and tool dispatch for one user message.

    A run moves through ``AgentState``: each model exchange is one turn,
    and the run stops after ``max_turns`` exchanges even if the model
    keeps requesting tools.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        client: ModelClient,
        sessions: SessionManager | None = None,
        memory: MemoryManager | None = None,
        config: AgentConfig | None = None,
        event_log: JSONLLogger | None = None,
    ) -> None:
        self.registry = registry
        self.client = client
        self.sessions = sessions
        self.memory = memory
        self.config = config or AgentConfig()
        self.event_log = event_log

    def _build_messages(
        self, message: str, history: list[dict[str, Any]] | None, user_id: int
    ) -> list[dict[str, Any]]:
        memory_block = ""
        if self.memory:
            memory_block = self.memory.format_for_prompt(self.memory.recent_facts(user_id))

        messages: list[dict[str, Any]] = [
            {
                "role": "system",
                "content": build_system_prompt(self.registry.get_tools_schema(), memory_block),
            },
        ]
        if history:
            messages.extend(history)
        messages.append({"role": "user", "content": message})
        return messages

    async def _dispatch(self, tool_call: Any, user_id: int) -> ToolResult:
        tool_name = tool_call.function.name
        args = _parse_arguments(tool_call.function.arguments)
        if args is None:
            return ToolResult.failure("invalid_arguments", "Arguments must be a JSON object")

        if self.event_log:
            self.event_log.log_tool_call(tool_name, args, user_id=user_id)

        start_time = time.time()
        result = await self.registry.dispatch(tool_name, args, user_id=user_id)
        duration_ms = (time.time() - start_time) * 1000

        if self.event_log:
            self.event_log.log_tool_result(
                tool_name,
                result.success,
                user_id=user_id,
                duration_ms=round(duration_ms, 2),
                error_type=result.error_type,
            )
        return result

    async def run(
        self,
        message: str,
        history: list[dict[str, Any]] | None = None,
        *,
        user_id: int,
        session_id: str | None = None,
    ) -> AgentResult:
        """Run the agent loop for a user message.

        Args:
            message: The current user message.
            history: Optional conversation history to inject between
                     system prompt and current message.
            user_id: The user the run acts for. Memory in the prompt and
                     every tool call are scoped to this user.
            session_id: Optional session identifier, for the event log.

        Returns:
            AgentResult with response and metadata. Model failures end the
            run in ``AgentState.ABORTED`` instead of raising.
        """
        state = AgentState.INIT
        messages = self._build_messages(message, history, user_id)
        tools = self.registry.get_tools_schema()
        tool_calls_log: list[dict[str, Any]] = []
        last_content = ""
        turns = 0

        def advance(next_state: AgentState) -> None:
            nonlocal state
            logger.debug("Agent state %s -> %s", state.value, next_state.value)
            state = next_state

        def finish(response: str, reason: StopReason, final: AgentState) -> AgentResult:
            advance(final)
            if self.event_log:
                self.event_log.log_agent_stop(
                    reason.value, user_id=user_id, session_id=session_id, turns=turns
                )
            return AgentResult(
                response=response,
                stop_reason=reason,
                turns=turns,
                state=final,
                tool_calls=tool_calls_log,
                session_id=session_id,
            )

        while True:
            if turns >= self.config.max_turns:
                logger.warning("Turn limit of %d reached", self.config.max_turns)
                return finish(
                    last_content or TURN_LIMIT_NOTICE, StopReason.MAX_TURNS, AgentState.COMPLETED
                )

            advance(AgentState.AWAITING_MODEL)
            try:
                response = await self.client.chat(messages, tools=tools or None)
            except ExhaustedKeysError as e:
                logger.error("All API keys failed: %s", e)
                return finish(FAILURE_NOTICE, StopReason.EXHAUSTED_KEYS, AgentState.ABORTED)
            except UnrecoverableApiError as e:
                logger.error("Model exchange failed: %s", e)
                return finish(FAILURE_NOTICE, StopReason.ERROR, AgentState.ABORTED)
            turns += 1

            assistant_message = response.choices[0].message
            if assistant_message.content and assistant_message.content.strip():
                last_content = assistant_message.content

            if not assistant_message.tool_calls:
                return finish(
                    assistant_message.content or "", StopReason.COMPLETE, AgentState.COMPLETED
                )

            advance(AgentState.TOOL_CALL_PENDING)
            # Only fields accepted by the chat-completions API
            messages.append({
                "role": "assistant",
                "content": assistant_message.content,
                "tool_calls": [
                    {
                        "id": tc.id,
                        "type": tc.type,
                        "function": {
                            "name": tc.function.name,
                            "arguments": tc.function.arguments,
                        },
                    }
                    for tc in assistant_message.tool_calls
                ],
            })

            advance(AgentState.DISPATCHING)
            for tool_call in assistant_message.tool_calls:
                result = await self._dispatch(tool_call, user_id)
                tool_calls_log.append({
                    "name": tool_call.function.name,
                    "arguments": tool_call.function.arguments,
                    "success": result.success,
                })
                messages.append({
                    "role": "tool",
                    "tool_call_id": tool_call.id,
                    "content": format_tool_result(
                        tool_call.function.name, result.success, result.output, result.error
                    ),
                })

    async def handle_message(
        self, user_id: int, text: str, history_text: str | None = None
    ) -> AgentResult:
        """Run the agent for a user's message within their active session.

        Work for one user is serialized. The session is marked active even
        if the run aborts. The user and assistant messages are persisted
        together only when the run completes.

        Args:
            user_id: The sender.
            text: The message the model sees.
            history_text: Shorter form of the message kept in the session
                history (e.g. a file name instead of the file), if different.
        """
        if self.sessions is None:
            raise RuntimeError("AgentLoop.handle_message requires a SessionManager")

        async with self.sessions.lock(user_id):
            session = self.sessions.get_or_create_session(user_id)
            self.sessions.touch(session.id)
            if self.event_log:
                self.event_log.log(
                    "message_received",
                    user_id=user_id,
                    session_id=session.id,
                    length=len(text),
                )

            context = self.sessions.load_context(session.id, self.config.history_limit)
            result = await self.run(
                text,
                history=[m.to_llm() for m in context],
                user_id=user_id,
                session_id=session.id,
            )

            if result.aborted:
                if self.event_log:
                    self.event_log.log(
                        "error",
                        user_id=user_id,
                        session_id=session.id,
                        error=result.stop_reason.value,
                    )
                return result

            self.sessions.record_exchange(session.id, history_text or text, result.response)
            return result
