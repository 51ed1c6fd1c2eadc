"""Tests for the agent loop."""

import asyncio
import json
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from memassist.agent import (
    FAILURE_NOTICE,
    TURN_LIMIT_NOTICE,
    AgentConfig,
    AgentLoop,
    AgentState,
    StopReason,
)
from memassist.agent.prompt import build_system_prompt, format_tool_result
from memassist.errors import ExhaustedKeysError, UnrecoverableApiError
from memassist.memory import KnowledgeStore, MemoryManager, register_memory_tools
from memassist.session import SessionManager
from memassist.tools import DateTimeTool, Tool, ToolKind, ToolRegistry, ToolResult

USER = 1
OTHER_USER = 2


class MockTool(Tool):
    """Mock tool for testing."""

    def __init__(self, fail: bool = False):
        self._fail = fail
        self.call_count = 0

    @property
    def kind(self) -> ToolKind:
        return ToolKind.GET_DATETIME

    @property
    def description(self) -> str:
        return "A mock tool"

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs: Any) -> ToolResult:
        self.call_count += 1
        if self._fail:
            return ToolResult.failure("internal", "Mock error")
        return ToolResult(success=True, output="Mock output")


def make_mock_response(content: str | None = None, tool_calls: list | None = None):
    """Create a mock chat completion response."""
    message = MagicMock()
    message.content = content
    message.tool_calls = tool_calls

    choice = MagicMock()
    choice.message = message

    response = MagicMock()
    response.choices = [choice]
    return response


def make_tool_call(tool_id: str, name: str, arguments: str = "{}"):
    """Create a mock tool call."""
    tc = MagicMock()
    tc.id = tool_id
    tc.type = "function"
    tc.function = MagicMock()
    tc.function.name = name
    tc.function.arguments = arguments
    return tc


@pytest.fixture
def tool() -> MockTool:
    return MockTool()


@pytest.fixture
def registry(tool: MockTool) -> ToolRegistry:
    reg = ToolRegistry()
    reg.register(tool)
    return reg


@pytest.fixture
def mock_client() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def store(tmp_path: Path) -> KnowledgeStore:
    store = KnowledgeStore(tmp_path / "test_memory.db")
    store.init_db()
    yield store
    store.close()


class TestRun:
    @pytest.mark.asyncio
    async def test_simple_response(self, registry, mock_client):
        """Agent returns the model's text when no tools are called."""
        mock_client.chat.return_value = make_mock_response(content="Hello!")

        result = await AgentLoop(registry, mock_client).run("Hi", user_id=USER)

        assert result.response == "Hello!"
        assert result.stop_reason is StopReason.COMPLETE
        assert result.state is AgentState.COMPLETED
        assert result.turns == 1

    @pytest.mark.asyncio
    async def test_tool_execution(self, registry, mock_client, tool):
        """Agent dispatches a tool call and feeds the result back."""
        mock_client.chat.side_effect = [
            make_mock_response(tool_calls=[make_tool_call("call_1", "get_datetime")]),
            make_mock_response(content="It is noon."),
        ]

        result = await AgentLoop(registry, mock_client).run("What time is it?", user_id=USER)

        assert result.response == "It is noon."
        assert result.turns == 2
        assert tool.call_count == 1
        assert result.tool_calls == [
            {"name": "get_datetime", "arguments": "{}", "success": True}
        ]

        second_messages = mock_client.chat.call_args_list[1].args[0]
        assistant, tool_msg = second_messages[-2], second_messages[-1]
        assert assistant["role"] == "assistant"
        assert assistant["tool_calls"][0]["id"] == "call_1"
        assert tool_msg == {
            "role": "tool",
            "tool_call_id": "call_1",
            "content": "[get_datetime] Success:\nMock output",
        }

    @pytest.mark.asyncio
    async def test_tools_schema_sent(self, registry, mock_client):
        mock_client.chat.return_value = make_mock_response(content="ok")

        await AgentLoop(registry, mock_client).run("Hi", user_id=USER)

        tools = mock_client.chat.call_args.kwargs["tools"]
        assert [t["function"]["name"] for t in tools] == ["get_datetime"]

    @pytest.mark.asyncio
    async def test_multiple_tool_calls_in_order(self, mock_client, store):
        registry = ToolRegistry()
        register_memory_tools(registry, MemoryManager(store))
        mock_client.chat.side_effect = [
            make_mock_response(
                tool_calls=[
                    make_tool_call(
                        "c1",
                        "memory_save",
                        json.dumps({"category": "preference", "content": "likes tea"}),
                    ),
                    make_tool_call("c2", "memory_search", json.dumps({"query": "tea"})),
                ]
            ),
            make_mock_response(content="Saved."),
        ]

        await AgentLoop(registry, mock_client).run("Remember I like tea", user_id=USER)

        messages = mock_client.chat.call_args_list[1].args[0]
        assert [m.get("tool_call_id") for m in messages[-2:]] == ["c1", "c2"]
        assert "likes tea" in messages[-1]["content"]
        assert [f.content for f in store.list_facts(USER)] == ["likes tea"]

    @pytest.mark.asyncio
    async def test_tool_failure_reported_to_model(self, mock_client):
        registry = ToolRegistry()
        registry.register(MockTool(fail=True))
        mock_client.chat.side_effect = [
            make_mock_response(tool_calls=[make_tool_call("1", "get_datetime")]),
            make_mock_response(content="Sorry."),
        ]

        result = await AgentLoop(registry, mock_client).run("time?", user_id=USER)

        tool_msg = mock_client.chat.call_args_list[1].args[0][-1]
        assert tool_msg["content"] == "[get_datetime] Error: Mock error"
        assert result.state is AgentState.COMPLETED

    @pytest.mark.asyncio
    async def test_malformed_arguments(self, registry, mock_client, tool):
        mock_client.chat.side_effect = [
            make_mock_response(tool_calls=[make_tool_call("1", "get_datetime", "{not json")]),
            make_mock_response(content="Done"),
        ]

        await AgentLoop(registry, mock_client).run("time?", user_id=USER)

        assert tool.call_count == 0
        tool_msg = mock_client.chat.call_args_list[1].args[0][-1]
        assert "Arguments must be a JSON object" in tool_msg["content"]

    @pytest.mark.asyncio
    async def test_unknown_tool_reported(self, registry, mock_client):
        mock_client.chat.side_effect = [
            make_mock_response(tool_calls=[make_tool_call("1", "bash", '{"command": "ls"}')]),
            make_mock_response(content="Done"),
        ]

        await AgentLoop(registry, mock_client).run("ls", user_id=USER)

        tool_msg = mock_client.chat.call_args_list[1].args[0][-1]
        assert tool_msg["content"] == "[bash] Error: Unknown tool: bash"

    @pytest.mark.asyncio
    async def test_history_injected(self, registry, mock_client):
        mock_client.chat.return_value = make_mock_response(content="ok")
        history = [
            {"role": "user", "content": "earlier"},
            {"role": "assistant", "content": "reply"},
        ]

        await AgentLoop(registry, mock_client).run("now", history=history, user_id=USER)

        messages = mock_client.chat.call_args.args[0]
        assert messages[0]["role"] == "system"
        assert messages[1:] == history + [{"role": "user", "content": "now"}]

    @pytest.mark.asyncio
    async def test_memory_block_in_system_prompt(self, registry, mock_client, store):
        store.save_fact(USER, "preference", "likes dark mode")
        mock_client.chat.return_value = make_mock_response(content="ok")

        agent = AgentLoop(registry, mock_client, memory=MemoryManager(store))
        await agent.run("Hi", user_id=USER)

        system = mock_client.chat.call_args.args[0][0]["content"]
        assert "<memory>" in system
        assert "likes dark mode" in system

    @pytest.mark.asyncio
    async def test_memory_block_only_holds_callers_facts(self, registry, mock_client, store):
        store.save_fact(USER, "preference", "likes dark mode")
        mock_client.chat.return_value = make_mock_response(content="ok")

        agent = AgentLoop(registry, mock_client, memory=MemoryManager(store))
        await agent.run("Hi", user_id=OTHER_USER)

        system = mock_client.chat.call_args.args[0][0]["content"]
        assert "likes dark mode" not in system


class TestTurnLimit:
    @pytest.mark.parametrize("max_turns", [1, 3, 5])
    @pytest.mark.asyncio
    async def test_never_exceeds_max_turns(self, registry, mock_client, max_turns):
        """A model that always requests tools is cut off at max_turns exchanges."""
        mock_client.chat.side_effect = lambda *a, **k: make_mock_response(
            tool_calls=[make_tool_call("1", "get_datetime")]
        )
        agent = AgentLoop(registry, mock_client, config=AgentConfig(max_turns=max_turns))

        result = await agent.run("loop forever", user_id=USER)

        assert mock_client.chat.call_count == max_turns
        assert result.turns == max_turns
        assert result.stop_reason is StopReason.MAX_TURNS
        assert result.state is AgentState.COMPLETED
        assert result.response == TURN_LIMIT_NOTICE

    @pytest.mark.asyncio
    async def test_returns_last_assistant_content(self, registry, mock_client):
        mock_client.chat.side_effect = [
            make_mock_response(
                content="Looking it up...", tool_calls=[make_tool_call("1", "get_datetime")]
            ),
            make_mock_response(content="", tool_calls=[make_tool_call("2", "get_datetime")]),
        ]
        agent = AgentLoop(registry, mock_client, config=AgentConfig(max_turns=2))

        result = await agent.run("time?", user_id=USER)

        assert result.stop_reason is StopReason.MAX_TURNS
        assert result.response == "Looking it up..."


class TestAbort:
    @pytest.mark.asyncio
    async def test_exhausted_keys(self, registry, mock_client):
        mock_client.chat.side_effect = ExhaustedKeysError("all keys failed")

        result = await AgentLoop(registry, mock_client).run("Hi", user_id=USER)

        assert result.state is AgentState.ABORTED
        assert result.stop_reason is StopReason.EXHAUSTED_KEYS
        assert result.response == FAILURE_NOTICE
        assert result.aborted

    @pytest.mark.asyncio
    async def test_unrecoverable_after_tool_call(self, registry, mock_client, tool):
        mock_client.chat.side_effect = [
            make_mock_response(tool_calls=[make_tool_call("1", "get_datetime")]),
            UnrecoverableApiError("400 bad request: secret detail"),
        ]

        result = await AgentLoop(registry, mock_client).run("Hi", user_id=USER)

        assert result.state is AgentState.ABORTED
        assert result.stop_reason is StopReason.ERROR
        assert result.turns == 1
        assert "secret detail" not in result.response


class TestHandleMessage:
    @pytest.fixture
    def sessions(self, store) -> SessionManager:
        return SessionManager(store)

    @pytest.mark.asyncio
    async def test_persists_exchange(self, registry, mock_client, sessions):
        mock_client.chat.return_value = make_mock_response(content="Hello!")
        agent = AgentLoop(registry, mock_client, sessions=sessions)

        result = await agent.handle_message(5, "Hi")

        context = sessions.load_context(result.session_id)
        assert [(m.role.value, m.content) for m in context] == [
            ("user", "Hi"),
            ("assistant", "Hello!"),
        ]

    @pytest.mark.asyncio
    async def test_history_loaded_from_session(self, registry, mock_client, sessions):
        mock_client.chat.side_effect = [
            make_mock_response(content="first answer"),
            make_mock_response(content="second answer"),
        ]
        agent = AgentLoop(registry, mock_client, sessions=sessions)

        await agent.handle_message(5, "first")
        await agent.handle_message(5, "second")

        messages = mock_client.chat.call_args.args[0]
        assert messages[1:] == [
            {"role": "user", "content": "first"},
            {"role": "assistant", "content": "first answer"},
            {"role": "user", "content": "second"},
        ]

    @pytest.mark.asyncio
    async def test_new_session_drops_context(self, registry, mock_client, sessions):
        mock_client.chat.return_value = make_mock_response(content="ok")
        agent = AgentLoop(registry, mock_client, sessions=sessions)

        await agent.handle_message(5, "first")
        await sessions.start_new_conversation(5)
        await agent.handle_message(5, "second")

        messages = mock_client.chat.call_args.args[0]
        assert messages[1:] == [{"role": "user", "content": "second"}]

    @pytest.mark.asyncio
    async def test_abort_persists_nothing(self, registry, mock_client, sessions):
        mock_client.chat.side_effect = ExhaustedKeysError("all keys failed")
        event_log = MagicMock()
        agent = AgentLoop(registry, mock_client, sessions=sessions, event_log=event_log)

        result = await agent.handle_message(5, "Hi")

        assert result.aborted
        assert sessions.load_context(result.session_id) == []
        events = [c.args[0] for c in event_log.log.call_args_list]
        assert events == ["message_received", "error"]

    @pytest.mark.asyncio
    async def test_abort_still_marks_session_active(self, registry, mock_client, sessions, store):
        mock_client.chat.side_effect = ExhaustedKeysError("all keys failed")
        session = sessions.get_or_create_session(5)
        store._get_connection().execute(
            "UPDATE sessions SET last_active_at = '2000-01-01T00:00:00.000+00:00' WHERE id = ?",
            (session.id,),
        )
        agent = AgentLoop(registry, mock_client, sessions=sessions)

        result = await agent.handle_message(5, "Hi")

        assert result.aborted
        assert store.get_session(session.id).last_active_at > "2000-01-01T00:00:00.000+00:00"

    @pytest.mark.asyncio
    async def test_history_text_replaces_stored_message(self, registry, mock_client, sessions):
        mock_client.chat.return_value = make_mock_response(content="Saved it.")
        agent = AgentLoop(registry, mock_client, sessions=sessions)

        result = await agent.handle_message(
            5, "File: notes.md\n\n```\nlong body\n```", history_text="[File: notes.md]"
        )

        sent = mock_client.chat.call_args.args[0][-1]["content"]
        assert "long body" in sent
        context = sessions.load_context(result.session_id)
        assert [m.content for m in context] == ["[File: notes.md]", "Saved it."]

    @pytest.mark.asyncio
    async def test_tools_act_for_the_sender(self, mock_client, sessions, store):
        registry = ToolRegistry()
        register_memory_tools(registry, MemoryManager(store))
        mock_client.chat.side_effect = [
            make_mock_response(
                tool_calls=[
                    make_tool_call(
                        "c1",
                        "memory_save",
                        json.dumps({"category": "personal", "content": "lives in Hanoi"}),
                    )
                ]
            ),
            make_mock_response(content="Noted."),
        ]
        agent = AgentLoop(registry, mock_client, sessions=sessions)

        await agent.handle_message(OTHER_USER, "I live in Hanoi")

        assert [f.content for f in store.list_facts(OTHER_USER)] == ["lives in Hanoi"]
        assert store.list_facts(USER) == []

    @pytest.mark.asyncio
    async def test_same_user_serialized(self, registry, mock_client, sessions):
        active = 0
        peak = 0

        async def chat(messages, **kwargs):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return make_mock_response(content="ok")

        mock_client.chat.side_effect = chat
        agent = AgentLoop(registry, mock_client, sessions=sessions)

        results = await asyncio.gather(*(agent.handle_message(5, f"m{i}") for i in range(3)))

        assert peak == 1
        indexes = [m.turn_index for m in sessions.load_context(results[0].session_id)]
        assert indexes == list(range(6))

    @pytest.mark.asyncio
    async def test_different_users_concurrent(self, registry, mock_client, sessions):
        active = 0
        peak = 0

        async def chat(messages, **kwargs):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return make_mock_response(content="ok")

        mock_client.chat.side_effect = chat
        agent = AgentLoop(registry, mock_client, sessions=sessions)

        await asyncio.gather(agent.handle_message(1, "a"), agent.handle_message(2, "b"))

        assert peak == 2

    @pytest.mark.asyncio
    async def test_requires_session_manager(self, registry, mock_client):
        with pytest.raises(RuntimeError):
            await AgentLoop(registry, mock_client).handle_message(5, "Hi")


class TestPrompt:
    def test_lists_tools(self):
        prompt = build_system_prompt([DateTimeTool().get_schema()])
        assert "- get_datetime:" in prompt

    def test_no_tools(self):
        assert "No tools available." in build_system_prompt([])

    def test_memory_block_appended(self):
        prompt = build_system_prompt([], "<memory>\n- (1) x\n</memory>")
        assert prompt.endswith("</memory>")

    def test_format_tool_result(self):
        assert format_tool_result("t", True, "out", None) == "[t] Success:\nout"
        assert format_tool_result("t", False, "", "bad") == "[t] Error: bad"
