"""Tests for ModelClient and error classification."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import groq
import httpx
import pytest

from memassist.errors import (
    ApiErrorKind,
    ExhaustedKeysError,
    ExternalApiError,
    UnrecoverableApiError,
)
from memassist.llm import KeyRotationManager, ModelClient, classify_error

REQUEST = httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")


def status_error(cls, status: int):
    return cls(f"HTTP {status}", response=httpx.Response(status, request=REQUEST), body=None)


def make_response(content: str):
    message = MagicMock()
    message.content = content
    message.tool_calls = None
    choice = MagicMock()
    choice.message = message
    response = MagicMock()
    response.choices = [choice]
    return response


class FakeClients:
    """One mock AsyncGroq per key, with scripted outcomes."""

    def __init__(self, outcomes: dict[str, list]):
        self.outcomes = outcomes
        self.calls: list[str] = []

    def __call__(self, api_key: str):
        client = MagicMock()

        async def create(**kwargs):
            self.calls.append(api_key)
            outcome = self.outcomes[api_key].pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome

        client.chat.completions.create = AsyncMock(side_effect=create)
        return client


class TestClassifyError:
    @pytest.mark.parametrize(
        "error,kind",
        [
            (status_error(groq.RateLimitError, 429), ApiErrorKind.RATE_LIMITED),
            (status_error(groq.AuthenticationError, 401), ApiErrorKind.AUTH),
            (status_error(groq.PermissionDeniedError, 403), ApiErrorKind.AUTH),
            (status_error(groq.InternalServerError, 503), ApiErrorKind.TRANSIENT),
            (groq.APIConnectionError(request=REQUEST), ApiErrorKind.TRANSIENT),
            (groq.APITimeoutError(request=REQUEST), ApiErrorKind.TIMEOUT),
            (asyncio.TimeoutError(), ApiErrorKind.TIMEOUT),
        ],
    )
    def test_recoverable(self, error, kind):
        result = classify_error(error)
        assert isinstance(result, ExternalApiError)
        assert result.kind is kind

    def test_bad_request_is_unrecoverable(self):
        result = classify_error(status_error(groq.BadRequestError, 400))
        assert isinstance(result, UnrecoverableApiError)


class TestModelClient:
    @pytest.mark.asyncio
    async def test_success_uses_first_key(self):
        clients = FakeClients({"k1": [make_response("hi")], "k2": []})
        client = ModelClient(KeyRotationManager(["k1", "k2"]), client_factory=clients)

        response = await client.chat([{"role": "user", "content": "hello"}])

        assert response.choices[0].message.content == "hi"
        assert clients.calls == ["k1"]

    @pytest.mark.asyncio
    async def test_rate_limit_rotates_to_next_key(self):
        clients = FakeClients(
            {
                "k1": [status_error(groq.RateLimitError, 429)],
                "k2": [make_response("from k2")],
            }
        )
        keys = KeyRotationManager(["k1", "k2"])
        event_log = MagicMock()
        client = ModelClient(keys, client_factory=clients, event_log=event_log)

        text = await client.complete("hello")

        assert text == "from k2"
        assert clients.calls == ["k1", "k2"]
        states = keys.snapshot()
        assert states[0].consecutive_failures == 1
        assert states[1].consecutive_failures == 0
        event_log.log.assert_called_once()
        assert event_log.log.call_args.args[0] == "key_failure"
        assert event_log.log.call_args.kwargs["error"] == "rate_limited"

    @pytest.mark.asyncio
    async def test_all_keys_fail(self):
        clients = FakeClients(
            {
                "k1": [status_error(groq.InternalServerError, 500)],
                "k2": [groq.APIConnectionError(request=REQUEST)],
            }
        )
        client = ModelClient(KeyRotationManager(["k1", "k2"]), client_factory=clients)

        with pytest.raises(ExhaustedKeysError):
            await client.chat([{"role": "user", "content": "hello"}])
        assert clients.calls == ["k1", "k2"]

    @pytest.mark.asyncio
    async def test_attempts_bounded_by_key_count(self):
        clients = FakeClients({"k1": [status_error(groq.RateLimitError, 429)] * 5})
        client = ModelClient(KeyRotationManager(["k1"]), client_factory=clients)

        with pytest.raises(ExhaustedKeysError):
            await client.chat([{"role": "user", "content": "hello"}])
        assert clients.calls == ["k1"]

    @pytest.mark.asyncio
    async def test_unrecoverable_error_not_retried(self):
        clients = FakeClients(
            {"k1": [status_error(groq.BadRequestError, 400)], "k2": [make_response("x")]}
        )
        keys = KeyRotationManager(["k1", "k2"])
        client = ModelClient(keys, client_factory=clients)

        with pytest.raises(UnrecoverableApiError):
            await client.chat([{"role": "user", "content": "hello"}])
        assert clients.calls == ["k1"]
        assert keys.snapshot()[0].consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_timeout_is_recoverable(self):
        async def slow(**kwargs):
            await asyncio.sleep(1)

        slow_client = MagicMock()
        slow_client.chat.completions.create = AsyncMock(side_effect=slow)
        fast_client = MagicMock()
        fast_client.chat.completions.create = AsyncMock(return_value=make_response("ok"))
        factory = {"k1": slow_client, "k2": fast_client}.__getitem__

        client = ModelClient(KeyRotationManager(["k1", "k2"]), timeout=0.05, client_factory=factory)

        assert await client.complete("hello") == "ok"

    @pytest.mark.asyncio
    async def test_tools_enable_auto_choice(self):
        sdk_client = MagicMock()
        sdk_client.chat.completions.create = AsyncMock(return_value=make_response("ok"))
        client = ModelClient(
            KeyRotationManager(["k1"]), model="test-model", client_factory=lambda key: sdk_client
        )
        tools = [{"type": "function", "function": {"name": "get_datetime"}}]

        await client.chat([{"role": "user", "content": "time?"}], tools=tools, temperature=0.2)

        kwargs = sdk_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["tools"] == tools
        assert kwargs["tool_choice"] == "auto"
        assert kwargs["temperature"] == 0.2

    @pytest.mark.asyncio
    async def test_complete_adds_system_message(self):
        sdk_client = MagicMock()
        sdk_client.chat.completions.create = AsyncMock(return_value=make_response("ok"))
        client = ModelClient(KeyRotationManager(["k1"]), client_factory=lambda key: sdk_client)

        await client.complete("hello", system="be brief")

        messages = sdk_client.chat.completions.create.call_args.kwargs["messages"]
        assert messages[0] == {"role": "system", "content": "be brief"}
        assert "tools" not in sdk_client.chat.completions.create.call_args.kwargs

    @pytest.mark.asyncio
    async def test_complete_without_choices_is_unrecoverable(self):
        response = MagicMock()
        response.choices = []
        sdk_client = MagicMock()
        sdk_client.chat.completions.create = AsyncMock(return_value=response)
        client = ModelClient(KeyRotationManager(["k1"]), client_factory=lambda key: sdk_client)

        with pytest.raises(UnrecoverableApiError):
            await client.complete("hello")

    @pytest.mark.asyncio
    async def test_clients_cached_per_key(self):
        factory = MagicMock()
        sdk_client = MagicMock()
        sdk_client.chat.completions.create = AsyncMock(return_value=make_response("ok"))
        factory.return_value = sdk_client
        client = ModelClient(KeyRotationManager(["k1"]), client_factory=factory)

        await client.complete("a")
        await client.complete("b")

        factory.assert_called_once_with("k1")
