"""Model client that spreads requests across rotating Groq API keys."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

import groq
from groq import AsyncGroq

from ..errors import (
    ApiErrorKind,
    ExhaustedKeysError,
    ExternalApiError,
    NoAvailableKey,
    UnrecoverableApiError,
)
from ..logging import JSONLLogger
from .keys import KeyRotationManager, mask_key

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "llama-3.3-70b-versatile"


def classify_error(error: BaseException) -> ExternalApiError | UnrecoverableApiError:
    """Map an SDK or timeout error onto the failure taxonomy.

    Timeouts, rate limits, auth failures, connection errors and 5xx responses
    are recoverable by switching keys; everything else is not.
    """
    if isinstance(error, (asyncio.TimeoutError, groq.APITimeoutError)):
        return ExternalApiError(ApiErrorKind.TIMEOUT, "Model request timed out")
    if isinstance(error, groq.RateLimitError):
        return ExternalApiError(ApiErrorKind.RATE_LIMITED, "Rate limited")
    if isinstance(error, (groq.AuthenticationError, groq.PermissionDeniedError)):
        return ExternalApiError(ApiErrorKind.AUTH, "Key rejected")
    if isinstance(error, (groq.APIConnectionError, groq.InternalServerError)):
        return ExternalApiError(ApiErrorKind.TRANSIENT, str(error))
    return UnrecoverableApiError(str(error))


class ModelClient:
    """Sends chat exchanges, retrying recoverable failures on other keys.

    Each exchange gets at most one attempt per configured key. A key that
    fails recoverably is reported to the rotation manager and put in cooldown.

    Example:
        keys = KeyRotationManager(["gsk_a", "gsk_b"])
        client = ModelClient(keys, model="llama-3.3-70b-versatile")
        response = await client.chat([{"role": "user", "content": "hi"}])
    """

    def __init__(
        self,
        keys: KeyRotationManager,
        model: str = DEFAULT_MODEL,
        timeout: float = 60.0,
        client_factory: Callable[[str], Any] | None = None,
        event_log: JSONLLogger | None = None,
    ) -> None:
        self.keys = keys
        self.model = model
        self.timeout = timeout
        self._client_factory = client_factory or self._default_client
        self._clients: dict[str, Any] = {}
        self.event_log = event_log

    def _default_client(self, api_key: str) -> AsyncGroq:
        # Retries are handled here by rotating keys, not by the SDK
        return AsyncGroq(api_key=api_key, max_retries=0, timeout=self.timeout)

    def _client_for(self, api_key: str) -> Any:
        if api_key not in self._clients:
            self._clients[api_key] = self._client_factory(api_key)
        return self._clients[api_key]

    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        **options: Any,
    ) -> Any:
        """Run one chat-completions exchange.

        Args:
            messages: Conversation in chat-completions format.
            tools: Optional tool schemas; enables tool calling.
            **options: Extra request parameters (e.g. ``temperature``).

        Returns:
            The SDK's chat completion response.

        Raises:
            ExhaustedKeysError: If every allowed attempt failed recoverably.
            UnrecoverableApiError: If the API rejected the request itself.
        """
        request: dict[str, Any] = {"model": self.model, "messages": messages, **options}
        if tools:
            request["tools"] = tools
            request["tool_choice"] = "auto"

        last_error: ExternalApiError | None = None
        for attempt in range(len(self.keys)):
            try:
                api_key = self.keys.select_key()
            except NoAvailableKey as e:
                raise ExhaustedKeysError(str(e)) from last_error

            client = self._client_for(api_key)
            try:
                response = await asyncio.wait_for(
                    client.chat.completions.create(**request), timeout=self.timeout
                )
            except Exception as e:
                failure = classify_error(e)
                if isinstance(failure, UnrecoverableApiError):
                    logger.error("Model request failed: %s", e)
                    raise failure from e
                self.keys.report_failure(api_key)
                if self.event_log:
                    self.event_log.log(
                        "key_failure",
                        error=failure.kind.value,
                        key=mask_key(api_key),
                        attempt=attempt + 1,
                    )
                last_error = failure
                continue

            self.keys.report_success(api_key)
            return response

        raise ExhaustedKeysError(
            f"Model exchange failed on all {len(self.keys)} key(s)"
        ) from last_error

    async def complete(self, prompt: str, system: str | None = None, **options: Any) -> str:
        """Single non-tool exchange returning the text response.

        Raises:
            UnrecoverableApiError: If the response carries no message.
        """
        messages: list[dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        response = await self.chat(messages, **options)
        try:
            return response.choices[0].message.content or ""
        except (AttributeError, IndexError, TypeError) as e:
            raise UnrecoverableApiError("Malformed model response") from e
