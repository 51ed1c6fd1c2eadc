"""Round-robin API key selection with failure cooldown."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable

from ..errors import NoAvailableKey

logger = logging.getLogger(__name__)


def mask_key(key: str) -> str:
    """Short, log-safe form of a key."""
    return f"{key[:6]}..." if len(key) > 6 else "***"


@dataclass
class ApiKeyState:
    """Per-key usage and failure state."""

    key: str
    last_used_at: float | None = None
    consecutive_failures: int = 0
    cooldown_until: float = 0.0

    def is_available(self, now: float) -> bool:
        return now >= self.cooldown_until


class KeyRotationManager:
    """Selects API keys round-robin, skipping keys that are cooling down.

    The cursor and per-key state are shared by every caller; selection and
    failure reports each take the lock briefly.
    """

    def __init__(
        self,
        keys: list[str] | tuple[str, ...],
        base_delay: float = 1.0,
        max_delay: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not keys:
            raise ValueError("At least one API key is required")
        if len(set(keys)) != len(keys):
            raise ValueError("API keys must be unique")
        self._states = [ApiKeyState(key=k) for k in keys]
        self._index = {k: i for i, k in enumerate(keys)}
        self._cursor = 0
        self._lock = threading.Lock()
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._clock = clock

    def __len__(self) -> int:
        return len(self._states)

    def select_key(self) -> str:
        """Return the next key not in cooldown and advance the cursor past it.

        Raises:
            NoAvailableKey: If every key is cooling down.
        """
        with self._lock:
            now = self._clock()
            count = len(self._states)
            for offset in range(count):
                idx = (self._cursor + offset) % count
                state = self._states[idx]
                if state.is_available(now):
                    self._cursor = (idx + 1) % count
                    state.last_used_at = now
                    return state.key
            raise NoAvailableKey(f"All {count} API keys are cooling down")

    def report_success(self, key: str) -> None:
        with self._lock:
            state = self._states[self._index[key]]
            state.consecutive_failures = 0
            state.cooldown_until = 0.0

    def report_failure(self, key: str) -> float:
        """Record a recoverable failure and put the key in cooldown.

        Returns:
            The cooldown length in seconds.
        """
        with self._lock:
            state = self._states[self._index[key]]
            state.consecutive_failures += 1
            delay = min(self.base_delay * 2**state.consecutive_failures, self.max_delay)
            state.cooldown_until = self._clock() + delay
            failures = state.consecutive_failures
        logger.warning(
            "Key %s failed (%d in a row), cooling down %.1fs", mask_key(key), failures, delay
        )
        return delay

    def snapshot(self) -> list[ApiKeyState]:
        """Copies of the current per-key state, in configured order."""
        with self._lock:
            return [replace(s) for s in self._states]
