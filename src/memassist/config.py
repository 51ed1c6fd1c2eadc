"""Startup configuration loaded from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from .errors import ConfigError

DEFAULT_MODEL = "llama-3.3-70b-versatile"
DEFAULT_HOME = Path.home() / ".memassist"


def _split_csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def _parse_int(env: Mapping[str, str], name: str, default: int, minimum: int = 1) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _parse_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    """Immutable process configuration.

    Built once at startup and passed to the components that need it.
    """

    api_keys: tuple[str, ...]
    telegram_token: str | None = None
    allowed_users: frozenset[int] = field(default_factory=frozenset)
    max_agent_turns: int = 5
    log_level: str = "INFO"
    model: str = DEFAULT_MODEL
    db_path: Path = DEFAULT_HOME / "memory.db"
    log_dir: Path = DEFAULT_HOME / "logs"
    request_timeout: float = 60.0
    history_limit: int = 20

    def is_allowed(self, user_id: int) -> bool:
        """An empty allow-list admits everyone."""
        return not self.allowed_users or user_id in self.allowed_users

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """Build settings from environment variables.

        Args:
            env: Mapping to read from. Defaults to ``os.environ``.

        Raises:
            ConfigError: If a value is missing or malformed.
        """
        env = os.environ if env is None else env

        keys = _split_csv(env.get("GROQ_API_KEYS", ""))
        if not keys and env.get("GROQ_API_KEY", "").strip():
            keys = [env["GROQ_API_KEY"].strip()]
        if not keys:
            raise ConfigError("GROQ_API_KEYS (or GROQ_API_KEY) is not set")

        allowed: set[int] = set()
        for raw in _split_csv(env.get("TELEGRAM_ALLOWED_USERS", "")):
            try:
                allowed.add(int(raw))
            except ValueError:
                raise ConfigError(f"Invalid user id in TELEGRAM_ALLOWED_USERS: {raw!r}") from None

        log_level = env.get("LOG_LEVEL", "INFO").strip().upper() or "INFO"
        if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigError(f"Unknown LOG_LEVEL: {log_level}")

        db_path = env.get("MEMASSIST_DB", "").strip()
        log_dir = env.get("MEMASSIST_LOG_DIR", "").strip()

        return cls(
            api_keys=tuple(keys),
            telegram_token=env.get("TELEGRAM_BOT_TOKEN", "").strip() or None,
            allowed_users=frozenset(allowed),
            max_agent_turns=_parse_int(env, "MAX_AGENT_TURNS", 5),
            log_level=log_level,
            model=env.get("GROQ_MODEL", "").strip() or DEFAULT_MODEL,
            db_path=Path(db_path).expanduser() if db_path else DEFAULT_HOME / "memory.db",
            log_dir=Path(log_dir).expanduser() if log_dir else DEFAULT_HOME / "logs",
            request_timeout=_parse_float(env, "LLM_TIMEOUT", 60.0),
            history_limit=_parse_int(env, "HISTORY_LIMIT", 20),
        )
