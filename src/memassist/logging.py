"""Logging setup and JSONL event log."""

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure stdlib logging for the process."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


@dataclass
class LogEntry:
    """A single structured event."""

    timestamp: str
    event: str
    user_id: int | None = None
    session_id: str | None = None
    tool_name: str | None = None
    duration_ms: float | None = None
    turns: int | None = None
    stopped_reason: str | None = None
    error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict, excluding None values."""
        data = asdict(self)
        return {k: v for k, v in data.items() if v is not None and v != {}}


class JSONLLogger:
    """Writes structured events in JSONL format with size-based rotation."""

    def __init__(
        self,
        log_dir: str | Path | None = None,
        filename: str = "events.jsonl",
        max_size_mb: float = 10.0,
    ) -> None:
        if log_dir is None:
            log_dir = Path.home() / ".memassist" / "logs"
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.filename = filename
        self.max_size_bytes = int(max_size_mb * 1024 * 1024)

    @property
    def log_path(self) -> Path:
        """Current log file path."""
        return self.log_dir / self.filename

    def _rotate_if_needed(self) -> None:
        if not self.log_path.exists():
            return

        if self.log_path.stat().st_size >= self.max_size_bytes:
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
            rotated_name = f"{self.log_path.stem}_{timestamp}.jsonl"
            self.log_path.rename(self.log_dir / rotated_name)

    def _write(self, entry: LogEntry) -> None:
        self._rotate_if_needed()

        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")

    def log(
        self,
        event: str,
        *,
        user_id: int | None = None,
        session_id: str | None = None,
        tool_name: str | None = None,
        duration_ms: float | None = None,
        turns: int | None = None,
        stopped_reason: str | None = None,
        error: str | None = None,
        **extra: Any,
    ) -> None:
        """Log an event."""
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            event=event,
            user_id=user_id,
            session_id=session_id,
            tool_name=tool_name,
            duration_ms=duration_ms,
            turns=turns,
            stopped_reason=stopped_reason,
            error=error,
            extra={k: v for k, v in extra.items() if v is not None},
        )
        self._write(entry)

    def log_tool_call(
        self, tool_name: str, args: dict[str, Any], *, user_id: int | None = None
    ) -> None:
        self.log("tool_call", user_id=user_id, tool_name=tool_name, tool_args=args)

    def log_tool_result(
        self,
        tool_name: str,
        success: bool,
        *,
        user_id: int | None = None,
        duration_ms: float | None = None,
        error_type: str | None = None,
    ) -> None:
        self.log(
            "tool_result",
            user_id=user_id,
            tool_name=tool_name,
            duration_ms=duration_ms,
            success=success,
            error_type=error_type,
        )

    def log_agent_stop(
        self,
        reason: str,
        *,
        user_id: int | None = None,
        session_id: str | None = None,
        turns: int | None = None,
    ) -> None:
        """Log when the agent loop stops."""
        self.log(
            "agent_stop",
            user_id=user_id,
            session_id=session_id,
            stopped_reason=reason,
            turns=turns,
        )
