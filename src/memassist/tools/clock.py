"""Current date and time tool."""

from datetime import datetime, timezone
from typing import Any, Callable
from zoneinfo import ZoneInfo

from .base import Tool, ToolKind, ToolResult

ZONES: list[tuple[str, str]] = [
    ("UTC", "UTC"),
    ("Vietnam", "Asia/Ho_Chi_Minh"),
    ("US Eastern", "America/New_York"),
]

TIME_FORMAT = "%Y-%m-%d %H:%M:%S %Z (UTC%z)"


class DateTimeTool(Tool):
    """Reports the current time in UTC and the user's usual time zones."""

    def __init__(self, now: Callable[[], datetime] | None = None) -> None:
        self._now = now or (lambda: datetime.now(timezone.utc))

    @property
    def kind(self) -> ToolKind:
        return ToolKind.GET_DATETIME

    @property
    def description(self) -> str:
        return "Get the current date and time in UTC, Vietnam and US Eastern time."

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs: Any) -> ToolResult:
        now = self._now()
        times = {label: now.astimezone(ZoneInfo(zone)) for label, zone in ZONES}

        lines = ["Current time:"]
        lines.extend(f"- {label}: {t.strftime(TIME_FORMAT)}" for label, t in times.items())
        return ToolResult(
            success=True,
            output="\n".join(lines),
            data={label: t.isoformat() for label, t in times.items()},
        )
