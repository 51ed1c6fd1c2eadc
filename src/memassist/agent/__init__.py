"""Agent module."""

from .loop import (
    FAILURE_NOTICE,
    TURN_LIMIT_NOTICE,
    AgentConfig,
    AgentLoop,
    AgentResult,
    AgentState,
    StopReason,
)

__all__ = [
    "FAILURE_NOTICE",
    "TURN_LIMIT_NOTICE",
    "AgentConfig",
    "AgentLoop",
    "AgentResult",
    "AgentState",
    "StopReason",
]
