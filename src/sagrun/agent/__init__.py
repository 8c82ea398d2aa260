"""Execution primitives for the sub-agent runtime."""

from __future__ import annotations

from .protocols import (
    AIClientProtocol,
    ChatResponse,
    ToolHandle,
    ToolRegistryProtocol,
)
from .spec import (
    ContextSnapshot,
    EmissionRecord,
    ExecutionResult,
    ExecutionScope,
    TaskToolResult,
    TerminationInfo,
    TerminationVerdict,
    ToolCall,
    TurnRecord,
)

__all__ = [
    "AIClientProtocol",
    "ChatResponse",
    "ContextSnapshot",
    "EmissionRecord",
    "ExecutionResult",
    "ExecutionScope",
    "TaskToolResult",
    "TerminationInfo",
    "TerminationVerdict",
    "ToolCall",
    "ToolHandle",
    "ToolRegistryProtocol",
    "TurnRecord",
]
