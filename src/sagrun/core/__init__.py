"""Core configuration types for the sub-agent runtime."""

from __future__ import annotations

from sagrun.core.types import (
    EMIT_VARIABLE_TOOL,
    VARIABLE_NAME_PATTERN,
    WILDCARD_TOOL,
    ConditionKind,
    ExecutionConstraints,
    OutputDefinition,
    ResourceLimits,
    RunConfig,
    TerminationCondition,
    TerminationStatus,
)

__all__ = [
    "EMIT_VARIABLE_TOOL",
    "VARIABLE_NAME_PATTERN",
    "WILDCARD_TOOL",
    "ConditionKind",
    "ExecutionConstraints",
    "OutputDefinition",
    "ResourceLimits",
    "RunConfig",
    "TerminationCondition",
    "TerminationStatus",
]
