"""Bounded, isolated sub-agent task execution."""

from __future__ import annotations

from sagrun.agent.context import isolated_copy, merge_variables, validate_template
from sagrun.agent.executor import SubAgentExecutor
from sagrun.agent.protocols import ChatResponse
from sagrun.agent.spec import ExecutionResult, ExecutionScope, TaskToolResult
from sagrun.architecture import ActiveRunRegistry, SubAgentArchitecture
from sagrun.bridge.compatibility import CompatibilityBridge, SubAgentTypeDefinition
from sagrun.core.types import (
    ConditionKind,
    ExecutionConstraints,
    OutputDefinition,
    ResourceLimits,
    RunConfig,
    TerminationCondition,
    TerminationStatus,
)
from sagrun.errors import (
    ResourceAllocationError,
    SubAgentConfigError,
    SubAgentError,
    ToolNotFoundError,
    ToolPermissionError,
)
from sagrun.governance.resource_manager import GlobalResourceLimits, ResourceManager
from sagrun.llm.noop import NoopAIClient
from sagrun.settings import RuntimeSettings, get_runtime_settings
from sagrun.termination.engine import TerminationEngine
from sagrun.tools.registry import FunctionTool, ToolRegistry

__version__ = "0.1.0"

__all__ = [
    "ActiveRunRegistry",
    "ChatResponse",
    "CompatibilityBridge",
    "ConditionKind",
    "ExecutionConstraints",
    "ExecutionResult",
    "ExecutionScope",
    "FunctionTool",
    "GlobalResourceLimits",
    "NoopAIClient",
    "OutputDefinition",
    "ResourceAllocationError",
    "ResourceLimits",
    "ResourceManager",
    "RunConfig",
    "RuntimeSettings",
    "SubAgentArchitecture",
    "SubAgentConfigError",
    "SubAgentError",
    "SubAgentExecutor",
    "SubAgentTypeDefinition",
    "TaskToolResult",
    "TerminationCondition",
    "TerminationEngine",
    "TerminationStatus",
    "ToolNotFoundError",
    "ToolPermissionError",
    "ToolRegistry",
    "get_runtime_settings",
    "isolated_copy",
    "merge_variables",
    "validate_template",
    "__version__",
]
