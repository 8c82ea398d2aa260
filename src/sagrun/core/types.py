"""Core configuration types for sub-agent runs.

This module defines the immutable data structures a caller hands to the
runtime:
- ResourceLimits: admission-time memory/CPU reservation for one run
- OutputDefinition: declared output variable the agent is expected to emit
- ExecutionConstraints: timeout, turn ceiling, termination conditions, limits
- RunConfig: complete, validated run configuration
- TerminationCondition: closed tagged variant (GOAL/VARIABLE/OUTPUT/CUSTOM)

Every model accepts both snake_case field names and the camelCase keys used
by legacy agent definitions (``toolPermissions``, ``timeoutMs`` ...).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from sagrun.errors import SubAgentConfigError
from sagrun.settings import get_runtime_settings

WILDCARD_TOOL = "*"

# Handled by the executor itself; tool registries refuse this name.
EMIT_VARIABLE_TOOL = "emit_variable"

VARIABLE_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")

ConditionEvaluator = Callable[[Any], Union[bool, Awaitable[bool]]]


class ConditionKind(str, Enum):
    """Kinds of declarable termination conditions."""

    GOAL = "GOAL"
    VARIABLE = "VARIABLE"
    OUTPUT = "OUTPUT"
    CUSTOM = "CUSTOM"


class TerminationStatus(str, Enum):
    """Final status reported for a run."""

    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    TIMEOUT = "TIMEOUT"
    MAX_TURNS = "MAX_TURNS"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class TerminationCondition:
    """A named stop rule evaluated after every turn."""

    kind: ConditionKind
    reason: str
    evaluator: ConditionEvaluator

    @property
    def type(self) -> str:
        return self.kind.value


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
        protected_namespaces=(),
        extra="ignore",
    )


class ResourceLimits(_ConfigModel):
    """Resources reserved for a run at admission time."""

    max_memory_mb: float = Field(
        default_factory=lambda: get_runtime_settings().DEFAULT_MAX_MEMORY_MB,
        ge=0,
        alias="maxMemoryMB",
        description="Memory reservation in megabytes",
    )
    max_cpu_time_ms: float = Field(
        default_factory=lambda: get_runtime_settings().DEFAULT_MAX_CPU_TIME_MS,
        ge=0,
        description="CPU-time reservation in milliseconds",
    )


class OutputDefinition(_ConfigModel):
    """Declared output variable."""

    type: str = Field(default="any", description="Informal type of the output value")
    description: str = Field(default="", description="What the output contains")


class ExecutionConstraints(_ConfigModel):
    """Execution limits and termination conditions for one run."""

    timeout_ms: int = Field(
        default_factory=lambda: get_runtime_settings().DEFAULT_TIMEOUT_MS,
        gt=0,
        description="Wall-clock timeout measured from scope creation",
    )
    max_turns: int = Field(
        default_factory=lambda: get_runtime_settings().DEFAULT_MAX_TURNS,
        ge=1,
        description="Maximum number of model turns",
    )
    termination_conditions: list[TerminationCondition] = Field(
        default_factory=list,
        description="Ordered stop rules; the first satisfied condition wins",
    )
    resource_limits: ResourceLimits = Field(
        default_factory=ResourceLimits,
        description="Admission-time resource reservation",
    )


class RunConfig(_ConfigModel):
    """Validated configuration for a single sub-agent run.

    This model is frozen: once a configuration is accepted it cannot change
    for the lifetime of the run it produces.
    """

    prompt: str = Field(..., description="Prompt template; may contain {{variable}} placeholders")
    model_settings: dict[str, Any] = Field(
        default_factory=dict, description="Opaque settings passed to the AI client"
    )
    tool_permissions: list[str] = Field(
        ..., description="Allowed tool names, or ['*'] for every tool"
    )
    output_definitions: dict[str, OutputDefinition] = Field(
        default_factory=dict, description="Output variables the run may emit"
    )
    constraints: ExecutionConstraints = Field(..., description="Execution limits")

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("prompt must be a non-empty string")
        return value

    @field_validator("output_definitions")
    @classmethod
    def _output_names_valid(
        cls, value: dict[str, OutputDefinition]
    ) -> dict[str, OutputDefinition]:
        invalid = [name for name in value if not VARIABLE_NAME_PATTERN.match(name)]
        if invalid:
            raise ValueError(f"invalid output variable names: {', '.join(invalid)}")
        return value

    @property
    def allows_all_tools(self) -> bool:
        return WILDCARD_TOOL in self.tool_permissions

    def permits(self, tool_name: str) -> bool:
        """Return True when ``tool_name`` may be dispatched by this run."""
        return self.allows_all_tools or tool_name in self.tool_permissions

    @classmethod
    def from_input(cls, raw: Any) -> "RunConfig":
        """Validate a caller-supplied configuration.

        Args:
            raw: RunConfig instance or mapping (snake_case or camelCase keys)

        Returns:
            Validated RunConfig

        Raises:
            SubAgentConfigError: If the configuration is missing or invalid
        """
        if isinstance(raw, RunConfig):
            return raw
        if raw is None:
            raise SubAgentConfigError("Sub-agent configuration is required")
        if not isinstance(raw, Mapping):
            raise SubAgentConfigError(
                f"Sub-agent configuration must be a mapping, got {type(raw).__name__}"
            )
        if not raw:
            raise SubAgentConfigError("Sub-agent configuration is required")
        try:
            return cls.model_validate(dict(raw))
        except ValidationError as exc:
            details = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or 'config'}: {error['msg']}"
                for error in exc.errors()
            )
            raise SubAgentConfigError(f"Invalid sub-agent configuration: {details}") from exc


__all__ = [
    "EMIT_VARIABLE_TOOL",
    "WILDCARD_TOOL",
    "ConditionEvaluator",
    "ConditionKind",
    "ExecutionConstraints",
    "OutputDefinition",
    "ResourceLimits",
    "RunConfig",
    "TerminationCondition",
    "TerminationStatus",
    "VARIABLE_NAME_PATTERN",
]
