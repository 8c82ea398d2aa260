"""Execution state and result primitives shared by the executor and facade."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping, MutableMapping, Optional

from pydantic.alias_generators import to_camel

from sagrun.core.types import ConditionKind, RunConfig, TerminationStatus

# Values under these keys are caller or model data and keep their own keys.
_VERBATIM_KEYS = frozenset({"arguments", "status_counts", "variables", "verdicts"})


def new_scope_id() -> str:
    """Return a fresh scope identifier (``scope_<epoch ms>_<hex>``)."""
    return f"scope_{int(time.time() * 1000)}_{uuid.uuid4().hex[:12]}"


def camelize_keys(value: Any) -> Any:
    """Recursively rename snake_case mapping keys to camelCase for dict output."""
    if isinstance(value, Mapping):
        converted: dict[Any, Any] = {}
        for key, item in value.items():
            if isinstance(key, str) and key in _VERBATIM_KEYS:
                converted[to_camel(key)] = item
            else:
                name = to_camel(key) if isinstance(key, str) and "_" in key.strip("_") else key
                converted[name] = camelize_keys(item)
        return converted
    if isinstance(value, (list, tuple)):
        return [camelize_keys(item) for item in value]
    return value


@dataclass(slots=True)
class ToolCall:
    """Tool invocation requested by the model."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    call_id: Optional[str] = None


@dataclass(slots=True)
class EmissionRecord:
    """Audit entry for a value emitted as a declared output."""

    name: str
    value: Any
    turn: int
    timestamp: float


@dataclass(slots=True)
class TurnRecord:
    """Artefacts of one completed model-call-plus-tool-dispatch cycle."""

    turn: int
    prompt: str
    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[dict[str, Any]] = field(default_factory=list)
    rejected_calls: list[str] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)

    @property
    def requested_tools(self) -> bool:
        return bool(self.tool_calls)


@dataclass(slots=True)
class ExecutionScope:
    """Mutable state owned by exactly one in-flight run."""

    config: RunConfig
    scope_id: str = field(default_factory=new_scope_id)
    variables: dict[str, Any] = field(default_factory=dict)
    emitted_variables: dict[str, Any] = field(default_factory=dict)
    emission_log: list[EmissionRecord] = field(default_factory=list)
    history: list[TurnRecord] = field(default_factory=list)
    rejected_tool_calls: list[dict[str, Any]] = field(default_factory=list)
    turn_count: int = 0
    start_time: float = field(default_factory=time.monotonic)
    started_at: float = field(default_factory=time.time)
    last_updated: float = field(default_factory=time.monotonic)
    cancellation_requested: bool = False
    cancellation_reason: Optional[str] = None
    resource_usage: dict[str, float] = field(default_factory=dict)

    def touch(self) -> None:
        self.last_updated = time.monotonic()

    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.start_time) * 1000.0

    def remaining_ms(self) -> float:
        return max(0.0, self.config.constraints.timeout_ms - self.elapsed_ms())

    def is_timed_out(self) -> bool:
        return self.elapsed_ms() >= self.config.constraints.timeout_ms

    def is_max_turns_reached(self) -> bool:
        return self.turn_count >= self.config.constraints.max_turns

    def request_cancellation(self, reason: str) -> None:
        """Flag the scope; the run stops at its next turn boundary."""
        if self.cancellation_requested:
            return
        self.cancellation_requested = True
        self.cancellation_reason = reason

    @property
    def latest_turn(self) -> Optional[TurnRecord]:
        return self.history[-1] if self.history else None


@dataclass(slots=True)
class TerminationVerdict:
    """Decision produced by the termination engine."""

    status: TerminationStatus
    reason: str
    condition_kind: Optional[ConditionKind] = None


@dataclass(slots=True)
class TerminationInfo:
    """How a run ended."""

    status: TerminationStatus
    reason: str
    execution_duration_ms: float = 0.0
    turns_executed: int = 0


@dataclass(slots=True)
class ContextSnapshot:
    """Copy of a scope's variables taken when the run finished."""

    variables: dict[str, Any] = field(default_factory=dict)
    history_length: int = 0


@dataclass(slots=True)
class ExecutionResult:
    """Complete outcome of one run."""

    emitted_variables: dict[str, Any]
    termination: TerminationInfo
    execution_metadata: MutableMapping[str, Any] = field(default_factory=dict)
    final_context: Optional[ContextSnapshot] = None

    @property
    def ok(self) -> bool:
        return self.termination.status is TerminationStatus.SUCCESS

    @classmethod
    def failure(
        cls,
        error: str,
        *,
        scope: Optional[ExecutionScope] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> "ExecutionResult":
        """Build an ERROR result for faults raised outside the turn loop."""
        execution_metadata: dict[str, Any] = dict(metadata or {})
        execution_metadata.update({"error": error, "failed": True})
        if scope is not None:
            execution_metadata.setdefault("scope_id", scope.scope_id)
        return cls(
            emitted_variables=dict(scope.emitted_variables) if scope else {},
            termination=TerminationInfo(
                status=TerminationStatus.ERROR,
                reason=error,
                execution_duration_ms=scope.elapsed_ms() if scope else 0.0,
                turns_executed=scope.turn_count if scope else 0,
            ),
            execution_metadata=execution_metadata,
            final_context=(
                ContextSnapshot(variables=dict(scope.variables), history_length=len(scope.history))
                if scope
                else None
            ),
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "emittedVariables": dict(self.emitted_variables),
            "termination": {
                "status": self.termination.status.value,
                "reason": self.termination.reason,
                "executionDuration": self.termination.execution_duration_ms,
                "turnsExecuted": self.termination.turns_executed,
            },
            "executionMetadata": camelize_keys(self.execution_metadata),
            "finalContext": (
                {
                    "variables": dict(self.final_context.variables),
                    "historyLength": self.final_context.history_length,
                }
                if self.final_context
                else None
            ),
        }


@dataclass(slots=True)
class TaskToolResult:
    """Flattened result returned by the task-tool compatibility entry point."""

    success: bool
    agent_type: str
    execution_time: float
    termination_reason: str
    turns_executed: int = 0
    result: dict[str, Any] = field(default_factory=dict)
    metadata: MutableMapping[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "agentType": self.agent_type,
            "result": dict(self.result),
            "executionTime": self.execution_time,
            "turnsExecuted": self.turns_executed,
            "terminationReason": self.termination_reason,
            "metadata": camelize_keys(self.metadata),
        }


__all__ = [
    "ContextSnapshot",
    "EmissionRecord",
    "ExecutionResult",
    "ExecutionScope",
    "TaskToolResult",
    "TerminationInfo",
    "TerminationVerdict",
    "ToolCall",
    "TurnRecord",
    "camelize_keys",
    "new_scope_id",
]
