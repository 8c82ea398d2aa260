"""
Sub-agent orchestration facade.

SubAgentArchitecture wires the resource manager, termination engine,
compatibility bridge and executor together and owns the registry of active
runs. ``execute_subagent`` never raises for configuration, admission or
executor faults: each becomes an ERROR result, and resources are released and
the run deregistered exactly once on every exit path.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Mapping, Optional

from sagrun.agent.context import context_stats
from sagrun.agent.executor import SubAgentExecutor
from sagrun.agent.protocols import AIClientProtocol, ToolRegistryProtocol
from sagrun.agent.spec import (
    ExecutionResult,
    ExecutionScope,
    TaskToolResult,
    camelize_keys,
    new_scope_id,
)
from sagrun.bridge.compatibility import CompatibilityBridge, RegisteredType, SubAgentTypeDefinition
from sagrun.core.types import ConditionKind, RunConfig, TerminationCondition
from sagrun.errors import SubAgentConfigError
from sagrun.governance.resource_manager import ResourceManager
from sagrun.llm.noop import NoopAIClient
from sagrun.observability.metrics import RunMetrics
from sagrun.settings import RuntimeSettings, get_runtime_settings
from sagrun.termination.engine import TerminationEngine
from sagrun.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class ActiveRunRegistry:
    """Lookup-only index of in-flight scopes keyed by scope id."""

    def __init__(self) -> None:
        self._scopes: Dict[str, ExecutionScope] = {}
        self._lock = threading.RLock()

    def register(self, scope: ExecutionScope) -> None:
        with self._lock:
            if scope.scope_id in self._scopes:
                raise ValueError(f"Scope already registered: {scope.scope_id}")
            self._scopes[scope.scope_id] = scope

    def deregister(self, scope_id: str) -> bool:
        with self._lock:
            return self._scopes.pop(scope_id, None) is not None

    def lookup(self, scope_id: str) -> Optional[ExecutionScope]:
        with self._lock:
            return self._scopes.get(scope_id)

    def snapshot_ids(self) -> List[str]:
        with self._lock:
            return list(self._scopes.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._scopes)

    def __contains__(self, scope_id: object) -> bool:
        with self._lock:
            return scope_id in self._scopes


def _param(params: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in params and params[key] is not None:
            return params[key]
    return default


class SubAgentArchitecture:
    """Public entry point for running sub-agents."""

    def __init__(
        self,
        tool_registry: Optional[ToolRegistryProtocol] = None,
        ai_client: Optional[AIClientProtocol] = None,
        *,
        settings: Optional[RuntimeSettings] = None,
        resource_manager: Optional[ResourceManager] = None,
        termination_engine: Optional[TerminationEngine] = None,
        compatibility_bridge: Optional[CompatibilityBridge] = None,
    ) -> None:
        self.settings = settings or get_runtime_settings()
        self.resource_manager = resource_manager or ResourceManager.from_settings(self.settings)
        self.termination_engine = termination_engine or TerminationEngine()
        self.compatibility_bridge = compatibility_bridge or CompatibilityBridge(self.settings)
        self.executor = SubAgentExecutor(
            tool_registry if tool_registry is not None else ToolRegistry(),
            ai_client if ai_client is not None else NoopAIClient(),
            self.termination_engine,
            self.resource_manager,
        )
        self._runs = ActiveRunRegistry()
        self._metrics = RunMetrics()

    async def execute_subagent(
        self,
        config: Any,
        context_variables: Optional[Mapping[str, Any]] = None,
    ) -> ExecutionResult:
        """
        Validate, admit and run one sub-agent.

        Args:
            config: RunConfig or mapping (snake_case or camelCase keys)
            context_variables: Initial variables copied into the run's scope

        Returns:
            ExecutionResult; faults are reported with status ERROR
        """
        try:
            run_config = RunConfig.from_input(config)
        except SubAgentConfigError as exc:
            logger.error("Sub-agent configuration rejected: %s", exc)
            return ExecutionResult.failure(str(exc))

        scope_id = new_scope_id()
        allocation = self.resource_manager.allocate_resources(
            scope_id, run_config.constraints.resource_limits
        )
        if not allocation.success:
            message = f"Resource allocation failed: {allocation.error}"
            logger.warning("%s (scope %s)", message, scope_id)
            return ExecutionResult.failure(
                message, metadata={"remaining_capacity": allocation.remaining_capacity}
            )

        scope: Optional[ExecutionScope] = None
        registered = False
        result: Optional[ExecutionResult] = None
        try:
            scope = self.executor.initialize_scope(run_config, context_variables, scope_id=scope_id)
            self._runs.register(scope)
            registered = True
            self.termination_engine.start_monitoring(scope_id, run_config.constraints)
            logger.info("Starting sub-agent run %s", scope_id)

            result = await self.executor.execute(scope)
            result.execution_metadata.update(
                resource_stats=self.resource_manager.get_resource_stats(scope_id),
                context_stats=context_stats(scope),
                termination_stats=self.termination_engine.get_monitor_stats(scope_id),
            )
            logger.info(
                "Sub-agent run %s completed: %s", scope_id, result.termination.status.value
            )
            return result
        except Exception as exc:
            logger.error("Sub-agent run %s failed: %s", scope_id, exc, exc_info=True)
            result = ExecutionResult.failure(
                f"Execution error: {exc}", scope=scope, metadata={"scope_id": scope_id}
            )
            return result
        finally:
            self.termination_engine.stop_monitoring(scope_id)
            self.resource_manager.release_resources(scope_id)
            if registered:
                self._runs.deregister(scope_id)
            if result is not None:
                self._metrics.record(result)

    async def execute_via_task_tool(
        self,
        agent_type: str,
        prompt: str,
        context: Optional[Mapping[str, Any]] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> TaskToolResult:
        """
        Run a named agent type the way the legacy task tool did.

        The run is neither registered nor admitted against the resource
        budget, and AI client or tool faults propagate to the caller.
        """
        task_params = {**dict(options or {}), "subagent_type": agent_type, "prompt": prompt}
        run_config = self.compatibility_bridge.create_subagent_from_task(task_params)

        variables = dict(context or {})
        variables["task_description"] = prompt
        scope = self.executor.initialize_scope(run_config, variables)
        logger.info("Executing %s via task tool (scope %s)", agent_type, scope.scope_id)

        result = await self.executor.execute(scope, propagate_errors=True)
        termination = result.termination
        return TaskToolResult(
            success=result.ok,
            agent_type=agent_type,
            execution_time=termination.execution_duration_ms,
            termination_reason=termination.reason,
            turns_executed=termination.turns_executed,
            result=dict(result.emitted_variables),
            metadata={
                "scope_id": scope.scope_id,
                "status": termination.status.value,
                "context_stats": context_stats(scope),
            },
        )

    def create_termination_condition(
        self,
        kind: str | ConditionKind,
        params: Optional[Mapping[str, Any]] = None,
    ) -> TerminationCondition:
        """Build a condition of kind goal, variable, output or custom."""
        params = dict(params or {})
        try:
            resolved = ConditionKind(kind.upper() if isinstance(kind, str) else kind)
        except ValueError as exc:
            raise SubAgentConfigError(f"Unknown termination condition type: {kind}") from exc

        engine = self.termination_engine
        description = _param(params, "description", default="")

        if resolved is ConditionKind.GOAL:
            return engine.create_goal_condition(
                description, self._require_callable(params, "evaluator")
            )
        if resolved is ConditionKind.VARIABLE:
            variable_name = _param(params, "variable_name", "variableName")
            if not isinstance(variable_name, str) or not variable_name:
                raise SubAgentConfigError("Variable condition requires variable_name")
            return engine.create_variable_condition(
                variable_name, self._require_callable(params, "condition"), description
            )
        if resolved is ConditionKind.OUTPUT:
            required = _param(params, "required_outputs", "requiredOutputs")
            if isinstance(required, str) or not isinstance(required, (list, tuple, set)):
                raise SubAgentConfigError("Output condition requires a list of required_outputs")
            return engine.create_output_condition(required, description)
        return engine.create_custom_condition(
            _param(params, "reason"), self._require_callable(params, "evaluator")
        )

    def force_termination(self, scope_id: str, reason: str = "Manual termination") -> bool:
        """Flag an active run for cancellation; False when ``scope_id`` is not active."""
        scope = self._runs.lookup(scope_id)
        if scope is None:
            logger.debug("force_termination ignored for inactive scope %s", scope_id)
            return False
        scope.request_cancellation(reason)
        logger.warning("Forced termination requested for scope %s: %s", scope_id, reason)
        return True

    def get_execution_statistics(self) -> Dict[str, Any]:
        """Counters for this runtime instance, keyed in camelCase."""
        snapshot = self._metrics.snapshot()
        return camelize_keys(
            {
                "activeSubAgents": len(self._runs),
                "totalExecutions": snapshot.runs_total,
                "resourceStats": self.resource_manager.get_global_stats(),
                "terminationStats": self.termination_engine.get_overall_stats(),
                "averageExecutionTime": snapshot.average_duration_ms,
                "runMetrics": snapshot.as_dict(),
            }
        )

    def register_custom_subagent_type(
        self,
        name: str,
        definition: SubAgentTypeDefinition | Mapping[str, Any],
    ) -> RegisteredType:
        return self.compatibility_bridge.register_subagent_type(name, definition)

    def create_subagent_from_existing_agent(
        self,
        agent_type: str,
        agent_config: Optional[Mapping[str, Any]] = None,
    ) -> RunConfig:
        return self.compatibility_bridge.convert_agent_to_subagent(agent_type, agent_config)

    def get_registered_types(self) -> List[RegisteredType]:
        return self.compatibility_bridge.get_registered_types()

    def active_scope_ids(self) -> List[str]:
        return self._runs.snapshot_ids()

    @staticmethod
    def _require_callable(params: Mapping[str, Any], key: str) -> Any:
        value = params.get(key)
        if not callable(value):
            raise SubAgentConfigError(f"Termination condition requires a callable '{key}'")
        return value


__all__ = ["ActiveRunRegistry", "SubAgentArchitecture"]
