"""
Sub-agent executor.

Drives one ExecutionScope through its turn loop: render the prompt, call the
AI client, dispatch permitted tool calls, then ask the termination engine
whether the run is finished.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, List, Mapping, Optional

import anyio

from sagrun.agent.context import is_valid_variable_name, isolated_copy, render_template
from sagrun.agent.protocols import (
    AIClientProtocol,
    ToolRegistryProtocol,
    normalize_chat_response,
    resolve,
)
from sagrun.agent.spec import (
    ContextSnapshot,
    EmissionRecord,
    ExecutionResult,
    ExecutionScope,
    TerminationInfo,
    TerminationVerdict,
    ToolCall,
    TurnRecord,
)
from sagrun.core.types import EMIT_VARIABLE_TOOL, RunConfig, TerminationStatus
from sagrun.errors import ToolPermissionError
from sagrun.governance.resource_manager import ResourceManager
from sagrun.termination.engine import TerminationEngine

logger = logging.getLogger(__name__)


class SubAgentExecutor:
    """Turn loop for a single sub-agent run."""

    def __init__(
        self,
        tool_registry: ToolRegistryProtocol,
        ai_client: AIClientProtocol,
        termination_engine: TerminationEngine,
        resource_manager: Optional[ResourceManager] = None,
    ) -> None:
        self.tool_registry = tool_registry
        self.ai_client = ai_client
        self.termination_engine = termination_engine
        self.resource_manager = resource_manager

    def initialize_scope(
        self,
        config: RunConfig,
        context_variables: Optional[Mapping[str, Any]] = None,
        *,
        scope_id: Optional[str] = None,
    ) -> ExecutionScope:
        """Create a scope whose variables are a deep copy of ``context_variables``."""
        scope = ExecutionScope(config=config, variables=isolated_copy(context_variables))
        if scope_id is not None:
            scope.scope_id = scope_id
        logger.debug("Initialized scope %s", scope.scope_id)
        return scope

    def emit_variable(self, scope: ExecutionScope, name: str, value: Any) -> None:
        """Record ``value`` as the output ``name`` (overwrites earlier emissions)."""
        if not name:
            raise ValueError("Variable name is required")
        if not is_valid_variable_name(name):
            raise ValueError(f"Invalid variable name: {name}")
        scope.emitted_variables[name] = value
        scope.variables[name] = value
        scope.emission_log.append(
            EmissionRecord(name=name, value=value, turn=scope.turn_count, timestamp=time.time())
        )
        scope.touch()
        logger.debug("Variable emitted in scope %s: %s", scope.scope_id, name)

    async def execute(
        self, scope: ExecutionScope, *, propagate_errors: bool = False
    ) -> ExecutionResult:
        """
        Run ``scope`` until the termination engine produces a verdict.

        Args:
            scope: Scope created by ``initialize_scope``
            propagate_errors: Re-raise AI client, tool and evaluator faults
                instead of converting them to an ERROR result

        Returns:
            ExecutionResult describing how the run ended
        """
        logger.info("Starting sub-agent execution for scope %s", scope.scope_id)
        cpu_started = time.process_time()
        verdict: Optional[TerminationVerdict] = None

        try:
            while True:
                verdict = await self.termination_engine.evaluate(scope, scope.latest_turn)
                if verdict is not None:
                    break

                turn: Optional[TurnRecord] = None
                with anyio.move_on_after(scope.remaining_ms() / 1000.0):
                    turn = await self._execute_turn(scope)

                if turn is None:
                    verdict = TerminationVerdict(
                        status=TerminationStatus.TIMEOUT,
                        reason=f"Execution timeout after {scope.elapsed_ms():.0f}ms",
                    )
                    self.termination_engine.record_verdict(verdict)
                    break

                self._report_usage(scope, cpu_started)
        except Exception as exc:
            if propagate_errors:
                raise
            logger.error(
                "Turn execution failed for scope %s: %s", scope.scope_id, exc, exc_info=True
            )
            verdict = TerminationVerdict(
                status=TerminationStatus.ERROR, reason=f"Execution error: {exc}"
            )
            self.termination_engine.record_verdict(verdict)

        logger.info(
            "Sub-agent execution finished for scope %s: %s (%s)",
            scope.scope_id,
            verdict.status.value,
            verdict.reason,
        )
        return self._build_result(scope, verdict)

    async def _execute_turn(self, scope: ExecutionScope) -> TurnRecord:
        scope.turn_count += 1
        prompt = render_template(scope.config.prompt, scope.variables, scope_id=scope.scope_id)
        logger.debug("Turn %d for scope %s", scope.turn_count, scope.scope_id)

        raw = await resolve(
            self.ai_client.chat(
                self._build_messages(scope, prompt), dict(scope.config.model_settings)
            )
        )
        response = normalize_chat_response(raw)

        turn = TurnRecord(
            turn=scope.turn_count,
            prompt=prompt,
            content=response.content,
            tool_calls=list(response.tool_calls),
        )
        for call in response.tool_calls:
            turn.tool_results.append(await self._dispatch(scope, call, turn))

        scope.history.append(turn)
        scope.touch()
        return turn

    async def _dispatch(
        self, scope: ExecutionScope, call: ToolCall, turn: TurnRecord
    ) -> Dict[str, Any]:
        if call.name == EMIT_VARIABLE_TOOL:
            return self._emit_from_tool(scope, call, turn)

        if not scope.config.permits(call.name):
            error = ToolPermissionError(call.name)
            self._reject(scope, call, turn, str(error))
            return {"tool": call.name, "call_id": call.call_id, "error": str(error)}

        tool = self.tool_registry.get_tool(call.name)
        result = await resolve(tool.execute(dict(call.arguments)))
        scope.variables[f"_tool_{call.name}_result"] = result
        scope.touch()
        logger.debug("Tool %s executed in scope %s", call.name, scope.scope_id)
        return {"tool": call.name, "call_id": call.call_id, "result": result}

    def _emit_from_tool(
        self, scope: ExecutionScope, call: ToolCall, turn: TurnRecord
    ) -> Dict[str, Any]:
        name = call.arguments.get("name")
        if not isinstance(name, str) or name not in scope.config.output_definitions:
            reason = f"Output '{name}' is not declared for this sub-agent"
            self._reject(scope, call, turn, reason)
            return {"tool": call.name, "call_id": call.call_id, "error": reason}

        self.emit_variable(scope, name, call.arguments.get("value"))
        return {"tool": call.name, "call_id": call.call_id, "result": {"emitted": name}}

    def _reject(self, scope: ExecutionScope, call: ToolCall, turn: TurnRecord, reason: str) -> None:
        logger.warning("Rejected tool call %s in scope %s: %s", call.name, scope.scope_id, reason)
        turn.rejected_calls.append(call.name)
        scope.rejected_tool_calls.append(
            {
                "tool": call.name,
                "arguments": dict(call.arguments),
                "turn": scope.turn_count,
                "reason": reason,
                "timestamp": time.time(),
            }
        )

    def _build_messages(self, scope: ExecutionScope, prompt: str) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = [{"role": "system", "content": prompt}]
        for record in scope.history:
            messages.append(
                {
                    "role": "assistant",
                    "content": record.content,
                    "tool_calls": [
                        {"id": call.call_id, "name": call.name, "arguments": call.arguments}
                        for call in record.tool_calls
                    ],
                }
            )
            for outcome in record.tool_results:
                payload = outcome.get("result", outcome.get("error"))
                messages.append(
                    {
                        "role": "tool",
                        "name": outcome["tool"],
                        "tool_call_id": outcome.get("call_id"),
                        "content": json.dumps(payload, default=str),
                    }
                )
        return messages

    def _report_usage(self, scope: ExecutionScope, cpu_started: float) -> None:
        # process-wide CPU time; concurrent runs in the same process overlap
        cpu_time_ms = (time.process_time() - cpu_started) * 1000.0
        scope.resource_usage["cpu_time_ms"] = cpu_time_ms
        if self.resource_manager is not None and self.resource_manager.is_allocated(
            scope.scope_id
        ):
            self.resource_manager.update_usage(scope.scope_id, cpu_time_ms=cpu_time_ms)

    def _build_result(self, scope: ExecutionScope, verdict: TerminationVerdict) -> ExecutionResult:
        metadata: Dict[str, Any] = {
            "scope_id": scope.scope_id,
            "resource_usage": dict(scope.resource_usage),
            "history_length": len(scope.history),
            "rejected_tool_calls": list(scope.rejected_tool_calls),
        }
        if verdict.condition_kind is not None:
            metadata["condition_kind"] = verdict.condition_kind.value
        if verdict.status is TerminationStatus.ERROR:
            metadata["error"] = verdict.reason

        return ExecutionResult(
            emitted_variables=dict(scope.emitted_variables),
            termination=TerminationInfo(
                status=verdict.status,
                reason=verdict.reason,
                execution_duration_ms=scope.elapsed_ms(),
                turns_executed=scope.turn_count,
            ),
            execution_metadata=metadata,
            final_context=ContextSnapshot(
                variables=dict(scope.variables), history_length=len(scope.history)
            ),
        )


__all__ = ["EMIT_VARIABLE_TOOL", "SubAgentExecutor", "render_template"]
