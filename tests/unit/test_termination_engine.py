from __future__ import annotations

import time
from typing import Any

import pytest

from sagrun.agent.spec import ExecutionScope, ToolCall, TurnRecord
from sagrun.core.types import (
    ConditionKind,
    ExecutionConstraints,
    RunConfig,
    TerminationCondition,
    TerminationStatus,
)
from sagrun.termination.engine import TerminationEngine


def _scope(*conditions: TerminationCondition, **constraints: Any) -> ExecutionScope:
    config = RunConfig(
        prompt="x",
        tool_permissions=["*"],
        constraints=ExecutionConstraints(
            termination_conditions=list(conditions), **constraints
        ),
    )
    return ExecutionScope(config=config)


def _turn(*, with_tools: bool) -> TurnRecord:
    calls = [ToolCall(name="echo")] if with_tools else []
    return TurnRecord(turn=1, prompt="x", content="y", tool_calls=calls)


@pytest.fixture
def engine() -> TerminationEngine:
    return TerminationEngine()


def test_condition_factories_produce_tagged_conditions(engine: TerminationEngine) -> None:
    goal = engine.create_goal_condition("done", lambda scope: True)
    variable = engine.create_variable_condition("count", lambda value: value > 3, "count > 3")
    output = engine.create_output_condition(["summary"], "summary ready")
    custom = engine.create_custom_condition(None, lambda scope: True)

    assert [c.kind for c in (goal, variable, output, custom)] == [
        ConditionKind.GOAL,
        ConditionKind.VARIABLE,
        ConditionKind.OUTPUT,
        ConditionKind.CUSTOM,
    ]
    assert goal.reason == "Goal achieved: done"
    assert variable.reason == "Variable condition met: count > 3"
    assert output.reason == "Required outputs available: summary ready"
    assert custom.reason == "Custom condition met"
    assert goal.type == "GOAL"


@pytest.mark.asyncio
async def test_variable_condition_reads_scope_variables(engine: TerminationEngine) -> None:
    condition = engine.create_variable_condition("count", lambda value: value > 3, "count > 3")
    scope = _scope(condition)

    assert await condition.evaluator(scope) is False
    scope.variables["count"] = 2
    assert await condition.evaluator(scope) is False
    scope.variables["count"] = 5
    assert await condition.evaluator(scope) is True


@pytest.mark.asyncio
async def test_output_condition_requires_every_output(engine: TerminationEngine) -> None:
    condition = engine.create_output_condition(["a", "b"], "a and b")
    scope = _scope(condition)

    scope.emitted_variables["a"] = 1
    assert await condition.evaluator(scope) is False
    scope.emitted_variables["b"] = 2
    assert await condition.evaluator(scope) is True


@pytest.mark.asyncio
async def test_builtin_evaluator_errors_evaluate_false(
    engine: TerminationEngine, caplog: pytest.LogCaptureFixture
) -> None:
    def _broken(scope: ExecutionScope) -> bool:
        raise KeyError("missing")

    condition = engine.create_goal_condition("broken", _broken)

    assert await condition.evaluator(_scope()) is False
    assert "Goal condition evaluation error" in caplog.text


@pytest.mark.asyncio
async def test_custom_evaluator_errors_propagate(engine: TerminationEngine) -> None:
    def _broken(scope: ExecutionScope) -> bool:
        raise RuntimeError("custom failure")

    scope = _scope(engine.create_custom_condition("never", _broken))

    with pytest.raises(RuntimeError, match="custom failure"):
        await engine.evaluate(scope, None)


@pytest.mark.asyncio
async def test_async_evaluators_are_awaited(engine: TerminationEngine) -> None:
    async def _ready(scope: ExecutionScope) -> bool:
        return scope.variables.get("ready", False)

    scope = _scope(engine.create_custom_condition("async ready", _ready))
    assert await engine.evaluate(scope, None) is None

    scope.variables["ready"] = True
    verdict = await engine.evaluate(scope, None)
    assert verdict is not None
    assert verdict.status is TerminationStatus.SUCCESS
    assert verdict.reason == "async ready"
    assert verdict.condition_kind is ConditionKind.CUSTOM


@pytest.mark.asyncio
async def test_cancellation_wins_over_conditions(engine: TerminationEngine) -> None:
    scope = _scope(engine.create_goal_condition("done", lambda scope: True))
    scope.request_cancellation("operator stop")
    scope.request_cancellation("second reason ignored")

    verdict = await engine.evaluate(scope, None)
    assert verdict is not None
    assert verdict.status is TerminationStatus.CANCELLED
    assert verdict.reason == "operator stop"


@pytest.mark.asyncio
async def test_first_matching_condition_wins(engine: TerminationEngine) -> None:
    scope = _scope(
        engine.create_custom_condition("first", lambda scope: False),
        engine.create_custom_condition("second", lambda scope: True),
        engine.create_custom_condition("third", lambda scope: True),
    )

    verdict = await engine.evaluate(scope, None)
    assert verdict is not None
    assert verdict.reason == "second"


@pytest.mark.asyncio
async def test_natural_completion_without_conditions(engine: TerminationEngine) -> None:
    scope = _scope()
    assert await engine.evaluate(scope, None) is None
    assert await engine.evaluate(scope, _turn(with_tools=True)) is None

    scope.turn_count = 1
    verdict = await engine.evaluate(scope, _turn(with_tools=False))
    assert verdict is not None
    assert verdict.status is TerminationStatus.SUCCESS


@pytest.mark.asyncio
async def test_declared_conditions_disable_natural_completion(engine: TerminationEngine) -> None:
    scope = _scope(engine.create_custom_condition("never", lambda scope: False))
    assert await engine.evaluate(scope, _turn(with_tools=False)) is None


@pytest.mark.asyncio
async def test_timeout_verdict(engine: TerminationEngine) -> None:
    scope = _scope(timeout_ms=10)
    scope.start_time = time.monotonic() - 1.0

    verdict = await engine.evaluate(scope, _turn(with_tools=True))
    assert verdict is not None
    assert verdict.status is TerminationStatus.TIMEOUT
    assert verdict.reason.startswith("Execution timeout after")


@pytest.mark.asyncio
async def test_max_turns_verdict(engine: TerminationEngine) -> None:
    scope = _scope(max_turns=2)
    scope.turn_count = 2

    verdict = await engine.evaluate(scope, _turn(with_tools=True))
    assert verdict is not None
    assert verdict.status is TerminationStatus.MAX_TURNS
    assert verdict.reason == "Maximum turns reached: 2"


@pytest.mark.asyncio
async def test_monitoring_statistics(engine: TerminationEngine) -> None:
    scope = _scope()
    engine.start_monitoring(scope.scope_id, scope.config.constraints)

    await engine.evaluate(scope, None)
    await engine.evaluate(scope, None)

    stats = engine.get_monitor_stats(scope.scope_id)
    assert stats is not None
    assert stats["check_count"] == 2
    assert stats["last_check"] is not None
    assert 0 < stats["timeout_remaining_ms"] <= scope.config.constraints.timeout_ms

    engine.stop_monitoring(scope.scope_id)
    engine.stop_monitoring(scope.scope_id)
    assert engine.get_monitor_stats(scope.scope_id) is None

    overall = engine.get_overall_stats()
    assert overall["active_monitors"] == 0
    assert overall["completed_monitors"] == 1
    assert overall["total_checks"] == 2
