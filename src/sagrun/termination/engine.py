"""Termination engine: declared stop conditions plus hard ceilings."""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Optional

from sagrun.agent.protocols import resolve
from sagrun.agent.spec import ExecutionScope, TerminationVerdict, TurnRecord
from sagrun.core.types import (
    ConditionEvaluator,
    ConditionKind,
    ExecutionConstraints,
    TerminationCondition,
    TerminationStatus,
)

logger = logging.getLogger(__name__)


@dataclass
class _Monitor:
    scope_id: str
    constraints: ExecutionConstraints
    started: float = field(default_factory=time.monotonic)
    check_count: int = 0
    last_check: Optional[float] = None


class TerminationEngine:
    """Builds termination conditions and decides when a run must stop.

    ``evaluate`` applies, in order: a pending cancellation, the declared
    conditions (first match wins), natural completion, the wall-clock
    timeout and the turn ceiling.
    """

    def __init__(self) -> None:
        self._monitors: Dict[str, _Monitor] = {}
        self._lock = threading.RLock()
        self._verdicts: Counter[str] = Counter()
        self._completed_monitors = 0
        self._total_checks = 0

    def create_goal_condition(
        self, description: str, evaluator: ConditionEvaluator
    ) -> TerminationCondition:
        return TerminationCondition(
            kind=ConditionKind.GOAL,
            reason=f"Goal achieved: {description}",
            evaluator=self._guarded("Goal", evaluator),
        )

    def create_variable_condition(
        self,
        variable_name: str,
        condition: Callable[[Any], Any],
        description: str,
    ) -> TerminationCondition:
        def _evaluate(scope: ExecutionScope) -> Any:
            if variable_name not in scope.variables:
                return False
            return condition(scope.variables[variable_name])

        return TerminationCondition(
            kind=ConditionKind.VARIABLE,
            reason=f"Variable condition met: {description}",
            evaluator=self._guarded("Variable", _evaluate),
        )

    def create_output_condition(
        self, required_outputs: Iterable[str], description: str
    ) -> TerminationCondition:
        required = tuple(required_outputs)

        def _evaluate(scope: ExecutionScope) -> bool:
            return all(name in scope.emitted_variables for name in required)

        return TerminationCondition(
            kind=ConditionKind.OUTPUT,
            reason=f"Required outputs available: {description}",
            evaluator=self._guarded("Output", _evaluate),
        )

    @staticmethod
    def create_custom_condition(
        reason: Optional[str], evaluator: ConditionEvaluator
    ) -> TerminationCondition:
        return TerminationCondition(
            kind=ConditionKind.CUSTOM,
            reason=reason or "Custom condition met",
            evaluator=evaluator,
        )

    def start_monitoring(self, scope_id: str, constraints: ExecutionConstraints) -> None:
        with self._lock:
            self._monitors[scope_id] = _Monitor(scope_id=scope_id, constraints=constraints)
        logger.debug("Started termination monitoring for scope %s", scope_id)

    def stop_monitoring(self, scope_id: str) -> None:
        with self._lock:
            if self._monitors.pop(scope_id, None) is not None:
                self._completed_monitors += 1
                logger.debug("Stopped termination monitoring for scope %s", scope_id)

    async def evaluate(
        self, scope: ExecutionScope, latest_output: Optional[TurnRecord]
    ) -> Optional[TerminationVerdict]:
        """Return a terminal verdict for ``scope`` or None to keep running.

        A custom evaluator that raises propagates to the caller.
        """
        self._record_check(scope.scope_id)

        if scope.cancellation_requested:
            return self._verdict(
                TerminationStatus.CANCELLED,
                scope.cancellation_reason or "Manual termination",
            )

        conditions = scope.config.constraints.termination_conditions
        for condition in conditions:
            if await resolve(condition.evaluator(scope)):
                return self._verdict(TerminationStatus.SUCCESS, condition.reason, condition.kind)

        if latest_output is not None and not latest_output.requested_tools and not conditions:
            return self._verdict(
                TerminationStatus.SUCCESS,
                f"Agent completed after {scope.turn_count} turn(s) without further tool calls",
            )

        if scope.is_timed_out():
            return self._verdict(
                TerminationStatus.TIMEOUT,
                f"Execution timeout after {scope.elapsed_ms():.0f}ms",
            )

        if scope.is_max_turns_reached():
            return self._verdict(
                TerminationStatus.MAX_TURNS,
                f"Maximum turns reached: {scope.turn_count}",
            )

        return None

    def record_verdict(self, verdict: TerminationVerdict) -> None:
        """Count a verdict produced outside ``evaluate`` (errors, turn deadlines)."""
        with self._lock:
            self._verdicts[verdict.status.value] += 1

    def get_monitor_stats(self, scope_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            monitor = self._monitors.get(scope_id)
            if monitor is None:
                return None
            runtime_ms = (time.monotonic() - monitor.started) * 1000.0
            return {
                "scope_id": monitor.scope_id,
                "runtime_ms": runtime_ms,
                "check_count": monitor.check_count,
                "last_check": monitor.last_check,
                "timeout_remaining_ms": max(0.0, monitor.constraints.timeout_ms - runtime_ms),
            }

    def get_overall_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "active_monitors": len(self._monitors),
                "completed_monitors": self._completed_monitors,
                "total_checks": self._total_checks,
                "verdicts": dict(self._verdicts),
            }

    def _record_check(self, scope_id: str) -> None:
        with self._lock:
            self._total_checks += 1
            monitor = self._monitors.get(scope_id)
            if monitor is not None:
                monitor.check_count += 1
                monitor.last_check = time.time()

    def _verdict(
        self,
        status: TerminationStatus,
        reason: str,
        kind: Optional[ConditionKind] = None,
    ) -> TerminationVerdict:
        verdict = TerminationVerdict(status=status, reason=reason, condition_kind=kind)
        self.record_verdict(verdict)
        return verdict

    @staticmethod
    def _guarded(label: str, evaluator: Callable[[ExecutionScope], Any]) -> ConditionEvaluator:
        async def _evaluate(scope: ExecutionScope) -> bool:
            try:
                return bool(await resolve(evaluator(scope)))
            except Exception as exc:  # noqa: BLE001
                logger.warning("%s condition evaluation error: %s", label, exc)
                return False

        return _evaluate


__all__ = ["TerminationEngine"]
