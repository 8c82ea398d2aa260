"""Lightweight in-process aggregation of completed sub-agent runs."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict

from sagrun.agent.spec import ExecutionResult


@dataclass
class AggregatedRunMetrics:
    """Aggregated counters used for execution statistics."""

    runs_total: int = 0
    runs_failed: int = 0
    duration_ms_total: float = 0.0
    turns_total: int = 0
    status_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def average_duration_ms(self) -> float:
        return (self.duration_ms_total / self.runs_total) if self.runs_total else 0.0

    def as_dict(self) -> dict[str, float | int | dict[str, int]]:
        failure_rate = (self.runs_failed / self.runs_total) if self.runs_total else 0.0
        return {
            "runs_total": self.runs_total,
            "runs_failed": self.runs_failed,
            "failure_rate": failure_rate,
            "duration_ms_total": self.duration_ms_total,
            "avg_duration_ms": self.average_duration_ms,
            "turns_total": self.turns_total,
            "status_counts": dict(self.status_counts),
        }


class RunMetrics:
    """Thread-safe accumulator for finished runs, owned by one orchestrator."""

    def __init__(self) -> None:
        self._metrics = AggregatedRunMetrics()
        self._lock = threading.RLock()

    def record(self, result: ExecutionResult) -> None:
        termination = result.termination
        with self._lock:
            self._metrics.runs_total += 1
            if not result.ok:
                self._metrics.runs_failed += 1
            self._metrics.duration_ms_total += max(0.0, termination.execution_duration_ms)
            self._metrics.turns_total += termination.turns_executed
            status = termination.status.value
            self._metrics.status_counts[status] = self._metrics.status_counts.get(status, 0) + 1

    @property
    def average_duration_ms(self) -> float:
        with self._lock:
            return self._metrics.average_duration_ms

    def snapshot(self) -> AggregatedRunMetrics:
        with self._lock:
            return AggregatedRunMetrics(
                runs_total=self._metrics.runs_total,
                runs_failed=self._metrics.runs_failed,
                duration_ms_total=self._metrics.duration_ms_total,
                turns_total=self._metrics.turns_total,
                status_counts=dict(self._metrics.status_counts),
            )
