"""Run statistics for the sub-agent runtime."""

from __future__ import annotations

from sagrun.observability.metrics import AggregatedRunMetrics, RunMetrics

__all__ = ["AggregatedRunMetrics", "RunMetrics"]
