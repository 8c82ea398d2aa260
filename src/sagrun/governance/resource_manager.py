"""ResourceManager admits runs against a shared concurrency/memory/CPU budget."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sagrun.core.types import ResourceLimits
from sagrun.errors import ResourceAllocationError
from sagrun.settings import RuntimeSettings, get_runtime_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GlobalResourceLimits:
    """Process-wide budget shared by all active runs."""

    max_concurrent_scopes: int = 10
    max_total_memory_mb: float = 500.0
    max_total_cpu_time_ms: float = 1_800_000.0

    @classmethod
    def from_settings(cls, settings: RuntimeSettings) -> GlobalResourceLimits:
        return cls(
            max_concurrent_scopes=settings.MAX_CONCURRENT_SCOPES,
            max_total_memory_mb=float(settings.MAX_TOTAL_MEMORY_MB),
            max_total_cpu_time_ms=float(settings.MAX_TOTAL_CPU_TIME_MS),
        )


@dataclass
class ResourceAllocation:
    """Reservation held by a single scope."""

    scope_id: str
    limits: ResourceLimits
    allocated_at: float = field(default_factory=time.time)
    memory_mb: float = 0.0
    cpu_time_ms: float = 0.0
    violations: List[Dict[str, Any]] = field(default_factory=list)

    def utilization(self) -> Dict[str, float]:
        memory_limit = self.limits.max_memory_mb
        cpu_limit = self.limits.max_cpu_time_ms
        return {
            "memory": (self.memory_mb / memory_limit * 100.0) if memory_limit else 0.0,
            "cpu": (self.cpu_time_ms / cpu_limit * 100.0) if cpu_limit else 0.0,
        }


@dataclass(frozen=True)
class AllocationResult:
    """Outcome of an admission request."""

    success: bool
    error: Optional[str] = None
    remaining_capacity: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class LimitCheck:
    """Observed usage compared against a scope's reservation."""

    valid: bool
    violations: List[Dict[str, Any]] = field(default_factory=list)


class ResourceManager:
    """In-memory admission controller with running totals for reporting.

    Reservations are checked at admission time only. Usage reported through
    ``update_usage`` is compared against the reservation and logged, but a
    violation never stops a run.
    """

    def __init__(self, limits: Optional[GlobalResourceLimits] = None) -> None:
        self.limits = limits or GlobalResourceLimits()
        self._allocations: Dict[str, ResourceAllocation] = {}
        self._lock = threading.RLock()
        self._peak_concurrent = 0
        self._cumulative_cpu_reserved_ms = 0.0
        self._total_allocations = 0
        self._rejected_allocations = 0
        self._total_released = 0

    @classmethod
    def from_settings(cls, settings: Optional[RuntimeSettings] = None) -> ResourceManager:
        """Initialize the manager from runtime settings."""
        return cls(GlobalResourceLimits.from_settings(settings or get_runtime_settings()))

    def allocate_resources(self, scope_id: str, resource_limits: ResourceLimits) -> AllocationResult:
        """Reserve a slot for ``scope_id``; fails closed when capacity is short."""
        with self._lock:
            try:
                self._ensure_capacity(scope_id, resource_limits)
            except ResourceAllocationError as exc:
                self._rejected_allocations += 1
                logger.warning("Resource allocation rejected for scope %s: %s", scope_id, exc)
                return AllocationResult(
                    success=False,
                    error=str(exc),
                    remaining_capacity=self._remaining_capacity(),
                )

            self._allocations[scope_id] = ResourceAllocation(scope_id=scope_id, limits=resource_limits)
            self._total_allocations += 1
            self._cumulative_cpu_reserved_ms += resource_limits.max_cpu_time_ms
            self._peak_concurrent = max(self._peak_concurrent, len(self._allocations))
            logger.debug("Allocated resources for scope %s", scope_id)
            return AllocationResult(success=True, remaining_capacity=self._remaining_capacity())

    def release_resources(self, scope_id: str) -> bool:
        """Release a reservation; unknown or already released scopes are a no-op."""
        with self._lock:
            allocation = self._allocations.pop(scope_id, None)
            if allocation is None:
                logger.debug("No allocation to release for scope %s", scope_id)
                return False
            self._total_released += 1

        lifetime_ms = (time.time() - allocation.allocated_at) * 1000.0
        logger.info("Released resources for scope %s after %.0fms", scope_id, lifetime_ms)
        return True

    def update_usage(
        self,
        scope_id: str,
        *,
        memory_mb: Optional[float] = None,
        cpu_time_ms: Optional[float] = None,
    ) -> None:
        """Record observed usage for an active scope."""
        with self._lock:
            allocation = self._allocations.get(scope_id)
            if allocation is None:
                return
            if memory_mb is not None:
                allocation.memory_mb = float(memory_mb)
            if cpu_time_ms is not None:
                allocation.cpu_time_ms = float(cpu_time_ms)
            violations = self._violations(allocation)
            allocation.violations = violations

        if violations:
            logger.warning("Resource limit violations for scope %s: %s", scope_id, violations)

    def check_limits(self, scope_id: str) -> LimitCheck:
        with self._lock:
            allocation = self._allocations.get(scope_id)
            if allocation is None:
                return LimitCheck(valid=False, violations=[{"type": "UNKNOWN_SCOPE"}])
            violations = self._violations(allocation)
            return LimitCheck(valid=not violations, violations=violations)

    def is_allocated(self, scope_id: str) -> bool:
        with self._lock:
            return scope_id in self._allocations

    def get_resource_stats(self, scope_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            allocation = self._allocations.get(scope_id)
            if allocation is None:
                return None
            return {
                "scope_id": allocation.scope_id,
                "lifetime_ms": (time.time() - allocation.allocated_at) * 1000.0,
                "usage": {
                    "memory_mb": allocation.memory_mb,
                    "cpu_time_ms": allocation.cpu_time_ms,
                },
                "limits": {
                    "max_memory_mb": allocation.limits.max_memory_mb,
                    "max_cpu_time_ms": allocation.limits.max_cpu_time_ms,
                },
                "utilization_percent": allocation.utilization(),
                "violations": list(allocation.violations),
            }

    def get_global_stats(self) -> Dict[str, Any]:
        with self._lock:
            reserved_memory, reserved_cpu = self._reserved_totals()
            active = len(self._allocations)
            return {
                "active_scopes": active,
                "peak_concurrent_scopes": self._peak_concurrent,
                "total_allocations": self._total_allocations,
                "total_released": self._total_released,
                "rejected_allocations": self._rejected_allocations,
                "cumulative_cpu_time_reserved_ms": self._cumulative_cpu_reserved_ms,
                "reserved": {"memory_mb": reserved_memory, "cpu_time_ms": reserved_cpu},
                "global_limits": {
                    "max_concurrent_scopes": self.limits.max_concurrent_scopes,
                    "max_total_memory_mb": self.limits.max_total_memory_mb,
                    "max_total_cpu_time_ms": self.limits.max_total_cpu_time_ms,
                },
                "utilization_percent": {
                    "scopes": active / self.limits.max_concurrent_scopes * 100.0,
                    "memory": reserved_memory / self.limits.max_total_memory_mb * 100.0,
                    "cpu": reserved_cpu / self.limits.max_total_cpu_time_ms * 100.0,
                },
                "remaining_capacity": self._remaining_capacity(),
            }

    def _ensure_capacity(self, scope_id: str, requested: ResourceLimits) -> None:
        if scope_id in self._allocations:
            raise ResourceAllocationError(f"Scope '{scope_id}' already holds an allocation")

        if len(self._allocations) >= self.limits.max_concurrent_scopes:
            raise ResourceAllocationError(
                f"Maximum concurrent scopes limit reached: {self.limits.max_concurrent_scopes}"
            )

        reserved_memory, reserved_cpu = self._reserved_totals()
        projected_memory = reserved_memory + requested.max_memory_mb
        if projected_memory > self.limits.max_total_memory_mb:
            raise ResourceAllocationError(
                "Total memory limit would be exceeded: "
                f"{projected_memory:g}MB > {self.limits.max_total_memory_mb:g}MB"
            )

        projected_cpu = reserved_cpu + requested.max_cpu_time_ms
        if projected_cpu > self.limits.max_total_cpu_time_ms:
            raise ResourceAllocationError(
                "Total CPU time limit would be exceeded: "
                f"{projected_cpu:g}ms > {self.limits.max_total_cpu_time_ms:g}ms"
            )

    def _reserved_totals(self) -> tuple[float, float]:
        memory = sum(a.limits.max_memory_mb for a in self._allocations.values())
        cpu = sum(a.limits.max_cpu_time_ms for a in self._allocations.values())
        return memory, cpu

    def _remaining_capacity(self) -> Dict[str, float]:
        reserved_memory, reserved_cpu = self._reserved_totals()
        return {
            "scopes": float(self.limits.max_concurrent_scopes - len(self._allocations)),
            "memory_mb": self.limits.max_total_memory_mb - reserved_memory,
            "cpu_time_ms": self.limits.max_total_cpu_time_ms - reserved_cpu,
        }

    @staticmethod
    def _violations(allocation: ResourceAllocation) -> List[Dict[str, Any]]:
        violations: List[Dict[str, Any]] = []
        if allocation.limits.max_memory_mb and allocation.memory_mb > allocation.limits.max_memory_mb:
            violations.append(
                {
                    "type": "MEMORY",
                    "current": allocation.memory_mb,
                    "limit": allocation.limits.max_memory_mb,
                }
            )
        if (
            allocation.limits.max_cpu_time_ms
            and allocation.cpu_time_ms > allocation.limits.max_cpu_time_ms
        ):
            violations.append(
                {
                    "type": "CPU_TIME",
                    "current": allocation.cpu_time_ms,
                    "limit": allocation.limits.max_cpu_time_ms,
                }
            )
        return violations


__all__ = [
    "AllocationResult",
    "GlobalResourceLimits",
    "LimitCheck",
    "ResourceAllocation",
    "ResourceManager",
]
