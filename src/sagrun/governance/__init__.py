"""Governance utilities for sub-agent runs."""

from sagrun.governance.resource_manager import (
    AllocationResult,
    GlobalResourceLimits,
    LimitCheck,
    ResourceAllocation,
    ResourceManager,
)

__all__ = [
    "AllocationResult",
    "GlobalResourceLimits",
    "LimitCheck",
    "ResourceAllocation",
    "ResourceManager",
]
