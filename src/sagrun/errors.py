"""Exception taxonomy for the sub-agent runtime."""

from __future__ import annotations


class SubAgentError(Exception):
    """Base class for sub-agent runtime errors."""


class SubAgentConfigError(SubAgentError, ValueError):
    """Raised when a run configuration or condition definition is invalid."""


class ResourceAllocationError(SubAgentError, RuntimeError):
    """Raised when the resource budget cannot accommodate a run."""


class ToolNotFoundError(SubAgentError, LookupError):
    """Raised by tool registries when a tool name is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Tool '{name}' not found")
        self.name = name


class ToolPermissionError(SubAgentError, PermissionError):
    """Describes a tool call rejected by the run's tool permissions."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Tool '{name}' not permitted for this sub-agent")
        self.name = name


__all__ = [
    "ResourceAllocationError",
    "SubAgentConfigError",
    "SubAgentError",
    "ToolNotFoundError",
    "ToolPermissionError",
]
