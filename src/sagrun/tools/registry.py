"""In-memory tool registry satisfying the executor's ToolRegistry protocol."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, Mapping, MutableMapping

from sagrun.agent.protocols import ToolHandle
from sagrun.core.types import EMIT_VARIABLE_TOOL
from sagrun.errors import SubAgentConfigError, ToolNotFoundError


@dataclass(frozen=True)
class FunctionTool:
    """Adapts a plain or async callable taking an argument mapping into a ToolHandle."""

    name: str
    func: Callable[[Mapping[str, Any]], Any]
    description: str = ""

    def execute(self, args: Mapping[str, Any]) -> Any:
        return self.func(args)


class ToolRegistry:
    """Thread-safe registry of tools discoverable by name."""

    def __init__(self) -> None:
        self._tools: MutableMapping[str, ToolHandle] = {}
        self._lock = threading.RLock()

    def register(self, name: str, tool: ToolHandle) -> None:
        if name == EMIT_VARIABLE_TOOL:
            raise SubAgentConfigError(
                f"Tool name '{name}' is reserved for emitting declared outputs"
            )
        with self._lock:
            self._tools[name] = tool

    def register_function(
        self,
        name: str,
        func: Callable[[Mapping[str, Any]], Any],
        *,
        description: str = "",
    ) -> FunctionTool:
        tool = FunctionTool(name=name, func=func, description=description)
        self.register(name, tool)
        return tool

    def get_tool(self, name: str) -> ToolHandle:
        with self._lock:
            tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    def list_tools(self) -> list[str]:
        with self._lock:
            return sorted(self._tools.keys())

    def unregister(self, name: str) -> None:
        with self._lock:
            self._tools.pop(name, None)


__all__ = ["FunctionTool", "ToolRegistry"]
