"""Tool registry implementations."""

from __future__ import annotations

from sagrun.tools.registry import FunctionTool, ToolRegistry

__all__ = ["FunctionTool", "ToolRegistry"]
