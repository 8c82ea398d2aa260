"""Compatibility layer between named agent profiles and run configurations."""

from __future__ import annotations

from sagrun.bridge.compatibility import (
    CompatibilityBridge,
    RegisteredType,
    SubAgentTypeDefinition,
)

__all__ = ["CompatibilityBridge", "RegisteredType", "SubAgentTypeDefinition"]
