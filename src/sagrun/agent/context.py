"""
Context helpers for execution scopes.

Template rendering and validation, variable-name rules, isolated copies of
context variables and selective merges between scopes.
"""

from __future__ import annotations

import copy
import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, MutableMapping, Optional

from sagrun.agent.spec import ExecutionScope
from sagrun.core.types import VARIABLE_NAME_PATTERN

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{\{([^}]+)\}\}")


def is_valid_variable_name(name: object) -> bool:
    return isinstance(name, str) and VARIABLE_NAME_PATTERN.match(name) is not None


def _format_value(value: Any) -> str:
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


def render_template(
    template: str, variables: Mapping[str, Any], *, scope_id: Optional[str] = None
) -> str:
    """Substitute ``{{name}}`` placeholders; unknown names are left untouched and logged."""

    def _substitute(match: "re.Match[str]") -> str:
        name = match.group(1).strip()
        if name not in variables:
            logger.warning(
                "Template variable '%s' not found in scope %s", name, scope_id or "<unbound>"
            )
            return match.group(0)
        return _format_value(variables[name])

    return _PLACEHOLDER.sub(_substitute, template)


@dataclass(frozen=True)
class TemplateValidation:
    """Placeholders of a template checked against a set of variables."""

    valid: bool
    missing_variables: List[str] = field(default_factory=list)
    invalid_variables: List[str] = field(default_factory=list)
    total_placeholders: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "missing_variables": list(self.missing_variables),
            "invalid_variables": list(self.invalid_variables),
            "total_placeholders": self.total_placeholders,
        }


def validate_template(template: str, variables: Mapping[str, Any]) -> TemplateValidation:
    """Report placeholders with malformed names and names absent from ``variables``.

    Each distinct name is reported once; ``total_placeholders`` counts every
    occurrence.
    """
    missing: List[str] = []
    invalid: List[str] = []
    total = 0
    for match in _PLACEHOLDER.finditer(template):
        total += 1
        name = match.group(1).strip()
        if not is_valid_variable_name(name):
            if name not in invalid:
                invalid.append(name)
        elif name not in variables and name not in missing:
            missing.append(name)
    return TemplateValidation(
        valid=not missing and not invalid,
        missing_variables=missing,
        invalid_variables=invalid,
        total_placeholders=total,
    )


def isolated_copy(
    variables: Optional[Mapping[str, Any]], include: Optional[Iterable[str]] = None
) -> Dict[str, Any]:
    """Deep-copy ``variables`` (or only the ``include`` names that are present)."""
    source = variables or {}
    names = list(source) if include is None else [name for name in include if name in source]
    return {name: copy.deepcopy(source[name]) for name in names}


def merge_variables(
    source: Mapping[str, Any],
    target: MutableMapping[str, Any],
    names: Optional[Iterable[str]] = None,
    *,
    overwrite: bool = False,
) -> List[str]:
    """Deep-copy selected variables from ``source`` into ``target``.

    Existing keys in ``target`` are kept unless ``overwrite`` is set. Returns
    the names that were written.
    """
    selected = list(source) if names is None else [name for name in names if name in source]
    merged: List[str] = []
    for name in selected:
        if overwrite or name not in target:
            target[name] = copy.deepcopy(source[name])
            merged.append(name)
    logger.debug("Merged %d variable(s): %s", len(merged), merged)
    return merged


def estimate_context_bytes(variables: Mapping[str, Any]) -> int:
    """Rough size of the variables: serialized length times two (UTF-16 units)."""
    try:
        return len(json.dumps(variables, default=str)) * 2
    except ValueError:
        # circular references
        return -1


def context_stats(scope: ExecutionScope) -> Dict[str, Any]:
    now = time.monotonic()
    return {
        "variable_count": len(scope.variables),
        "emitted_count": len(scope.emitted_variables),
        "emission_count": len(scope.emission_log),
        "history_length": len(scope.history),
        "rejected_tool_calls": len(scope.rejected_tool_calls),
        "age_ms": (now - scope.start_time) * 1000.0,
        "last_update_age_ms": (now - scope.last_updated) * 1000.0,
        "memory_estimate_bytes": estimate_context_bytes(scope.variables),
    }


__all__ = [
    "TemplateValidation",
    "VARIABLE_NAME_PATTERN",
    "context_stats",
    "estimate_context_bytes",
    "is_valid_variable_name",
    "isolated_copy",
    "merge_variables",
    "render_template",
    "validate_template",
]
