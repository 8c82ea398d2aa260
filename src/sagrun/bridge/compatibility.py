"""
Compatibility bridge for named agent profiles.

Translates legacy agent identifiers (``github-expert``, ``project-investigator``
...) and caller-registered custom types into complete RunConfig instances.
Built-in profiles are loaded from ``profiles.yaml`` next to this module; unknown
names resolve deterministically to the catalog's fallback profile.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from sagrun.core.types import (
    WILDCARD_TOOL,
    ExecutionConstraints,
    OutputDefinition,
    ResourceLimits,
    RunConfig,
)
from sagrun.errors import SubAgentConfigError
from sagrun.settings import RuntimeSettings, get_runtime_settings

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).with_name("profiles.yaml")

_TASK_OUTPUT_DEFINITIONS: Dict[str, OutputDefinition] = {
    "result": OutputDefinition(type="any", description="Task execution result"),
    "metadata": OutputDefinition(type="object", description="Task execution metadata"),
}


class SubAgentTypeDefinition(BaseModel):
    """Defaults a named agent type contributes to its run configurations."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
        extra="ignore",
    )

    allowed_tools: List[str] = Field(default_factory=lambda: [WILDCARD_TOOL])
    default_timeout: Optional[int] = Field(default=None, gt=0)
    default_max_turns: Optional[int] = Field(default=None, ge=1)
    resource_limits: Optional[ResourceLimits] = None
    model_settings: Dict[str, Any] = Field(default_factory=dict)
    prompt: Optional[str] = None
    output_definitions: Dict[str, OutputDefinition] = Field(default_factory=dict)
    description: str = ""

    @model_validator(mode="before")
    @classmethod
    def _flatten_legacy_shape(cls, data: Any) -> Any:
        """Lift ``constraints.resourceLimits`` and ``defaults.modelSettings``."""
        if not isinstance(data, Mapping):
            return data
        flattened = dict(data)
        constraints = flattened.pop("constraints", None)
        if isinstance(constraints, Mapping):
            limits = constraints.get("resourceLimits", constraints.get("resource_limits"))
            if limits is not None:
                flattened.setdefault("resource_limits", limits)
        defaults = flattened.pop("defaults", None)
        if isinstance(defaults, Mapping):
            settings = defaults.get("modelSettings", defaults.get("model_settings"))
            if settings is not None:
                flattened.setdefault("model_settings", settings)
        return flattened


@dataclass(frozen=True)
class RegisteredType:
    """Entry in the bridge registry."""

    name: str
    definition: SubAgentTypeDefinition
    builtin: bool = False
    registered_at: float = field(default_factory=time.time)


def _first(config: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = config.get(key)
        if value is not None:
            return value
    return None


class CompatibilityBridge:
    """Registry of named agent profiles with a deterministic fallback."""

    def __init__(
        self,
        settings: Optional[RuntimeSettings] = None,
        *,
        catalog_path: Optional[Path] = None,
    ) -> None:
        self._settings = settings or get_runtime_settings()
        self._types: Dict[str, RegisteredType] = {}
        self._lock = threading.RLock()
        self.fallback_type = self._load_catalog(catalog_path or DEFAULT_CATALOG_PATH)

    def _load_catalog(self, path: Path) -> str:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)

        if raw is None:
            raw = {}
        if not isinstance(raw, Mapping):
            raise ValueError(f"Profile catalog at {path} must be a mapping")

        profiles = raw.get("profiles", [])
        if not isinstance(profiles, list):
            raise ValueError(f"'profiles' must be a sequence in {path}")

        for entry in profiles:
            if not isinstance(entry, Mapping) or not isinstance(entry.get("name"), str):
                continue
            data = {key: value for key, value in entry.items() if key != "name"}
            self._types[entry["name"]] = RegisteredType(
                name=entry["name"],
                definition=SubAgentTypeDefinition.model_validate(data),
                builtin=True,
            )

        fallback = raw.get("fallback")
        if not isinstance(fallback, str) or fallback not in self._types:
            raise ValueError(f"Profile catalog at {path} must name a known fallback profile")
        return fallback

    def register_subagent_type(
        self,
        name: str,
        definition: SubAgentTypeDefinition | Mapping[str, Any],
    ) -> RegisteredType:
        """Add (or replace) a named type; later conversions resolve to it."""
        if not isinstance(name, str) or not name.strip():
            raise SubAgentConfigError("Sub-agent type name must be a non-empty string")
        if not isinstance(definition, SubAgentTypeDefinition):
            try:
                definition = SubAgentTypeDefinition.model_validate(dict(definition or {}))
            except ValidationError as exc:
                raise SubAgentConfigError(
                    f"Invalid definition for sub-agent type '{name}': {exc}"
                ) from exc

        entry = RegisteredType(name=name, definition=definition)
        with self._lock:
            if name in self._types:
                logger.warning("Replacing registered sub-agent type: %s", name)
            self._types[name] = entry
        logger.info("Registered custom sub-agent type: %s", name)
        return entry

    def get_registered_types(self) -> List[RegisteredType]:
        """List built-in profiles followed by caller-registered types."""
        with self._lock:
            return list(self._types.values())

    def has_type(self, name: str) -> bool:
        with self._lock:
            return name in self._types

    def resolve(self, agent_type: Optional[str]) -> RegisteredType:
        """Return the registered type for ``agent_type`` or the fallback profile."""
        with self._lock:
            entry = self._types.get(agent_type or "")
            if entry is None:
                logger.debug(
                    "Unknown agent type '%s'; using fallback '%s'", agent_type, self.fallback_type
                )
                entry = self._types[self.fallback_type]
            return entry

    def convert_agent_to_subagent(
        self,
        agent_type: str,
        agent_config: Optional[Mapping[str, Any]] = None,
    ) -> RunConfig:
        """
        Build a RunConfig from a named agent type.

        Args:
            agent_type: Agent identifier (e.g., "github-expert")
            agent_config: Optional overrides: model, temperature, max_tokens,
                timeout, max_turns, prompt, termination_conditions

        Returns:
            RunConfig populated from the profile and overrides
        """
        config = dict(agent_config or {})
        entry = self.resolve(agent_type)
        definition = entry.definition
        fallback = self.resolve(self.fallback_type).definition

        prompt = definition.prompt or fallback.prompt or f"You are a {entry.name} agent."
        instructions = config.get("prompt")
        if isinstance(instructions, str) and instructions.strip():
            prompt = f"{prompt}\n\nSpecific instructions: {instructions}"

        run_config = RunConfig(
            prompt=prompt,
            model_settings=self._model_settings(definition, config),
            tool_permissions=list(definition.allowed_tools),
            output_definitions=dict(definition.output_definitions or fallback.output_definitions),
            constraints=self._constraints(definition, config),
        )
        logger.debug("Converted %s to sub-agent configuration", entry.name)
        return run_config

    def create_subagent_from_task(self, task_params: Mapping[str, Any]) -> RunConfig:
        """Build a RunConfig from task-tool parameters.

        ``subagent_type`` selects the profile; ``prompt`` (or ``description``)
        becomes the run prompt verbatim. ``timeout``, ``max_turns``, model
        settings and ``tool_permissions`` override the profile defaults.
        """
        params = dict(task_params)
        entry = self.resolve(_first(params, "subagent_type", "subagentType"))
        prompt = _first(params, "prompt", "description")
        if not isinstance(prompt, str) or not prompt.strip():
            raise SubAgentConfigError("Task prompt or description is required")

        tools = _first(params, "tool_permissions", "toolPermissions")
        return RunConfig(
            prompt=prompt,
            model_settings=self._model_settings(entry.definition, params),
            tool_permissions=list(tools if tools is not None else entry.definition.allowed_tools),
            output_definitions=dict(_TASK_OUTPUT_DEFINITIONS),
            constraints=self._constraints(entry.definition, params),
        )

    def _model_settings(
        self, definition: SubAgentTypeDefinition, config: Mapping[str, Any]
    ) -> Dict[str, Any]:
        settings: Dict[str, Any] = {
            "model": self._settings.DEFAULT_MODEL,
            "temperature": self._settings.DEFAULT_TEMPERATURE,
            "max_tokens": self._settings.DEFAULT_MAX_TOKENS,
        }
        settings.update(definition.model_settings)
        overrides = _first(config, "model_settings", "modelSettings")
        if isinstance(overrides, Mapping):
            settings.update(overrides)
        for key, aliases in (
            ("model", ("model",)),
            ("temperature", ("temperature",)),
            ("max_tokens", ("max_tokens", "maxTokens")),
        ):
            value = _first(config, *aliases)
            if value is not None:
                settings[key] = value
        return settings

    def _constraints(
        self, definition: SubAgentTypeDefinition, config: Mapping[str, Any]
    ) -> ExecutionConstraints:
        timeout = _first(config, "timeout", "timeout_ms", "timeoutMs")
        max_turns = _first(config, "max_turns", "maxTurns")
        conditions = _first(config, "termination_conditions", "terminationConditions") or []
        return ExecutionConstraints(
            timeout_ms=timeout or definition.default_timeout or self._settings.DEFAULT_TIMEOUT_MS,
            max_turns=max_turns or definition.default_max_turns or self._settings.DEFAULT_MAX_TURNS,
            termination_conditions=list(conditions),
            resource_limits=definition.resource_limits or ResourceLimits(),
        )


__all__ = [
    "CompatibilityBridge",
    "DEFAULT_CATALOG_PATH",
    "RegisteredType",
    "SubAgentTypeDefinition",
]
