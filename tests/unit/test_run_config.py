from __future__ import annotations

from typing import Any

import pytest
from pydantic import ValidationError

from sagrun.core.types import ConditionKind, RunConfig, TerminationCondition
from sagrun.errors import SubAgentConfigError


@pytest.mark.parametrize(
    "raw",
    [
        None,
        {},
        "prompt only",
        {"prompt": ""},
        {"prompt": "   ", "tool_permissions": [], "constraints": {}},
        {"prompt": "x"},
        {"prompt": "x", "toolPermissions": "not-a-list", "constraints": {}},
        {"prompt": "x", "toolPermissions": [], "constraints": None},
    ],
)
def test_from_input_rejects_invalid_configs(raw: Any) -> None:
    with pytest.raises(SubAgentConfigError):
        RunConfig.from_input(raw)


def test_from_input_error_names_the_field() -> None:
    with pytest.raises(SubAgentConfigError, match="tool_permissions|toolPermissions"):
        RunConfig.from_input({"prompt": "x", "constraints": {}})


def test_output_names_must_be_identifiers(run_config_factory: Any) -> None:
    with pytest.raises(SubAgentConfigError, match="invalid output variable names: bad name"):
        RunConfig.from_input(run_config_factory(output_definitions={"bad name": {}}))

    config = RunConfig.from_input(run_config_factory(output_definitions={"report-v2": {}}))
    assert "report-v2" in config.output_definitions


def test_from_input_accepts_camel_case_keys() -> None:
    config = RunConfig.from_input(
        {
            "prompt": "Summarize {{topic}}",
            "modelSettings": {"model": "test-model"},
            "toolPermissions": ["Read", "Grep"],
            "outputDefinitions": {"summary": {"type": "string", "description": "Summary"}},
            "constraints": {
                "timeoutMs": 1000,
                "maxTurns": 3,
                "resourceLimits": {"maxMemoryMB": 10, "maxCpuTimeMs": 500},
            },
        }
    )

    assert config.model_settings == {"model": "test-model"}
    assert config.tool_permissions == ["Read", "Grep"]
    assert config.output_definitions["summary"].type == "string"
    assert config.constraints.timeout_ms == 1000
    assert config.constraints.max_turns == 3
    assert config.constraints.resource_limits.max_memory_mb == 10
    assert config.constraints.resource_limits.max_cpu_time_ms == 500


def test_from_input_returns_existing_instance() -> None:
    config = RunConfig.from_input({"prompt": "x", "tool_permissions": [], "constraints": {}})
    assert RunConfig.from_input(config) is config


def test_permissions_and_wildcard() -> None:
    restricted = RunConfig.from_input(
        {"prompt": "x", "tool_permissions": ["Read"], "constraints": {}}
    )
    wildcard = RunConfig.from_input({"prompt": "x", "tool_permissions": ["*"], "constraints": {}})

    assert restricted.permits("Read")
    assert not restricted.permits("Bash")
    assert not restricted.allows_all_tools
    assert wildcard.allows_all_tools
    assert wildcard.permits("Bash")


def test_config_is_frozen() -> None:
    config = RunConfig.from_input({"prompt": "x", "tool_permissions": [], "constraints": {}})
    with pytest.raises(ValidationError):
        config.prompt = "changed"  # type: ignore[misc]


def test_constraints_keep_condition_objects() -> None:
    condition = TerminationCondition(
        kind=ConditionKind.CUSTOM, reason="stop", evaluator=lambda scope: True
    )
    config = RunConfig.from_input(
        {
            "prompt": "x",
            "tool_permissions": [],
            "constraints": {"termination_conditions": [condition]},
        }
    )

    stored = config.constraints.termination_conditions[0]
    assert stored.type == "CUSTOM"
    assert stored.reason == "stop"
    assert stored.evaluator(None) is True
