"""Pytest configuration helpers."""

from __future__ import annotations

from typing import Any, Iterator, Mapping, Optional, Sequence

import anyio
import pytest

from sagrun.tools.registry import ToolRegistry


@pytest.fixture(autouse=True)
def reset_runtime_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Clear the cached runtime settings between tests."""
    from sagrun import settings

    for name in list(settings.RuntimeSettings.model_fields):
        monkeypatch.delenv(f"SAGRUN_{name}", raising=False)

    settings.get_runtime_settings.cache_clear()
    try:
        yield
    finally:
        settings.get_runtime_settings.cache_clear()


class ScriptedAIClient:
    """Replays queued responses, then answers without requesting tools.

    Queued exceptions are raised instead of returned.
    """

    def __init__(self, responses: Optional[Sequence[Any]] = None, *, delay: float = 0.0) -> None:
        self.responses = list(responses or [])
        self.delay = delay
        self.calls: list[dict[str, Any]] = []

    async def chat(
        self, messages: Sequence[Mapping[str, Any]], model_settings: Mapping[str, Any]
    ) -> Any:
        self.calls.append({"messages": list(messages), "model_settings": dict(model_settings)})
        if self.delay:
            await anyio.sleep(self.delay)
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, BaseException):
                raise response
            return response
        return {"content": "done", "tool_calls": []}


class LoopingAIClient:
    """Requests the ``echo`` tool on every turn so the run never completes naturally."""

    def __init__(self, *, delay: float = 0.0) -> None:
        self.delay = delay
        self.turns = 0

    async def chat(
        self, messages: Sequence[Mapping[str, Any]], model_settings: Mapping[str, Any]
    ) -> Any:
        self.turns += 1
        if self.delay:
            await anyio.sleep(self.delay)
        return {
            "content": f"turn {self.turns}",
            "tool_calls": [{"name": "echo", "arguments": {"turn": self.turns}}],
        }


@pytest.fixture
def tool_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register_function("echo", lambda args: dict(args))

    async def _search(args: Mapping[str, Any]) -> list[str]:
        return [f"hit:{args.get('query', '')}"]

    registry.register_function("search", _search)

    def _fail(args: Mapping[str, Any]) -> None:
        raise RuntimeError("tool exploded")

    registry.register_function("fail", _fail)
    return registry


def make_config(**overrides: Any) -> dict[str, Any]:
    """Minimal valid run configuration as a plain mapping."""
    constraints = {"timeout_ms": 5_000, "max_turns": 5}
    constraints.update(overrides.pop("constraints", {}))
    config: dict[str, Any] = {
        "prompt": "Investigate {{topic}}",
        "tool_permissions": ["*"],
        "constraints": constraints,
    }
    config.update(overrides)
    return config


@pytest.fixture
def run_config_factory() -> Any:
    return make_config


@pytest.fixture
def scripted_client_factory() -> type[ScriptedAIClient]:
    return ScriptedAIClient


@pytest.fixture
def looping_client_factory() -> type[LoopingAIClient]:
    return LoopingAIClient
