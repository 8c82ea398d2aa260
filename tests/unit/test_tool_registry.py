from __future__ import annotations

from typing import Any, Mapping

import pytest

from sagrun.agent.protocols import normalize_chat_response, parse_tool_call, resolve
from sagrun.errors import SubAgentConfigError, ToolNotFoundError
from sagrun.llm.noop import NoopAIClient
from sagrun.tools.registry import FunctionTool, ToolRegistry


def test_register_and_lookup() -> None:
    registry = ToolRegistry()
    tool = registry.register_function("upper", lambda args: args["text"].upper())

    assert registry.get_tool("upper") is tool
    assert registry.list_tools() == ["upper"]
    assert tool.execute({"text": "abc"}) == "ABC"

    registry.unregister("upper")
    with pytest.raises(ToolNotFoundError, match="Tool 'upper' not found"):
        registry.get_tool("upper")


def test_emit_variable_name_is_reserved() -> None:
    registry = ToolRegistry()

    with pytest.raises(SubAgentConfigError, match="reserved"):
        registry.register_function("emit_variable", lambda args: None)
    with pytest.raises(SubAgentConfigError):
        registry.register("emit_variable", FunctionTool("emit_variable", lambda args: None))

    assert registry.list_tools() == []


@pytest.mark.asyncio
async def test_async_tool_results_are_resolved() -> None:
    async def _double(args: Mapping[str, Any]) -> int:
        return args["value"] * 2

    registry = ToolRegistry()
    registry.register_function("double", _double)

    assert await resolve(registry.get_tool("double").execute({"value": 4})) == 8
    assert await resolve(3) == 3


def test_parse_tool_call_shapes() -> None:
    flat = parse_tool_call({"name": "echo", "arguments": {"a": 1}})
    nested = parse_tool_call(
        {"id": 7, "function": {"name": "echo", "arguments": '{"a": 2}'}}
    )

    assert (flat.name, flat.arguments, flat.call_id) == ("echo", {"a": 1}, None)
    assert (nested.name, nested.arguments, nested.call_id) == ("echo", {"a": 2}, "7")
    with pytest.raises(ValueError):
        parse_tool_call({"arguments": {}})
    with pytest.raises(ValueError):
        parse_tool_call({"name": "echo", "arguments": "[1, 2]"})


def test_normalize_chat_response_variants() -> None:
    assert normalize_chat_response(None).content == ""
    assert normalize_chat_response("plain").content == "plain"

    response = normalize_chat_response(
        {"content": "hi", "toolCalls": [{"name": "echo", "args": {"x": 1}}]}
    )
    assert response.content == "hi"
    assert response.tool_calls[0].arguments == {"x": 1}


@pytest.mark.asyncio
async def test_noop_client_never_requests_tools() -> None:
    response = await NoopAIClient().chat([{"role": "system", "content": "x"}], {})

    assert response.content == "Noop client executed"
    assert response.tool_calls == []
    assert response.raw == {"client": "noop", "messages": 1}
