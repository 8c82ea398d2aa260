"""Protocols for the external collaborators consumed by the executor."""

from __future__ import annotations

import inspect
import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Mapping, Optional, Protocol, Sequence, TypeVar, Union

from sagrun.agent.spec import ToolCall

T = TypeVar("T")


class ToolHandle(Protocol):
    """Executable tool returned by a tool registry."""

    def execute(self, args: Mapping[str, Any]) -> Any:
        ...


class ToolRegistryProtocol(Protocol):
    """Lookup of tools by name; raises ToolNotFoundError for unknown names.

    ``emit_variable`` is answered by the executor and never looked up here.
    """

    def get_tool(self, name: str) -> ToolHandle:
        ...


class AIClientProtocol(Protocol):
    """Chat-completion client used to drive each turn."""

    def chat(
        self,
        messages: Sequence[Mapping[str, Any]],
        model_settings: Mapping[str, Any],
    ) -> Any:
        ...


@dataclass(slots=True)
class ChatResponse:
    """Normalized model reply."""

    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    raw: Any = None


async def resolve(value: Union[T, Awaitable[T]]) -> T:
    """Await ``value`` when it is awaitable; sync collaborators return plain values."""
    if inspect.isawaitable(value):
        return await value
    return value


def _parse_arguments(raw: Any) -> dict[str, Any]:
    if raw is None or raw == "":
        return {}
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, str):
        decoded = json.loads(raw)
        if not isinstance(decoded, Mapping):
            raise ValueError("Tool call arguments must decode to an object")
        return dict(decoded)
    raise ValueError(f"Unsupported tool call arguments type: {type(raw).__name__}")


def parse_tool_call(raw: Any) -> ToolCall:
    """Convert ``{name, arguments}`` or ``{function: {name, arguments}}`` to a ToolCall."""
    if isinstance(raw, ToolCall):
        return raw
    if not isinstance(raw, Mapping):
        raise ValueError(f"Tool call must be a mapping, got {type(raw).__name__}")

    function = raw.get("function")
    source: Mapping[str, Any] = function if isinstance(function, Mapping) else raw
    name = source.get("name")
    if not isinstance(name, str) or not name:
        raise ValueError("Tool call is missing a tool name")

    call_id = raw.get("id")
    return ToolCall(
        name=name,
        arguments=_parse_arguments(source.get("arguments", source.get("args"))),
        call_id=str(call_id) if call_id is not None else None,
    )


def normalize_chat_response(raw: Any) -> ChatResponse:
    """Accept a ChatResponse, a mapping, or a bare string from the AI client."""
    if isinstance(raw, ChatResponse):
        return raw
    if raw is None:
        return ChatResponse()
    if isinstance(raw, str):
        return ChatResponse(content=raw, raw=raw)
    if not isinstance(raw, Mapping):
        raise ValueError(f"Unsupported AI client response type: {type(raw).__name__}")

    content = raw.get("content")
    calls_raw: Optional[Any] = raw.get("tool_calls", raw.get("toolCalls"))
    tool_calls: list[ToolCall] = []
    if calls_raw:
        tool_calls = [parse_tool_call(item) for item in calls_raw]
    return ChatResponse(
        content=content if isinstance(content, str) else ("" if content is None else str(content)),
        tool_calls=tool_calls,
        raw=raw.get("raw", raw),
    )


__all__ = [
    "AIClientProtocol",
    "ChatResponse",
    "ToolHandle",
    "ToolRegistryProtocol",
    "normalize_chat_response",
    "parse_tool_call",
    "resolve",
]
