"""Fallback AI client used when no model backend is configured."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from sagrun.agent.protocols import ChatResponse


@dataclass(slots=True)
class NoopAIClient:
    """Answers every turn immediately without requesting tools."""

    name: str = "noop"

    async def chat(
        self,
        messages: Sequence[Mapping[str, Any]],
        model_settings: Mapping[str, Any],
    ) -> ChatResponse:
        return ChatResponse(
            content="Noop client executed",
            tool_calls=[],
            raw={"client": self.name, "messages": len(messages)},
        )


__all__ = ["NoopAIClient"]
