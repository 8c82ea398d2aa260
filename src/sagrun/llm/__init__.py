"""AI client implementations bundled with the runtime."""

from __future__ import annotations

from sagrun.llm.noop import NoopAIClient

__all__ = ["NoopAIClient"]
