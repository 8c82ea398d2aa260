from __future__ import annotations

import json
import logging
from typing import Any, Optional

import anyio
import typer

from sagrun.architecture import SubAgentArchitecture
from sagrun.errors import SubAgentConfigError
from sagrun.settings import get_runtime_settings

app = typer.Typer(no_args_is_help=True, help="Run bounded, isolated sub-agent tasks")


@app.callback()
def main() -> None:
    """Configure logging from SAGRUN_LOG_LEVEL."""
    settings = get_runtime_settings()
    logging.basicConfig(
        level=settings.log_level_value,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _parse_context(pairs: list[str]) -> dict[str, str]:
    context: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            typer.echo(f"Error: context entries must be KEY=VALUE (got '{pair}')", err=True)
            raise typer.Exit(2)
        context[key.strip()] = value
    return context


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


@app.command("types")
def list_types(
    as_json: bool = typer.Option(False, "--json", help="Print definitions as JSON"),
) -> None:
    """List built-in and registered sub-agent types."""

    architecture = SubAgentArchitecture()
    entries = architecture.get_registered_types()

    if as_json:
        _echo_json(
            [
                {
                    "name": entry.name,
                    "builtin": entry.builtin,
                    "definition": entry.definition.model_dump(mode="json", by_alias=True),
                }
                for entry in entries
            ]
        )
        return

    fallback = architecture.compatibility_bridge.fallback_type
    for entry in entries:
        marker = " (fallback)" if entry.name == fallback else ""
        tools = ", ".join(entry.definition.allowed_tools)
        typer.echo(f"{entry.name:<24} tools={tools}{marker}")


@app.command("run")
def run(
    agent_type: str = typer.Argument(..., help="Sub-agent type (unknown names use the fallback)"),
    prompt: str = typer.Argument(..., help="Task description for the sub-agent"),
    timeout_ms: Optional[int] = typer.Option(None, "--timeout-ms", help="Wall-clock timeout"),
    max_turns: Optional[int] = typer.Option(None, "--max-turns", help="Turn ceiling"),
    context: list[str] = typer.Option(
        [], "--context", "-c", help="Context variable as KEY=VALUE (repeatable)"
    ),
    with_stats: bool = typer.Option(
        False, "--stats", help="Include runtime statistics gathered during this run"
    ),
) -> None:
    """Run a sub-agent with the noop AI client and print the result as JSON."""

    variables = _parse_context(context)
    variables.setdefault("task_description", prompt)
    architecture = SubAgentArchitecture()

    try:
        config = architecture.create_subagent_from_existing_agent(
            agent_type, {"timeout": timeout_ms, "max_turns": max_turns}
        )
    except SubAgentConfigError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1)

    result = anyio.run(architecture.execute_subagent, config, variables)
    payload = result.as_dict()
    if with_stats:
        payload["statistics"] = architecture.get_execution_statistics()
    _echo_json(payload)
    if not result.ok:
        raise typer.Exit(1)


@app.command("budget")
def budget() -> None:
    """Print the resource budget and run defaults resolved from SAGRUN_* settings.

    Statistics live only as long as the process that runs sub-agents; use
    ``run --stats`` to see them for a run.
    """

    architecture = SubAgentArchitecture()
    limits = architecture.resource_manager.limits
    settings = architecture.settings
    _echo_json(
        {
            "globalLimits": {
                "maxConcurrentScopes": limits.max_concurrent_scopes,
                "maxTotalMemoryMB": limits.max_total_memory_mb,
                "maxTotalCpuTimeMs": limits.max_total_cpu_time_ms,
            },
            "runDefaults": {
                "timeoutMs": settings.DEFAULT_TIMEOUT_MS,
                "maxTurns": settings.DEFAULT_MAX_TURNS,
                "maxMemoryMB": settings.DEFAULT_MAX_MEMORY_MB,
                "maxCpuTimeMs": settings.DEFAULT_MAX_CPU_TIME_MS,
            },
            "registeredTypes": len(architecture.get_registered_types()),
        }
    )


if __name__ == "__main__":
    app()
