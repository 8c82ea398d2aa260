"""Global settings for sub-agent runtime defaults and resource budgets."""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class RuntimeSettings(BaseSettings):
    """Environment-driven configuration for sub-agent execution."""

    model_config = SettingsConfigDict(
        env_prefix="SAGRUN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    DEFAULT_TIMEOUT_MS: int = Field(
        default=900_000,
        description="Wall-clock timeout applied when a run does not declare one.",
    )
    DEFAULT_MAX_TURNS: int = Field(
        default=50,
        description="Turn ceiling applied when a run does not declare one.",
    )
    DEFAULT_MAX_MEMORY_MB: int = Field(
        default=100,
        description="Memory reservation requested by runs without explicit limits.",
    )
    DEFAULT_MAX_CPU_TIME_MS: int = Field(
        default=300_000,
        description="CPU-time reservation requested by runs without explicit limits.",
    )
    MAX_CONCURRENT_SCOPES: int = Field(
        default=10,
        description="Maximum number of runs holding a resource reservation at once.",
    )
    MAX_TOTAL_MEMORY_MB: int = Field(
        default=500,
        description="Aggregate memory budget shared by all active runs.",
    )
    MAX_TOTAL_CPU_TIME_MS: int = Field(
        default=1_800_000,
        description="Aggregate CPU-time budget shared by all active runs.",
    )
    DEFAULT_MODEL: str = Field(
        default="gpt-3.5-turbo",
        description="Model identifier used by named profiles when none is supplied.",
    )
    DEFAULT_TEMPERATURE: float = Field(
        default=0.7,
        description="Sampling temperature used by named profiles.",
    )
    DEFAULT_MAX_TOKENS: int = Field(
        default=2000,
        description="Maximum output tokens used by named profiles.",
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Log level applied by the CLI (DEBUG|INFO|WARNING|ERROR|CRITICAL).",
    )

    @model_validator(mode="after")
    def validate_limits(self) -> "RuntimeSettings":
        """Reject non-positive budgets and normalize LOG_LEVEL."""
        positive = {
            "DEFAULT_TIMEOUT_MS": self.DEFAULT_TIMEOUT_MS,
            "DEFAULT_MAX_TURNS": self.DEFAULT_MAX_TURNS,
            "MAX_CONCURRENT_SCOPES": self.MAX_CONCURRENT_SCOPES,
            "MAX_TOTAL_MEMORY_MB": self.MAX_TOTAL_MEMORY_MB,
            "MAX_TOTAL_CPU_TIME_MS": self.MAX_TOTAL_CPU_TIME_MS,
        }
        for name, value in positive.items():
            if value <= 0:
                raise ValueError(f"SAGRUN_{name} must be positive (got {value})")

        normalized = self.LOG_LEVEL.strip().upper()
        if normalized not in _LOG_LEVELS:
            raise ValueError(
                f"SAGRUN_LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}"
            )
        object.__setattr__(self, "LOG_LEVEL", normalized)
        return self

    @property
    def log_level_value(self) -> int:
        return logging.getLevelName(self.LOG_LEVEL)


@lru_cache
def get_runtime_settings() -> RuntimeSettings:
    """Return cached runtime settings."""
    return RuntimeSettings()


__all__ = ["RuntimeSettings", "get_runtime_settings"]
