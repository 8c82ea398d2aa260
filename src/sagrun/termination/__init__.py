"""Termination condition evaluation."""

from __future__ import annotations

from sagrun.termination.engine import TerminationEngine

__all__ = ["TerminationEngine"]
