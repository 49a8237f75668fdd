# src/logging/context.py — v1
"""Contextual logging support: attach run_id, strategy_id and step_order to log records.

Each dispatched step runs in its own asyncio task, which copies the
context at creation time, so concurrent steps of one run log their own
step_order without interfering with each other.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)
_strategy_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "strategy_id", default=None
)
_step_order: contextvars.ContextVar[int | None] = contextvars.ContextVar(
    "step_order", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    run_id: str | None = None
    strategy_id: str | None = None
    step_order: int | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        run_id=_run_id.get(),
        strategy_id=_strategy_id.get(),
        step_order=_step_order.get(),
    )


def set_run_context(run_id: str, strategy_id: str | None = None) -> None:
    """Set run-level context (called once per scheduler invocation)."""
    _run_id.set(run_id)
    _strategy_id.set(strategy_id)
    _step_order.set(None)


def set_step_context(step_order: int | None) -> None:
    """Set step-level context (called inside each dispatched step task)."""
    _step_order.set(step_order)


def clear_context() -> None:
    """Reset all context variables."""
    _run_id.set(None)
    _strategy_id.set(None)
    _step_order.set(None)
