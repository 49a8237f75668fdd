# tests/unit/logging/test_unit_context.py — v1
"""Tests for logging/context.py — contextual logging variables."""

from __future__ import annotations

import asyncio

import pytest

from stratrun.logging.context import (
    clear_context,
    get_context,
    set_run_context,
    set_step_context,
)


class TestLogContext:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_initial_state(self):
        ctx = get_context()
        assert ctx.run_id is None
        assert ctx.strategy_id is None
        assert ctx.step_order is None

    def test_set_run_context(self):
        set_run_context("run1", "strat1")
        ctx = get_context()
        assert ctx.run_id == "run1"
        assert ctx.strategy_id == "strat1"

    def test_set_run_context_resets_step(self):
        set_step_context(3)
        set_run_context("run1")
        assert get_context().step_order is None

    def test_as_dict_filters_none(self):
        set_run_context("run1")
        d = get_context().as_dict()
        assert d == {"run_id": "run1"}

    def test_clear(self):
        set_run_context("run1", "strat1")
        set_step_context(2)
        clear_context()
        ctx = get_context()
        assert ctx.run_id is None
        assert ctx.step_order is None


class TestTaskIsolation:
    def teardown_method(self):
        clear_context()

    @pytest.mark.asyncio
    async def test_step_context_is_per_task(self):
        set_run_context("run1")
        seen: dict[int, int | None] = {}

        async def step(order: int) -> None:
            set_step_context(order)
            await asyncio.sleep(0)
            seen[order] = get_context().step_order

        await asyncio.gather(
            asyncio.create_task(step(1)), asyncio.create_task(step(2))
        )
        assert seen == {1: 1, 2: 2}
        assert get_context().step_order is None
        assert get_context().run_id == "run1"
