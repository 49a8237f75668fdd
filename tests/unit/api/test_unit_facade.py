# tests/unit/api/test_unit_facade.py — v1
"""Tests for api/facade.py — StrategyRunService."""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from stratrun.api.facade import StrategyRunService
from stratrun.api.models import StrategyDefinition
from stratrun.core.models import StrategyStep
from stratrun.pipeline.retry_coordinator import RunValidationError
from stratrun.pipeline.scheduler import RunScheduler
from stratrun.storage.base_record_store import RecordNotFoundError


@pytest.fixture
def service(store, provider, settings) -> StrategyRunService:
    return StrategyRunService(store, provider, settings)


def _definition(**overrides) -> StrategyDefinition:
    data = {
        "prompts": [{"name": "base", "system_prompt": "sys", "user_prompt": "step-1"}],
        "presets": [{"name": "bath", "images": {"dollhouse_view": "https://p/d"}}],
        "strategy": {
            "name": "Render",
            "steps": [
                {"name": "Layout", "prompt": "base"},
                {"name": "Final", "prompt": "base", "dollhouse_view_from_step": 1, "aspect_ratio": "16:9"},
            ],
        },
    }
    data.update(overrides)
    return StrategyDefinition.model_validate(data)


class TestLoadDefinition:
    @pytest.mark.asyncio
    async def test_persists_records(self, service, store):
        loaded = await service.load_definition(_definition())

        steps = await store.list_steps(loaded.strategy.id)
        assert [s.name for s in steps] == ["Layout", "Final"]
        assert steps[1].dollhouse_view_from_step == 1
        assert steps[1].aspect_ratio == "16:9"
        assert steps[0].prompt_version_id == loaded.prompts["base"].id
        assert (await store.get_input_preset(loaded.presets["bath"].id)).name == "bath"

    @pytest.mark.asyncio
    async def test_unknown_prompt(self, service, store):
        definition = _definition(strategy={"name": "x", "steps": [{"prompt": "nope"}]})
        with pytest.raises(RunValidationError, match="unknown prompt 'nope'"):
            await service.load_definition(definition)
        assert await store.count_generations() == 0

    @pytest.mark.asyncio
    async def test_unknown_preset(self, service):
        definition = _definition(strategy={"name": "x", "steps": [{"prompt": "base", "preset": "nope"}]})
        with pytest.raises(RunValidationError, match="unknown preset"):
            await service.load_definition(definition)

    @pytest.mark.asyncio
    async def test_step_preset_bound(self, service):
        definition = _definition(strategy={"name": "x", "steps": [{"prompt": "base", "preset": "bath"}]})
        loaded = await service.load_definition(definition)
        assert loaded.steps[0].input_preset_id == loaded.presets["bath"].id

    @pytest.mark.asyncio
    async def test_duplicate_orders_rejected(self, service, store):
        definition = _definition(
            strategy={"name": "x", "steps": [{"prompt": "base", "step_order": 1}, {"prompt": "base", "step_order": 1}]}
        )
        with pytest.raises(RunValidationError, match="Duplicate"):
            await service.load_definition(definition)


class TestStartRun:
    @pytest.mark.asyncio
    async def test_start_and_wait(self, service, builder, provider):
        strategy, steps = await builder.strategy({}, {"dollhouse_view_from_step": 1})
        provider.hold(1)

        handle = await service.start_run(strategy.id)
        assert handle.status == "running"
        assert await builder.statuses(handle.run_id) in (
            {1: "pending", 2: "pending"},
            {1: "running", 2: "pending"},
        )

        provider.release(1)
        detail = await asyncio.wait_for(service.wait(handle.run_id), 2.0)
        assert detail.status == "completed"
        assert [s.status for s in detail.steps] == ["completed", "completed"]
        assert detail.steps[1].upstream == {"dollhouse_view_from_step": 1}
        assert detail.steps[0].name == "Step 1"
        assert detail.strategy_name == "test"
        assert detail.completed_at is not None

    @pytest.mark.asyncio
    async def test_unknown_strategy(self, service):
        with pytest.raises(RecordNotFoundError):
            await service.start_run("missing")

    @pytest.mark.asyncio
    async def test_deleted_strategy(self, service, builder):
        strategy, _ = await builder.strategy({})
        await service.delete_strategy(strategy.id)
        with pytest.raises(RecordNotFoundError):
            await service.start_run(strategy.id)

    @pytest.mark.asyncio
    async def test_no_steps(self, service, builder):
        strategy, _ = await builder.strategy()
        with pytest.raises(RunValidationError, match="no steps"):
            await service.start_run(strategy.id)

    @pytest.mark.asyncio
    async def test_invalid_graph(self, service, builder, store):
        strategy, _ = await builder.strategy({}, {"dollhouse_view_from_step": 1})
        await store.put_step(StrategyStep(strategy_id=strategy.id, step_order=2, prompt_version_id="p"))
        with pytest.raises(RunValidationError, match="Duplicate"):
            await service.start_run(strategy.id)
        assert await service.list_runs(strategy.id) == []

    @pytest.mark.asyncio
    async def test_unknown_preset(self, service, builder):
        strategy, _ = await builder.strategy({})
        with pytest.raises(RunValidationError, match="Input preset nope not found"):
            await service.start_run(strategy.id, "nope")
        assert await service.list_runs(strategy.id) == []

    @pytest.mark.asyncio
    async def test_start_runs_one_per_preset(self, service, builder, provider):
        a = await builder.preset(dollhouse_view="https://p/a")
        b = await builder.preset(dollhouse_view="https://p/b")
        strategy, _ = await builder.strategy({})

        handles = await service.start_runs(strategy.id, [a.id, b.id])
        details = await asyncio.wait_for(service.wait_all(), 2.0)

        assert len({h.run_id for h in handles}) == 2
        assert [h.input_preset_id for h in handles] == [a.id, b.id]
        assert all(d.status == "completed" for d in details)
        assert sorted(r.labeled_images[0].url for r in provider.requests) == ["https://p/a", "https://p/b"]
        assert len(await service.list_runs(strategy.id)) == 2

    @pytest.mark.asyncio
    async def test_start_runs_requires_presets(self, service, builder):
        strategy, _ = await builder.strategy({})
        with pytest.raises(RunValidationError):
            await service.start_runs(strategy.id, [])


class TestRetryRun:
    @pytest.mark.asyncio
    async def test_retry_after_failure(self, service, builder, provider):
        strategy, _ = await builder.strategy({}, {"dollhouse_view_from_step": 1})
        provider.fail(2)
        handle = await service.start_run(strategy.id)
        detail = await asyncio.wait_for(service.wait(handle.run_id), 2.0)
        assert detail.status == "failed"
        assert detail.failed_steps == [2]

        provider.succeed(2)
        retry = await service.retry_run(handle.run_id)
        assert retry.status == "running"
        detail = await asyncio.wait_for(service.wait(handle.run_id), 2.0)
        assert detail.status == "completed"
        assert len(provider.requests_for(1)) == 1

    @pytest.mark.asyncio
    async def test_retry_while_executing(self, service, builder, provider):
        strategy, _ = await builder.strategy({})
        provider.hold(1)
        handle = await service.start_run(strategy.id)
        with pytest.raises(RunValidationError, match="still executing"):
            await service.retry_run(handle.run_id)
        provider.release(1)
        await asyncio.wait_for(service.wait(handle.run_id), 2.0)

    @pytest.mark.asyncio
    async def test_retry_completed_run(self, service, builder):
        strategy, _ = await builder.strategy({})
        handle = await service.start_run(strategy.id)
        await asyncio.wait_for(service.wait(handle.run_id), 2.0)
        with pytest.raises(RunValidationError):
            await service.retry_run(handle.run_id)


class TestBackgroundFailures:
    @pytest.mark.asyncio
    async def test_scheduler_crash_marks_run_failed(self, service, builder, store, monkeypatch, caplog):
        strategy, _ = await builder.strategy({})

        async def broken(*args, **kwargs):
            raise OSError("disk gone")

        monkeypatch.setattr(store, "list_step_results", broken)
        with caplog.at_level(logging.ERROR, logger="stratrun"):
            handle = await service.start_run(strategy.id)
            await asyncio.wait_for(service._tasks[handle.run_id], 2.0)

        run = await store.get_run(handle.run_id)
        assert run.status == "failed"
        assert run.completed_at is not None
        assert any("aborted" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_aborted_run_stays_retryable(self, service, builder, store, provider, monkeypatch):
        strategy, _ = await builder.strategy({}, {"dollhouse_view_from_step": 1}, {})
        provider.fail(1)
        provider.hold(3)

        async def broken(self, order):
            raise OSError("store unavailable")

        with monkeypatch.context() as patched:
            patched.setattr(RunScheduler, "_cascade_failure", broken)
            handle = await service.start_run(strategy.id)
            detail = await asyncio.wait_for(service.wait(handle.run_id), 2.0)

        assert detail.status == "failed"
        assert [(s.step_order, s.status) for s in detail.steps] == [
            (1, "failed"), (2, "failed"), (3, "failed"),
        ]
        assert detail.steps[0].error == "generation failed for step 1"
        assert detail.steps[1].error == "Run aborted: store unavailable"
        assert detail.steps[2].error == "Run aborted: store unavailable"

        provider.succeed(1)
        provider.release(3)
        await service.retry_run(handle.run_id)
        detail = await asyncio.wait_for(service.wait(handle.run_id), 2.0)
        assert detail.status == "completed"
        assert detail.failed_steps == []


class TestGetRun:
    @pytest.mark.asyncio
    async def test_unknown(self, service):
        with pytest.raises(RecordNotFoundError):
            await service.get_run("missing")

    @pytest.mark.asyncio
    async def test_readable_after_strategy_deleted(self, service, builder):
        strategy, _ = await builder.strategy({})
        handle = await service.start_run(strategy.id)
        await asyncio.wait_for(service.wait(handle.run_id), 2.0)
        await service.delete_strategy(strategy.id)
        detail = await service.get_run(handle.run_id)
        assert detail.strategy_name == "test"
        assert detail.status == "completed"


class TestClose:
    @pytest.mark.asyncio
    async def test_close_waits_and_releases_provider(self, service, builder, provider, monkeypatch):
        closed = AsyncMock()
        monkeypatch.setattr(provider, "close", closed)
        strategy, _ = await builder.strategy({})
        handle = await service.start_run(strategy.id)

        await asyncio.wait_for(service.close(), 2.0)

        closed.assert_awaited_once()
        assert (await service.get_run(handle.run_id)).status == "completed"
