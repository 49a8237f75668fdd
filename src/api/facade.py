# src/api/facade.py — v1
"""Public API facade: start, retry and inspect strategy runs.

Usage:
    from stratrun.api.facade import StrategyRunService
    service = StrategyRunService.from_settings(settings)
    handle = await service.start_run(strategy_id, input_preset_id)
    detail = await service.wait(handle.run_id)

start_run / retry_run return as soon as the run and its StepResult rows
exist; the scheduler then runs as a background asyncio task. Failures
inside that task are logged and recorded on the run, never raised back
into the caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Coroutine

from stratrun.api.models import RunDetail, RunHandle, StepResultView, StrategyDefinition
from stratrun.config.settings import Settings
from stratrun.core.models import (
    InputPreset,
    PromptVersion,
    StepResult,
    Strategy,
    StrategyRun,
    StrategyStep,
    utcnow,
)
from stratrun.pipeline.dag_builder import DAGError, validate_steps
from stratrun.pipeline.retry_coordinator import RetryCoordinator, RunValidationError
from stratrun.pipeline.scheduler import RunScheduler, SchedulerResult
from stratrun.pipeline.step_executor import StepExecutor
from stratrun.providers.base_provider import BaseImageProvider
from stratrun.storage.base_record_store import BaseRecordStore, RecordNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class LoadedDefinition:
    """Records written by StrategyRunService.load_definition()."""

    strategy: Strategy
    steps: list[StrategyStep]
    prompts: dict[str, PromptVersion] = field(default_factory=dict)
    presets: dict[str, InputPreset] = field(default_factory=dict)


class StrategyRunService:
    """Entry point for running strategies against a record store.

    Args:
        store: Record store.
        provider: Image generation provider used by every step.
        settings: Scheduler limits (max_parallel_steps, step_timeout_s).
            Loaded from the environment if None.
    """

    def __init__(
        self,
        store: BaseRecordStore,
        provider: BaseImageProvider,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._provider = provider
        self._settings = settings or Settings()
        self._executor = StepExecutor(store, provider)
        self._retry = RetryCoordinator(store, self._new_scheduler)
        self._tasks: dict[str, asyncio.Task[SchedulerResult | None]] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> StrategyRunService:
        """Build store and provider from settings."""
        from stratrun.providers.provider_factory import create_image_provider
        from stratrun.storage.store_factory import create_record_store

        return cls(create_record_store(settings), create_image_provider(settings), settings)

    @property
    def store(self) -> BaseRecordStore:
        return self._store

    # ------------------------------------------------------------------
    # Definitions
    # ------------------------------------------------------------------

    async def load_definition(self, definition: StrategyDefinition) -> LoadedDefinition:
        """Persist the prompts, presets and strategy of a definition file.

        Everything is validated before the first write.

        Raises:
            RunValidationError: Unknown prompt/preset name or invalid step graph.
        """
        prompts = {
            p.name: PromptVersion(name=p.name, system_prompt=p.system_prompt, user_prompt=p.user_prompt)
            for p in definition.prompts
        }
        presets = {
            p.name: InputPreset(name=p.name, images=p.images, arbitrary_images=p.arbitrary_images)
            for p in definition.presets
        }
        strategy = Strategy(name=definition.strategy.name, description=definition.strategy.description)

        steps: list[StrategyStep] = []
        for position, step_def in enumerate(definition.strategy.steps, start=1):
            if step_def.prompt not in prompts:
                raise RunValidationError(
                    f"Step {position} uses unknown prompt {step_def.prompt!r}"
                )
            if step_def.preset is not None and step_def.preset not in presets:
                raise RunValidationError(
                    f"Step {position} uses unknown preset {step_def.preset!r}"
                )
            steps.append(
                StrategyStep(
                    strategy_id=strategy.id,
                    step_order=step_def.step_order or position,
                    name=step_def.name,
                    prompt_version_id=prompts[step_def.prompt].id,
                    input_preset_id=presets[step_def.preset].id if step_def.preset else None,
                    **(step_def.model_extra or {}),
                )
            )
        try:
            validate_steps(steps)
        except DAGError as e:
            raise RunValidationError(str(e)) from e

        for prompt in prompts.values():
            await self._store.put_prompt_version(prompt)
        for preset in presets.values():
            await self._store.put_input_preset(preset)
        await self._store.put_strategy(strategy)
        for step in steps:
            await self._store.put_step(step)

        logger.info(
            "Loaded strategy %r: %d steps, %d prompts, %d presets",
            strategy.name, len(steps), len(prompts), len(presets),
        )
        return LoadedDefinition(strategy=strategy, steps=steps, prompts=prompts, presets=presets)

    async def delete_strategy(self, strategy_id: str) -> Strategy:
        """Soft-delete a strategy; existing runs stay readable."""
        return await self._store.soft_delete_strategy(strategy_id)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def start_run(self, strategy_id: str, input_preset_id: str | None = None) -> RunHandle:
        """Create a run and execute it in the background.

        Raises:
            RecordNotFoundError: Unknown or deleted strategy.
            RunValidationError: No steps, invalid step graph, unknown preset.
        """
        preset_ids = [input_preset_id] if input_preset_id else []
        steps = await self._preflight(strategy_id, preset_ids)
        return await self._launch(strategy_id, steps, input_preset_id)

    async def start_runs(self, strategy_id: str, input_preset_ids: list[str]) -> list[RunHandle]:
        """Start one independent run per input preset."""
        if not input_preset_ids:
            raise RunValidationError("At least one input preset is required")
        steps = await self._preflight(strategy_id, input_preset_ids)
        return [await self._launch(strategy_id, steps, pid) for pid in input_preset_ids]

    async def retry_run(self, run_id: str) -> RunHandle:
        """Reset the failed steps of a failed run and execute it again.

        Raises:
            RecordNotFoundError: Unknown run.
            RunValidationError: Run not failed, no failed steps, or still executing.
        """
        task = self._tasks.get(run_id)
        if task is not None and not task.done():
            raise RunValidationError(f"Run {run_id} is still executing")

        run, steps = await self._retry.prepare(run_id)
        self._spawn(run_id, self._retry.resume(run_id, steps))
        return RunHandle(
            run_id=run.id,
            strategy_id=run.strategy_id,
            input_preset_id=run.input_preset_id,
            status=run.status,
        )

    async def get_run(self, run_id: str) -> RunDetail:
        """Return a run with per-step results joined to their steps."""
        run = await self._store.get_run(run_id)
        try:
            strategy_name: str | None = (
                await self._store.get_strategy(run.strategy_id, include_deleted=True)
            ).name
        except RecordNotFoundError:
            strategy_name = None
        steps = {s.id: s for s in await self._store.list_steps(run.strategy_id)}

        views: list[StepResultView] = []
        for result in await self._store.list_step_results(run_id):
            step = steps.get(result.step_id)
            views.append(
                StepResultView(
                    step_order=result.step_order,
                    step_id=result.step_id,
                    name=step.name if step else None,
                    model=step.model if step else None,
                    status=result.status,
                    output_url=result.output_url,
                    error=result.error,
                    execution_time_ms=result.execution_time_ms,
                    generation_id=result.generation_id,
                    upstream=step.upstream_references() if step else {},
                )
            )
        return RunDetail(
            run_id=run.id,
            strategy_id=run.strategy_id,
            strategy_name=strategy_name,
            input_preset_id=run.input_preset_id,
            status=run.status,
            created_at=run.created_at,
            completed_at=run.completed_at,
            steps=views,
        )

    async def list_runs(self, strategy_id: str) -> list[StrategyRun]:
        """Runs of a strategy, newest first."""
        return await self._store.list_runs(strategy_id)

    async def wait(self, run_id: str) -> RunDetail:
        """Wait for the background execution of a run, then return it."""
        task = self._tasks.pop(run_id, None)
        if task is not None:
            await task
        return await self.get_run(run_id)

    async def wait_all(self) -> list[RunDetail]:
        """Wait for every background execution started by this service."""
        details: list[RunDetail] = []
        while self._tasks:
            run_id = next(iter(self._tasks))
            details.append(await self.wait(run_id))
        return details

    async def close(self) -> None:
        await self.wait_all()
        await self._provider.close()
        await self._store.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _new_scheduler(self, run_id: str, steps: list[StrategyStep]) -> RunScheduler:
        return RunScheduler(
            self._store,
            self._executor,
            run_id,
            steps,
            max_parallel_steps=self._settings.max_parallel_steps,
            step_timeout_s=self._settings.step_timeout_s,
        )

    async def _preflight(self, strategy_id: str, preset_ids: list[str]) -> list[StrategyStep]:
        await self._store.get_strategy(strategy_id)
        steps = await self._store.list_steps(strategy_id)
        if not steps:
            raise RunValidationError(f"Strategy {strategy_id} has no steps")
        try:
            validate_steps(steps)
        except DAGError as e:
            raise RunValidationError(str(e)) from e
        for preset_id in preset_ids:
            try:
                await self._store.get_input_preset(preset_id)
            except RecordNotFoundError as e:
                raise RunValidationError(f"Input preset {preset_id} not found") from e
        return steps

    async def _launch(
        self, strategy_id: str, steps: list[StrategyStep], input_preset_id: str | None
    ) -> RunHandle:
        run = await self._store.create_run(
            StrategyRun(strategy_id=strategy_id, input_preset_id=input_preset_id)
        )
        await self._store.create_step_results(
            [StepResult(run_id=run.id, step_id=s.id, step_order=s.step_order) for s in steps]
        )
        self._spawn(run.id, self._new_scheduler(run.id, steps).run())
        logger.info(
            "Run %s started for strategy %s (%d steps, preset=%s)",
            run.id, strategy_id, len(steps), input_preset_id,
        )
        return RunHandle(
            run_id=run.id,
            strategy_id=strategy_id,
            input_preset_id=input_preset_id,
            status=run.status,
        )

    def _spawn(self, run_id: str, coro: Coroutine[Any, Any, SchedulerResult]) -> None:
        self._tasks[run_id] = asyncio.create_task(
            self._guarded(run_id, coro), name=f"run-{run_id[:8]}"
        )

    async def _guarded(
        self, run_id: str, coro: Coroutine[Any, Any, SchedulerResult]
    ) -> SchedulerResult | None:
        try:
            return await coro
        except Exception as exc:
            logger.exception("Run %s aborted", run_id)
            await self._fail_unsettled(run_id, f"Run aborted: {str(exc) or type(exc).__name__}")
            try:
                await self._store.update_run(run_id, status="failed", completed_at=utcnow())
            except Exception:
                logger.exception("Could not mark run %s failed", run_id)
            return None

    async def _fail_unsettled(self, run_id: str, message: str) -> None:
        """Fail pending/running step results so the run stays retryable."""
        try:
            for result in await self._store.list_step_results(run_id):
                if result.status in ("pending", "running"):
                    await self._store.update_step_result(result.id, status="failed", error=message)
        except Exception:
            logger.exception("Could not fail unsettled steps of run %s", run_id)
