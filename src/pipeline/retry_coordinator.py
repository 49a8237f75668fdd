# src/pipeline/retry_coordinator.py — v1
"""Retry coordinator: resume a failed run from its failed steps.

Completed StepResults (and their Generations and outputs) are left
untouched; failed ones, including cascade-skipped ones, are reset to
pending and the run goes back through a fresh RunScheduler, which
rehydrates the completed outputs before dispatching.
"""

from __future__ import annotations

import logging
from typing import Callable

from stratrun.core.models import StrategyRun, StrategyStep
from stratrun.pipeline.scheduler import RunScheduler, SchedulerResult
from stratrun.storage.base_record_store import BaseRecordStore

logger = logging.getLogger(__name__)

SchedulerFactory = Callable[[str, list[StrategyStep]], RunScheduler]


class RunValidationError(ValueError):
    """A run request failed pre-flight validation; nothing was changed."""


class RetryCoordinator:
    """Validate and reset failed runs, then hand them to the scheduler.

    Args:
        store: Record store.
        scheduler_factory: Builds a fresh RunScheduler for (run_id, steps).
    """

    def __init__(self, store: BaseRecordStore, scheduler_factory: SchedulerFactory) -> None:
        self._store = store
        self._scheduler_factory = scheduler_factory

    async def prepare(self, run_id: str) -> tuple[StrategyRun, list[StrategyStep]]:
        """Reset a failed run so it can be rescheduled.

        Raises:
            RecordNotFoundError: Unknown run.
            RunValidationError: Run is not failed or has no failed steps.
                Nothing is modified in that case.
        """
        run = await self._store.get_run(run_id)
        if run.status != "failed":
            raise RunValidationError(
                f"Run {run_id} is {run.status}; only failed runs can be retried"
            )
        failed = [r for r in await self._store.list_step_results(run_id) if r.status == "failed"]
        if not failed:
            raise RunValidationError(f"Run {run_id} has no failed steps to retry")

        steps = await self._store.list_steps(run.strategy_id)

        for result in failed:
            await self._store.update_step_result(
                result.id,
                status="pending",
                error=None,
                output_url=None,
                generation_id=None,
                execution_time_ms=None,
            )
        run = await self._store.update_run(run_id, status="running", completed_at=None)
        logger.info(
            "Run %s reset for retry: steps %s pending again",
            run_id, [r.step_order for r in failed],
        )
        return run, steps

    async def resume(self, run_id: str, steps: list[StrategyStep]) -> SchedulerResult:
        """Drive a prepared run with a fresh scheduler."""
        return await self._scheduler_factory(run_id, steps).run()

    async def retry_run(self, run_id: str) -> SchedulerResult:
        """Prepare and resume in one call."""
        _, steps = await self.prepare(run_id)
        return await self.resume(run_id, steps)
