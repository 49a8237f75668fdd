# src/pipeline/scheduler.py — v1
"""Run scheduler: dependency-aware concurrent execution of one strategy run.

One RunScheduler instance drives exactly one invocation over a run
(a fresh start or a retry). A single coordinating task dispatches every
step whose upstream steps have completed, waits for the first in-flight
step to settle, records the outcome and cascades failures to all
transitive dependents, then dispatches again until every step is
completed or failed.

State (completed / failed / running / step_outputs) lives on the
instance, so concurrent runs never share anything but the record store.
Outputs of steps already completed in the store are rehydrated before
the loop starts, which is what makes retries resume correctly.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Coroutine

from stratrun.core.models import RunStatus, StepResult, StrategyStep, utcnow
from stratrun.logging.context import set_run_context, set_step_context
from stratrun.pipeline.dag_builder import build_dependency_map, transitive_dependents
from stratrun.pipeline.inputs import PresetData, extract_preset_data
from stratrun.pipeline.step_executor import StepExecutor
from stratrun.storage.base_record_store import BaseRecordStore, RecordNotFoundError

logger = logging.getLogger(__name__)


class StepTimeoutError(Exception):
    """A step exceeded the scheduler's step_timeout_s."""


@dataclass
class StepOutcome:
    """Normalized result of one dispatched step; the wrapper never raises."""

    step_order: int
    ok: bool
    error: str | None = None


@dataclass
class SchedulerResult:
    """Summary of one scheduler invocation."""

    run_id: str
    status: RunStatus
    completed: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    dispatched: list[int] = field(default_factory=list)
    duration_ms: int = 0


class RunScheduler:
    """Execute the steps of one run in dependency order.

    Args:
        store: Record store holding the run and its step results.
        executor: Step executor used for every dispatched step.
        run_id: Run to drive.
        steps: Full step list of the run's strategy.
        max_parallel_steps: Cap on simultaneously running steps
            (None = every ready step starts immediately).
        step_timeout_s: Per-step timeout; a timed-out step fails and
            cascades like any other failure (None = no timeout).
    """

    def __init__(
        self,
        store: BaseRecordStore,
        executor: StepExecutor,
        run_id: str,
        steps: list[StrategyStep],
        max_parallel_steps: int | None = None,
        step_timeout_s: float | None = None,
    ) -> None:
        self._store = store
        self._executor = executor
        self._run_id = run_id
        self._steps = sorted(steps, key=lambda s: s.step_order)
        self._max_parallel = max_parallel_steps
        self._timeout_s = step_timeout_s

        self._deps = build_dependency_map(self._steps)
        self._step_by_order = {s.step_order: s for s in self._steps}
        self._results: dict[int, StepResult] = {}
        self._result_ids: dict[int, str] = {}

        self.completed: set[int] = set()
        self.failed: set[int] = set()
        self.running: dict[int, asyncio.Task[StepOutcome]] = {}
        self.step_outputs: dict[int, str] = {}

        self._skipped: list[int] = []
        self._dispatched: list[int] = []
        self._run_preset = PresetData()
        self._preset_error: Exception | None = None
        self._started = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self) -> SchedulerResult:
        """Drive the run to a terminal status and return a summary."""
        if self._started:
            raise RuntimeError("RunScheduler instances are single-use")
        self._started = True

        start_ns = time.monotonic_ns()
        run = await self._store.get_run(self._run_id)
        set_run_context(run.id, run.strategy_id)

        await self._load_step_results()
        await self._load_run_preset(run.input_preset_id)
        await self._rehydrate()

        logger.info(
            "Run started: %d steps, %d already completed",
            len(self._steps), len(self.completed),
        )

        try:
            await self._loop()
        except BaseException:
            await self._abort()
            raise

        status: RunStatus = "failed" if self.failed else "completed"
        await self._store.update_run(self._run_id, status=status, completed_at=utcnow())

        result = SchedulerResult(
            run_id=self._run_id,
            status=status,
            completed=sorted(self.completed),
            failed=sorted(self.failed),
            skipped=sorted(self._skipped),
            dispatched=list(self._dispatched),
            duration_ms=(time.monotonic_ns() - start_ns) // 1_000_000,
        )
        logger.info(
            "Run finished %s: %d completed, %d failed (%d skipped), %dms",
            status, len(result.completed), len(result.failed),
            len(result.skipped), result.duration_ms,
        )
        return result

    async def _loop(self) -> None:
        total = len(self._steps)
        while len(self.completed) + len(self.failed) < total:
            self._dispatch_ready()

            if not self.running:
                await self._fail_stranded()
                return

            done, _ = await asyncio.wait(
                self.running.values(), return_when=asyncio.FIRST_COMPLETED
            )
            for task in sorted(done, key=lambda t: t.result().step_order):
                outcome = task.result()
                del self.running[outcome.step_order]
                if outcome.ok:
                    self.completed.add(outcome.step_order)
                else:
                    self.failed.add(outcome.step_order)
                    await self._cascade_failure(outcome.step_order)

    def is_ready(self, step_order: int) -> bool:
        """True iff every dependency of step_order has completed."""
        return all(dep in self.completed for dep in self._deps[step_order])

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    async def _load_step_results(self) -> None:
        """Index StepResult ids by step order, creating any missing rows."""
        existing: dict[str, StepResult] = {
            r.step_id: r for r in await self._store.list_step_results(self._run_id)
        }
        missing = [
            StepResult(run_id=self._run_id, step_id=s.id, step_order=s.step_order)
            for s in self._steps
            if s.id not in existing
        ]
        if missing:
            logger.warning("Creating %d missing step results", len(missing))
            for r in await self._store.create_step_results(missing):
                existing[r.step_id] = r
        self._results = {s.step_order: existing[s.id] for s in self._steps}
        self._result_ids = {order: r.id for order, r in self._results.items()}

    async def _load_run_preset(self, preset_id: str | None) -> None:
        if preset_id is None:
            return
        try:
            self._run_preset = extract_preset_data(
                await self._store.get_input_preset(preset_id)
            )
        except RecordNotFoundError as e:
            # Surfaces as a failure of each step that relies on the run preset
            self._preset_error = e

    async def _rehydrate(self) -> None:
        """Seed state from results persisted by an earlier invocation."""
        previously_failed: list[int] = []
        for order, result in self._results.items():
            if result.status == "completed":
                self.completed.add(order)
                if result.output_url:
                    self.step_outputs[order] = result.output_url
            elif result.status == "failed":
                self.failed.add(order)
                previously_failed.append(order)
        for order in previously_failed:
            await self._cascade_failure(order)

    # ------------------------------------------------------------------
    # Dispatch / completion
    # ------------------------------------------------------------------

    def _dispatch_ready(self) -> list[int]:
        dispatched: list[int] = []
        for step in self._steps:
            order = step.step_order
            if self._max_parallel is not None and len(self.running) >= self._max_parallel:
                break
            if (
                order in self.completed
                or order in self.failed
                or order in self.running
                or not self.is_ready(order)
            ):
                continue
            logger.debug("Dispatching step %d", order)
            self.running[order] = asyncio.create_task(
                self._execute(step), name=f"run-{self._run_id[:8]}-step-{order}"
            )
            dispatched.append(order)
        self._dispatched.extend(dispatched)
        return dispatched

    async def _execute(self, step: StrategyStep) -> StepOutcome:
        """Run one step and normalize every outcome into a StepOutcome."""
        order = step.step_order
        result_id = self._result_ids[order]
        set_step_context(order)
        try:
            if self._preset_error is not None and step.input_preset_id is None:
                raise self._preset_error
            output_url = await self._with_timeout(
                self._executor.execute_step(step, result_id, self.step_outputs, self._run_preset)
            )
        except Exception as exc:
            message = str(exc) or type(exc).__name__
        else:
            # Written before the scheduler observes completion
            if output_url:
                self.step_outputs[order] = output_url
            return StepOutcome(step_order=order, ok=True)

        logger.warning("Step %d failed: %s", order, message)
        try:
            await self._store.update_step_result(result_id, status="failed", error=message)
        except Exception:
            logger.exception("Could not record failure of step %d", order)
        return StepOutcome(step_order=order, ok=False, error=message)

    async def _with_timeout(self, coro: Coroutine[Any, Any, str | None]) -> str | None:
        """Await coro, failing with StepTimeoutError once step_timeout_s elapses.

        TimeoutErrors raised by the step itself propagate unchanged.
        """
        if self._timeout_s is None:
            return await coro
        task = asyncio.ensure_future(coro)
        try:
            done, _ = await asyncio.wait({task}, timeout=self._timeout_s)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task in done:
            return task.result()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise StepTimeoutError(f"Step timed out after {self._timeout_s:g}s")

    async def _abort(self) -> None:
        """Cancel and collect step tasks still in flight."""
        tasks = list(self.running.values())
        self.running.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            logger.warning("Cancelling %d in-flight steps", len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _cascade_failure(self, failed_order: int) -> None:
        """Mark every not-yet-settled transitive dependent as failed."""
        for order in sorted(transitive_dependents(failed_order, self._deps)):
            if order in self.completed or order in self.failed:
                continue
            failed_deps = sorted(d for d in self._deps[order] if d in self.failed)
            cause = failed_deps[0] if failed_deps else failed_order
            self.failed.add(order)
            self._skipped.append(order)
            logger.info("Skipping step %d: dependency step %d failed", order, cause)
            await self._mark_failed(order, f"Skipped: dependency step {cause} failed")

    async def _fail_stranded(self) -> None:
        """No progress possible: fail whatever is still unsettled."""
        stranded = [
            o for o in self._step_by_order
            if o not in self.completed and o not in self.failed
        ]
        if not stranded:
            return
        logger.error("No runnable steps left; failing stranded steps %s", stranded)
        for order in stranded:
            self.failed.add(order)
            await self._mark_failed(order, "Skipped: dependencies could not be satisfied")

    async def _mark_failed(self, order: int, message: str) -> None:
        try:
            await self._store.update_step_result(
                self._result_ids[order], status="failed", error=message
            )
        except Exception:
            logger.exception("Could not record failure of step %d", order)
