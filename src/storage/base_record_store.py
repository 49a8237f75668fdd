# src/storage/base_record_store.py — v1
"""Abstract record store interface.

The scheduler and facade only talk to this interface. Backends implement
four table-level primitives (_upsert, _fetch, _select, _count); the typed
per-record operations are built on top of them here so every backend
shares the same semantics (get_* raise RecordNotFoundError, update_*
validates and returns the updated record, list_* are ordered).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, TypeVar

from pydantic import BaseModel

from stratrun.core.models import (
    Generation,
    GenerationInput,
    GenerationResult,
    InputPreset,
    PromptVersion,
    StepResult,
    Strategy,
    StrategyRun,
    StrategyStep,
    utcnow,
)

ModelT = TypeVar("ModelT", bound=BaseModel)

# table name -> (record model, parent key field used for _select)
TABLES: dict[str, tuple[type[BaseModel], str | None]] = {
    "prompt_version": (PromptVersion, None),
    "input_preset": (InputPreset, None),
    "strategy": (Strategy, None),
    "strategy_step": (StrategyStep, "strategy_id"),
    "strategy_run": (StrategyRun, "strategy_id"),
    "step_result": (StepResult, "run_id"),
    "generation": (Generation, None),
    "generation_input": (GenerationInput, "generation_id"),
    "generation_result": (GenerationResult, "generation_id"),
}


class RecordNotFoundError(LookupError):
    """Raised when a record id does not resolve to a stored record."""

    def __init__(self, kind: str, record_id: str) -> None:
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} {record_id} not found")


class BaseRecordStore(ABC):
    """Transactional record store used by the execution engine."""

    # --- Backend primitives ---

    @abstractmethod
    async def _upsert(self, table: str, record: BaseModel) -> None:
        """Insert or replace a record by id."""

    @abstractmethod
    async def _fetch(self, table: str, record_id: str) -> BaseModel | None:
        """Return a record by id, or None."""

    @abstractmethod
    async def _select(self, table: str, parent_id: str | None = None) -> list[BaseModel]:
        """Return all records of a table, optionally filtered by parent key."""

    @abstractmethod
    async def _count(self, table: str) -> int:
        """Return the number of records in a table."""

    async def close(self) -> None:
        """Release backend resources."""

    # --- Generic helpers ---

    async def _get(self, table: str, record_id: str) -> Any:
        record = await self._fetch(table, record_id)
        if record is None:
            raise RecordNotFoundError(table, record_id)
        return record

    async def _update(self, table: str, record_id: str, fields: dict[str, Any]) -> Any:
        model_cls, _ = TABLES[table]
        unknown = set(fields) - set(model_cls.model_fields)
        if unknown:
            raise ValueError(f"Unknown {table} fields: {', '.join(sorted(unknown))}")
        current = await self._get(table, record_id)
        updated = model_cls.model_validate({**current.model_dump(), **fields})
        await self._upsert(table, updated)
        return updated

    # --- Prompt versions / presets ---

    async def put_prompt_version(self, prompt: PromptVersion) -> PromptVersion:
        await self._upsert("prompt_version", prompt)
        return prompt

    async def get_prompt_version(self, prompt_id: str) -> PromptVersion:
        return await self._get("prompt_version", prompt_id)

    async def put_input_preset(self, preset: InputPreset) -> InputPreset:
        await self._upsert("input_preset", preset)
        return preset

    async def get_input_preset(self, preset_id: str) -> InputPreset:
        return await self._get("input_preset", preset_id)

    # --- Strategies ---

    async def put_strategy(self, strategy: Strategy) -> Strategy:
        await self._upsert("strategy", strategy)
        return strategy

    async def get_strategy(self, strategy_id: str, include_deleted: bool = False) -> Strategy:
        strategy: Strategy = await self._get("strategy", strategy_id)
        if strategy.is_deleted and not include_deleted:
            raise RecordNotFoundError("strategy", strategy_id)
        return strategy

    async def soft_delete_strategy(self, strategy_id: str) -> Strategy:
        return await self._update("strategy", strategy_id, {"deleted_at": utcnow()})

    async def put_step(self, step: StrategyStep) -> StrategyStep:
        await self._upsert("strategy_step", step)
        return step

    async def list_steps(self, strategy_id: str) -> list[StrategyStep]:
        steps = await self._select("strategy_step", strategy_id)
        return sorted(steps, key=lambda s: s.step_order)  # type: ignore[attr-defined]

    # --- Runs ---

    async def create_run(self, run: StrategyRun) -> StrategyRun:
        await self._upsert("strategy_run", run)
        return run

    async def get_run(self, run_id: str) -> StrategyRun:
        return await self._get("strategy_run", run_id)

    async def update_run(self, run_id: str, **fields: Any) -> StrategyRun:
        return await self._update("strategy_run", run_id, fields)

    async def list_runs(self, strategy_id: str) -> list[StrategyRun]:
        runs = await self._select("strategy_run", strategy_id)
        return sorted(runs, key=lambda r: r.created_at, reverse=True)  # type: ignore[attr-defined]

    # --- Step results ---

    async def create_step_results(self, results: list[StepResult]) -> list[StepResult]:
        for result in results:
            await self._upsert("step_result", result)
        return results

    async def get_step_result(self, result_id: str) -> StepResult:
        return await self._get("step_result", result_id)

    async def update_step_result(self, result_id: str, **fields: Any) -> StepResult:
        return await self._update("step_result", result_id, fields)

    async def list_step_results(self, run_id: str) -> list[StepResult]:
        results = await self._select("step_result", run_id)
        return sorted(results, key=lambda r: r.step_order)  # type: ignore[attr-defined]

    # --- Generations ---

    async def create_generation(self, generation: Generation) -> Generation:
        await self._upsert("generation", generation)
        return generation

    async def get_generation(self, generation_id: str) -> Generation:
        return await self._get("generation", generation_id)

    async def update_generation(self, generation_id: str, **fields: Any) -> Generation:
        return await self._update("generation", generation_id, fields)

    async def create_generation_input(self, gen_input: GenerationInput) -> GenerationInput:
        await self._upsert("generation_input", gen_input)
        return gen_input

    async def get_generation_input(self, generation_id: str) -> GenerationInput | None:
        inputs = await self._select("generation_input", generation_id)
        return inputs[0] if inputs else None  # type: ignore[return-value]

    async def create_generation_result(self, result: GenerationResult) -> GenerationResult:
        await self._upsert("generation_result", result)
        return result

    async def list_generation_results(self, generation_id: str) -> list[GenerationResult]:
        return await self._select("generation_result", generation_id)  # type: ignore[return-value]

    async def count_generations(self) -> int:
        return await self._count("generation")
