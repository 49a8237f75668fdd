# tests/conftest.py — v1
"""Shared test fixtures for all unit and integration tests.

Provides an in-memory record store, a scripted image provider that can
be paused, failed or emptied per step, and a builder for strategies and
runs. No external services; Gemini and httpx are always mocked.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any

import pytest

from stratrun.config.settings import Settings
from stratrun.core.models import (
    InputPreset,
    PromptVersion,
    StepResult,
    Strategy,
    StrategyRun,
    StrategyStep,
)
from stratrun.providers.base_provider import BaseImageProvider
from stratrun.providers.models import ImageGenerationRequest, ImageGenerationResponse
from stratrun.storage.base_record_store import BaseRecordStore
from stratrun.storage.memory_store import MemoryRecordStore


class ScriptedProvider(BaseImageProvider):
    """Image provider driven by the user prompt of each request.

    Strategies built by StrategyBuilder use ``step-<order>`` as the user
    prompt, so behaviour is configured per step order:

    - ``fail(order, exc)``: raise exc instead of generating.
    - ``hold(order)``: block until ``release(order)``.
    - ``no_output(order)``: succeed with no output image.
    """

    def __init__(self) -> None:
        self.requests: list[ImageGenerationRequest] = []
        self.started: defaultdict[int, asyncio.Event] = defaultdict(asyncio.Event)
        self._failures: dict[int, Exception] = {}
        self._gates: dict[int, asyncio.Event] = {}
        self._no_output: set[int] = set()

    @property
    def provider_name(self) -> str:
        return "scripted"

    def fail(self, order: int, exc: Exception | None = None) -> None:
        self._failures[order] = exc or RuntimeError(f"generation failed for step {order}")

    def succeed(self, order: int) -> None:
        self._failures.pop(order, None)

    def hold(self, order: int) -> None:
        self._gates[order] = asyncio.Event()

    def release(self, order: int) -> None:
        self._gates[order].set()

    def no_output(self, order: int) -> None:
        self._no_output.add(order)

    @staticmethod
    def url_for(order: int) -> str:
        return f"https://img.test/step-{order}.png"

    def requests_for(self, order: int) -> list[ImageGenerationRequest]:
        return [r for r in self.requests if r.user_prompt == f"step-{order}"]

    def started_orders(self) -> set[int]:
        return {o for o, e in self.started.items() if e.is_set()}

    async def generate(self, request: ImageGenerationRequest) -> ImageGenerationResponse:
        order = int(request.user_prompt.rsplit("-", 1)[1])
        self.requests.append(request)
        self.started[order].set()
        gate = self._gates.get(order)
        if gate is not None:
            await gate.wait()
        if order in self._failures:
            raise self._failures[order]
        urls = [] if order in self._no_output else [self.url_for(order)]
        return ImageGenerationResponse(
            output_urls=urls,
            execution_time_ms=12.4,
            model=request.model,
            provider=self.provider_name,
        )


class StrategyBuilder:
    """Create strategies (one prompt per step) and runs in a record store."""

    def __init__(self, store: BaseRecordStore) -> None:
        self.store = store

    async def strategy(self, *step_fields: dict[str, Any], name: str = "test") -> tuple[Strategy, list[StrategyStep]]:
        strategy = await self.store.put_strategy(Strategy(name=name))
        steps: list[StrategyStep] = []
        for order, fields in enumerate(step_fields, start=1):
            prompt = await self.store.put_prompt_version(
                PromptVersion(name=f"prompt-{order}", system_prompt="system", user_prompt=f"step-{order}")
            )
            step = StrategyStep(
                strategy_id=strategy.id,
                step_order=order,
                name=f"Step {order}",
                prompt_version_id=prompt.id,
                **fields,
            )
            steps.append(await self.store.put_step(step))
        return strategy, steps

    async def preset(self, **images: str) -> InputPreset:
        return await self.store.put_input_preset(InputPreset(name="preset", images=images))

    async def run(self, strategy: Strategy, steps: list[StrategyStep], input_preset_id: str | None = None) -> StrategyRun:
        run = await self.store.create_run(
            StrategyRun(strategy_id=strategy.id, input_preset_id=input_preset_id)
        )
        await self.store.create_step_results(
            [StepResult(run_id=run.id, step_id=s.id, step_order=s.step_order) for s in steps]
        )
        return run

    async def statuses(self, run_id: str) -> dict[int, str]:
        return {r.step_order: r.status for r in await self.store.list_step_results(run_id)}


# === FIXTURES ===


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def store() -> MemoryRecordStore:
    return MemoryRecordStore()


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def builder(store: MemoryRecordStore) -> StrategyBuilder:
    return StrategyBuilder(store)
