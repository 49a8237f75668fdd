# src/pipeline/step_executor.py — v1
"""Step executor: run exactly one strategy step.

Resolves the step's inputs, calls the image provider, and persists the
Generation audit trail plus the StepResult outcome. Failures propagate to
the caller; marking a StepResult failed (and cascading) is the
scheduler's job.
"""

from __future__ import annotations

import logging
from typing import Mapping

from stratrun.core.models import (
    Generation,
    GenerationInput,
    GenerationResult,
    StrategyStep,
)
from stratrun.pipeline.inputs import (
    PresetData,
    build_labeled_images,
    extract_preset_data,
    resolve_input_images,
)
from stratrun.providers.base_provider import BaseImageProvider
from stratrun.providers.models import ImageGenerationRequest
from stratrun.storage.base_record_store import BaseRecordStore

logger = logging.getLogger(__name__)


class StepExecutor:
    """Execute single steps against a record store and image provider.

    Args:
        store: Record store holding prompts, presets, results and generations.
        provider: Image generation provider.
    """

    def __init__(self, store: BaseRecordStore, provider: BaseImageProvider) -> None:
        self._store = store
        self._provider = provider

    async def execute_step(
        self,
        step: StrategyStep,
        step_result_id: str,
        step_outputs: Mapping[int, str],
        run_preset: PresetData | None = None,
    ) -> str | None:
        """Run one step and return its output URL (or None).

        Args:
            step: Step definition.
            step_result_id: StepResult row to update.
            step_outputs: step_order -> output URL of steps already
                completed in this run.
            run_preset: Preset selected for the run; a preset bound to
                the step itself takes precedence.

        Raises:
            RecordNotFoundError: Missing prompt version or step preset.
            Exception: Any provider failure, unchanged.
        """
        await self._store.update_step_result(step_result_id, status="running")

        prompt = await self._store.get_prompt_version(step.prompt_version_id)

        if step.input_preset_id is not None:
            preset_data = extract_preset_data(
                await self._store.get_input_preset(step.input_preset_id)
            )
        else:
            preset_data = run_preset or PresetData()

        inputs = resolve_input_images(step, preset_data, step_outputs)
        labeled_images = build_labeled_images(step, inputs, step_outputs, preset_data)

        response = await self._provider.generate(
            ImageGenerationRequest(
                system_prompt=prompt.system_prompt,
                user_prompt=prompt.user_prompt,
                model=step.model,
                labeled_images=labeled_images,
                aspect_ratio=step.aspect_ratio,
                resolution=step.output_resolution,
                temperature=step.temperature,
                count=1,
                use_search=step.use_google_search,
                tag_images=step.tag_images,
            )
        )

        output_url = response.output_urls[0] if response.output_urls else None
        execution_time_ms = round(response.execution_time_ms)

        generation = await self._store.create_generation(
            Generation(
                prompt_version_id=step.prompt_version_id,
                input_preset_id=preset_data.preset_id,
                model=step.model,
                execution_time_ms=execution_time_ms,
            )
        )
        if inputs:
            await self._store.create_generation_input(
                GenerationInput(generation_id=generation.id, images=dict(inputs))
            )
        if output_url:
            await self._store.create_generation_result(
                GenerationResult(generation_id=generation.id, url=output_url)
            )

        await self._store.update_step_result(
            step_result_id,
            status="completed",
            output_url=output_url,
            generation_id=generation.id,
            execution_time_ms=execution_time_ms,
        )

        if output_url is None:
            logger.warning("Step %d completed without an output image", step.step_order)
        logger.info(
            "Step %d completed in %dms (%d input images)",
            step.step_order, execution_time_ms, len(labeled_images),
        )
        return output_url
