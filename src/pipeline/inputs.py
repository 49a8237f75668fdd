# src/pipeline/inputs.py — v1
"""Input resolution for a single step.

Builds the category -> URL map a step actually uses (preset values
filtered by the step's include toggles, overlaid with upstream outputs)
and turns it into the ordered list of labelled images sent to the
provider.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from stratrun.config.input_keys import (
    ALL_INPUT_KEYS,
    INPUT_KEY_LABELS,
    PRODUCT_CATEGORIES,
    SCENE_REFERENCE_FIELDS,
)
from stratrun.core.models import ArbitraryImage, InputPreset, StrategyStep
from stratrun.providers.models import LabeledImage


@dataclass
class PresetData:
    """Usable values extracted from one input preset."""

    keyed: dict[str, str] = field(default_factory=dict)
    arbitrary: list[ArbitraryImage] = field(default_factory=list)
    preset_id: str | None = None


def extract_preset_data(preset: InputPreset | None) -> PresetData:
    """Drop empty values from a preset; None yields an empty PresetData."""
    if preset is None:
        return PresetData()
    keyed = {k: v for k, v in preset.images.items() if k in INPUT_KEY_LABELS and v}
    arbitrary = [img for img in preset.arbitrary_images if img.url]
    return PresetData(keyed=keyed, arbitrary=arbitrary, preset_id=preset.id)


def _scene_included(step: StrategyStep, key: str) -> bool:
    if key == "dollhouse_view":
        return step.include_dollhouse
    if key == "real_photo":
        return step.include_real_photo
    if key == "mood_board":
        return step.include_mood_board
    return False


def resolve_input_images(
    step: StrategyStep,
    preset_data: PresetData,
    step_outputs: Mapping[int, str],
) -> dict[str, str]:
    """Return the category -> URL map for a step.

    Upstream overrides apply only when the referenced step has produced
    an output; otherwise the preset's own value (if any) stays in place.
    """
    inputs: dict[str, str] = {}
    for key in SCENE_REFERENCE_FIELDS.values():
        if _scene_included(step, key) and key in preset_data.keyed:
            inputs[key] = preset_data.keyed[key]
    for key in PRODUCT_CATEGORIES:
        if key in step.include_product_categories and key in preset_data.keyed:
            inputs[key] = preset_data.keyed[key]

    for field_name, scene_key in SCENE_REFERENCE_FIELDS.items():
        upstream = getattr(step, field_name)
        if upstream is None:
            continue
        url = step_outputs.get(upstream)
        if url:
            inputs[scene_key] = url
    return inputs


def build_labeled_images(
    step: StrategyStep,
    inputs: Mapping[str, str],
    step_outputs: Mapping[int, str],
    preset_data: PresetData,
) -> list[LabeledImage]:
    """Order resolved inputs for the provider call.

    Catalogue keys first (ALL_INPUT_KEYS order), then the
    arbitrary_image_from_step output, then the preset's extra images.
    """
    labeled = [
        LabeledImage(url=inputs[key], label=INPUT_KEY_LABELS[key])
        for key in ALL_INPUT_KEYS
        if inputs.get(key)
    ]

    if step.arbitrary_image_from_step is not None:
        url = step_outputs.get(step.arbitrary_image_from_step)
        if url:
            labeled.append(
                LabeledImage(url=url, label=f"Output from Step {step.arbitrary_image_from_step}")
            )

    for i, item in enumerate(preset_data.arbitrary, start=1):
        label = (item.tag or "").strip() or f"Additional image {i}"
        labeled.append(LabeledImage(url=item.url, label=label))
    return labeled
