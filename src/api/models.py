# src/api/models.py — v1
"""API-level models: RunHandle, RunDetail and the JSON strategy definition.

A definition file bundles prompt versions, input presets and one
strategy; steps reference prompts and presets by name:

    {
      "prompts": [{"name": "base", "system_prompt": "...", "user_prompt": "..."}],
      "presets": [{"name": "bath-1", "images": {"dollhouse_view": "https://..."}}],
      "strategy": {
        "name": "Bathroom render",
        "steps": [
          {"name": "Layout", "prompt": "base"},
          {"name": "Final", "prompt": "base", "dollhouse_view_from_step": 1}
        ]
      }
    }
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from stratrun.core.models import ArbitraryImage, RunStatus, StepStatus


class RunHandle(BaseModel):
    """Returned when a run is accepted; execution continues in the background."""

    run_id: str
    strategy_id: str
    input_preset_id: str | None = None
    status: RunStatus = "running"


class StepResultView(BaseModel):
    """StepResult joined with the step it belongs to."""

    step_order: int
    step_id: str
    name: str | None = None
    model: str | None = None
    status: StepStatus
    output_url: str | None = None
    error: str | None = None
    execution_time_ms: int | None = None
    generation_id: str | None = None
    upstream: dict[str, int] = Field(default_factory=dict)


class RunDetail(BaseModel):
    """A run with its per-step results, sorted by step order."""

    run_id: str
    strategy_id: str
    strategy_name: str | None = None
    input_preset_id: str | None = None
    status: RunStatus
    created_at: datetime
    completed_at: datetime | None = None
    steps: list[StepResultView] = Field(default_factory=list)

    @property
    def failed_steps(self) -> list[int]:
        return [s.step_order for s in self.steps if s.status == "failed"]


# === DEFINITION FILE ===


class PromptDefinition(BaseModel):
    name: str
    system_prompt: str = ""
    user_prompt: str


class PresetDefinition(BaseModel):
    name: str
    images: dict[str, str | None] = Field(default_factory=dict)
    arbitrary_images: list[ArbitraryImage] = Field(default_factory=list)


class StepDefinition(BaseModel):
    """One step; any StrategyStep setting may be given alongside name/prompt.

    step_order defaults to the step's position in the list (1-based).
    """

    model_config = ConfigDict(extra="allow")

    name: str | None = None
    prompt: str
    preset: str | None = None
    step_order: int | None = None


class StrategyBody(BaseModel):
    name: str
    description: str | None = None
    steps: list[StepDefinition] = Field(min_length=1)


class StrategyDefinition(BaseModel):
    """Contents of a definition JSON file."""

    prompts: list[PromptDefinition] = Field(default_factory=list)
    presets: list[PresetDefinition] = Field(default_factory=list)
    strategy: StrategyBody

    @classmethod
    def from_file(cls, path: str | Path) -> StrategyDefinition:
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))
