# src/core/models.py — v1
"""Shared Pydantic domain models used across modules.

Strategy definitions (Strategy, StrategyStep, PromptVersion, InputPreset),
run state (StrategyRun, StepResult) and the generation audit trail
(Generation, GenerationInput, GenerationResult). No module redefines
these types; all imports come from core.models.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from stratrun.config.input_keys import ALL_INPUT_KEYS, PRODUCT_CATEGORIES, UPSTREAM_REFERENCE_FIELDS

RunStatus = Literal["running", "completed", "failed"]
StepStatus = Literal["pending", "running", "completed", "failed"]


def new_id() -> str:
    """Return a new random UUID string (record primary key)."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# === DEFINITIONS ===


class PromptVersion(BaseModel):
    """A versioned prompt template (system + user prompt)."""

    id: str = Field(default_factory=new_id)
    name: str = ""
    system_prompt: str
    user_prompt: str
    created_at: datetime = Field(default_factory=utcnow)


class ArbitraryImage(BaseModel):
    """Extra reference image on a preset, outside the category catalogue."""

    url: str
    tag: str | None = None


class InputPreset(BaseModel):
    """Named bundle of category -> image URL mappings."""

    id: str = Field(default_factory=new_id)
    name: str = ""
    images: dict[str, str | None] = Field(default_factory=dict)
    arbitrary_images: list[ArbitraryImage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("images")
    @classmethod
    def validate_image_keys(cls, v: dict[str, str | None]) -> dict[str, str | None]:
        unknown = sorted(set(v) - set(ALL_INPUT_KEYS))
        if unknown:
            raise ValueError(f"Unknown input categories: {', '.join(unknown)}")
        return v


class Strategy(BaseModel):
    """A named, ordered workflow of generation steps. Soft-deletable."""

    id: str = Field(default_factory=new_id)
    name: str
    description: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    deleted_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class StrategyStep(BaseModel):
    """One stage of a strategy, bound to a prompt version and model settings.

    Upstream references name an earlier step (1-based order) whose output
    image replaces a scene field (or, for arbitrary_image_from_step, is
    appended as an extra image).
    """

    id: str = Field(default_factory=new_id)
    strategy_id: str
    step_order: int = Field(ge=1)
    name: str | None = None
    prompt_version_id: str

    # Model settings
    model: str = "gemini-2.5-flash-image"
    aspect_ratio: str = "1:1"
    output_resolution: str = "1K"
    temperature: float = 1.0
    use_google_search: bool = False
    tag_images: bool = True

    # Upstream references
    dollhouse_view_from_step: int | None = None
    real_photo_from_step: int | None = None
    mood_board_from_step: int | None = None
    arbitrary_image_from_step: int | None = None

    # What to take from the input preset
    include_dollhouse: bool = True
    include_real_photo: bool = True
    include_mood_board: bool = True
    include_product_categories: list[str] = Field(default_factory=list)
    input_preset_id: str | None = None

    @field_validator("include_product_categories")
    @classmethod
    def validate_product_categories(cls, v: list[str]) -> list[str]:
        unknown = sorted(set(v) - set(PRODUCT_CATEGORIES))
        if unknown:
            raise ValueError(f"Unknown product categories: {', '.join(unknown)}")
        return v

    @model_validator(mode="after")
    def validate_upstream_references(self) -> StrategyStep:
        """Upstream references must point at an earlier step."""
        for field_name in UPSTREAM_REFERENCE_FIELDS:
            ref = getattr(self, field_name)
            if ref is None:
                continue
            if ref < 1 or ref >= self.step_order:
                raise ValueError(
                    f"{field_name}={ref} must reference an earlier step "
                    f"(1..{self.step_order - 1})"
                )
        return self

    def upstream_references(self) -> dict[str, int]:
        """Return non-null upstream reference fields."""
        refs: dict[str, int] = {}
        for field_name in UPSTREAM_REFERENCE_FIELDS:
            ref = getattr(self, field_name)
            if ref is not None:
                refs[field_name] = ref
        return refs


# === RUN STATE ===


class StrategyRun(BaseModel):
    """One execution of a strategy."""

    id: str = Field(default_factory=new_id)
    strategy_id: str
    input_preset_id: str | None = None
    status: RunStatus = "running"
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None


class StepResult(BaseModel):
    """Per-step execution record within a run."""

    id: str = Field(default_factory=new_id)
    run_id: str
    step_id: str
    step_order: int
    status: StepStatus = "pending"
    output_url: str | None = None
    error: str | None = None
    execution_time_ms: int | None = None
    generation_id: str | None = None


# === GENERATION AUDIT TRAIL ===


class Generation(BaseModel):
    """Durable record of one image-generation call."""

    id: str = Field(default_factory=new_id)
    prompt_version_id: str
    input_preset_id: str | None = None
    model: str | None = None
    execution_time_ms: int | None = None
    created_at: datetime = Field(default_factory=utcnow)


class GenerationInput(BaseModel):
    """Snapshot of the inputs actually resolved for a generation."""

    id: str = Field(default_factory=new_id)
    generation_id: str
    images: dict[str, str] = Field(default_factory=dict)


class GenerationResult(BaseModel):
    """One output image of a generation."""

    id: str = Field(default_factory=new_id)
    generation_id: str
    url: str
