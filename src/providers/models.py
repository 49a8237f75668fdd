# src/providers/models.py — v1
"""Provider-facing types: LabeledImage, ImageGenerationRequest, ImageGenerationResponse."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

MAX_IMAGES_PER_REQUEST = 4


class LabeledImage(BaseModel):
    """Input image with a label so the model knows what it represents."""

    url: str
    label: str


class ImageGenerationRequest(BaseModel):
    """One generation call: prompts, labelled inputs and image settings."""

    system_prompt: str
    user_prompt: str
    model: str
    labeled_images: list[LabeledImage] = Field(default_factory=list)
    aspect_ratio: str | None = None
    resolution: str | None = None
    temperature: float | None = None
    count: int = 1
    use_search: bool = False
    tag_images: bool = True

    @field_validator("count")
    @classmethod
    def clamp_count(cls, v: int) -> int:
        return max(1, min(v, MAX_IMAGES_PER_REQUEST))


class ImageGenerationResponse(BaseModel):
    """Normalized response from any image provider."""

    output_urls: list[str] = Field(default_factory=list)
    execution_time_ms: float = 0.0
    model: str = ""
    provider: str = ""
    text_response: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
