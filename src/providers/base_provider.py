# src/providers/base_provider.py — v1
"""Abstract image generation provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from stratrun.providers.models import ImageGenerationRequest, ImageGenerationResponse


class BaseImageProvider(ABC):
    """Unified interface for all image generation providers.

    generate() may raise any exception (network, quota, content policy);
    the step executor treats every failure as unstructured.
    """

    @abstractmethod
    async def generate(self, request: ImageGenerationRequest) -> ImageGenerationResponse:
        """Run one generation and return output image URLs."""

    async def close(self) -> None:
        """Release SDK clients; no-op by default."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier (mock, gemini)."""
