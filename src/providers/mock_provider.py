# src/providers/mock_provider.py — v1
"""Mock image provider for local runs, demos and tests.

Simulates provider latency and returns synthetic ``mock://`` output URLs
without calling any external service.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import Any

from stratrun.providers.base_provider import BaseImageProvider
from stratrun.providers.models import ImageGenerationRequest, ImageGenerationResponse


class MockImageProvider(BaseImageProvider):
    """Deterministic stand-in for a real image provider.

    Args:
        delay_s: Simulated latency per call.
        emit_outputs: When False, responses carry no output URLs
            (mirrors a provider that returned text only).
    """

    def __init__(self, delay_s: float = 0.0, emit_outputs: bool = True, **kwargs: Any) -> None:
        self._delay_s = delay_s
        self._emit_outputs = emit_outputs
        self.requests: list[ImageGenerationRequest] = []

    async def generate(self, request: ImageGenerationRequest) -> ImageGenerationResponse:
        self.requests.append(request)
        start = time.monotonic()
        if self._delay_s > 0:
            await asyncio.sleep(self._delay_s)

        urls: list[str] = []
        if self._emit_outputs:
            urls = [f"mock://outputs/{uuid.uuid4().hex}.png" for _ in range(request.count)]

        return ImageGenerationResponse(
            output_urls=urls,
            execution_time_ms=(time.monotonic() - start) * 1000,
            model=request.model,
            provider=self.provider_name,
            metadata={"input_image_count": len(request.labeled_images)},
        )

    @property
    def provider_name(self) -> str:
        return "mock"
