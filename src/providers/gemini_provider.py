# src/providers/gemini_provider.py — v1
"""Google Gemini image provider implementing BaseImageProvider.

Uses the google-genai SDK (async client). Input images are fetched with
httpx (or decoded from data: URLs) and sent inline, each optionally
preceded by a "Reference image (<label>):" text part. Output images come
back as inline_data parts and are persisted through the output writer.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import re
import time
import uuid
from typing import Any

import httpx

from stratrun.providers.base_provider import BaseImageProvider
from stratrun.providers.models import ImageGenerationRequest, ImageGenerationResponse
from stratrun.providers.retry import ProviderError, RetryConfig, with_retry
from stratrun.storage.base_output_writer import BaseOutputWriter

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:(image/[\w.+-]+);base64,(.+)$", re.DOTALL)
_MIME_EXTENSIONS = {"image/jpeg": "jpg", "image/png": "png", "image/webp": "webp"}


class GeminiImageProvider(BaseImageProvider):
    """Gemini image generation adapter.

    Args:
        api_key: Gemini API key.
        writer: Destination for generated image bytes.
        retry_config: Backoff policy for transient API errors.
        fetch_timeout_s: Timeout for downloading each input image.
    """

    def __init__(
        self,
        api_key: str,
        writer: BaseOutputWriter,
        retry_config: RetryConfig | None = None,
        fetch_timeout_s: float = 30.0,
        **kwargs: Any,
    ) -> None:
        if not api_key:
            raise ProviderError("Gemini API key is not configured")
        self._api_key = api_key
        self._writer = writer
        self._retry_config = retry_config or RetryConfig()
        self._fetch_timeout_s = fetch_timeout_s
        self._client: Any = None

    @property
    def provider_name(self) -> str:
        return "gemini"

    async def generate(self, request: ImageGenerationRequest) -> ImageGenerationResponse:
        from google.genai import types

        client = self._get_client()
        start = time.monotonic()

        images = await self._fetch_images([img.url for img in request.labeled_images])

        parts: list[Any] = []
        for labeled, (data, mime_type) in zip(request.labeled_images, images):
            if request.tag_images:
                parts.append(types.Part.from_text(text=f"Reference image ({labeled.label}):"))
            parts.append(types.Part.from_bytes(data=data, mime_type=mime_type))
        parts.append(types.Part.from_text(text=request.user_prompt))
        contents = [types.Content(role="user", parts=parts)]

        image_config: dict[str, str] = {}
        if request.aspect_ratio:
            image_config["aspect_ratio"] = request.aspect_ratio
        if request.resolution:
            image_config["image_size"] = request.resolution

        config_kwargs: dict[str, Any] = {
            "system_instruction": request.system_prompt,
            "response_modalities": ["IMAGE", "TEXT"],
        }
        if request.temperature is not None:
            config_kwargs["temperature"] = request.temperature
        if image_config:
            config_kwargs["image_config"] = types.ImageConfig(**image_config)
        if request.use_search:
            config_kwargs["tools"] = [types.Tool(google_search=types.GoogleSearch())]
        config = types.GenerateContentConfig(**config_kwargs)

        output_urls: list[str] = []
        texts: list[str] = []
        # One API call per requested image
        for _ in range(request.count):
            resp = await with_retry(
                _generate_content,
                client,
                request.model,
                contents,
                config,
                label=f"gemini:{request.model}",
                config=self._retry_config,
            )
            for data, mime_type in _extract_images(resp):
                output_urls.append(await self._store_output(data, mime_type))
            text = getattr(resp, "text", None)
            if text:
                texts.append(text)

        elapsed_ms = (time.monotonic() - start) * 1000
        logger.debug(
            "Gemini generation: model=%s, inputs=%d, outputs=%d, %.0fms",
            request.model, len(images), len(output_urls), elapsed_ms,
        )
        return ImageGenerationResponse(
            output_urls=output_urls,
            execution_time_ms=elapsed_ms,
            model=request.model,
            provider=self.provider_name,
            text_response="\n".join(texts) or None,
        )

    def _get_client(self) -> Any:
        """One google-genai client per provider, created on first use."""
        if self._client is None:
            from google import genai

            self._client = genai.Client(api_key=self._api_key)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aio.aclose()
            self._client = None

    async def _fetch_images(self, urls: list[str]) -> list[tuple[bytes, str]]:
        """Download (or decode) every input image concurrently, in input order."""
        async with httpx.AsyncClient(timeout=self._fetch_timeout_s, follow_redirects=True) as http:
            return list(await asyncio.gather(*(_fetch_image(http, url) for url in urls)))

    async def _store_output(self, data: bytes, mime_type: str) -> str:
        ext = _MIME_EXTENSIONS.get(mime_type, "png")
        return await self._writer.write(f"outputs/{uuid.uuid4()}.{ext}", data)


async def _fetch_image(http: httpx.AsyncClient, url: str) -> tuple[bytes, str]:
    if url.startswith("data:"):
        return decode_data_url(url)
    resp = await http.get(url)
    if resp.status_code >= 400:
        raise ProviderError(
            f"Failed to fetch image ({resp.status_code}): {url[:200]}",
            status_code=resp.status_code,
        )
    if not resp.content:
        raise ProviderError(f"Image fetch returned empty body: {url[:200]}")
    mime_type = resp.headers.get("content-type", "image/jpeg").split(";")[0]
    return resp.content, mime_type


async def _generate_content(client: Any, model: str, contents: Any, config: Any) -> Any:
    return await client.aio.models.generate_content(
        model=model, contents=contents, config=config,
    )


def decode_data_url(url: str) -> tuple[bytes, str]:
    """Decode a base64 ``data:image/...`` URL into (bytes, mime type)."""
    match = _DATA_URL_RE.match(url)
    if not match:
        raise ProviderError("Invalid data URL format")
    try:
        return base64.b64decode(match.group(2)), match.group(1)
    except binascii.Error as e:
        raise ProviderError(f"Invalid base64 in data URL: {e}") from e


def _extract_images(response: Any) -> list[tuple[bytes, str]]:
    """Collect inline image payloads from a generate_content response."""
    extracted: list[tuple[bytes, str]] = []
    for cand in getattr(response, "candidates", None) or []:
        content = getattr(cand, "content", None)
        for part in (getattr(content, "parts", None) or []) if content else []:
            inline = getattr(part, "inline_data", None)
            if not inline:
                continue
            data = getattr(inline, "data", None)
            mime_type = getattr(inline, "mime_type", None) or "image/png"
            if isinstance(data, str):
                extracted.append((base64.b64decode(data), mime_type))
            elif isinstance(data, (bytes, bytearray)):
                extracted.append((bytes(data), mime_type))
            else:
                logger.warning("Unexpected image payload type from Gemini: %s", type(data))
    return extracted
