# src/providers/provider_factory.py — v1
"""Factory: instantiate an image provider from its registered name.

Adapters are imported lazily so the google-genai SDK is only loaded when
the Gemini provider is actually selected.
"""

from __future__ import annotations

import importlib
import logging

from stratrun.config.settings import Settings
from stratrun.providers.base_provider import BaseImageProvider

logger = logging.getLogger(__name__)

# Registry of provider name -> adapter class path (lazy import).
_PROVIDER_REGISTRY: dict[str, str] = {
    "mock": "stratrun.providers.mock_provider.MockImageProvider",
    "gemini": "stratrun.providers.gemini_provider.GeminiImageProvider",
}


class UnsupportedProviderError(ValueError):
    """Raised when a provider is not registered."""


def create_image_provider(
    settings: Settings,
    provider: str | None = None,
    **kwargs: object,
) -> BaseImageProvider:
    """Instantiate the configured image provider.

    Args:
        settings: Application settings (API keys, retry, mock behaviour).
        provider: Override for settings.image_provider.
        **kwargs: Additional adapter-specific arguments.

    Raises:
        UnsupportedProviderError: If provider is not registered.
    """
    name = provider or settings.image_provider
    if name not in _PROVIDER_REGISTRY:
        raise UnsupportedProviderError(
            f"Unsupported image provider: {name!r}. "
            f"Available: {', '.join(sorted(_PROVIDER_REGISTRY))}"
        )

    adapter_cls = _import_class(_PROVIDER_REGISTRY[name])
    init_kwargs = dict(kwargs)

    if name == "mock":
        init_kwargs.setdefault("delay_s", settings.mock_delay_s)
        init_kwargs.setdefault("emit_outputs", settings.mock_emit_outputs)
    elif name == "gemini":
        from stratrun.providers.retry import RetryConfig
        from stratrun.storage.writer_factory import create_writer

        init_kwargs.setdefault("api_key", settings.gemini_api_key)
        init_kwargs.setdefault("writer", create_writer(settings))
        init_kwargs.setdefault("fetch_timeout_s", settings.image_fetch_timeout_s)
        init_kwargs.setdefault(
            "retry_config",
            RetryConfig(
                max_retries=settings.provider_max_retries,
                base_delay_s=settings.provider_retry_base_delay_s,
            ),
        )

    logger.debug("Creating image provider: %s", name)
    return adapter_cls(**init_kwargs)


def register_provider(name: str, class_path: str) -> None:
    """Register a custom provider adapter.

    Args:
        name: Provider identifier.
        class_path: Fully qualified class path implementing BaseImageProvider.
    """
    _PROVIDER_REGISTRY[name] = class_path
    logger.info("Registered image provider: %s -> %s", name, class_path)


def _import_class(class_path: str) -> type:
    """Dynamically import a class from its fully qualified path."""
    module_path, class_name = class_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    return getattr(module, class_name)
