# tests/unit/providers/test_provider_factory.py — v1
"""Tests for providers/provider_factory.py — registry and instantiation."""

from __future__ import annotations

import pytest

from stratrun.config.settings import Settings
from stratrun.providers.gemini_provider import GeminiImageProvider
from stratrun.providers.mock_provider import MockImageProvider
from stratrun.providers.provider_factory import (
    _PROVIDER_REGISTRY,
    UnsupportedProviderError,
    create_image_provider,
    register_provider,
)


class TestCreateImageProvider:
    def test_mock_default(self):
        provider = create_image_provider(Settings(_env_file=None, mock_delay_s=0.5))
        assert isinstance(provider, MockImageProvider)
        assert provider._delay_s == 0.5

    def test_gemini(self, tmp_path):
        settings = Settings(
            _env_file=None,
            image_provider="gemini",
            gemini_api_key="key",
            output_root=tmp_path,
            provider_max_retries=5,
        )
        provider = create_image_provider(settings)
        assert isinstance(provider, GeminiImageProvider)
        assert provider.provider_name == "gemini"
        assert provider._retry_config.max_retries == 5

    def test_override_name(self):
        provider = create_image_provider(Settings(_env_file=None), provider="mock", emit_outputs=False)
        assert provider._emit_outputs is False

    def test_unknown(self):
        with pytest.raises(UnsupportedProviderError, match="dalle"):
            create_image_provider(Settings(_env_file=None), provider="dalle")

    def test_register_custom(self):
        register_provider("custom", "stratrun.providers.mock_provider.MockImageProvider")
        try:
            provider = create_image_provider(Settings(_env_file=None), provider="custom")
            assert isinstance(provider, MockImageProvider)
        finally:
            _PROVIDER_REGISTRY.pop("custom")
