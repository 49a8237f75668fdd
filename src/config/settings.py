# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for deployment-specific settings: record store
backend, image provider, scheduler limits, output storage and logging.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === RECORD STORE ===
    record_store_backend: Literal["memory", "sqlite"] = "memory"
    record_store_path: Path = Path("~/.stratrun/records.db")

    # === IMAGE PROVIDER ===
    image_provider: str = "mock"
    gemini_api_key: str = ""
    default_model: str = "gemini-2.5-flash-image"
    provider_max_retries: int = 3
    provider_retry_base_delay_s: float = 1.0
    image_fetch_timeout_s: float = 30.0

    # Mock provider
    mock_delay_s: float = 0.0
    mock_emit_outputs: bool = True

    # === GENERATED IMAGES ===
    output_root: Path = Path("~/.stratrun/outputs")
    output_public_base_url: str = ""

    # === SCHEDULER ===
    # None = unbounded / no timeout
    max_parallel_steps: int | None = None
    step_timeout_s: float | None = None

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("max_parallel_steps")
    @classmethod
    def validate_max_parallel_steps(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError("max_parallel_steps must be >= 1")
        return v

    @field_validator("step_timeout_s")
    @classmethod
    def validate_step_timeout(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("step_timeout_s must be > 0")
        return v

    @field_validator("provider_max_retries")
    @classmethod
    def validate_provider_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("provider_max_retries must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.image_provider == "gemini" and not self.gemini_api_key:
            errors.append("IMAGE_PROVIDER=gemini requires GEMINI_API_KEY")

        if self.mock_delay_s < 0:
            errors.append("MOCK_DELAY_S must be >= 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or the CLI).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
