# src/storage/writer_factory.py — v1
"""Factory: instantiate the generated-image writer from configuration."""

from __future__ import annotations

from stratrun.config.settings import Settings
from stratrun.storage.base_output_writer import BaseOutputWriter
from stratrun.storage.local_writer import LocalWriter


def create_writer(settings: Settings) -> BaseOutputWriter:
    """Create the output writer for generated images.

    Args:
        settings: Application settings (OUTPUT_ROOT, OUTPUT_PUBLIC_BASE_URL).
    """
    return LocalWriter(
        base_path=settings.output_root,
        public_base_url=settings.output_public_base_url,
    )
